import pytest

from serial_writer.config import PacingConfig
from serial_writer.errors import PacingViolationError
from serial_writer.models import ChapterCandidate, Stage
from serial_writer.pacing import MILESTONES, PacingController, ViolationKind

from conftest import GOOD_BODY, MAIN_CONFLICT, RESOLVING_BODY, SIDE_CONFLICT, make_state

STAGNANT_BODY = (
    "As usual, Elena walked to the library after breakfast and read by the window. "
    "Nothing changed in the garden. Once again she watered the roses and sat on the bench "
    "until the light faded, like every other day."
)


@pytest.fixture
def pacing(extractor):
    return PacingController(extractor)


def candidate(body, resolved=(), new=()):
    return ChapterCandidate(title="t", body=body, resolved_conflicts=list(resolved), new_conflicts=list(new))


def kinds(report):
    return {v.kind for v in report.violations}


class TestStageMachine:
    @pytest.mark.parametrize("progress,stage", [
        (0.0, Stage.INTRODUCTION),
        (24.9, Stage.INTRODUCTION),
        (25.0, Stage.DEVELOPMENT),
        (60.0, Stage.CLIMAX),
        (80.0, Stage.RESOLUTION),
    ])
    def test_stage_for_progress(self, pacing, progress, stage):
        assert pacing.stage_for(make_state(progress=progress)) == stage

    def test_stage_never_moves_backwards(self, pacing):
        state = make_state(progress=30.0, stage=Stage.CLIMAX)
        assert pacing.stage_for(state) == Stage.CLIMAX

    @pytest.mark.parametrize("progress,days", [(10, 1), (40, 3), (60, 1), (90, 7)])
    def test_time_jump_limits(self, pacing, progress, days):
        assert pacing.constraints(make_state(progress=progress)).max_time_jump_days == days

    def test_time_jump_follows_configured_boundaries(self, extractor):
        pacing = PacingController(extractor, PacingConfig(stage_boundaries=[10, 20, 30]))
        state = make_state(progress=15.0, chapter=5)
        assert pacing.constraints(state).max_time_jump_days == 3
        assert pacing.constraints(make_state(progress=25.0)).max_time_jump_days == 1


class TestConstraints:
    def test_development_bundle(self, pacing):
        constraints = pacing.constraints(make_state(progress=40.0, chapter=10))
        assert constraints.stage == Stage.DEVELOPMENT
        assert constraints.chapter_number == 11
        assert "tense" in constraints.allowed_tones
        assert "as usual" in constraints.stagnation_markers
        assert len(constraints.prohibited_events) == 2
        assert constraints.min_words < constraints.target_words < constraints.max_words
        assert constraints.max_time_jump_days == 3
        lines = constraints.prompt_lines()
        assert any("Forbidden in this chapter" in line for line in lines)
        assert any(line.startswith("Stage: development") for line in lines)

    def test_final_bundle_permits_closure(self, pacing):
        constraints = pacing.constraints(make_state(progress=96.0, chapter=70), final=True)
        assert constraints.stage == Stage.RESOLUTION
        assert constraints.final_chapter
        assert constraints.prohibited_events == []
        assert any(MAIN_CONFLICT in line for line in constraints.extra)

    def test_commitment_milestone_hidden_before_climax(self, pacing):
        state = make_state(progress=30.0)
        state.milestone_index = MILESTONES.index("commitment")
        assert pacing.constraints(state).milestone is None
        state = make_state(progress=60.0)
        state.milestone_index = MILESTONES.index("commitment")
        assert pacing.constraints(state).milestone == "commitment"


class TestValidation:
    def test_stagnation_is_a_violation(self, pacing, extractor):
        state = make_state(progress=40.0, chapter=10)
        report = pacing.validate(candidate(STAGNANT_BODY), state, pacing.constraints(state))
        assert report.forward_hits == 0
        assert report.stagnation_hits >= 3
        assert ViolationKind.STAGNATION in kinds(report)

    def test_good_chapter_passes(self, pacing):
        state = make_state(progress=40.0, chapter=10)
        report = pacing.validate(candidate(GOOD_BODY), state, pacing.constraints(state))
        assert report.passed, report.violations
        assert report.forward_hits > 0
        assert report.resolved_conflicts == []

    def test_premature_resolution_in_development(self, pacing):
        state = make_state(progress=40.0, chapter=10)
        constraints = pacing.constraints(state)
        with pytest.raises(PacingViolationError) as exc:
            pacing.enforce(candidate(RESOLVING_BODY), state, constraints)
        report = exc.value.report
        assert ViolationKind.PREMATURE_RESOLUTION in kinds(report)
        assert any(MAIN_CONFLICT in line for line in report.feedback())
        assert "development stage" in report.feedback()[0]

    def test_declared_main_resolution_rejected_before_climax(self, pacing):
        state = make_state(progress=40.0, chapter=10)
        report = pacing.validate(candidate(GOOD_BODY, resolved=[MAIN_CONFLICT]), state, pacing.constraints(state))
        assert ViolationKind.PREMATURE_RESOLUTION in kinds(report)

    def test_side_conflict_may_resolve(self, pacing):
        state = make_state(progress=40.0, chapter=10)
        report = pacing.validate(candidate(GOOD_BODY, resolved=[SIDE_CONFLICT]), state, pacing.constraints(state))
        assert report.passed
        assert report.resolved_conflicts == [SIDE_CONFLICT]

    def test_resolution_allowed_in_final_chapter(self, pacing):
        state = make_state(progress=96.0, chapter=70)
        report = pacing.validate(candidate(RESOLVING_BODY), state, pacing.constraints(state, final=True))
        assert ViolationKind.PREMATURE_RESOLUTION not in kinds(report)
        assert report.progress_increment == pytest.approx(4.0)

    def test_premature_romance(self, pacing):
        state = make_state(progress=10.0, chapter=3)
        body = GOOD_BODY + '\n\n"Will you marry me?" he asked, and she said yes.'
        report = pacing.validate(candidate(body), state, pacing.constraints(state))
        assert ViolationKind.PREMATURE_ROMANCE in kinds(report)

        state = make_state(progress=60.0, chapter=45)
        report = pacing.validate(candidate(body), state, pacing.constraints(state))
        assert ViolationKind.PREMATURE_ROMANCE not in kinds(report)

    def test_time_jump(self, pacing):
        state = make_state(progress=40.0, chapter=10)
        constraints = pacing.constraints(state)
        jumped = GOOD_BODY + "\n\nTwo weeks later, the ballroom was empty."
        assert ViolationKind.TIME_JUMP in kinds(pacing.validate(candidate(jumped), state, constraints))
        short = GOOD_BODY + "\n\nTwo days later, the ballroom was empty."
        assert ViolationKind.TIME_JUMP not in kinds(pacing.validate(candidate(short), state, constraints))

    def test_korean_time_jump(self, pacing):
        state = make_state(progress=10.0, chapter=3)
        body = GOOD_BODY + "\n\n3주 후, 그녀는 다시 성으로 돌아왔다."
        assert ViolationKind.TIME_JUMP in kinds(pacing.validate(candidate(body), state, pacing.constraints(state)))

    def test_length_and_tone_are_warnings_only(self, pacing):
        state = make_state(progress=10.0, chapter=3)
        report = pacing.validate(candidate(GOOD_BODY), state, pacing.constraints(state))
        assert any("words" in w for w in report.warnings)
        assert report.passed


class TestProgress:
    def test_increment_rules(self, pacing):
        state = make_state(target_chapters=50)
        assert pacing.progress_increment(state, 0, 0) == pytest.approx(2.0)
        assert pacing.progress_increment(state, 1, 0) == pytest.approx(3.0)
        assert pacing.progress_increment(state, 0, 2) == pytest.approx(2.4)
        assert pacing.progress_increment(state, 5, 5) == pytest.approx(4.0)

    def test_final_chapter_fills_to_100(self, pacing):
        state = make_state(progress=97.5)
        assert pacing.progress_increment(state, 0, 0, final=True) == pytest.approx(2.5)

    def test_new_conflicts_counted_once(self, pacing):
        state = make_state(progress=40.0, chapter=10)
        report = pacing.validate(
            candidate(GOOD_BODY, new=[MAIN_CONFLICT.upper(), "the steward's master"]),
            state, pacing.constraints(state),
        )
        assert report.new_conflicts == ["the steward's master"]

    def test_milestone_reached_on_relationship_progress(self, pacing):
        state = make_state(progress=40.0, chapter=10)
        report = pacing.validate(candidate(GOOD_BODY), state, pacing.constraints(state))
        assert report.milestone_reached
