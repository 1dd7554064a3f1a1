"""
Stage state machine that keeps a serial from resolving itself too early.

The stage only moves forward as plot progress crosses the configured
boundaries; ``resolution`` is left only through the completion workflow.
Before generation the controller emits a constraint bundle for the prompt,
afterwards it re-validates the candidate and works out how far the chapter
moved the plot.
"""

import re
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from loguru import logger
from pydantic import BaseModel, Field

from ..config import PacingConfig
from ..errors import PacingViolationError
from ..models import ChapterCandidate, Stage, StoryState
from ..signals import SignalType, TextSignalExtractor
from ..utils.text import split_sentences, word_count

MILESTONES = (
    "first_encounter",
    "repeated_interactions",
    "trust_building",
    "emotional_awareness",
    "conflict_and_resolution",
    "commitment",
)

MILESTONE_BEATS = {
    "first_encounter": "the leads meet and form a first, possibly wrong, impression",
    "repeated_interactions": "the leads keep crossing paths and are forced to deal with each other",
    "trust_building": "one lead relies on the other in a moment of real need",
    "emotional_awareness": "one lead notices their own feelings without acting on them",
    "conflict_and_resolution": "a misunderstanding or outside pressure splits the leads, then they repair it",
    "commitment": "the leads choose each other openly",
}

STAGE_TONES: Dict[Stage, Tuple[str, ...]] = {
    Stage.INTRODUCTION: ("neutral", "warm", "hopeful", "humorous", "tense"),
    Stage.DEVELOPMENT: ("neutral", "tense", "warm", "romantic", "humorous", "melancholic", "hopeful"),
    Stage.CLIMAX: ("neutral", "tense", "dark", "melancholic", "romantic", "triumphant"),
    Stage.RESOLUTION: (
        "neutral", "warm", "hopeful", "romantic", "triumphant", "melancholic", "humorous",
    ),
}

STAGE_BEATS: Dict[Stage, Tuple[str, ...]] = {
    Stage.INTRODUCTION: (
        "establish the protagonist's situation and what they want",
        "hint at the central conflict without explaining it",
    ),
    Stage.DEVELOPMENT: (
        "build trust through shared trouble",
        "introduce or escalate an external threat",
    ),
    Stage.CLIMAX: (
        "force a decisive confrontation with the main conflict",
        "bring a hidden truth into the open",
    ),
    Stage.RESOLUTION: (
        "resolve the open conflicts one by one",
        "settle the relationship and show its cost",
    ),
}

# max days of story time a single chapter may skip
TIME_JUMP_LIMITS: Dict[Stage, int] = {
    Stage.INTRODUCTION: 1,
    Stage.DEVELOPMENT: 3,
    Stage.CLIMAX: 1,
    Stage.RESOLUTION: 7,
}

_NUMBER_WORDS = {
    "a": 1, "an": 1, "one": 1, "two": 2, "three": 3, "four": 4, "five": 5, "six": 6,
    "seven": 7, "eight": 8, "nine": 9, "ten": 10, "a few": 3, "several": 4,
}
_UNIT_DAYS = {"hour": 1 / 24, "day": 1, "week": 7, "month": 30, "year": 365}
_KO_UNIT_DAYS = {"시간": 1 / 24, "일": 1, "주": 7, "달": 30, "개월": 30, "년": 365}

_TIME_JUMP_EN = re.compile(
    r"\b(\d+|a few|several|an?|one|two|three|four|five|six|seven|eight|nine|ten)\s+"
    r"(hour|day|week|month|year)s?\s+(?:later|passed|had passed|went by|had gone by)",
    re.IGNORECASE,
)
_TIME_JUMP_KO = re.compile(r"(\d+)\s*(시간|개월|일|주|달|년)\s*(?:후|뒤|이 지나)")


class ViolationKind(str, Enum):
    STAGNATION = "stagnation"
    PREMATURE_RESOLUTION = "premature_resolution"
    PREMATURE_ROMANCE = "premature_romance"
    TIME_JUMP = "time_jump"


class PacingViolation(BaseModel):
    kind: ViolationKind
    detail: str
    instruction: str
    evidence: List[str] = Field(default_factory=list)


class PacingConstraints(BaseModel):
    """What the next chapter may and may not do."""

    stage: Stage
    progress: float
    chapter_number: int
    allowed_tones: List[str]
    stagnation_markers: List[str]
    prohibited_events: List[str] = Field(default_factory=list)
    beats: List[str] = Field(default_factory=list)
    milestone: Optional[str] = None
    target_words: int
    min_words: int
    max_words: int
    max_time_jump_days: int
    final_chapter: bool = False
    extra: List[str] = Field(default_factory=list)

    def prompt_lines(self) -> List[str]:
        lines = [
            f"Stage: {self.stage.value} (plot progress {self.progress:.0f}%).",
            f"Length: about {self.target_words} words ({self.min_words}-{self.max_words}).",
            "Keep the emotional tone within: " + ", ".join(self.allowed_tones) + ".",
            f"Do not skip more than {self.max_time_jump_days} day(s) of story time.",
        ]
        if self.beats:
            lines.append("Beats to hit: " + "; ".join(self.beats) + ".")
        if self.milestone:
            lines.append(f"Relationship milestone in play: {MILESTONE_BEATS[self.milestone]}.")
        for event in self.prohibited_events:
            lines.append(f"Forbidden in this chapter: {event}.")
        if self.stagnation_markers:
            lines.append(
                "Something must change; avoid filler such as: "
                + ", ".join(f'"{m}"' for m in self.stagnation_markers[:6]) + "."
            )
        lines.extend(self.extra)
        return lines


class PacingReport(BaseModel):
    stage: Stage
    violations: List[PacingViolation] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    forward_hits: int = 0
    stagnation_hits: int = 0
    tone: str = "neutral"
    word_count: int = 0
    resolved_conflicts: List[str] = Field(default_factory=list)
    new_conflicts: List[str] = Field(default_factory=list)
    progress_increment: float = 0.0
    milestone_reached: bool = False

    @property
    def passed(self) -> bool:
        return not self.violations

    def feedback(self) -> List[str]:
        return [v.instruction for v in self.violations]


def _mentions(sentence: str, phrase: str) -> bool:
    return phrase.strip().lower() in sentence.lower()


class PacingController:
    def __init__(
        self,
        extractor: TextSignalExtractor,
        config: Optional[PacingConfig] = None,
    ):
        self.extractor = extractor
        self.config = config or PacingConfig()

    @property
    def boundaries(self) -> Sequence[float]:
        return tuple(self.config.stage_boundaries)

    def stage_for(self, state: StoryState) -> Stage:
        """Forward-only: never returns a stage earlier than the recorded one."""
        by_progress = Stage.for_progress(state.plot_progress, self.boundaries)
        return by_progress if by_progress.order > state.stage.order else state.stage

    def base_increment(self, state: StoryState) -> float:
        return 100.0 / state.work.target_chapters

    # ------------------------------------------------------------------
    # before generation
    # ------------------------------------------------------------------

    def constraints(self, state: StoryState, final: bool = False) -> PacingConstraints:
        stage = Stage.RESOLUTION if final else self.stage_for(state)
        target = self.config.target_words
        tolerance = self.config.length_tolerance

        prohibited = []
        if stage != Stage.RESOLUTION:
            prohibited.append("fully resolving the main conflict or defeating the central antagonist")
        if stage.order < Stage.CLIMAX.order:
            prohibited.append("confessions of love, engagements, weddings or other relationship commitment")

        milestone = None
        if state.milestone_index < len(MILESTONES):
            milestone = MILESTONES[state.milestone_index]
            if milestone == "commitment" and stage.order < Stage.CLIMAX.order:
                milestone = None

        beats = list(STAGE_BEATS[stage])
        extra = []
        if final:
            beats = ["close every open conflict", "give the leads a clear ending"]
            if state.active_conflicts:
                extra.append("Open conflicts to close: " + "; ".join(state.active_conflicts) + ".")
            unresolved = [f.hint for f in state.unresolved_foreshadowing]
            if unresolved:
                extra.append("Pay off: " + "; ".join(unresolved) + ".")

        denylist = self.extractor.markers(SignalType.STAGNATION)

        return PacingConstraints(
            stage=stage,
            progress=state.plot_progress,
            chapter_number=state.current_chapter + 1,
            allowed_tones=list(STAGE_TONES[stage]),
            stagnation_markers=denylist,
            prohibited_events=prohibited,
            beats=beats,
            milestone=milestone,
            target_words=target,
            min_words=int(target * (1 - tolerance)),
            max_words=int(target * (1 + tolerance)),
            max_time_jump_days=TIME_JUMP_LIMITS[stage],
            final_chapter=final,
            extra=extra,
        )

    # ------------------------------------------------------------------
    # after generation
    # ------------------------------------------------------------------

    def validate(
        self, candidate: ChapterCandidate, state: StoryState, constraints: PacingConstraints
    ) -> PacingReport:
        body = candidate.body
        stage = constraints.stage
        report = PacingReport(
            stage=stage,
            forward_hits=self.extractor.count(body, SignalType.FORWARD_MOTION),
            stagnation_hits=self.extractor.count(body, SignalType.STAGNATION),
            tone=candidate.emotional_tone or self.extractor.dominant_tone(body),
            word_count=word_count(body),
        )

        if report.stagnation_hits >= self.config.stagnation_limit and report.forward_hits == 0:
            report.violations.append(PacingViolation(
                kind=ViolationKind.STAGNATION,
                detail=f"{report.stagnation_hits} stagnation markers and no forward motion",
                instruction="Something concrete must happen: a discovery, a decision or a reversal. "
                            "Do not describe an ordinary day where nothing changes.",
                evidence=self.extractor.matches(body, SignalType.STAGNATION),
            ))

        resolved = self._resolved_conflicts(candidate, state)
        main = state.active_conflicts[0] if state.active_conflicts else None
        if not constraints.final_chapter and stage != Stage.RESOLUTION:
            events = self.extractor.matches(body, SignalType.RESOLUTION_EVENT)
            main_resolved = main is not None and stage.order < Stage.CLIMAX.order and any(
                c.lower() == main.lower() for c in resolved
            )
            if events or main_resolved:
                evidence = events + ([main] if main_resolved else [])
                report.violations.append(PacingViolation(
                    kind=ViolationKind.PREMATURE_RESOLUTION,
                    detail=f"stage-ending event during {stage.value}",
                    instruction=f"Do not resolve the main conflict ({main or 'the central conflict'}) "
                                f"yet; the story is still in the {stage.value} stage. "
                                "Complicate it instead.",
                    evidence=evidence,
                ))

        if stage.order < Stage.CLIMAX.order and not constraints.final_chapter:
            commitments = self.extractor.matches(body, SignalType.ROMANCE_COMMITMENT)
            if commitments:
                report.violations.append(PacingViolation(
                    kind=ViolationKind.PREMATURE_ROMANCE,
                    detail=f"relationship commitment during {stage.value}",
                    instruction="No confessions, kisses, engagements or weddings yet; keep the "
                                "relationship at the level of tension and unspoken feeling.",
                    evidence=commitments,
                ))

        jumps = [j for j in self._time_jumps(body) if j[1] > constraints.max_time_jump_days]
        if jumps:
            report.violations.append(PacingViolation(
                kind=ViolationKind.TIME_JUMP,
                detail=f"time skip larger than {constraints.max_time_jump_days} day(s)",
                instruction=f"Keep the story time continuous; skip at most "
                            f"{constraints.max_time_jump_days} day(s).",
                evidence=[j[0] for j in jumps],
            ))

        if report.tone not in constraints.allowed_tones:
            report.warnings.append(
                f"tone '{report.tone}' drifts from the {stage.value} palette"
            )
        if not constraints.min_words <= report.word_count <= constraints.max_words:
            report.warnings.append(
                f"{report.word_count} words, outside {constraints.min_words}-{constraints.max_words}"
            )

        report.resolved_conflicts = resolved
        report.new_conflicts = [
            c for c in candidate.new_conflicts
            if not any(c.lower() == a.lower() for a in state.active_conflicts)
        ]
        report.progress_increment = self.progress_increment(
            state, len(resolved), len(report.new_conflicts), constraints.final_chapter
        )
        report.milestone_reached = self._milestone_reached(body, state, stage)

        if report.violations:
            logger.warning(
                f"Pacing rejected chapter {constraints.chapter_number} of '{state.work_id}': "
                + "; ".join(f"{v.kind.value} ({v.detail})" for v in report.violations)
            )
        for warning in report.warnings:
            logger.debug(f"Pacing warning for '{state.work_id}': {warning}")
        return report

    def enforce(
        self, candidate: ChapterCandidate, state: StoryState, constraints: PacingConstraints
    ) -> PacingReport:
        report = self.validate(candidate, state, constraints)
        if not report.passed:
            raise PacingViolationError(
                f"Chapter {constraints.chapter_number} breaks {constraints.stage.value} pacing",
                report=report,
                rationale="; ".join(v.detail for v in report.violations),
            )
        return report

    def progress_increment(
        self, state: StoryState, resolved: int, new: int, final: bool = False
    ) -> float:
        if final:
            return 100.0 - state.plot_progress
        base = self.base_increment(state)
        increment = base + 0.5 * base * resolved + 0.1 * base * new
        return round(min(increment, 2 * base), 4)

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _resolved_conflicts(self, candidate: ChapterCandidate, state: StoryState) -> List[str]:
        resolved = []
        declared = {c.strip().lower() for c in candidate.resolved_conflicts}
        sentences = split_sentences(candidate.body)
        for conflict in state.active_conflicts:
            if conflict.lower() in declared:
                resolved.append(conflict)
                continue
            for sentence in sentences:
                if _mentions(sentence, conflict) and (
                    self.extractor.contains(sentence, SignalType.RESOLUTION)
                    or self.extractor.contains(sentence, SignalType.RESOLUTION_EVENT)
                ):
                    resolved.append(conflict)
                    break
        return resolved

    def _time_jumps(self, text: str) -> List[Tuple[str, float]]:
        jumps = []
        for m in _TIME_JUMP_EN.finditer(text):
            amount = m.group(1).lower()
            n = int(amount) if amount.isdigit() else _NUMBER_WORDS.get(amount, 1)
            jumps.append((m.group(0), n * _UNIT_DAYS[m.group(2).lower()]))
        for m in _TIME_JUMP_KO.finditer(text):
            jumps.append((m.group(0), int(m.group(1)) * _KO_UNIT_DAYS[m.group(2)]))
        return jumps

    def _milestone_reached(self, body: str, state: StoryState, stage: Stage) -> bool:
        if state.milestone_index >= len(MILESTONES):
            return False
        if MILESTONES[state.milestone_index] == "commitment":
            if stage.order < Stage.CLIMAX.order:
                return False
            return self.extractor.contains(body, SignalType.ROMANCE_COMMITMENT)
        progress = self.extractor.distinct(body, SignalType.RELATIONSHIP_PROGRESS)
        regress = self.extractor.count(body, SignalType.RELATIONSHIP_REGRESS)
        return progress >= 2 and progress > regress
