"""Shared fixtures: story states, a file store, and a scripted generator."""

from datetime import timedelta

import pytest

from serial_writer.config import Config, StorageConfig
from serial_writer.errors import GenerationError
from serial_writer.generation import GenerationOrchestrator
from serial_writer.generation.client import GenerationResponse, TextGenerator, estimate_tokens
from serial_writer.models import (
    Chapter,
    Character,
    CharacterRole,
    Engine,
    StableTraits,
    Stage,
    StateDelta,
    StoryState,
    Work,
    WorkMetadata,
    WorkStatus,
)
from serial_writer.models.work import utcnow
from serial_writer.quality import Analyzer, QualityAssuranceGateway
from serial_writer.signals import default_extractor
from serial_writer.state import StoryStateStore

MAIN_CONFLICT = "the curse on the Duke"
SIDE_CONFLICT = "a rival house plots against Elena"

GOOD_BODY = """Elena discovered the letter behind the portrait an hour before the ball. The wax seal was cold under her thumb, and the scent of smoke still clung to the paper as if someone had held it over a candle.

"Who else has seen this?" Kael asked. He stood too close, and his voice was low, barely a whisper.

"No one," she answered. "I found it where the steward hid it."

The truth was worse than any rumor. The letter revealed that the Duke's own brother had planned the ambush on the northern road, and that the enemy waiting at the border had been paid in palace gold. Elena felt her heart pound against her ribs. For the first time she saw how deep the danger ran.

Kael hesitated. A memory crossed his face, a scar he never spoke about, and for a moment he looked vulnerable in the golden lamplight. "If you take this to the council, they will call it a threat to the throne."

"Then let them," Elena said. She had always been stubborn, and she was not going to stop now. She refused to burn the letter. Instead she decided to confront the steward before the music began.

Her breath caught when he took her hand. "Then we go together," he said. "I trusted you once when no one else did. I will not stop now."

They crossed the gallery like a pair of shadows. Candles flickered on silver trays; somewhere a violin tested a bitter note. The steward was waiting by the fountain, furious and desperate, his hand already on his sword.

"You should not have come, my lady," he warned.

Elena lifted the letter so the magic in the seal glimmered crimson. "You should not have lied to the Duke."

Kael shifted beside her, loyal and silent, ready for whatever came next. It was an unexpected alliance, and she was afraid of how much she needed it. But the Duke's curse had a name now, and she meant to say it aloud."""

FLAT_BODY = """As usual, Elena walked to the library after breakfast. The library was quiet. The library was quiet and the shelves were full of books.

Nothing changed in the garden. Once again she watered the roses and sat by the window. She sat by the window and she sat by the window until the evening came.

Like every other day, the maid brought tea. The maid brought tea and Elena drank the tea. Then she went to bed."""

RESOLVING_BODY = GOOD_BODY + """

Before the night was over the steward confessed everything. With his words the curse on the Duke was broken, and the conflict was resolved before the guests had even finished their wine."""


def chapter_output(body=GOOD_BODY, title="The Letter Behind the Portrait", resolved="", new="- the steward's master is still unknown"):
    return f"""## TITLE
{title}
## SUMMARY
Elena finds proof that the Duke's brother arranged the ambush. She and Kael confront the steward.
## KEY EVENTS
- Elena finds the hidden letter
- Kael takes her side against the steward
## EMOTIONAL TONE
tense
## NEW CONFLICTS
{new}
## RESOLVED CONFLICTS
{resolved}
## CHARACTER UPDATES
- Elena | the gallery | determined | allied with Kael
- Kael | the gallery | guarded | protective of Elena
## FORESHADOWING
- the violin player watches them leave
## BODY
{body}
"""


CONCEPT_OUTPUT = f"""## TITLE
The Moonlit Duke
## LOGLINE
A scholar's daughter must break a curse on a duke who wants her gone.
## TROPES
- contract marriage
- enemies to lovers
## CHARACTERS
- Elena | protagonist | dark hair, ink-stained fingers | stubborn, curious
- Kael | counterpart | silver eyes | guarded, loyal
- Mira | supporting | freckles | cheerful
## WORLD RULES
- Magic always leaves a mark on its caster
## CONFLICTS
- {MAIN_CONFLICT}
- {SIDE_CONFLICT}
## FORESHADOWING
- the portrait in the east wing
"""


def characters():
    return [
        Character(name="Elena", role=CharacterRole.PROTAGONIST,
                  traits=StableTraits(appearance="dark hair", personality=("stubborn", "curious"))),
        Character(name="Kael", role=CharacterRole.COUNTERPART,
                  traits=StableTraits(appearance="silver eyes", personality=("guarded", "loyal"))),
        Character(name="Mira", role=CharacterRole.SUPPORTING,
                  traits=StableTraits(personality=("cheerful",))),
    ]


def metadata(title="The Moonlit Duke", target_chapters=25):
    return WorkMetadata(
        title=title,
        target_chapters=target_chapters,
        logline="A scholar's daughter must break a curse on a duke who wants her gone.",
        tropes=["contract marriage"],
        characters=characters(),
        world_rules=["Magic always leaves a mark on its caster"],
        conflicts=[MAIN_CONFLICT, SIDE_CONFLICT],
        foreshadowing=["the portrait in the east wing"],
    )


def make_state(
    work_id="moonlit-duke",
    progress=0.0,
    chapter=0,
    stage=None,
    status=WorkStatus.SERIALIZING,
    history=None,
    conflicts=None,
    target_chapters=75,
    idle_hours=1.0,
    updated_hours_ago=1.0,
    now=None,
):
    now = now or utcnow()
    return StoryState(
        work=Work(id=work_id, title=work_id.replace("-", " ").title(), status=status,
                  target_chapters=target_chapters, created_at=now - timedelta(days=30)),
        current_chapter=chapter,
        plot_progress=progress,
        stage=stage or Stage.for_progress(progress),
        characters={c.name: c for c in characters()},
        active_conflicts=list(conflicts if conflicts is not None else [MAIN_CONFLICT, SIDE_CONFLICT]),
        quality_history=list(history or []),
        last_chapter_at=now - timedelta(hours=idle_hours) if chapter else None,
        updated_at=now - timedelta(hours=updated_hours_ago),
    )


def seed_work(store, title="The Moonlit Duke", chapters=0, progress_per=4.0, target_chapters=25):
    """Create a work and commit ``chapters`` short placeholder chapters."""
    work_id = title.lower().replace(" ", "-")
    store.create(work_id, metadata(title, target_chapters))
    for n in range(1, chapters + 1):
        store.commit_chapter(
            work_id,
            Chapter(
                work_id=work_id,
                number=n,
                title=f"Chapter {n}",
                body=f"Elena spent day {n} in the archive reading letter number {n}.",
                summary=f"Elena reads letter {n}. Kael keeps watch.",
                word_count=11,
            ),
            StateDelta(progress_increment=progress_per),
        )
    return work_id


class FakeGenerator(TextGenerator):
    """Replays scripted outputs; an Exception in the script is raised instead."""

    def __init__(self, responses):
        super().__init__()
        self.responses = list(responses)
        self.prompts = []

    def generate(self, prompt, profile):
        self.prompts.append(prompt)
        if not self.responses:
            raise GenerationError("scripted generator has no more responses")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        response = GenerationResponse(text=item, tokens_used=estimate_tokens(prompt, item))
        self._log("generate", prompt, response)
        return response


class FixedAnalyzer(Analyzer):
    def __init__(self, engine, score):
        super().__init__(None)
        self.engine = engine
        self.score = score

    def analyze(self, text, context):
        return self._result(self.score, {"fixed": True}, {}, [])


def fixed_gateway(extractor, config, score):
    return QualityAssuranceGateway(
        extractor, config.quality, analyzers=[FixedAnalyzer(e, score) for e in Engine]
    )


@pytest.fixture
def extractor():
    return default_extractor()


@pytest.fixture
def config(tmp_path):
    return Config(storage=StorageConfig(data_dir=tmp_path / "data"))


@pytest.fixture
def store(config):
    return StoryStateStore(
        config.storage.data_dir,
        history_size=config.automation.quality_history_size,
        stage_boundaries=config.pacing.stage_boundaries,
    )


@pytest.fixture
def make_orchestrator(config, store, extractor):
    """Build an orchestrator around a scripted generator and fixed quality scores."""

    def build(responses, score=8.5, cfg=None):
        cfg = cfg or config
        sleeps = []
        orchestrator = GenerationOrchestrator(
            cfg,
            generator=FakeGenerator(responses),
            store=store,
            extractor=extractor,
            sleep=sleeps.append,
        )
        orchestrator.gateway = fixed_gateway(extractor, cfg, score)
        orchestrator.sleeps = sleeps
        return orchestrator

    return build
