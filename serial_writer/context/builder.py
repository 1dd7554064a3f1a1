"""Compress a continuity record into a bounded generation context."""

from typing import List, Optional

from loguru import logger
from pydantic import BaseModel, Field

from ..errors import ContextBudgetError
from ..models import ChapterRecord, StoryState
from ..utils.text import split_sentences

CHARS_PER_TOKEN = 4


def tokens_to_chars(tokens: int, chars_per_token: int = CHARS_PER_TOKEN) -> int:
    return tokens * chars_per_token


class RecentChapter(BaseModel):
    number: int
    full: str
    brief: str
    detailed: bool = True

    @property
    def text(self) -> str:
        return self.full if self.detailed else self.brief


class GenerationContext(BaseModel):
    work_id: str
    budget: int
    essential: List[str]
    recent: List[RecentChapter] = Field(default_factory=list)
    conflicts: List[str] = Field(default_factory=list)
    foreshadowing: List[str] = Field(default_factory=list)
    character_states: List[str] = Field(default_factory=list)
    dropped_chapters: List[int] = Field(default_factory=list)

    def render(self) -> str:
        parts = ["# Essential facts", *self.essential]
        if self.conflicts:
            parts += ["", "# Active conflicts", *(f"- {c}" for c in self.conflicts)]
        if self.foreshadowing:
            parts += ["", "# Unresolved foreshadowing", *(f"- {f}" for f in self.foreshadowing)]
        if self.character_states:
            parts += ["", "# Current character states", *(f"- {s}" for s in self.character_states)]
        if self.recent:
            chronological = sorted(self.recent, key=lambda r: r.number)
            parts += ["", "# Recent chapters", *(f"- {r.text}" for r in chronological)]
        return "\n".join(parts)

    @property
    def size(self) -> int:
        return len(self.render())


def _essential_lines(state: StoryState) -> List[str]:
    work = state.work
    lines = [
        f"Title: {work.title}",
        f"Stage: {state.stage.value} ({state.plot_progress:.0f}% of the plot, chapter "
        f"{state.current_chapter + 1} of about {work.target_chapters})",
    ]
    if work.logline:
        lines.append(f"Premise: {work.logline}")
    if state.characters:
        lines.append("## Characters (fixed traits)")
        for c in state.characters.values():
            traits = []
            if c.traits.appearance:
                traits.append(c.traits.appearance)
            if c.traits.personality:
                traits.append("personality: " + ", ".join(c.traits.personality))
            detail = "; ".join(traits) or "no fixed traits recorded"
            lines.append(f"- {c.name} ({c.role.value}): {detail}")
    if state.world_rules:
        lines.append("## World rules")
        lines.extend(f"- {rule}" for rule in state.world_rules)
    return lines


def _recent_entry(record: ChapterRecord) -> RecentChapter:
    head = f'Ch{record.number} "{record.title}"'
    full = f"{head}: {record.summary}" if record.summary else head
    if record.key_events:
        full += " | key events: " + "; ".join(record.key_events)
    if record.emotional_tone:
        full += f" | tone: {record.emotional_tone}"
    sentences = split_sentences(record.summary)
    brief = f"{head}: {sentences[0]}" if sentences else head
    return RecentChapter(number=record.number, full=full, brief=brief)


class ContinuityContextBuilder:
    """
    Essential facts always survive; everything else is shed oldest-detail
    first until the rendered context fits the budget.

    Shedding order: downgrade the oldest detailed chapter to its brief form,
    then drop the oldest chapter, then character states, foreshadowing and
    finally conflicts (oldest first within each group).
    """

    def __init__(self, budget_chars: int = 6000, recent_window: int = 5):
        self.budget_chars = budget_chars
        self.recent_window = recent_window

    def build(self, state: StoryState, budget: Optional[int] = None) -> GenerationContext:
        budget = budget if budget is not None else self.budget_chars
        context = GenerationContext(work_id=state.work_id, budget=budget, essential=_essential_lines(state))
        if context.size > budget:
            raise ContextBudgetError(
                f"Essential facts for '{state.work_id}' need {context.size} chars, budget is {budget}"
            )

        window = state.timeline[-self.recent_window:] if self.recent_window else []
        context.recent = [_recent_entry(r) for r in window]
        context.conflicts = list(state.active_conflicts)
        context.foreshadowing = [
            f"{f.hint} (planted in chapter {f.planted_chapter})" if f.planted_chapter else f.hint
            for f in state.unresolved_foreshadowing
        ]
        context.character_states = [
            self._state_line(c.name, c.state.location, c.state.emotional_state, c.state.relationship_status)
            for c in state.characters.values()
            if c.state.location or c.state.emotional_state or c.state.relationship_status
        ]

        while context.size > budget:
            if not self._shed(context):
                break

        if context.dropped_chapters:
            logger.debug(
                f"Context for '{state.work_id}' dropped chapters {context.dropped_chapters} "
                f"to fit {budget} chars"
            )
        return context

    @staticmethod
    def _state_line(name: str, location: str, mood: str, relationship: str) -> str:
        bits = []
        if location:
            bits.append(f"at {location}")
        if mood:
            bits.append(f"feeling {mood}")
        if relationship:
            bits.append(f"relationship: {relationship}")
        return f"{name}: " + ", ".join(bits)

    @staticmethod
    def _shed(context: GenerationContext) -> bool:
        oldest_first = sorted(context.recent, key=lambda r: r.number)
        for entry in oldest_first:
            if entry.detailed and entry.full != entry.brief:
                entry.detailed = False
                return True
        if oldest_first:
            victim = oldest_first[0]
            context.recent.remove(victim)
            context.dropped_chapters.append(victim.number)
            return True
        for group in (context.character_states, context.foreshadowing, context.conflicts):
            if group:
                group.pop(0)
                return True
        return False
