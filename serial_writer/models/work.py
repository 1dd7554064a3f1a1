"""Durable per-work continuity record."""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WorkStatus(str, Enum):
    DRAFTING = "drafting"
    SERIALIZING = "serializing"
    COMPLETE = "complete"


class Stage(str, Enum):
    INTRODUCTION = "introduction"
    DEVELOPMENT = "development"
    CLIMAX = "climax"
    RESOLUTION = "resolution"

    @property
    def order(self) -> int:
        return list(Stage).index(self)

    @classmethod
    def for_progress(cls, progress: float, boundaries: Sequence[float] = (25.0, 50.0, 75.0)) -> "Stage":
        stages = list(cls)
        for stage, upper in zip(stages, boundaries):
            if progress < upper:
                return stage
        return stages[-1]


class CharacterRole(str, Enum):
    PROTAGONIST = "protagonist"
    COUNTERPART = "counterpart"
    SUPPORTING = "supporting"


class StableTraits(BaseModel):
    """Set once when the character is introduced; never touched by generation."""

    model_config = ConfigDict(frozen=True)

    appearance: str = ""
    personality: tuple[str, ...] = ()


class CharacterState(BaseModel):
    location: str = ""
    emotional_state: str = ""
    relationship_status: str = ""


class Character(BaseModel):
    name: str
    role: CharacterRole = CharacterRole.SUPPORTING
    traits: StableTraits = Field(default_factory=StableTraits)
    state: CharacterState = Field(default_factory=CharacterState)
    introduced_chapter: int = 0
    last_seen_chapter: int = 0


class ForeshadowingEntry(BaseModel):
    hint: str
    planted_chapter: int = 0
    resolved_chapter: Optional[int] = None

    @property
    def resolved(self) -> bool:
        return self.resolved_chapter is not None


class ChapterRecord(BaseModel):
    """Timeline entry kept in the continuity record for every committed chapter."""

    number: int
    title: str
    summary: str = ""
    key_events: List[str] = Field(default_factory=list)
    emotional_tone: str = ""
    word_count: int = 0
    quality_score: float = 0.0
    degraded: bool = False
    committed_at: datetime = Field(default_factory=utcnow)


class Work(BaseModel):
    id: str
    title: str
    status: WorkStatus = WorkStatus.DRAFTING
    target_chapters: int = Field(default=75, gt=0)
    created_at: datetime = Field(default_factory=utcnow)
    logline: str = ""
    tropes: List[str] = Field(default_factory=list)
    language: str = "en"

    @field_validator("id")
    @classmethod
    def id_is_slug(cls, v: str) -> str:
        if not v or not all(c.isalnum() or c == "-" for c in v) or v != v.lower():
            raise ValueError("work id must be a lowercase slug")
        return v


class WorkMetadata(BaseModel):
    """Initial metadata supplied when a work is created."""

    title: str = Field(min_length=1)
    target_chapters: int = Field(default=75, gt=0)
    logline: str = ""
    tropes: List[str] = Field(default_factory=list)
    language: str = "en"
    characters: List[Character] = Field(default_factory=list)
    world_rules: List[str] = Field(default_factory=list)
    conflicts: List[str] = Field(default_factory=list)
    foreshadowing: List[str] = Field(default_factory=list)


class StoryState(BaseModel):
    """The full continuity record of one work."""

    work: Work
    current_chapter: int = Field(default=0, ge=0)
    plot_progress: float = Field(default=0.0, ge=0.0, le=100.0)
    stage: Stage = Stage.INTRODUCTION
    world_rules: tuple[str, ...] = ()
    characters: Dict[str, Character] = Field(default_factory=dict)
    active_conflicts: List[str] = Field(default_factory=list)
    resolved_conflicts: List[str] = Field(default_factory=list)
    foreshadowing: List[ForeshadowingEntry] = Field(default_factory=list)
    quality_history: List[float] = Field(default_factory=list)
    history_capacity: int = Field(default=10, gt=0)
    timeline: List[ChapterRecord] = Field(default_factory=list)
    milestone_index: int = Field(default=0, ge=0)
    last_chapter_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def work_id(self) -> str:
        return self.work.id

    @property
    def unresolved_foreshadowing(self) -> List[ForeshadowingEntry]:
        return [f for f in self.foreshadowing if not f.resolved]

    @property
    def last_activity(self) -> datetime:
        return self.last_chapter_at or self.work.created_at

    def record_quality(self, score: float) -> None:
        self.quality_history.append(round(score, 2))
        overflow = len(self.quality_history) - self.history_capacity
        if overflow > 0:
            del self.quality_history[:overflow]

    def protagonists(self) -> List[Character]:
        return [c for c in self.characters.values() if c.role != CharacterRole.SUPPORTING]
