"""Generated chapter artifacts and the state delta they carry."""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .quality import QualityReport
from .work import Character, utcnow


class CharacterUpdate(BaseModel):
    """Mutable character state changes. Stable traits cannot be expressed here."""

    location: Optional[str] = None
    emotional_state: Optional[str] = None
    relationship_status: Optional[str] = None


class StateDelta(BaseModel):
    character_updates: Dict[str, CharacterUpdate] = Field(default_factory=dict)
    new_characters: List[Character] = Field(default_factory=list)
    new_conflicts: List[str] = Field(default_factory=list)
    resolved_conflicts: List[str] = Field(default_factory=list)
    planted_foreshadowing: List[str] = Field(default_factory=list)
    resolved_foreshadowing: List[str] = Field(default_factory=list)
    progress_increment: float = Field(default=0.0, ge=0.0)
    milestone_reached: bool = False


class ChapterCandidate(BaseModel):
    """Parsed generator output before pacing and quality checks."""

    title: str
    body: str
    summary: str = ""
    key_events: List[str] = Field(default_factory=list)
    emotional_tone: str = ""
    new_conflicts: List[str] = Field(default_factory=list)
    resolved_conflicts: List[str] = Field(default_factory=list)
    foreshadowing: List[str] = Field(default_factory=list)
    character_updates: Dict[str, CharacterUpdate] = Field(default_factory=dict)
    missing_fields: List[str] = Field(default_factory=list)


class Chapter(BaseModel):
    """A committed chapter. Immutable once constructed."""

    model_config = ConfigDict(frozen=True)

    work_id: str
    number: int = Field(gt=0)
    title: str = Field(min_length=1)
    body: str = Field(min_length=1)
    summary: str = ""
    key_events: tuple[str, ...] = ()
    emotional_tone: str = ""
    word_count: int = Field(default=0, ge=0)
    quality: Optional[QualityReport] = None
    completion: bool = False
    degraded: bool = False
    created_at: datetime = Field(default_factory=utcnow)
