from .work import (
    WorkStatus,
    Stage,
    CharacterRole,
    StableTraits,
    CharacterState,
    Character,
    ForeshadowingEntry,
    ChapterRecord,
    Work,
    WorkMetadata,
    StoryState,
)
from .quality import Engine, Grade, EngineAnalysis, QualityReport
from .chapter import CharacterUpdate, StateDelta, ChapterCandidate, Chapter

__all__ = [
    "WorkStatus",
    "Stage",
    "CharacterRole",
    "StableTraits",
    "CharacterState",
    "Character",
    "ForeshadowingEntry",
    "ChapterRecord",
    "Work",
    "WorkMetadata",
    "StoryState",
    "Engine",
    "Grade",
    "EngineAnalysis",
    "QualityReport",
    "CharacterUpdate",
    "StateDelta",
    "ChapterCandidate",
    "Chapter",
]
