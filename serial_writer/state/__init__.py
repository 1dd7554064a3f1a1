from .store import StoryStateStore
from .documents import (
    WorkDocument,
    ChapterDocument,
    work_document,
    chapter_document,
    to_markdown,
    chapter_from_markdown,
    work_from_markdown,
)

__all__ = [
    "StoryStateStore",
    "WorkDocument",
    "ChapterDocument",
    "work_document",
    "chapter_document",
    "to_markdown",
    "chapter_from_markdown",
    "work_from_markdown",
]
