"""
Markdown documents exchanged with the presentation layer.

Each document is a YAML front matter block with a fixed metadata schema
followed by the body. Documents are validated before they are written so a
schema violation never reaches disk.
"""

import re
from datetime import datetime
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from ..errors import SchemaViolationError
from ..models import Chapter, StoryState, WorkStatus

_FRONT_MATTER_RE = re.compile(r"\A---\n(.*?)\n---\n?(.*)\Z", re.DOTALL)


class WorkDocument(BaseModel):
    id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    status: WorkStatus
    summary: str = ""
    tropes: List[str] = Field(default_factory=list)
    traits: List[str] = Field(default_factory=list)
    chapters: int = Field(ge=0)
    target_chapters: int = Field(gt=0)
    progress: float = Field(ge=0, le=100)
    created_at: datetime
    updated_at: datetime
    body: str = ""


class ChapterDocument(BaseModel):
    title: str = Field(min_length=1)
    work: str = Field(min_length=1)
    ordinal: int = Field(gt=0)
    summary: str = Field(min_length=1)
    key_events: List[str] = Field(default_factory=list)
    tone: str = ""
    word_count: int = Field(gt=0)
    quality_score: Optional[float] = Field(default=None, ge=0, le=10)
    degraded: bool = False
    completion: bool = False
    created_at: datetime
    body: str = Field(min_length=1)


def _render(meta: dict, body: str) -> str:
    front = yaml.safe_dump(meta, allow_unicode=True, sort_keys=False, default_flow_style=False)
    return f"---\n{front}---\n\n{body.strip()}\n"


def _split(text: str) -> tuple[dict, str]:
    m = _FRONT_MATTER_RE.match(text)
    if not m:
        raise SchemaViolationError("document has no front matter block")
    meta = yaml.safe_load(m.group(1)) or {}
    if not isinstance(meta, dict):
        raise SchemaViolationError("front matter is not a mapping")
    return meta, m.group(2).strip()


def work_document(state: StoryState) -> WorkDocument:
    traits = []
    for c in state.characters.values():
        traits.extend(c.traits.personality)
    try:
        return WorkDocument(
            id=state.work.id,
            title=state.work.title,
            status=state.work.status,
            summary=state.work.logline,
            tropes=list(state.work.tropes),
            traits=sorted(set(traits)),
            chapters=state.current_chapter,
            target_chapters=state.work.target_chapters,
            progress=round(state.plot_progress, 2),
            created_at=state.work.created_at,
            updated_at=state.updated_at,
            body=state.work.logline,
        )
    except ValidationError as e:
        raise SchemaViolationError(f"work document for {state.work.id} violates schema: {e}") from e


def chapter_document(chapter: Chapter) -> ChapterDocument:
    try:
        return ChapterDocument(
            title=chapter.title,
            work=chapter.work_id,
            ordinal=chapter.number,
            summary=chapter.summary,
            key_events=list(chapter.key_events),
            tone=chapter.emotional_tone,
            word_count=chapter.word_count,
            quality_score=chapter.quality.composite if chapter.quality else None,
            degraded=chapter.degraded,
            completion=chapter.completion,
            created_at=chapter.created_at,
            body=chapter.body,
        )
    except ValidationError as e:
        raise SchemaViolationError(
            f"chapter {chapter.number} of {chapter.work_id} violates schema: {e}"
        ) from e


def to_markdown(doc: BaseModel) -> str:
    meta = doc.model_dump(mode="json", exclude={"body"})
    return _render(meta, getattr(doc, "body", ""))


def chapter_from_markdown(text: str) -> ChapterDocument:
    meta, body = _split(text)
    try:
        return ChapterDocument(**meta, body=body)
    except ValidationError as e:
        raise SchemaViolationError(f"chapter document violates schema: {e}") from e


def work_from_markdown(text: str) -> WorkDocument:
    meta, body = _split(text)
    try:
        return WorkDocument(**meta, body=body)
    except ValidationError as e:
        raise SchemaViolationError(f"work document violates schema: {e}") from e
