"""
File-backed StoryStateStore.

Layout under ``data_dir``::

    works/<work_id>/state.json          continuity record (source of truth)
    works/<work_id>/work.md             work document for the presentation layer
    works/<work_id>/chapters/<id>-chNNN.md
    ledger.json                         session cost ledger

Commits are single-writer per work. Every file is staged to a temp file in
the same directory and moved into place with ``os.replace``; a failed commit
undoes the moves it already made, so readers only ever see the old or the
new record.
"""

import os
import tempfile
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from loguru import logger
from pydantic import ValidationError

from ..errors import (
    InvariantViolationError,
    OrdinalMismatchError,
    PersistenceError,
    SchemaViolationError,
    WorkNotFoundError,
)
from ..models import (
    Chapter,
    ChapterRecord,
    ForeshadowingEntry,
    Stage,
    StateDelta,
    StoryState,
    Work,
    WorkMetadata,
    WorkStatus,
)
from ..models.work import utcnow
from ..utils.text import word_count
from .documents import chapter_document, chapter_from_markdown, to_markdown, work_document


def _stage_file(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(text)
    return Path(tmp)


def _atomic_write(path: Path, text: str) -> None:
    os.replace(_stage_file(path, text), path)


def _same(a: str, b: str) -> bool:
    return a.strip().lower() == b.strip().lower()


class StoryStateStore:
    """Durable per-work continuity records."""

    def __init__(
        self,
        data_dir: Path,
        history_size: int = 10,
        stage_boundaries: Sequence[float] = (25.0, 50.0, 75.0),
    ):
        self.data_dir = Path(data_dir)
        self.history_size = history_size
        self.stage_boundaries = tuple(stage_boundaries)
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()
        self.ledger_lock = threading.Lock()

    # ------------------------------------------------------------------
    # paths
    # ------------------------------------------------------------------

    @property
    def works_dir(self) -> Path:
        return self.data_dir / "works"

    @property
    def ledger_path(self) -> Path:
        return self.data_dir / "ledger.json"

    def work_dir(self, work_id: str) -> Path:
        return self.works_dir / work_id

    def state_path(self, work_id: str) -> Path:
        return self.work_dir(work_id) / "state.json"

    def work_doc_path(self, work_id: str) -> Path:
        return self.work_dir(work_id) / "work.md"

    def chapter_path(self, work_id: str, number: int) -> Path:
        return self.work_dir(work_id) / "chapters" / f"{work_id}-ch{number:03d}.md"

    def _lock_for(self, work_id: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(work_id, threading.Lock())

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------

    def exists(self, work_id: str) -> bool:
        return self.state_path(work_id).exists()

    def load(self, work_id: str) -> StoryState:
        path = self.state_path(work_id)
        if not path.exists():
            raise WorkNotFoundError(f"No continuity record for work '{work_id}'")
        try:
            return StoryState.model_validate_json(path.read_text(encoding="utf-8"))
        except ValidationError as e:
            raise SchemaViolationError(f"Continuity record for '{work_id}' is invalid: {e}") from e

    def list_states(self) -> List[StoryState]:
        if not self.works_dir.exists():
            return []
        states = []
        for path in sorted(self.works_dir.glob("*/state.json")):
            states.append(self.load(path.parent.name))
        return states

    def read_chapter_body(self, work_id: str, number: int) -> str:
        path = self.chapter_path(work_id, number)
        if not path.exists():
            raise WorkNotFoundError(f"Chapter {number} of '{work_id}' does not exist")
        return chapter_from_markdown(path.read_text(encoding="utf-8")).body

    def recent_bodies(self, work_id: str, count: int = 3) -> List[str]:
        state = self.load(work_id)
        first = max(1, state.current_chapter - count + 1)
        return [self.read_chapter_body(work_id, n) for n in range(first, state.current_chapter + 1)]

    # ------------------------------------------------------------------
    # writes
    # ------------------------------------------------------------------

    def create(self, work_id: str, metadata: WorkMetadata) -> StoryState:
        with self._lock_for(work_id):
            if self.exists(work_id):
                raise InvariantViolationError(f"Work '{work_id}' already exists")
            try:
                work = Work(
                    id=work_id,
                    title=metadata.title,
                    target_chapters=metadata.target_chapters,
                    logline=metadata.logline,
                    tropes=list(metadata.tropes),
                    language=metadata.language,
                )
            except ValidationError as e:
                raise SchemaViolationError(f"Cannot create work '{work_id}': {e}") from e
            state = StoryState(
                work=work,
                world_rules=tuple(metadata.world_rules),
                characters={c.name: c for c in metadata.characters},
                active_conflicts=list(dict.fromkeys(metadata.conflicts)),
                foreshadowing=[ForeshadowingEntry(hint=h) for h in metadata.foreshadowing],
                history_capacity=self.history_size,
            )
            doc = work_document(state)
            self._write_all(work_id, [
                (self.state_path(work_id), state.model_dump_json(indent=2)),
                (self.work_doc_path(work_id), to_markdown(doc)),
            ])
            logger.info(f"Created work '{work.title}' ({work_id}) with {len(state.characters)} characters")
            return state

    def commit_chapter(self, work_id: str, chapter: Chapter, delta: StateDelta) -> StoryState:
        """Append a chapter and apply its state delta atomically."""
        with self._lock_for(work_id):
            state = self.load(work_id)
            if state.work.status == WorkStatus.COMPLETE:
                raise InvariantViolationError(f"Work '{work_id}' is complete; no further chapters")
            if chapter.work_id != work_id:
                raise InvariantViolationError(
                    f"Chapter belongs to '{chapter.work_id}', not '{work_id}'"
                )
            expected = state.current_chapter + 1
            if chapter.number != expected:
                raise OrdinalMismatchError(
                    f"Chapter ordinal {chapter.number} for '{work_id}' does not follow "
                    f"chapter {state.current_chapter} (expected {expected})"
                )

            new_state = self._apply(state, chapter, delta)
            chapter_doc = chapter_document(chapter)
            work_doc = work_document(new_state)

            self._write_all(work_id, [
                (self.chapter_path(work_id, chapter.number), to_markdown(chapter_doc)),
                (self.state_path(work_id), new_state.model_dump_json(indent=2)),
                (self.work_doc_path(work_id), to_markdown(work_doc)),
            ])
            logger.success(
                f"Committed chapter {chapter.number} of '{work_id}' "
                f"(progress {state.plot_progress:.1f}% -> {new_state.plot_progress:.1f}%, "
                f"stage {new_state.stage.value})"
            )
            return new_state

    def mark_complete(self, work_id: str) -> StoryState:
        with self._lock_for(work_id):
            state = self.load(work_id)
            if state.work.status == WorkStatus.COMPLETE:
                return state
            new_state = state.model_copy(deep=True)
            new_state.work.status = WorkStatus.COMPLETE
            new_state.stage = Stage.RESOLUTION
            new_state.plot_progress = 100.0
            new_state.updated_at = utcnow()
            self._write_all(work_id, [
                (self.state_path(work_id), new_state.model_dump_json(indent=2)),
                (self.work_doc_path(work_id), to_markdown(work_document(new_state))),
            ])
            logger.success(f"Work '{work_id}' marked complete after {state.current_chapter} chapters")
            return new_state

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------

    def _apply(self, state: StoryState, chapter: Chapter, delta: StateDelta) -> StoryState:
        new = state.model_copy(deep=True)
        number = chapter.number

        for name, update in delta.character_updates.items():
            character = new.characters.get(name)
            if character is None:
                logger.warning(f"Ignoring state update for unknown character '{name}'")
                continue
            for field, value in update.model_dump(exclude_none=True).items():
                setattr(character.state, field, value)
            character.last_seen_chapter = number

        for character in delta.new_characters:
            if character.name in new.characters:
                logger.warning(
                    f"Generated output re-introduced '{character.name}'; keeping established traits"
                )
                continue
            new.characters[character.name] = character.model_copy(
                update={"introduced_chapter": number, "last_seen_chapter": number}
            )

        for conflict in delta.resolved_conflicts:
            matches = [c for c in new.active_conflicts if _same(c, conflict)]
            for c in matches:
                new.active_conflicts.remove(c)
                new.resolved_conflicts.append(c)
        for conflict in delta.new_conflicts:
            if not any(_same(c, conflict) for c in new.active_conflicts):
                new.active_conflicts.append(conflict)

        for hint in delta.planted_foreshadowing:
            new.foreshadowing.append(ForeshadowingEntry(hint=hint, planted_chapter=number))
        for hint in delta.resolved_foreshadowing:
            for entry in new.foreshadowing:
                if not entry.resolved and _same(entry.hint, hint):
                    entry.resolved_chapter = number

        new.plot_progress = min(100.0, state.plot_progress + delta.progress_increment)
        progress_stage = Stage.for_progress(new.plot_progress, self.stage_boundaries)
        if progress_stage.order > new.stage.order:
            new.stage = progress_stage
        if delta.milestone_reached:
            new.milestone_index += 1

        new.current_chapter = number
        new.timeline.append(ChapterRecord(
            number=number,
            title=chapter.title,
            summary=chapter.summary,
            key_events=list(chapter.key_events),
            emotional_tone=chapter.emotional_tone,
            word_count=chapter.word_count or word_count(chapter.body),
            quality_score=chapter.quality.composite if chapter.quality else 0.0,
            degraded=chapter.degraded,
            committed_at=chapter.created_at,
        ))
        if chapter.quality is not None:
            new.record_quality(chapter.quality.composite)
        if new.work.status == WorkStatus.DRAFTING:
            new.work.status = WorkStatus.SERIALIZING
        new.last_chapter_at = chapter.created_at
        new.updated_at = utcnow()

        if new.world_rules != state.world_rules:
            raise InvariantViolationError("world rules are immutable once set")
        for name, character in state.characters.items():
            if new.characters[name].traits != character.traits:
                raise InvariantViolationError(f"stable traits of '{name}' may not change")
        return new

    def _write_all(self, work_id: str, files: List[tuple]) -> None:
        staged = []
        try:
            for path, text in files:
                staged.append((path, _stage_file(path, text)))
        except OSError as e:
            for _, tmp in staged:
                tmp.unlink(missing_ok=True)
            raise PersistenceError(f"Could not stage files for '{work_id}': {e}") from e

        undo: List[Callable[[], None]] = []
        try:
            for path, tmp in staged:
                previous: Optional[str] = path.read_text(encoding="utf-8") if path.exists() else None
                os.replace(tmp, path)
                if previous is None:
                    undo.append(lambda p=path: p.unlink(missing_ok=True))
                else:
                    undo.append(lambda p=path, t=previous: _atomic_write(p, t))
        except OSError as e:
            logger.error(f"Commit for '{work_id}' failed, rolling back {len(undo)} file(s): {e}")
            for action in reversed(undo):
                action()
            for _, tmp in staged:
                tmp.unlink(missing_ok=True)
            raise PersistenceError(f"Commit for '{work_id}' failed and was rolled back: {e}") from e
