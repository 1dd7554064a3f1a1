import pytest

from serial_writer.errors import SchemaViolationError
from serial_writer.models import Chapter, StateDelta
from serial_writer.state import (
    chapter_document,
    chapter_from_markdown,
    to_markdown,
    work_document,
    work_from_markdown,
)

from conftest import make_state, seed_work


def test_chapter_markdown_has_front_matter():
    chapter = Chapter(work_id="moonlit-duke", number=3, title="Ashes", body="The archive burned.",
                      summary="The archive burns.", key_events=("fire",), word_count=3)
    text = to_markdown(chapter_document(chapter))
    assert text.startswith("---\n")
    assert "ordinal: 3" in text
    assert text.rstrip().endswith("The archive burned.")

    doc = chapter_from_markdown(text)
    assert doc.title == "Ashes"
    assert doc.key_events == ["fire"]
    assert doc.quality_score is None


def test_work_document_lists_traits_once():
    doc = work_document(make_state(progress=12.5, chapter=3))
    assert doc.traits == sorted(set(doc.traits))
    assert doc.chapters == 3
    assert work_from_markdown(to_markdown(doc)).progress == 12.5


def test_missing_front_matter():
    with pytest.raises(SchemaViolationError):
        chapter_from_markdown("just a body")


def test_schema_violation_on_empty_summary():
    chapter = Chapter(work_id="moonlit-duke", number=1, title="Ashes", body="The archive burned.", word_count=3)
    with pytest.raises(SchemaViolationError):
        chapter_document(chapter)


def test_schema_violation_writes_nothing(store):
    work_id = seed_work(store)
    bad = Chapter(work_id=work_id, number=1, title="Ashes", body="The archive burned.", word_count=0)
    with pytest.raises(SchemaViolationError):
        store.commit_chapter(work_id, bad, StateDelta(progress_increment=4.0))
    assert store.load(work_id).current_chapter == 0
    assert not store.chapter_path(work_id, 1).exists()
