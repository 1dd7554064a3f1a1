import pytest

from conftest import CONCEPT_OUTPUT, GOOD_BODY, MAIN_CONFLICT, chapter_output

from serial_writer.errors import UnparsableOutputError
from serial_writer.generation import parse_chapter, parse_concept
from serial_writer.generation.parser import list_items, split_sections
from serial_writer.models import CharacterRole


class TestSplitSections:
    def test_header_styles(self):
        text = "**Title**\nThe Ash Bride\nSummary: She runs.\n### key_events\n- one\n"
        sections = split_sections(text)
        assert sections["TITLE"] == "The Ash Bride"
        assert sections["SUMMARY"] == "She runs."
        assert sections["KEY EVENTS"] == "- one"

    def test_body_swallows_header_like_lines(self):
        text = "## TITLE\nA\n## BODY\nFirst line.\n## SUMMARY\nstill prose"
        sections = split_sections(text)
        assert "SUMMARY" not in sections
        assert sections["BODY"].endswith("still prose")

    def test_list_items_skip_placeholders(self):
        assert list_items("- one\n* two\n3. three\n- none\n-\n") == ["one", "two", "three"]


class TestParseChapter:
    def test_full_layout(self, extractor):
        candidate = parse_chapter(chapter_output(resolved="- the old debt"), 4, extractor)
        assert candidate.title == "The Letter Behind the Portrait"
        assert candidate.body == GOOD_BODY
        assert candidate.emotional_tone == "tense"
        assert candidate.key_events == ["Elena finds the hidden letter", "Kael takes her side against the steward"]
        assert candidate.new_conflicts == ["the steward's master is still unknown"]
        assert candidate.resolved_conflicts == ["the old debt"]
        assert candidate.foreshadowing == ["the violin player watches them leave"]
        assert candidate.missing_fields == []

    def test_character_updates(self, extractor):
        candidate = parse_chapter(chapter_output(), 4, extractor)
        elena = candidate.character_updates["Elena"]
        assert elena.location == "the gallery"
        assert elena.emotional_state == "determined"
        assert elena.relationship_status == "allied with Kael"

    def test_bare_prose_uses_fallbacks(self, extractor):
        candidate = parse_chapter(GOOD_BODY, 7, extractor)
        assert candidate.title == "Chapter 7"
        assert candidate.body == GOOD_BODY.strip()
        assert candidate.summary.startswith("Elena discovered the letter")
        assert candidate.emotional_tone
        assert set(candidate.missing_fields) == {"body", "title", "summary", "emotional_tone", "key_events"}

    def test_missing_body_tag_takes_tail(self, extractor):
        text = f"## TITLE\nThe Letter\n\n{GOOD_BODY}"
        candidate = parse_chapter(text, 2, extractor)
        assert candidate.title == "The Letter"
        assert "body" in candidate.missing_fields
        assert candidate.body == GOOD_BODY

    def test_short_body_rejected(self, extractor):
        with pytest.raises(UnparsableOutputError):
            parse_chapter(chapter_output(body="Too short."), 3, extractor)

    def test_empty_output_rejected(self, extractor):
        with pytest.raises(UnparsableOutputError):
            parse_chapter("", 3, extractor)


class TestParseConcept:
    def test_concept(self):
        meta = parse_concept(CONCEPT_OUTPUT, target_chapters=40)
        assert meta.title == "The Moonlit Duke"
        assert meta.target_chapters == 40
        assert meta.tropes == ["contract marriage", "enemies to lovers"]
        assert [c.name for c in meta.characters] == ["Elena", "Kael", "Mira"]
        assert meta.characters[0].role == CharacterRole.PROTAGONIST
        assert meta.characters[1].role == CharacterRole.COUNTERPART
        assert meta.characters[0].traits.personality == ("stubborn", "curious")
        assert meta.conflicts[0] == MAIN_CONFLICT
        assert meta.world_rules == ["Magic always leaves a mark on its caster"]

    def test_first_character_becomes_protagonist(self):
        text = CONCEPT_OUTPUT.replace("| protagonist |", "| supporting |")
        meta = parse_concept(text)
        assert meta.characters[0].role == CharacterRole.PROTAGONIST

    @pytest.mark.parametrize("section", ["## TITLE\nThe Moonlit Duke\n", "## CONFLICTS\n"])
    def test_required_sections(self, section):
        text = CONCEPT_OUTPUT.replace(section, "")
        with pytest.raises(UnparsableOutputError):
            parse_concept(text)

    def test_no_characters(self):
        with pytest.raises(UnparsableOutputError, match="CHARACTERS"):
            parse_concept("## TITLE\nX\n## CONFLICTS\n- something\n")
