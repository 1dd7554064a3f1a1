"""
Tolerant parsing of section-tagged generator output.

Headers may be written as ``## TITLE``, ``**Title**`` or ``Title: value``.
Everything after the BODY header is prose, even if it contains lines that
look like headers. Missing fields fall back to heuristics and are listed in
``missing_fields``.
"""

import re
from typing import Dict, List, Optional

from loguru import logger

from ..errors import UnparsableOutputError
from ..models import (
    Character,
    CharacterRole,
    CharacterUpdate,
    ChapterCandidate,
    StableTraits,
    WorkMetadata,
)
from ..signals import TextSignalExtractor
from ..utils.text import split_sentences, truncate_text

SECTIONS = (
    "TITLE", "SUMMARY", "KEY EVENTS", "EMOTIONAL TONE", "NEW CONFLICTS",
    "RESOLVED CONFLICTS", "CHARACTER UPDATES", "FORESHADOWING", "BODY",
    "LOGLINE", "TROPES", "CHARACTERS", "WORLD RULES", "CONFLICTS",
)

_HEADER_RE = re.compile(
    r"^[ \t]*(?:#{1,6}[ \t]*)?(?:\*\*)?[ \t]*(" + "|".join(s.replace(" ", r"[ \t_]+") for s in SECTIONS)
    + r")[ \t]*(?:\*\*)?[ \t]*(?::[ \t]*(.*?))?[ \t]*(?:\*\*)?[ \t]*$",
    re.IGNORECASE | re.MULTILINE,
)
_BULLET_RE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s*")
_EMPTY = {"", "none", "n/a", "-", "(none)", "없음"}


def split_sections(text: str) -> Dict[str, str]:
    sections: Dict[str, str] = {}
    matches = list(_HEADER_RE.finditer(text))
    for i, m in enumerate(matches):
        name = re.sub(r"[\s_]+", " ", m.group(1).upper())
        if name in sections:
            continue
        end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
        if name == "BODY":
            sections[name] = text[m.end():].strip()
            break
        inline = (m.group(2) or "").strip().strip("*").strip()
        block = text[m.end():end].strip()
        sections[name] = "\n".join(p for p in (inline, block) if p)
    return sections


def list_items(block: Optional[str]) -> List[str]:
    if not block:
        return []
    items = []
    for line in block.splitlines():
        item = _BULLET_RE.sub("", line).strip()
        if item.lower() not in _EMPTY:
            items.append(item)
    return items


def _fields(line: str, count: int) -> List[str]:
    parts = [p.strip() for p in line.split("|")]
    return (parts + [""] * count)[:count]


def parse_character_updates(block: Optional[str]) -> Dict[str, CharacterUpdate]:
    updates = {}
    for item in list_items(block):
        name, location, mood, relationship = _fields(item, 4)
        if not name:
            continue
        updates[name] = CharacterUpdate(
            location=location or None,
            emotional_state=mood or None,
            relationship_status=relationship or None,
        )
    return updates


def parse_chapter(
    text: str,
    number: int,
    extractor: TextSignalExtractor,
    min_body_chars: int = 200,
) -> ChapterCandidate:
    sections = split_sections(text)
    missing = []

    body = sections.get("BODY")
    if body is None:
        missing.append("body")
        # no BODY tag: prose is whatever follows the last tagged section, or the whole text
        body = text.strip() if not sections else _untagged_tail(text)
    if len(body.strip()) < min_body_chars:
        raise UnparsableOutputError(
            f"Chapter {number} body is {len(body.strip())} chars, need at least {min_body_chars}",
            attempts=[text[:500]],
        )

    title = (sections.get("TITLE") or "").strip().strip('"').splitlines()
    title = title[0].strip() if title else ""
    if not title:
        missing.append("title")
        title = f"Chapter {number}"

    summary = " ".join((sections.get("SUMMARY") or "").split())
    if not summary:
        missing.append("summary")
        summary = truncate_text(" ".join(split_sentences(body)[:2]), 300)

    tone_lines = list_items(sections.get("EMOTIONAL TONE"))
    tone = tone_lines[0].split()[0].strip(".,").lower() if tone_lines else ""
    if not tone:
        missing.append("emotional_tone")
        tone = extractor.dominant_tone(body)

    key_events = list_items(sections.get("KEY EVENTS"))
    if not key_events:
        missing.append("key_events")

    if missing:
        logger.debug(f"Chapter {number} output missing {missing}; used fallbacks")

    return ChapterCandidate(
        title=title,
        body=body.strip(),
        summary=summary,
        key_events=key_events,
        emotional_tone=tone,
        new_conflicts=list_items(sections.get("NEW CONFLICTS")),
        resolved_conflicts=list_items(sections.get("RESOLVED CONFLICTS")),
        foreshadowing=list_items(sections.get("FORESHADOWING")),
        character_updates=parse_character_updates(sections.get("CHARACTER UPDATES")),
        missing_fields=missing,
    )


def _untagged_tail(text: str) -> str:
    matches = list(_HEADER_RE.finditer(text))
    tail = text[matches[-1].end():] if matches else text
    paragraphs = re.split(r"\n\s*\n", tail.strip(), maxsplit=1)
    return paragraphs[1] if len(paragraphs) > 1 else ""


def _role(value: str) -> CharacterRole:
    value = value.strip().lower()
    for role in CharacterRole:
        if role.value in value:
            return role
    if value in ("lead", "heroine", "hero", "main"):
        return CharacterRole.PROTAGONIST
    if value in ("love interest", "male lead", "female lead"):
        return CharacterRole.COUNTERPART
    return CharacterRole.SUPPORTING


def parse_concept(text: str, target_chapters: int = 75, language: str = "en") -> WorkMetadata:
    sections = split_sections(text)
    title = (sections.get("TITLE") or "").strip().strip('"').splitlines()
    if not title or not title[0].strip():
        raise UnparsableOutputError("Work concept has no TITLE section", attempts=[text[:500]])

    characters = []
    for item in list_items(sections.get("CHARACTERS")):
        name, role, appearance, personality = _fields(item, 4)
        if not name:
            continue
        characters.append(Character(
            name=name,
            role=_role(role),
            traits=StableTraits(
                appearance=appearance,
                personality=tuple(t.strip() for t in personality.split(",") if t.strip()),
            ),
        ))
    if not characters:
        raise UnparsableOutputError("Work concept has no CHARACTERS section", attempts=[text[:500]])
    if not any(c.role == CharacterRole.PROTAGONIST for c in characters):
        characters[0] = characters[0].model_copy(update={"role": CharacterRole.PROTAGONIST})

    conflicts = list_items(sections.get("CONFLICTS"))
    if not conflicts:
        raise UnparsableOutputError("Work concept has no CONFLICTS section", attempts=[text[:500]])

    return WorkMetadata(
        title=title[0].strip(),
        target_chapters=target_chapters,
        logline=" ".join((sections.get("LOGLINE") or "").split()),
        tropes=list_items(sections.get("TROPES")),
        language=language,
        characters=characters,
        world_rules=list_items(sections.get("WORLD RULES")),
        conflicts=conflicts,
        foreshadowing=list_items(sections.get("FORESHADOWING")),
    )
