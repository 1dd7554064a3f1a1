"""Text helpers shared by the analyzers, the parser and the context builder."""

import re
import secrets

_SENTENCE_RE = re.compile(r"(?<=[.!?。！？])\s+|\n+")
_DIALOGUE_RE = re.compile(r'"([^"\n]+)"|“([^”\n]+)”|「([^」\n]+)」')


def _is_cjk(c: str) -> bool:
    return '一' <= c <= '鿿'


def _is_hangul(c: str) -> bool:
    return '가' <= c <= '힣'


def detect_language(text: str) -> str:
    """Detect if text is primarily Chinese, Korean or English.

    Returns "zh", "ko" or "en".
    """
    sample = text[:500]
    cjk_count = sum(1 for c in sample if _is_cjk(c))
    hangul_count = sum(1 for c in sample if _is_hangul(c))
    total_alpha = max(1, sum(1 for c in sample if c.isalpha()))
    if hangul_count / total_alpha > 0.3:
        return "ko"
    if cjk_count / total_alpha > 0.3:
        return "zh"
    return "en"


def split_sentences(text: str) -> list[str]:
    return [s.strip() for s in _SENTENCE_RE.split(text) if s and s.strip()]


def split_paragraphs(text: str) -> list[str]:
    return [p.strip() for p in re.split(r"\n\s*\n", text) if p.strip()]


def extract_dialogue(text: str) -> list[str]:
    """Return every quoted line of dialogue. Supports ASCII, curly and CJK quotes."""
    lines = []
    for m in _DIALOGUE_RE.finditer(text):
        line = next(g for g in m.groups() if g is not None)
        lines.append(line.strip())
    return lines


def words(text: str) -> list[str]:
    return re.findall(r"[\w']+", text.lower())


def word_count(text: str) -> int:
    """Count words; Chinese text counts characters since it has no spaces."""
    if detect_language(text) == "zh":
        return sum(1 for c in text if _is_cjk(c))
    return len(words(text))


def truncate_text(text: str, max_chars: int, from_end: bool = False) -> str:
    """Truncate text at sentence boundaries.

    Args:
        text: The text to truncate.
        max_chars: Maximum number of characters, including the ellipsis.
        from_end: If True, keep the end of the text instead of the beginning.
    """
    if len(text) <= max_chars:
        return text
    if max_chars <= 3:
        return text[:max_chars]

    if from_end:
        chunk = text[-(max_chars - 3):]
        for sep in ['. ', '。', '！', '？', '! ', '? ', '\n']:
            idx = chunk.find(sep)
            if idx != -1 and idx < 200:
                return chunk[idx + len(sep):]
        return "..." + chunk

    limit = max_chars - 3
    best = -1
    for sep in ['. ', '。', '！', '？', '! ', '? ', '\n']:
        idx = text.rfind(sep, 0, limit)
        if idx != -1 and idx >= limit - 200:
            best = max(best, idx + len(sep.rstrip()))
    if best <= 0:
        best = limit
    return text[:best] + "..."


def slugify(title: str, suffix_len: int = 6) -> str:
    """Build a work id from a title plus a short random suffix."""
    base = re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")[:40].strip("-")
    if not base:
        base = "work"
    return f"{base}-{secrets.token_hex(suffix_len // 2)}"
