from .logger import setup_logger
from .text import (
    detect_language,
    split_sentences,
    split_paragraphs,
    extract_dialogue,
    word_count,
    truncate_text,
    slugify,
)

__all__ = [
    "setup_logger",
    "detect_language",
    "split_sentences",
    "split_paragraphs",
    "extract_dialogue",
    "word_count",
    "truncate_text",
    "slugify",
]
