"""Language-agnostic text metrics shared by the analyzers and the threshold agent."""

import statistics
from typing import Iterable, List, Optional

from loguru import logger
from pydantic import BaseModel

from ..utils.text import extract_dialogue, split_paragraphs, split_sentences, words


class TextMetrics(BaseModel):
    """Container for the raw metrics of one chapter body."""

    word_count: int
    repetition_rate: float
    vocabulary_diversity: float  # moving-average type-token ratio
    avg_sentence_length: float
    sentence_length_variation: float  # coefficient of variation
    dialogue_share: float
    paragraphs: int
    prior_overlap: Optional[float] = None


def _ngrams(tokens: List[str], n: int) -> List[tuple]:
    return [tuple(tokens[i : i + n]) for i in range(len(tokens) - n + 1)]


def repetition_rate(text: str, n: int = 3) -> float:
    """Calculate the ratio of repeated n-grams to total n-grams.

    Args:
        text: Input text to analyze.
        n: Size of n-grams to consider (default 3).

    Returns:
        Float between 0.0 (no repetition) and 1.0 (all repeated).
        Returns 0.0 if text is too short to form any n-grams.
    """
    grams = _ngrams(words(text), n)
    if not grams:
        return 0.0
    return 1.0 - (len(set(grams)) / len(grams))


def prior_overlap(text: str, previous: Iterable[str], n: int = 4) -> float:
    """Share of this text's n-grams that already appeared in earlier chapters."""
    grams = set(_ngrams(words(text), n))
    if not grams:
        return 0.0
    seen = set()
    for body in previous:
        seen.update(_ngrams(words(body), n))
    if not seen:
        return 0.0
    return len(grams & seen) / len(grams)


def vocabulary_diversity(text: str, window: int = 100) -> float:
    """Moving-average type-token ratio.

    Plain TTR falls as a text grows, so chapters of different length would not
    be comparable; averaging over fixed windows removes that bias. Texts
    shorter than one window fall back to plain TTR.

    Returns:
        Float between 0.0 and 1.0. Returns 0.0 for empty text.
    """
    tokens = words(text)
    if not tokens:
        return 0.0
    if len(tokens) <= window:
        return len(set(tokens)) / len(tokens)
    ratios = [
        len(set(tokens[i : i + window])) / window
        for i in range(0, len(tokens) - window + 1, max(1, window // 4))
    ]
    return sum(ratios) / len(ratios)


def sentence_lengths(text: str) -> List[int]:
    return [len(words(s)) for s in split_sentences(text) if words(s)]


def avg_sentence_length(text: str) -> float:
    """Average number of words per sentence. Returns 0.0 for empty text."""
    lengths = sentence_lengths(text)
    if not lengths:
        return 0.0
    return sum(lengths) / len(lengths)


def sentence_length_variation(text: str) -> float:
    """Coefficient of variation of sentence lengths (rhythm)."""
    lengths = sentence_lengths(text)
    if len(lengths) < 2:
        return 0.0
    mean = statistics.fmean(lengths)
    if mean == 0:
        return 0.0
    return statistics.pstdev(lengths) / mean


def dialogue_share(text: str) -> float:
    """Fraction of words that sit inside quotes."""
    total = len(words(text))
    if total == 0:
        return 0.0
    spoken = sum(len(words(line)) for line in extract_dialogue(text))
    return min(1.0, spoken / total)


def dialogue_diversity(lines: List[str]) -> float:
    """Distinct lines and distinct openings over all dialogue lines."""
    if not lines:
        return 0.0
    normalized = [" ".join(words(line)) for line in lines]
    distinct_lines = len(set(normalized)) / len(normalized)
    openings = [n.split(" ")[0] for n in normalized if n]
    distinct_openings = len(set(openings)) / len(openings) if openings else 0.0
    return (distinct_lines + distinct_openings) / 2


def duplicate_sentences(text: str) -> List[str]:
    seen, dupes = set(), []
    for sentence in split_sentences(text):
        key = " ".join(words(sentence))
        if not key:
            continue
        if key in seen:
            dupes.append(sentence)
        seen.add(key)
    return dupes


def compute_metrics(text: str, previous: Optional[List[str]] = None) -> TextMetrics:
    """Run every metric on the given text.

    Args:
        text: The chapter body to measure.
        previous: Bodies of earlier chapters for the overlap metric.
    """
    logger.debug("Measuring text ({} characters)", len(text))
    return TextMetrics(
        word_count=len(words(text)),
        repetition_rate=repetition_rate(text),
        vocabulary_diversity=vocabulary_diversity(text),
        avg_sentence_length=avg_sentence_length(text),
        sentence_length_variation=sentence_length_variation(text),
        dialogue_share=dialogue_share(text),
        paragraphs=len(split_paragraphs(text)),
        prior_overlap=prior_overlap(text, previous) if previous else None,
    )
