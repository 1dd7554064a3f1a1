"""Salvage a committable chapter when the quality loop gives up."""

from typing import Optional

from loguru import logger

from ..models import ChapterCandidate, QualityReport
from ..quality.repair import deduplicate
from ..signals import TextSignalExtractor
from ..utils.text import split_sentences, truncate_text


def recover_candidate(
    candidate: ChapterCandidate,
    best_text: str,
    best_report: Optional[QualityReport],
    extractor: TextSignalExtractor,
) -> tuple:
    """Build a minimal valid chapter from the best-scoring attempt.

    Returns ``(candidate, report)`` with the report flagged degraded. The body
    is deduplicated; summary, title and tone are filled from the body when
    the generator left them empty.
    """
    body = deduplicate(best_text) or candidate.body
    summary = candidate.summary or truncate_text(" ".join(split_sentences(body)[:2]), 300)
    recovered = candidate.model_copy(update={
        "body": body,
        "summary": summary,
        "title": candidate.title or "Untitled",
        "emotional_tone": candidate.emotional_tone or extractor.dominant_tone(body),
    })
    report = None
    if best_report is not None:
        report = best_report.model_copy(update={
            "degraded": True,
            "repairs_applied": list(best_report.repairs_applied) + ["recovery_deduplicate"],
        })
    logger.warning(
        f"Recovered degraded chapter '{recovered.title}' "
        f"(best composite {best_report.composite if best_report else 'n/a'})"
    )
    return recovered, report
