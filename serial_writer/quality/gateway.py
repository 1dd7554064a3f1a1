"""
Quality gate between a paced candidate and the commit.

The four analyzers are independent, so they run on a thread pool and are
joined before aggregation. A failing candidate goes through up to
``max_attempts`` scorings; between scorings one repair per failing engine is
applied in engine priority order (plot, character, literary, chemistry).
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional

from loguru import logger
from pydantic import BaseModel, Field

from ..config import QualityConfig
from ..errors import QualityThresholdError
from ..models import Engine, EngineAnalysis, Grade, QualityReport
from ..signals import TextSignalExtractor
from .base import AnalysisContext, Analyzer, clamp
from .character import CharacterAnalyzer
from .chemistry import ChemistryAnalyzer
from .literary import LiteraryAnalyzer
from .plot import PlotAnalyzer
from .repair import RepairAction, RepairContext, apply_repairs, choose_repair
from .thresholds import ThresholdDecision, static_decision


class GatewayResult(BaseModel):
    text: str
    report: QualityReport
    reports: List[QualityReport] = Field(default_factory=list)
    analyses: Dict[Engine, EngineAnalysis] = Field(default_factory=dict)

    @property
    def degraded(self) -> bool:
        return self.report.degraded


def aggregate(scores: Dict[Engine, float], weights: Dict[Engine, float]) -> float:
    """Weighted sum of the sub-scores, clamped to [0, 10]."""
    return round(clamp(sum(scores[e] * weights[e] for e in Engine)), 4)


def grade_for(composite: float, threshold: float, config: QualityConfig) -> Grade:
    if composite >= config.perfect:
        return Grade.PERFECT
    if composite >= config.excellent:
        return Grade.EXCELLENT
    if composite >= threshold:
        return Grade.GOOD
    if composite >= config.critical:
        return Grade.POOR
    return Grade.CRITICAL


class QualityAssuranceGateway:
    def __init__(
        self,
        extractor: TextSignalExtractor,
        config: Optional[QualityConfig] = None,
        analyzers: Optional[List[Analyzer]] = None,
    ):
        self.extractor = extractor
        self.config = config or QualityConfig()
        self.analyzers = analyzers or [
            PlotAnalyzer(extractor),
            CharacterAnalyzer(extractor),
            LiteraryAnalyzer(extractor),
            ChemistryAnalyzer(extractor),
        ]
        engines = {a.engine for a in self.analyzers}
        if engines != set(Engine):
            raise ValueError(f"gateway needs one analyzer per engine, got {sorted(e.value for e in engines)}")

    def analyze(self, text: str, context: AnalysisContext) -> Dict[Engine, EngineAnalysis]:
        with ThreadPoolExecutor(max_workers=self.config.workers) as pool:
            futures = {a.engine: pool.submit(a.analyze, text, context) for a in self.analyzers}
            return {engine: f.result() for engine, f in futures.items()}

    def score(
        self,
        text: str,
        context: AnalysisContext,
        decision: Optional[ThresholdDecision] = None,
        attempt: int = 1,
    ) -> tuple:
        """Score one text. Returns ``(report, analyses)``."""
        decision = decision or static_decision(self.config)
        analyses = self.analyze(text, context)
        scores = {e: analyses[e].score for e in Engine}
        composite = aggregate(scores, decision.weights)
        passed = composite >= decision.threshold

        indicators, issues = {}, []
        for engine in Engine:
            analysis = analyses[engine]
            indicators.update({f"{engine.value}.{k}": v for k, v in analysis.indicators.items()})
            issues.extend(f"[{engine.value}] {issue}" for issue in analysis.issues)
        recommendations = [
            f"{a.kind.value} ({a.reason})" for a in self.plan_repairs(analyses, decision, attempt)
        ] if not passed else []

        report = QualityReport(
            scores=scores,
            weights=decision.weights,
            composite=composite,
            threshold=decision.threshold,
            passed=passed,
            grade=grade_for(composite, decision.threshold, self.config),
            indicators=indicators,
            issues=issues,
            recommendations=recommendations,
            attempt=attempt,
        )
        return report, analyses

    def plan_repairs(
        self,
        analyses: Dict[Engine, EngineAnalysis],
        decision: ThresholdDecision,
        attempt: int,
    ) -> List[RepairAction]:
        """One repair per engine under its sub-threshold, in priority order.

        When every engine clears its sub-threshold but the composite still
        fails, the single lowest-scoring engine is repaired.
        """
        failing = [e for e in Engine if analyses[e].score < decision.sub_thresholds[e]]
        if not failing:
            failing = [min(Engine, key=lambda e: (analyses[e].score, e.priority))]
        return [
            choose_repair(
                e, attempt,
                reason=f"{analyses[e].score:.1f} < {decision.sub_thresholds[e]:.1f}",
            )
            for e in failing
        ]

    def review(
        self,
        text: str,
        context: AnalysisContext,
        decision: Optional[ThresholdDecision] = None,
        floor: Optional[float] = None,
    ) -> GatewayResult:
        """Score, repair and rescore until the threshold is met or attempts run out.

        Raises:
            QualityThresholdError: the best attempt is below ``floor``.
        """
        decision = decision or static_decision(self.config)
        floor = min(decision.threshold, floor if floor is not None else self.config.acceptable_floor)
        repair_ctx = RepairContext.from_state(context.state)

        reports: List[QualityReport] = []
        best: Optional[tuple] = None
        current = text
        applied: List[str] = []

        for attempt in range(1, self.config.max_attempts + 1):
            report, analyses = self.score(current, context, decision, attempt)
            report = report.model_copy(update={"repairs_applied": list(applied)})
            reports.append(report)
            logger.info(
                f"Quality attempt {attempt}/{self.config.max_attempts}: composite "
                f"{report.composite:.2f} vs threshold {decision.threshold:.2f} "
                f"({', '.join(f'{e.value}={s:.1f}' for e, s in report.scores.items())})"
            )
            if best is None or report.composite > best[1].composite:
                best = (current, report, analyses)
            if report.passed:
                return GatewayResult(text=current, report=report, reports=reports, analyses=analyses)
            if attempt == self.config.max_attempts:
                break

            actions = self.plan_repairs(analyses, decision, attempt)
            repair_ctx = repair_ctx.model_copy(update={"attempt": attempt})
            repaired = apply_repairs(actions, current, self.extractor, repair_ctx)
            applied.extend(a.kind.value for a in actions)
            logger.debug(f"Applied repairs: {', '.join(a.kind.value for a in actions)}")
            current = repaired

        best_text, best_report, best_analyses = best
        if best_report.composite >= floor:
            degraded = best_report.model_copy(update={"degraded": True})
            logger.warning(
                f"Accepting best attempt {best_report.attempt} as degraded: "
                f"{best_report.composite:.2f} < {decision.threshold:.2f} but >= floor {floor:.2f}"
            )
            return GatewayResult(text=best_text, report=degraded, reports=reports, analyses=best_analyses)

        raise QualityThresholdError(
            f"Best composite {best_report.composite:.2f} after {len(reports)} attempt(s) "
            f"is below the acceptable floor {floor:.2f}",
            best_text=best_text,
            best_report=best_report,
            reports=reports,
            rationale="; ".join(best_report.issues[:5]) or None,
        )
