"""
Per-candidate threshold and weight adjustment.

Every adjustment is recorded together with the signal that caused it, so a
rejected chapter can always be explained. Adjustments are bounded: the
composite threshold stays within ``band`` of the configured default and never
drops below ``hard_floor``; no engine weight leaves [min_weight, max_weight]
before renormalization.
"""

import statistics
from typing import Dict, List, Optional, Sequence

from loguru import logger
from pydantic import BaseModel, Field

from ..config import QualityConfig, ThresholdConfig
from ..models import Engine
from ..pacing import MILESTONES
from ..signals import SignalType, TextSignalExtractor
from .metrics import compute_metrics

LINGUISTIC_FLOOR = 0.6
MOTIF_FLOOR = 0.3
ROMANCE_FLOOR = 0.4
HISTORY_FLOOR = 6.0
STRONG_SIGNAL = 0.6
WEIGHT_NUDGE = 0.05
AWARENESS = MILESTONES.index("emotional_awareness")


class ThresholdAdjustment(BaseModel):
    signal: str
    value: float
    target: str  # "threshold" or an engine name
    delta: float
    reason: str


class ThresholdDecision(BaseModel):
    threshold: float
    weights: Dict[Engine, float]
    sub_thresholds: Dict[Engine, float]
    adjustments: List[ThresholdAdjustment] = Field(default_factory=list)
    signals: Dict[str, float] = Field(default_factory=dict)

    def explain(self) -> List[str]:
        return [
            f"{a.target} {a.delta:+.2f} ({a.signal}={a.value:.2f}: {a.reason})"
            for a in self.adjustments
        ]


def default_weights(config: QualityConfig) -> Dict[Engine, float]:
    return {Engine(name): w for name, w in config.weights.items()}


def static_decision(config: QualityConfig) -> ThresholdDecision:
    """The configured threshold and weights with no adjustment."""
    return ThresholdDecision(
        threshold=config.threshold,
        weights=default_weights(config),
        sub_thresholds={e: max(0.0, config.threshold - 1.0) for e in Engine},
    )


class DynamicThresholdAgent:
    def __init__(
        self,
        extractor: TextSignalExtractor,
        quality: Optional[QualityConfig] = None,
        bounds: Optional[ThresholdConfig] = None,
        target_words: int = 1500,
    ):
        self.extractor = extractor
        self.quality = quality or QualityConfig()
        self.bounds = bounds or ThresholdConfig()
        self.target_words = target_words

    # ------------------------------------------------------------------
    # signals
    # ------------------------------------------------------------------

    def linguistic_signal(self, text: str) -> float:
        """Vocabulary range, sentence variety and emotional colour folded into 0-1."""
        metrics = compute_metrics(text)
        diversity = min(1.0, metrics.vocabulary_diversity / 0.75)
        variety = min(1.0, metrics.sentence_length_variation / 0.5)
        emotion = min(1.0, 100 * self.extractor.density(text, SignalType.EMOTION) / 1.5)
        return (diversity + variety + emotion) / 3

    def motif_signal(self, text: str) -> float:
        return min(1.0, 100 * self.extractor.density(text, SignalType.SETTING_MOTIF) / 1.0)

    def romance_signal(self, text: str) -> float:
        hits = (
            self.extractor.distinct(text, SignalType.TENSION)
            + self.extractor.distinct(text, SignalType.RELATIONSHIP_PROGRESS)
        )
        return min(1.0, hits / 5)

    # ------------------------------------------------------------------

    def decide(self, text: str, history: Sequence[float] = (),
               milestone_index: Optional[int] = None) -> ThresholdDecision:
        """Adjust threshold and weights for one candidate.

        ``milestone_index`` is the work's position on the relationship ladder;
        past emotional awareness a chapter is expected to carry the romance.
        """
        base = self.quality.threshold
        late_arc = milestone_index is not None and milestone_index >= AWARENESS
        adjustments: List[ThresholdAdjustment] = []

        linguistic = self.linguistic_signal(text)
        motif = self.motif_signal(text)
        romance = self.romance_signal(text)
        metrics = compute_metrics(text)
        history_avg = statistics.fmean(history) if len(history) >= 3 else None
        signals = {
            "linguistic": linguistic,
            "motif": motif,
            "romance": romance,
            "dialogue_share": metrics.dialogue_share,
        }
        if history_avg is not None:
            signals["history_average"] = history_avg
        if milestone_index is not None:
            signals["milestone"] = float(milestone_index)

        def adjust(signal, value, target, delta, reason):
            adjustments.append(ThresholdAdjustment(
                signal=signal, value=round(value, 4), target=target, delta=delta, reason=reason,
            ))

        if linguistic < LINGUISTIC_FLOOR:
            adjust("linguistic", linguistic, "threshold", -0.5, "understated prose scores low on surface metrics")
        if motif < MOTIF_FLOOR:
            adjust("motif", motif, "threshold", -0.3, "few setting motifs to anchor genre scoring")
        if romance < ROMANCE_FLOOR and not late_arc:
            adjust("romance", romance, "threshold", -0.4, "chapter is not relationship-focused")
        if history_avg is not None and history_avg < HISTORY_FLOOR:
            adjust("history_average", history_avg, "threshold", -1.0, "recent chapters have been scoring low")
        if metrics.word_count > 2 * self.target_words and metrics.vocabulary_diversity < 0.45:
            adjust("verbosity", metrics.vocabulary_diversity, "threshold", +0.5, "long chapter with thin vocabulary")

        threshold = base + sum(a.delta for a in adjustments if a.target == "threshold")
        low = max(self.bounds.hard_floor, base - self.bounds.band)
        high = min(10.0, base + self.bounds.band)
        threshold = round(max(low, min(high, threshold)), 2)

        weights = default_weights(self.quality)
        if romance >= STRONG_SIGNAL:
            adjust("romance", romance, Engine.CHEMISTRY.value, WEIGHT_NUDGE, "relationship-heavy chapter")
        if late_arc:
            adjust("milestone", milestone_index, Engine.CHEMISTRY.value, WEIGHT_NUDGE,
                   "relationship arc is past emotional awareness")
        if motif >= STRONG_SIGNAL:
            adjust("motif", motif, Engine.LITERARY.value, WEIGHT_NUDGE, "setting-rich chapter")
        if metrics.dialogue_share >= 0.4:
            adjust("dialogue_share", metrics.dialogue_share, Engine.CHARACTER.value, WEIGHT_NUDGE,
                   "dialogue-driven chapter")
        if len(history) >= 3 and history[-1] < history[-3]:
            adjust("history_trend", history[-1] - history[-3], Engine.PLOT.value, WEIGHT_NUDGE,
                   "scores are sliding; weight forward motion")
        for a in adjustments:
            if a.target == "threshold":
                continue
            engine = Engine(a.target)
            weights[engine] = weights[engine] + a.delta
        weights = self.normalize(weights)

        defaults = default_weights(self.quality)
        sub_thresholds = {}
        for engine in Engine:
            shift = (weights[engine] - defaults[engine]) * 10
            sub = threshold - 1.0 + shift
            sub_thresholds[engine] = round(max(base - 2.0, min(base + 1.0, sub)), 2)

        decision = ThresholdDecision(
            threshold=threshold,
            weights=weights,
            sub_thresholds=sub_thresholds,
            adjustments=adjustments,
            signals={k: round(v, 4) for k, v in signals.items()},
        )
        if adjustments:
            logger.debug("Threshold {:.2f} after adjustments: {}", threshold, "; ".join(decision.explain()))
        return decision

    def normalize(self, weights: Dict[Engine, float]) -> Dict[Engine, float]:
        lo, hi = self.bounds.min_weight, self.bounds.max_weight
        clipped = {e: max(lo, min(hi, w)) for e, w in weights.items()}
        total = sum(clipped.values())
        return {e: w / total for e, w in clipped.items()}
