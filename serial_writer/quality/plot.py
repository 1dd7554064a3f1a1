"""Plot-progression analyzer."""

from ..models import Engine, EngineAnalysis
from ..signals import SignalType
from .base import AnalysisContext, Analyzer, ratio
from .metrics import prior_overlap, repetition_rate

PROGRESSION_THRESHOLD = 0.6
CONFLICT_THRESHOLD = 0.4
MAX_REPETITION = 0.15
MIN_NEW_ELEMENTS = 2
PRIOR_WINDOW = 3


class PlotAnalyzer(Analyzer):
    """Forward motion, conflict escalation, repetition and new story elements."""

    engine = Engine.PLOT

    def analyze(self, text: str, context: AnalysisContext) -> EngineAnalysis:
        x = self.extractor
        previous = context.previous_bodies[-PRIOR_WINDOW:]

        progression = ratio(x.distinct(text, SignalType.FORWARD_MOTION), 3)
        conflict = ratio(
            x.distinct(text, SignalType.CONFLICT_ESCALATION) + x.distinct(text, SignalType.RESOLUTION), 3
        )
        repetition = max(repetition_rate(text), prior_overlap(text, previous) if previous else 0.0)

        earlier = " ".join(previous)
        fresh = set(x.matches(text, SignalType.FORWARD_MOTION)) | set(
            x.matches(text, SignalType.CONFLICT_ESCALATION)
        )
        if earlier:
            fresh -= set(x.matches(earlier, SignalType.FORWARD_MOTION))
            fresh -= set(x.matches(earlier, SignalType.CONFLICT_ESCALATION))
        new_elements = len(fresh)
        stagnation = x.count(text, SignalType.STAGNATION)

        score = 10 * (
            0.35 * progression
            + 0.25 * conflict
            + 0.25 * (1 - ratio(repetition, 2 * MAX_REPETITION))
            + 0.15 * ratio(new_elements, MIN_NEW_ELEMENTS)
        ) - 0.5 * stagnation

        indicators = {
            "forward_motion": progression >= PROGRESSION_THRESHOLD,
            "conflict_escalation": conflict >= CONFLICT_THRESHOLD,
            "low_repetition": repetition <= MAX_REPETITION,
            "new_elements": new_elements >= MIN_NEW_ELEMENTS,
        }
        issues = []
        if not indicators["forward_motion"]:
            issues.append("little forward motion: nothing is discovered, decided or revealed")
        if not indicators["conflict_escalation"]:
            issues.append("the conflict does not move")
        if not indicators["low_repetition"]:
            issues.append(f"repetition rate {repetition:.0%} repeats earlier phrasing")
        if not indicators["new_elements"]:
            issues.append("fewer than two new story elements")
        if stagnation:
            issues.append(f"{stagnation} stagnation marker(s)")

        return self._result(score, indicators, {
            "progression": progression,
            "conflict": conflict,
            "repetition": repetition,
            "new_elements": new_elements,
            "stagnation": stagnation,
        }, issues)
