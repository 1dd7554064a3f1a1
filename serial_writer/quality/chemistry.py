"""Relationship-chemistry analyzer."""

from ..models import Engine, EngineAnalysis, Stage
from ..pacing import MILESTONES
from ..signals import SignalType
from .base import AnalysisContext, Analyzer, ratio

TENSION_TARGET = 3
DEPTH_TARGET = 2
# once the leads have noticed their feelings, naming emotions is no longer enough
AWARENESS = MILESTONES.index("emotional_awareness")
RUPTURE = MILESTONES.index("conflict_and_resolution")


class ChemistryAnalyzer(Analyzer):
    """Tension, emotional depth and direction along the relationship arc."""

    engine = Engine.CHEMISTRY

    def analyze(self, text: str, context: AnalysisContext) -> EngineAnalysis:
        x = self.extractor
        rung = min(context.milestone_index, len(MILESTONES))
        tension = ratio(x.distinct(text, SignalType.TENSION), TENSION_TARGET)
        depth = ratio(
            x.distinct(text, SignalType.EMOTIONAL_DEPTH) + x.distinct(text, SignalType.EMOTION) / 2,
            DEPTH_TARGET + (1 if rung >= AWARENESS else 0),
        )
        forward = x.count(text, SignalType.RELATIONSHIP_PROGRESS)
        backward = x.count(text, SignalType.RELATIONSHIP_REGRESS)
        if forward + backward:
            direction = 0.5 + 0.5 * (forward - backward) / (forward + backward)
        else:
            direction = 0.4
        # a setback is a legitimate beat once the leads are close, or while the
        # rupture-and-repair milestone is the one in play
        if backward and (context.stage.order >= Stage.CLIMAX.order or rung == RUPTURE):
            direction = max(direction, 0.6)

        score = 10 * (0.35 * tension + 0.30 * depth + 0.35 * direction)
        indicators = {
            "tension": tension >= 0.6,
            "emotional_depth": depth >= 0.5,
            "arc_progress": direction >= 0.5,
        }
        issues = []
        if not indicators["tension"]:
            issues.append("little romantic tension between the leads")
        if not indicators["emotional_depth"]:
            issues.append("emotions are named rather than explored")
        if not indicators["arc_progress"]:
            issues.append("the relationship stalls or slides backward")

        return self._result(score, indicators, {
            "tension": tension,
            "depth": depth,
            "direction": direction,
            "progress_hits": forward,
            "regress_hits": backward,
            "arc_position": rung / len(MILESTONES),
        }, issues)
