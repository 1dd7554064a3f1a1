from .base import AnalysisContext, Analyzer
from .plot import PlotAnalyzer
from .character import CharacterAnalyzer
from .literary import LiteraryAnalyzer
from .chemistry import ChemistryAnalyzer
from .metrics import TextMetrics, compute_metrics
from .repair import REPAIRS_BY_ENGINE, RepairAction, RepairContext, RepairKind, apply_repair
from .thresholds import DynamicThresholdAgent, ThresholdAdjustment, ThresholdDecision, static_decision
from .gateway import GatewayResult, QualityAssuranceGateway, aggregate, grade_for

__all__ = [
    "AnalysisContext",
    "Analyzer",
    "PlotAnalyzer",
    "CharacterAnalyzer",
    "LiteraryAnalyzer",
    "ChemistryAnalyzer",
    "TextMetrics",
    "compute_metrics",
    "REPAIRS_BY_ENGINE",
    "RepairAction",
    "RepairContext",
    "RepairKind",
    "apply_repair",
    "DynamicThresholdAgent",
    "ThresholdAdjustment",
    "ThresholdDecision",
    "static_decision",
    "GatewayResult",
    "QualityAssuranceGateway",
    "aggregate",
    "grade_for",
]
