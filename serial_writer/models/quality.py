"""Quality scoring results."""

from enum import Enum
from typing import Dict, List

from pydantic import BaseModel, Field


class Engine(str, Enum):
    """The four analyzers, declared in repair priority order."""

    PLOT = "plot"
    CHARACTER = "character"
    LITERARY = "literary"
    CHEMISTRY = "chemistry"

    @property
    def priority(self) -> int:
        return list(Engine).index(self) + 1


class Grade(str, Enum):
    PERFECT = "perfect"
    EXCELLENT = "excellent"
    GOOD = "good"
    POOR = "poor"
    CRITICAL = "critical"


class EngineAnalysis(BaseModel):
    engine: Engine
    score: float = Field(ge=0.0, le=10.0)
    indicators: Dict[str, bool] = Field(default_factory=dict)
    metrics: Dict[str, float] = Field(default_factory=dict)
    issues: List[str] = Field(default_factory=list)

    @property
    def failed_indicators(self) -> List[str]:
        return [name for name, ok in self.indicators.items() if not ok]


class QualityReport(BaseModel):
    scores: Dict[Engine, float]
    weights: Dict[Engine, float]
    composite: float = Field(ge=0.0, le=10.0)
    threshold: float
    passed: bool
    grade: Grade
    indicators: Dict[str, bool] = Field(default_factory=dict)
    issues: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    attempt: int = 1
    degraded: bool = False
    repairs_applied: List[str] = Field(default_factory=list)

    def score(self, engine: Engine) -> float:
        return self.scores[engine]
