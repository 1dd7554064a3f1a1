"""Shared analyzer interface."""

from abc import ABC, abstractmethod
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models import Engine, EngineAnalysis, Stage, StoryState
from ..signals import TextSignalExtractor


class AnalysisContext(BaseModel):
    """What an analyzer may know besides the candidate text."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    state: Optional[StoryState] = None
    previous_bodies: List[str] = Field(default_factory=list)

    @property
    def stage(self) -> Stage:
        return self.state.stage if self.state else Stage.INTRODUCTION

    @property
    def milestone_index(self) -> int:
        """Rungs of the relationship ladder already climbed."""
        return self.state.milestone_index if self.state else 0


def clamp(value: float, low: float = 0.0, high: float = 10.0) -> float:
    return max(low, min(high, value))


def ratio(value: float, target: float) -> float:
    """``value / target`` capped at 1."""
    if target <= 0:
        return 1.0
    return max(0.0, min(1.0, value / target))


class Analyzer(ABC):
    engine: Engine

    def __init__(self, extractor: TextSignalExtractor):
        self.extractor = extractor

    @abstractmethod
    def analyze(self, text: str, context: AnalysisContext) -> EngineAnalysis:
        ...

    def _result(self, score: float, indicators, metrics, issues) -> EngineAnalysis:
        return EngineAnalysis(
            engine=self.engine,
            score=round(clamp(score), 2),
            indicators=indicators,
            metrics={k: round(v, 4) for k, v in metrics.items()},
            issues=issues,
        )
