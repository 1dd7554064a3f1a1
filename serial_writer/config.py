from pathlib import Path
from typing import Dict, List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator
import yaml

ENGINES = ("plot", "character", "literary", "chemistry")


class StorageConfig(BaseModel):
    data_dir: Path = Field(default=Path("data"))
    session_hours: float = Field(default=24.0, gt=0)


class AutomationConfig(BaseModel):
    max_active_works: int = Field(default=3, gt=0)
    staleness_hours: float = Field(default=48.0, gt=0)
    completion_threshold: float = Field(default=95.0, gt=0, le=100)
    target_chapters: int = Field(default=75, gt=1)
    quality_history_size: int = Field(default=10, gt=0)


class PacingConfig(BaseModel):
    stage_boundaries: List[float] = Field(default_factory=lambda: [25.0, 50.0, 75.0])
    stagnation_limit: int = Field(default=3, gt=0)
    target_words: int = Field(default=1500, gt=0)
    length_tolerance: float = Field(default=0.5, gt=0, lt=1)

    @field_validator("stage_boundaries")
    @classmethod
    def boundaries_increasing(cls, v: List[float]) -> List[float]:
        if len(v) != 3:
            raise ValueError("stage_boundaries needs exactly three values")
        if not all(0 < a < b < 100 for a, b in zip(v, v[1:])):
            raise ValueError("stage_boundaries must be strictly increasing inside (0, 100)")
        return v


class QualityConfig(BaseModel):
    threshold: float = Field(default=7.0, ge=0, le=10)
    excellent: float = Field(default=8.5, ge=0, le=10)
    perfect: float = Field(default=9.5, ge=0, le=10)
    critical: float = Field(default=5.0, ge=0, le=10)
    acceptable_floor: float = Field(default=6.0, ge=0, le=10)
    max_attempts: int = Field(default=3, gt=0)
    weights: Dict[str, float] = Field(default_factory=lambda: {
        "plot": 0.30,
        "character": 0.25,
        "literary": 0.25,
        "chemistry": 0.20,
    })
    workers: int = Field(default=4, gt=0)

    @field_validator("weights")
    @classmethod
    def weights_sum_to_one(cls, v: Dict[str, float]) -> Dict[str, float]:
        if set(v) != set(ENGINES):
            raise ValueError(f"weights must name exactly {', '.join(ENGINES)}")
        if any(w < 0 for w in v.values()):
            raise ValueError("weights must be non-negative")
        if abs(sum(v.values()) - 1.0) > 1e-6:
            raise ValueError("weights must sum to 1")
        return v


class ThresholdConfig(BaseModel):
    band: float = Field(default=1.0, ge=0)
    hard_floor: float = Field(default=5.0, ge=0, le=10)
    max_weight: float = Field(default=0.4, gt=0, le=1)
    min_weight: float = Field(default=0.05, ge=0, lt=1)


class StrategyProfile(BaseModel):
    target_tokens: int = Field(gt=0)
    cost_multiplier: float = Field(gt=0)
    quality_floor: float = Field(ge=0, le=10)
    creativity: float = Field(default=0.7, ge=0, le=2)
    prompt_style: str = "concise"


def _default_strategies() -> Dict[str, StrategyProfile]:
    return {
        "efficiency": StrategyProfile(
            target_tokens=1500, cost_multiplier=0.25, quality_floor=6.0,
            creativity=0.3, prompt_style="concise",
        ),
        "balanced": StrategyProfile(
            target_tokens=2750, cost_multiplier=0.5, quality_floor=6.5,
            creativity=0.6, prompt_style="detailed",
        ),
        "high_investment": StrategyProfile(
            target_tokens=8000, cost_multiplier=1.0, quality_floor=7.0,
            creativity=1.0, prompt_style="elaborate",
        ),
        "emergency": StrategyProfile(
            target_tokens=10000, cost_multiplier=1.5, quality_floor=7.0,
            creativity=1.2, prompt_style="intensive",
        ),
    }


class StrategyConfig(BaseModel):
    budget: float = Field(default=1000.0, gt=0)
    cost_per_token: float = Field(default=0.003, gt=0)
    warning: float = Field(default=0.70, gt=0, le=1)
    critical: float = Field(default=0.90, gt=0, le=1)
    emergency: float = Field(default=0.95, gt=0, le=1)
    emergency_dropout_risk: float = Field(default=0.7, ge=0, le=1)
    learning_rate: float = Field(default=0.1, gt=0, le=1)
    strategies: Dict[str, StrategyProfile] = Field(default_factory=_default_strategies)

    @model_validator(mode="after")
    def tiers_ordered(self) -> "StrategyConfig":
        if not self.warning < self.critical < self.emergency:
            raise ValueError("alert tiers must satisfy warning < critical < emergency")
        return self


class ContextConfig(BaseModel):
    budget_chars: int = Field(default=6000, gt=0)
    recent_window: int = Field(default=5, gt=0)


class GeneratorConfig(BaseModel):
    provider: str = Field(default="openai")
    model: str = Field(default="gpt-4o-mini")
    base_url: Optional[str] = None
    api_key_env: str = Field(default="OPENAI_API_KEY")
    temperature: float = Field(default=0.8, ge=0, le=2)
    timeout_seconds: float = Field(default=120.0, gt=0)
    max_attempts: int = Field(default=3, gt=0)
    backoff_seconds: float = Field(default=2.0, ge=0)
    min_body_chars: int = Field(default=200, ge=0)

    @field_validator("provider")
    @classmethod
    def known_provider(cls, v: str) -> str:
        if v not in ("openai", "gemini"):
            raise ValueError("provider must be 'openai' or 'gemini'")
        return v


class Config(BaseModel):
    storage: StorageConfig = Field(default_factory=StorageConfig)
    automation: AutomationConfig = Field(default_factory=AutomationConfig)
    pacing: PacingConfig = Field(default_factory=PacingConfig)
    quality: QualityConfig = Field(default_factory=QualityConfig)
    thresholds: ThresholdConfig = Field(default_factory=ThresholdConfig)
    strategy: StrategyConfig = Field(default_factory=StrategyConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)
    generator: GeneratorConfig = Field(default_factory=GeneratorConfig)
    signal_set: Optional[Path] = None
    log_level: str = Field(default="INFO")

    @classmethod
    def from_yaml(cls, path: Path) -> "Config":
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)

    def to_yaml(self, path: Path):
        with open(path, "w") as f:
            yaml.dump(self.model_dump(mode="json"), f, default_flow_style=False)
