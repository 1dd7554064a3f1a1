"""Session cost ledger as an immutable value object."""

import json
import os
import tempfile
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Dict, Optional

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..config import StrategyConfig
from ..errors import PersistenceError
from ..models.work import utcnow


class AlertTier(str, Enum):
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"
    EMERGENCY = "emergency"


class CostLedger(BaseModel):
    """Cost units spent in the current session.

    ``record`` returns a new ledger; callers thread the latest value through
    ``StrategySelector`` instead of sharing a mutable counter.
    """

    model_config = ConfigDict(frozen=True)

    budget: float = Field(gt=0)
    spent: float = Field(default=0.0, ge=0)
    session_started: datetime = Field(default_factory=utcnow)
    efficiency: Dict[str, float] = Field(default_factory=dict)
    uses: Dict[str, int] = Field(default_factory=dict)

    @property
    def remaining(self) -> float:
        return max(0.0, self.budget - self.spent)

    @property
    def usage_ratio(self) -> float:
        return self.spent / self.budget

    def tier(self, config: StrategyConfig) -> AlertTier:
        ratio = self.usage_ratio
        if ratio >= config.emergency:
            return AlertTier.EMERGENCY
        if ratio >= config.critical:
            return AlertTier.CRITICAL
        if ratio >= config.warning:
            return AlertTier.WARNING
        return AlertTier.NORMAL

    def record(self, strategy: str, cost: float) -> "CostLedger":
        """Charge ``cost`` units spent on one generator call."""
        uses = dict(self.uses)
        uses[strategy] = uses.get(strategy, 0) + 1
        return self.model_copy(update={"spent": self.spent + max(0.0, cost), "uses": uses})

    def observe(self, strategy: str, cost: float, quality: float,
                learning_rate: float = 0.1) -> "CostLedger":
        """Fold the quality bought per cost unit into the strategy's EWMA."""
        if cost <= 0:
            return self
        observed = quality / cost
        previous = self.efficiency.get(strategy)
        efficiency = dict(self.efficiency)
        efficiency[strategy] = (
            observed if previous is None
            else (1 - learning_rate) * previous + learning_rate * observed
        )
        return self.model_copy(update={"efficiency": efficiency})

    def expired(self, session_hours: float, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        return now - self.session_started >= timedelta(hours=session_hours)

    # ------------------------------------------------------------------
    # persistence
    # ------------------------------------------------------------------

    @classmethod
    def load(cls, path: Path, config: StrategyConfig, session_hours: float = 24.0,
             now: Optional[datetime] = None) -> "CostLedger":
        """Read the ledger, starting a fresh session when the window has passed."""
        path = Path(path)
        if not path.exists():
            return cls(budget=config.budget, session_started=now or utcnow())
        try:
            ledger = cls.model_validate_json(path.read_text(encoding="utf-8"))
        except ValidationError as e:
            raise PersistenceError(f"Cost ledger {path} is invalid: {e}") from e
        if ledger.expired(session_hours, now):
            logger.info(f"Cost session expired after {session_hours}h; starting a new ledger")
            return cls(budget=config.budget, session_started=now or utcnow(), efficiency=ledger.efficiency)
        if ledger.budget != config.budget:
            ledger = ledger.model_copy(update={"budget": config.budget})
        return ledger

    def save(self, path: Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=".ledger.", suffix=".tmp")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2)
        os.replace(tmp, path)
