"""Choose a generation effort tier under the session budget."""

from typing import List, Optional

from loguru import logger
from pydantic import BaseModel, Field

from ..config import StrategyConfig, StrategyProfile
from ..errors import BudgetExhaustedError
from .ledger import AlertTier, CostLedger

EFFICIENCY = "efficiency"
BALANCED = "balanced"
HIGH_INVESTMENT = "high_investment"
EMERGENCY = "emergency"

# how many of the cheapest strategies each alert tier leaves selectable
TIER_LIMIT = {
    AlertTier.NORMAL: None,
    AlertTier.WARNING: 2,
    AlertTier.CRITICAL: 1,
    AlertTier.EMERGENCY: 0,
}

# a cheaper tier must beat the preferred one's quality per cost by this factor to replace it
DOWNGRADE_FACTOR = 1.5


class StrategySignals(BaseModel):
    dropout_risk: float = Field(default=0.0, ge=0, le=1)
    importance: float = Field(default=0.5, ge=0, le=1)
    urgency: float = Field(default=0.0, ge=0, le=1)


class StrategyChoice(BaseModel):
    name: str
    profile: StrategyProfile
    estimated_cost: float
    tier: AlertTier
    rationale: str


class StrategySelector:
    def __init__(self, config: Optional[StrategyConfig] = None):
        self.config = config or StrategyConfig()

    @property
    def ordered(self) -> List[str]:
        """Strategy names from cheapest to most expensive."""
        return sorted(self.config.strategies, key=lambda n: self.config.strategies[n].cost_multiplier)

    def estimated_cost(self, name: str) -> float:
        profile = self.config.strategies[name]
        return profile.target_tokens * self.config.cost_per_token * profile.cost_multiplier

    def cost_of(self, name: str, tokens_used: int) -> float:
        return tokens_used * self.config.cost_per_token * self.config.strategies[name].cost_multiplier

    def cheapest_cost(self) -> float:
        return self.estimated_cost(self.ordered[0])

    def candidates(self, ledger: CostLedger, signals: Optional[StrategySignals] = None) -> List[str]:
        signals = signals or StrategySignals()
        tier = ledger.tier(self.config)
        limit = TIER_LIMIT[tier]
        allowed = self.ordered if limit is None else self.ordered[:limit]
        names = []
        for name in allowed:
            if name == EMERGENCY and signals.dropout_risk < self.config.emergency_dropout_risk:
                continue
            if self.estimated_cost(name) > ledger.remaining:
                continue
            names.append(name)
        return names

    def select(self, ledger: CostLedger, signals: Optional[StrategySignals] = None) -> StrategyChoice:
        signals = signals or StrategySignals()
        tier = ledger.tier(self.config)
        names = self.candidates(ledger, signals)
        if not names:
            raise BudgetExhaustedError(
                "No generation strategy is affordable",
                rationale=f"{ledger.usage_ratio:.0%} of budget {ledger.budget:.0f} spent "
                          f"({tier.value} tier), {ledger.remaining:.2f} units left",
            )

        need = max(signals.importance, signals.urgency)
        if EMERGENCY in names:
            preferred, why = EMERGENCY, f"dropout risk {signals.dropout_risk:.2f}"
        elif need >= 0.7:
            preferred, why = HIGH_INVESTMENT, f"high plot importance {need:.2f}"
        elif need >= 0.4:
            preferred, why = BALANCED, f"moderate plot importance {need:.2f}"
        else:
            preferred, why = EFFICIENCY, f"low plot importance {need:.2f}"

        order = self.ordered
        if preferred not in names:
            affordable = [n for n in names if order.index(n) <= order.index(preferred)] or names[:1]
            fallback = affordable[-1]
            why += f"; {preferred} unavailable at {tier.value} tier, using {fallback}"
            preferred = fallback

        index = order.index(preferred)
        if index > 0 and preferred != EMERGENCY:
            cheaper = order[index - 1]
            mine = ledger.efficiency.get(preferred)
            theirs = ledger.efficiency.get(cheaper)
            if cheaper in names and mine and theirs and theirs >= DOWNGRADE_FACTOR * mine:
                why += f"; {cheaper} has been {theirs / mine:.1f}x more cost-efficient"
                preferred = cheaper

        choice = StrategyChoice(
            name=preferred,
            profile=self.config.strategies[preferred],
            estimated_cost=round(self.estimated_cost(preferred), 4),
            tier=tier,
            rationale=why,
        )
        logger.info(
            f"Strategy {choice.name} (est. {choice.estimated_cost:.2f} units, "
            f"{ledger.usage_ratio:.0%} budget used): {why}"
        )
        return choice

    def charge(self, ledger: CostLedger, name: str, tokens_used: int) -> CostLedger:
        return ledger.record(name, self.cost_of(name, tokens_used))

    def observe(self, ledger: CostLedger, name: str, cost: float, quality: float) -> CostLedger:
        return ledger.observe(name, cost, quality, self.config.learning_rate)
