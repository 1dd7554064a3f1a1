from .ledger import AlertTier, CostLedger
from .selector import StrategyChoice, StrategySelector, StrategySignals

__all__ = ["AlertTier", "CostLedger", "StrategyChoice", "StrategySelector", "StrategySignals"]
