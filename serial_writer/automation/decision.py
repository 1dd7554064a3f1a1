"""
Pick exactly one action per trigger.

``decide`` is a pure function of the continuity records, the clock and the
remaining budget. Rules are tried in priority order and the first match wins:

1. a work at or past the completion threshold is completed;
2. the stalest work idle longer than the staleness limit is continued;
3. below the active-work ceiling, a new work is created;
4. otherwise the least recently updated serializing work is continued;
5. at the ceiling with no serializing work (every slot holds a fresh draft),
   a new work is created.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional, Sequence

from loguru import logger
from pydantic import BaseModel

from ..config import AutomationConfig
from ..errors import BudgetExhaustedError, DecisionError
from ..models import StoryState, WorkStatus
from ..models.work import utcnow

# create = concept + first chapter
ACTION_COST_FACTOR = {"create": 1.5, "continue": 1.0, "complete": 1.0}


class ActionKind(str, Enum):
    CREATE = "create"
    CONTINUE = "continue"
    COMPLETE = "complete"


class Decision(BaseModel):
    action: ActionKind
    work_id: Optional[str] = None
    rationale: str
    estimated_cost: float
    forced: bool = False

    def describe(self) -> str:
        target = f" {self.work_id}" if self.work_id else ""
        return f"{self.action.value}{target}: {self.rationale}"


def _active(states: Sequence[StoryState]) -> List[StoryState]:
    return [s for s in states if s.work.status != WorkStatus.COMPLETE]


class AutomationDecisionEngine:
    def __init__(self, config: Optional[AutomationConfig] = None, chapter_cost: float = 1.0):
        self.config = config or AutomationConfig()
        self.chapter_cost = chapter_cost

    def estimate(self, action: ActionKind) -> float:
        return round(self.chapter_cost * ACTION_COST_FACTOR[action.value], 4)

    def decide(
        self,
        states: Sequence[StoryState],
        remaining_budget: float,
        now: Optional[datetime] = None,
        force: Optional[ActionKind] = None,
        work_id: Optional[str] = None,
    ) -> Decision:
        now = now or utcnow()
        if force is not None:
            decision = self._forced(states, force, work_id)
        else:
            decision = self._by_priority(states, now)

        if decision.estimated_cost > remaining_budget:
            raise BudgetExhaustedError(
                f"Cannot afford {decision.action.value}: needs {decision.estimated_cost:.2f} units, "
                f"{remaining_budget:.2f} left",
                rationale=decision.rationale,
            )
        logger.info(f"Decision: {decision.describe()} (est. {decision.estimated_cost:.2f} units)")
        return decision

    def _decision(self, action: ActionKind, rationale: str, work_id: Optional[str] = None,
                  forced: bool = False) -> Decision:
        return Decision(
            action=action, work_id=work_id, rationale=rationale,
            estimated_cost=self.estimate(action), forced=forced,
        )

    def _by_priority(self, states: Sequence[StoryState], now: datetime) -> Decision:
        cfg = self.config
        active = _active(states)

        finishing = [s for s in active if s.plot_progress >= cfg.completion_threshold]
        if finishing:
            target = max(finishing, key=lambda s: s.plot_progress)
            return self._decision(
                ActionKind.COMPLETE,
                f"'{target.work.title}' is at {target.plot_progress:.1f}% "
                f"(completion threshold {cfg.completion_threshold:.0f}%)",
                target.work_id,
            )

        # drafting works are continued too, so a work whose first chapter failed is not orphaned
        limit = timedelta(hours=cfg.staleness_hours)
        stale = [s for s in active if now - s.last_activity > limit]
        if stale:
            target = min(stale, key=lambda s: s.last_activity)
            idle = (now - target.last_activity).total_seconds() / 3600
            return self._decision(
                ActionKind.CONTINUE,
                f"'{target.work.title}' has been idle {idle:.0f}h (limit {cfg.staleness_hours:.0f}h)",
                target.work_id,
            )

        if len(active) < cfg.max_active_works:
            return self._decision(
                ActionKind.CREATE,
                f"{len(active)} active work(s), below the ceiling of {cfg.max_active_works}",
            )

        serializing = [s for s in active if s.work.status == WorkStatus.SERIALIZING]
        if serializing:
            target = min(serializing, key=lambda s: s.updated_at)
            return self._decision(
                ActionKind.CONTINUE,
                f"all {len(active)} slots busy; '{target.work.title}' is least recently updated",
                target.work_id,
            )

        # only reached at the ceiling; fresh drafts are left to the staleness rule
        return self._decision(ActionKind.CREATE, "no serializing work to continue")

    def _forced(self, states: Sequence[StoryState], force: ActionKind,
                work_id: Optional[str]) -> Decision:
        active = _active(states)
        if force == ActionKind.CREATE:
            return self._decision(ActionKind.CREATE, "forced by operator", forced=True)

        if work_id is not None:
            matches = [s for s in states if s.work_id == work_id]
            if not matches:
                raise DecisionError(f"Cannot {force.value} unknown work '{work_id}'")
            if matches[0].work.status == WorkStatus.COMPLETE:
                raise DecisionError(f"Work '{work_id}' is already complete")
            return self._decision(force, "forced by operator", work_id, forced=True)

        if not active:
            raise DecisionError(
                f"Cannot force {force.value}: no work in progress",
                rationale=f"{len(states)} work(s) on record, all complete",
            )
        if force == ActionKind.COMPLETE:
            target = max(active, key=lambda s: s.plot_progress)
            rationale = f"forced by operator; '{target.work.title}' is furthest along"
        else:
            target = min(active, key=lambda s: s.updated_at)
            rationale = f"forced by operator; '{target.work.title}' is least recently updated"
        return self._decision(force, rationale, target.work_id, forced=True)
