from .decision import ActionKind, AutomationDecisionEngine, Decision

__all__ = ["ActionKind", "AutomationDecisionEngine", "Decision"]
