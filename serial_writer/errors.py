"""Error taxonomy for a single automation run.

Decision and persistence errors are fatal for the run and reach the trigger
caller. Generation and pacing errors are retried inside the orchestrator with
an augmented prompt. Quality threshold errors go through the improvement loop
and, failing that, the recovery path.
"""

from typing import Any, List, Optional


class SerialWriterError(Exception):
    """Base class for every error raised by serial_writer."""

    def __init__(self, message: str, rationale: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.rationale = rationale

    def __str__(self) -> str:
        if self.rationale:
            return f"{self.message} (rationale: {self.rationale})"
        return self.message


class DecisionError(SerialWriterError):
    """No valid action could be chosen."""


class BudgetExhaustedError(DecisionError):
    """The session budget cannot afford any action or strategy."""


class GenerationError(SerialWriterError):
    """The generative-text collaborator failed or returned garbage."""

    def __init__(self, message: str, rationale: Optional[str] = None, attempts: Optional[List[str]] = None):
        super().__init__(message, rationale)
        self.attempts = attempts or []


class GeneratorTimeoutError(GenerationError):
    pass


class UnparsableOutputError(GenerationError):
    pass


class PacingViolationError(SerialWriterError):
    """A candidate broke the constraints of the current narrative stage."""

    def __init__(self, message: str, report: Any = None, rationale: Optional[str] = None):
        super().__init__(message, rationale)
        self.report = report


class QualityThresholdError(SerialWriterError):
    """The composite score never cleared the acceptable floor."""

    def __init__(self, message: str, best_text: str = "", best_report: Any = None,
                 reports: Optional[List[Any]] = None, rationale: Optional[str] = None):
        super().__init__(message, rationale)
        self.best_text = best_text
        self.best_report = best_report
        self.reports = reports or []


class PersistenceError(SerialWriterError):
    """Commit-time failure; nothing was written."""


class WorkNotFoundError(PersistenceError):
    pass


class OrdinalMismatchError(PersistenceError):
    pass


class SchemaViolationError(PersistenceError):
    pass


class InvariantViolationError(PersistenceError):
    pass


class ContextBudgetError(SerialWriterError):
    """Essential facts alone do not fit in the context budget."""


class ConfigError(SerialWriterError):
    """A configured resource (e.g. a signal set) cannot be loaded."""
