from .controller import (
    MILESTONES,
    PacingConstraints,
    PacingController,
    PacingReport,
    PacingViolation,
    ViolationKind,
)

__all__ = [
    "MILESTONES",
    "PacingConstraints",
    "PacingController",
    "PacingReport",
    "PacingViolation",
    "ViolationKind",
]
