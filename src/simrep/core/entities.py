"""Enums and constants used across the codebase.

Kept separate from the modules that use them to avoid circular imports.
"""

from enum import Enum


class ControllerPhase(Enum):
    """Lifecycle of an adaptive replication run.

    SOLVED and BUDGET_EXHAUSTED are terminal.
    """
    INITIALIZING = "initializing"
    RUNNING_INITIAL = "running_initial"
    RUNNING_ADAPTIVE = "running_adaptive"
    SOLVED = "solved"
    BUDGET_EXHAUSTED = "budget_exhausted"

    @property
    def is_terminal(self) -> bool:
        return self in (ControllerPhase.SOLVED, ControllerPhase.BUDGET_EXHAUSTED)


# Reported in place of a replication count when a metric never met precision
NOT_REACHED = "not_reached"
