"""Terminal solver status."""

from enum import Enum, auto


class SolverStatus(Enum):
    """Outcome passed to the termination callback."""
    CONVERGED = auto()
    ITERATION_LIMIT_EXCEEDED = auto()
    TIME_LIMIT_EXCEEDED = auto()
    STALLED_PROGRESS = auto()        # tiny steps, no further progress
    ACCEPTABLE_POINT_FOUND = auto()  # converged to relaxed tolerances
    LOCALLY_INFEASIBLE = auto()
    USER_STOP_REQUESTED = auto()
    DIVERGING_ITERATES = auto()
    RESTORATION_FAILED = auto()
    STEP_COMPUTATION_ERROR = auto()
    INVALID_NUMBER_ENCOUNTERED = auto()
    INTERNAL_ERROR = auto()

    @property
    def is_success(self) -> bool:
        return self in (SolverStatus.CONVERGED, SolverStatus.ACCEPTABLE_POINT_FOUND)
