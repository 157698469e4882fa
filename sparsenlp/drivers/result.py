"""Outcome of a driven solve."""

from dataclasses import dataclass, field

import numpy as np
from numpy.typing import NDArray

from sparsenlp.core.errors import InvalidNumber, ModelError
from sparsenlp.core.iterate import Solution
from sparsenlp.core.status import SolverStatus


@dataclass
class SolveResult:
    """What a driver hands back after finalizing the session."""

    status: SolverStatus
    solution: Solution
    message: str = ""
    iterations: int = 0
    evaluations: dict = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.status.is_success


def error_status(exc: ModelError) -> SolverStatus:
    """Terminal status for a model failure surfaced during a solve."""
    if isinstance(exc, InvalidNumber):
        return SolverStatus.INVALID_NUMBER_ENCOUNTERED
    return SolverStatus.INTERNAL_ERROR


def failed_solution(x: NDArray, n: int, m: int) -> Solution:
    """Last known point with no usable function values or multipliers."""
    return Solution(
        x=np.asarray(x, dtype=float),
        z_lower=np.zeros(n),
        z_upper=np.zeros(n),
        g=np.full(m, np.nan),
        lagrange=np.zeros(m),
        objective=float("nan"),
    )
