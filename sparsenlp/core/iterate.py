"""Primal/dual points exchanged with the solver."""

from dataclasses import dataclass
from typing import Optional

from numpy.typing import NDArray


@dataclass
class Iterate:
    """A point x with bound multipliers (z_L, z_U) and constraint multipliers λ."""

    x: NDArray         # (n,)
    z_lower: NDArray   # (n,)
    z_upper: NDArray   # (n,)
    lagrange: NDArray  # (m,)


@dataclass
class StartingPoint:
    """Initial iterate; components the solver did not ask for stay None."""

    x: Optional[NDArray] = None
    z_lower: Optional[NDArray] = None
    z_upper: Optional[NDArray] = None
    lagrange: Optional[NDArray] = None


@dataclass
class Solution:
    """Final iterate handed to the termination callback."""

    x: NDArray
    z_lower: NDArray
    z_upper: NDArray
    g: NDArray
    lagrange: NDArray
    objective: float


@dataclass
class IterationInfo:
    """Progress data passed to the optional intermediate callback."""

    iteration: int
    objective: float
    primal_infeasibility: float = float("nan")
    dual_infeasibility: float = float("nan")
    barrier_parameter: float = float("nan")
    step_norm: float = float("nan")
