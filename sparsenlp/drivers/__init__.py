"""Adapters that drive a model session with existing solvers."""

from sparsenlp.drivers.result import SolveResult
from sparsenlp.drivers.scipy_driver import (
    ScipyOptions,
    complementarity_error,
    solve_with_scipy,
)
from sparsenlp.drivers.cyipopt_adapter import (
    CyipoptProblem,
    IpoptOptions,
    ipopt_status,
    solve_with_ipopt,
)

__all__ = [
    "SolveResult",
    "ScipyOptions",
    "complementarity_error",
    "solve_with_scipy",
    "CyipoptProblem",
    "IpoptOptions",
    "ipopt_status",
    "solve_with_ipopt",
]
