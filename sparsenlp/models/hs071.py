"""Hock-Schittkowski problem 71.

    min   x0 x3 (x0 + x1 + x2) + x2
    s.t.  x0 x1 x2 x3           >= 25
          x0² + x1² + x2² + x3²  = 40
          1 <= x0, x1, x2, x3 <= 5

Starting point (1, 5, 5, 1); optimum near (1.000, 4.743, 3.821, 1.379)
with f* ≈ 17.014.
"""

from typing import Optional, Union

import numpy as np
from numpy.typing import NDArray

from sparsenlp.core.bounds import Bounds, ConstraintBound
from sparsenlp.core.cache import PointCache
from sparsenlp.core.dimensions import IndexStyle, ProblemDimensions, check_echo
from sparsenlp.core.errors import CapabilityError
from sparsenlp.core.iterate import Solution, StartingPoint
from sparsenlp.core.sparsity import (
    HessianQuery,
    JacobianQuery,
    QueryStructure,
    SparsityPattern,
    dense_pattern,
    lower_triangle_pattern,
)
from sparsenlp.core.status import SolverStatus
from sparsenlp.utils.logging_utils import get_logger

logger = get_logger(__name__)

X_START = (1.0, 5.0, 5.0, 1.0)


class HS071:
    """Reference model: dense Jacobian (8 entries), dense lower-triangular Hessian (10)."""

    provides_multipliers = False

    def __init__(self, index_style: IndexStyle = IndexStyle.ZERO_BASED):
        self.index_style = index_style
        self.dims = ProblemDimensions(n=4, m=2, nnz_jacobian=8, nnz_hessian=10)
        self.solution: Optional[Solution] = None
        self.status: Optional[SolverStatus] = None
        self._cache = PointCache()

    def dimensions(self) -> tuple[ProblemDimensions, IndexStyle]:
        return self.dims, self.index_style

    def bounds(self, n: int, m: int) -> Bounds:
        check_echo(self.dims, n, m)
        return Bounds.build(
            variables=[(1.0, 5.0)] * 4,
            constraints=[
                ConstraintBound.at_least(25.0),  # upper side 2e19, i.e. none
                ConstraintBound.equal_to(40.0),
            ],
        )

    def starting_point(
        self, n: int, m: int, want_x: bool, want_z: bool, want_lambda: bool
    ) -> StartingPoint:
        check_echo(self.dims, n, m)
        if want_z or want_lambda:
            raise CapabilityError("HS071 only supplies primal starting values")
        return StartingPoint(x=np.array(X_START) if want_x else None)

    # Shared subexpressions

    def _sum3(self, x: NDArray, new_x: bool) -> float:
        return self._cache.get(x, new_x, "sum3", lambda x: x[0] + x[1] + x[2])

    def _product(self, x: NDArray, new_x: bool) -> float:
        return self._cache.get(x, new_x, "product", lambda x: x[0] * x[1] * x[2] * x[3])

    def objective(self, x: NDArray, new_x: bool) -> float:
        return x[0] * x[3] * self._sum3(x, new_x) + x[2]

    def gradient(self, x: NDArray, new_x: bool) -> NDArray:
        s = self._sum3(x, new_x)
        return np.array([
            x[0] * x[3] + x[3] * s,
            x[0] * x[3],
            x[0] * x[3] + 1.0,
            x[0] * s,
        ])

    def constraints(self, x: NDArray, new_x: bool) -> NDArray:
        return np.array([
            self._product(x, new_x),
            x[0] ** 2 + x[1] ** 2 + x[2] ** 2 + x[3] ** 2,
        ])

    def jacobian(self, query: JacobianQuery) -> Union[SparsityPattern, NDArray]:
        if isinstance(query, QueryStructure):
            return dense_pattern(2, 4, self.index_style)

        x = query.x
        return np.array([
            x[1] * x[2] * x[3],  # 0,0
            x[0] * x[2] * x[3],  # 0,1
            x[0] * x[1] * x[3],  # 0,2
            x[0] * x[1] * x[2],  # 0,3
            2 * x[0],            # 1,0
            2 * x[1],            # 1,1
            2 * x[2],            # 1,2
            2 * x[3],            # 1,3
        ])

    def hessian(self, query: HessianQuery) -> Union[SparsityPattern, NDArray]:
        if isinstance(query, QueryStructure):
            return lower_triangle_pattern(4, self.index_style)

        x, sigma, lam = query.x, query.obj_factor, query.lagrange
        values = np.zeros(10)

        # Objective
        values[0] = sigma * 2 * x[3]                   # 0,0
        values[1] = sigma * x[3]                       # 1,0
        values[3] = sigma * x[3]                       # 2,0
        values[6] = sigma * (2 * x[0] + x[1] + x[2])   # 3,0
        values[7] = sigma * x[0]                       # 3,1
        values[8] = sigma * x[0]                       # 3,2

        # g0 = x0 x1 x2 x3
        values[1] += lam[0] * x[2] * x[3]  # 1,0
        values[3] += lam[0] * x[1] * x[3]  # 2,0
        values[4] += lam[0] * x[0] * x[3]  # 2,1
        values[6] += lam[0] * x[1] * x[2]  # 3,0
        values[7] += lam[0] * x[0] * x[2]  # 3,1
        values[8] += lam[0] * x[0] * x[1]  # 3,2

        # g1 = sum of squares
        values[[0, 2, 5, 9]] += 2 * lam[1]

        return values

    def on_finalized(self, status: SolverStatus, solution: Solution) -> None:
        self.status = status
        self.solution = solution
        logger.info("HS071 finished: %s", status.name)
        logger.info("x* = %s", np.array2string(solution.x, precision=6))
        logger.info("z_L = %s", np.array2string(solution.z_lower, precision=6))
        logger.info("z_U = %s", np.array2string(solution.z_upper, precision=6))
        logger.info("f(x*) = %.6f, g(x*) = %s", solution.objective,
                    np.array2string(solution.g, precision=6))
