"""Model assembled from plain NumPy callables."""

from typing import Callable, Optional, Sequence, Union

import numpy as np
from numpy.typing import NDArray

from sparsenlp.core.bounds import Bounds
from sparsenlp.core.dimensions import IndexStyle, ProblemDimensions, check_echo
from sparsenlp.core.errors import CapabilityError, SizeMismatch
from sparsenlp.core.iterate import Solution, StartingPoint
from sparsenlp.core.sparsity import (
    HessianQuery,
    JacobianQuery,
    QueryStructure,
    SparsityPattern,
    mask_pattern,
)
from sparsenlp.core.status import SolverStatus

ConstraintHessian = Callable[[NDArray, NDArray], NDArray]


class FunctionModel:
    """
    Conforming model built from dense derivative callables.

    The sparsity pattern comes from boolean masks (dense when omitted); the
    values phase gathers the dense derivatives at the pattern positions, so
    both phases share one ordering by construction. Entries outside a mask
    are assumed to be structurally zero.

    The Hessian capability is only exposed when both ``objective_hessian``
    and ``constraint_hessian`` are given.
    """

    def __init__(
        self,
        objective: Callable[[NDArray], float],
        gradient: Callable[[NDArray], NDArray],
        bounds: Bounds,
        x0: Sequence[float],
        constraints: Optional[Callable[[NDArray], NDArray]] = None,
        jacobian: Optional[Callable[[NDArray], NDArray]] = None,
        objective_hessian: Optional[Callable[[NDArray], NDArray]] = None,
        constraint_hessian: Optional[ConstraintHessian] = None,
        jacobian_mask: Optional[NDArray] = None,
        hessian_mask: Optional[NDArray] = None,
        index_style: IndexStyle = IndexStyle.ZERO_BASED,
        z0: Optional[tuple[NDArray, NDArray]] = None,
        lagrange0: Optional[NDArray] = None,
    ):
        """
        Args:
            objective: f(x)
            gradient: ∇f(x), shape (n,)
            bounds: Variable and constraint bounds; fixes n and m
            x0: Starting point (n,)
            constraints: g(x), shape (m,); required when m > 0
            jacobian: Dense ∂g/∂x, shape (m, n); required when m > 0
            objective_hessian: Dense ∇²f(x), shape (n, n)
            constraint_hessian: (x, λ) -> Σ λ_i ∇²g_i(x), shape (n, n)
            jacobian_mask: Boolean (m, n) structural nonzeros
            hessian_mask: Boolean (n, n); only its lower triangle is used
            index_style: Numbering used in the returned patterns
            z0: Optional (z_lower, z_upper) starting bound multipliers
            lagrange0: Optional starting constraint multipliers
        """
        n, m = bounds.n, bounds.m
        if m > 0 and (constraints is None or jacobian is None):
            raise ValueError("constraints and jacobian are required when m > 0")

        self._f = objective
        self._grad = gradient
        self._g = constraints
        self._jac = jacobian
        self._hess_f = objective_hessian
        self._hess_g = constraint_hessian
        self._bounds = bounds
        self._x0 = np.array(x0, dtype=float)
        self._z0 = z0
        self._lagrange0 = lagrange0
        self.index_style = index_style
        self.solution: Optional[Solution] = None
        self.status: Optional[SolverStatus] = None

        if len(self._x0) != n:
            raise SizeMismatch("x0", n, len(self._x0))

        if jacobian_mask is None:
            jacobian_mask = np.ones((m, n), dtype=bool)
        jacobian_mask = np.asarray(jacobian_mask, dtype=bool)
        if jacobian_mask.shape != (m, n):
            raise ValueError(f"jacobian_mask must have shape {(m, n)}")

        if hessian_mask is None:
            hessian_mask = np.ones((n, n), dtype=bool)
        hessian_mask = np.asarray(hessian_mask, dtype=bool)
        if hessian_mask.shape != (n, n):
            raise ValueError(f"hessian_mask must have shape {(n, n)}")
        hessian_mask = np.tril(hessian_mask | hessian_mask.T)

        self._jacobian_pattern = mask_pattern(jacobian_mask, index_style)
        self._hessian_pattern = mask_pattern(hessian_mask, index_style)
        self.dims = ProblemDimensions(
            n=n,
            m=m,
            nnz_jacobian=self._jacobian_pattern.nnz,
            nnz_hessian=self._hessian_pattern.nnz if self.has_hessian else 0,
        )

        if self.has_hessian:
            self.hessian = self._hessian

    @property
    def has_hessian(self) -> bool:
        return self._hess_f is not None and self._hess_g is not None

    @property
    def provides_multipliers(self) -> bool:
        return self._z0 is not None and self._lagrange0 is not None

    def dimensions(self) -> tuple[ProblemDimensions, IndexStyle]:
        return self.dims, self.index_style

    def bounds(self, n: int, m: int) -> Bounds:
        check_echo(self.dims, n, m)
        return self._bounds

    def starting_point(
        self, n: int, m: int, want_x: bool, want_z: bool, want_lambda: bool
    ) -> StartingPoint:
        check_echo(self.dims, n, m)
        start = StartingPoint()
        if want_x:
            start.x = self._x0.copy()
        if want_z:
            if self._z0 is None:
                raise CapabilityError("no starting bound multipliers configured")
            start.z_lower = np.array(self._z0[0], dtype=float)
            start.z_upper = np.array(self._z0[1], dtype=float)
        if want_lambda:
            if self._lagrange0 is None:
                raise CapabilityError("no starting constraint multipliers configured")
            start.lagrange = np.array(self._lagrange0, dtype=float)
        return start

    def objective(self, x: NDArray, new_x: bool) -> float:
        return float(self._f(x))

    def gradient(self, x: NDArray, new_x: bool) -> NDArray:
        return np.asarray(self._grad(x), dtype=float)

    def constraints(self, x: NDArray, new_x: bool) -> NDArray:
        if self.dims.m == 0:
            return np.zeros(0)
        return np.asarray(self._g(x), dtype=float)

    def jacobian(self, query: JacobianQuery) -> Union[SparsityPattern, NDArray]:
        if isinstance(query, QueryStructure):
            return self._jacobian_pattern
        if self.dims.m == 0:
            return np.zeros(0)
        dense = np.asarray(self._jac(query.x), dtype=float).reshape(self.dims.m, self.dims.n)
        return self._gather(self._jacobian_pattern, dense)

    def _hessian(self, query: HessianQuery) -> Union[SparsityPattern, NDArray]:
        if isinstance(query, QueryStructure):
            return self._hessian_pattern
        n = self.dims.n
        H = query.obj_factor * np.asarray(self._hess_f(query.x), dtype=float).reshape(n, n)
        if self.dims.m > 0:
            H = H + np.asarray(self._hess_g(query.x, query.lagrange), dtype=float).reshape(n, n)
        return self._gather(self._hessian_pattern, H)

    def on_finalized(self, status: SolverStatus, solution: Solution) -> None:
        self.status = status
        self.solution = solution

    @staticmethod
    def _gather(pattern: SparsityPattern, dense: NDArray) -> NDArray:
        zero = pattern.to_zero_based()
        return dense[zero.rows, zero.cols]
