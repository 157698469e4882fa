"""Solver-facing session that enforces the model callback protocol."""

from collections import Counter
from enum import IntEnum
from typing import Any, Callable, Optional

import numpy as np
from numpy.typing import NDArray

from sparsenlp.core.bounds import Bounds
from sparsenlp.core.dimensions import IndexStyle, ProblemDimensions
from sparsenlp.core.errors import (
    CallSequenceError,
    CapabilityError,
    EvaluationError,
    InvalidNumber,
    ProtocolError,
    SizeMismatch,
    StructureError,
)
from sparsenlp.core.iterate import IterationInfo, Iterate, Solution, StartingPoint
from sparsenlp.core.model import Model, deduce_capabilities
from sparsenlp.core.options import SessionOptions
from sparsenlp.core.sparsity import (
    QueryHessianValues,
    QueryStructure,
    QueryValues,
    SparseTriplet,
    SparsityPattern,
)
from sparsenlp.core.status import SolverStatus
from sparsenlp.utils.logging_utils import get_logger

logger = get_logger(__name__)


class SessionPhase(IntEnum):
    """Position in the fixed call sequence."""
    CREATED = 0
    SIZED = 1      # dimensions() answered
    BOUNDED = 2    # bounds() answered
    STARTED = 3    # starting_point() answered; evaluations allowed
    FINALIZED = 4


class ModelSession:
    """
    One optimization session over one model.

    Solvers talk to the model only through this object. It asks the model
    for sizes and sparsity structure exactly once, checks every array that
    crosses the boundary against the declared counts, and guarantees the
    termination callback runs at most once.
    """

    def __init__(self, model: Model, options: Optional[SessionOptions] = None):
        self.model = model
        self.options = options if options is not None else SessionOptions()
        self.capabilities = deduce_capabilities(model)
        self.phase = SessionPhase.CREATED
        self.evaluations: Counter = Counter()

        self._dims: Optional[ProblemDimensions] = None
        self._index_style: Optional[IndexStyle] = None
        self._bounds: Optional[Bounds] = None
        self._jacobian_pattern: Optional[SparsityPattern] = None
        self._hessian_pattern: Optional[SparsityPattern] = None

        # Last point / multipliers seen, for the new_x / new_lambda hints
        self._last_x: Optional[bytes] = None
        self._last_lambda: Optional[bytes] = None

    # ------------------------------------------------------------------
    # Size, bounds, start
    # ------------------------------------------------------------------

    def dimensions(self) -> tuple[ProblemDimensions, IndexStyle]:
        """Declared sizes and index style (queried from the model once)."""
        if self._dims is None:
            self._require(SessionPhase.CREATED, "dimensions")
            reply = self._call("dimensions", self.model.dimensions)
            try:
                dims, style = reply
            except (TypeError, ValueError):
                raise self._fail(ProtocolError(
                    "dimensions() must return (ProblemDimensions, IndexStyle)"
                )) from None
            if not isinstance(dims, ProblemDimensions) or not isinstance(style, IndexStyle):
                raise self._fail(ProtocolError(
                    "dimensions() must return (ProblemDimensions, IndexStyle)"
                ))
            self._dims = dims
            self._index_style = style
            self.phase = SessionPhase.SIZED
            logger.debug("declared %s, %s", dims, style.name)
        return self._dims, self._index_style

    @property
    def dims(self) -> ProblemDimensions:
        if self._dims is None:
            raise CallSequenceError("dimensions() has not been queried yet")
        return self._dims

    @property
    def index_style(self) -> IndexStyle:
        if self._index_style is None:
            raise CallSequenceError("dimensions() has not been queried yet")
        return self._index_style

    def bounds(self) -> Bounds:
        """Variable and constraint bounds (queried from the model once)."""
        if self._bounds is None:
            self._require(SessionPhase.SIZED, "bounds")
            dims = self._sizes()
            bounds = self._call("bounds", self.model.bounds, dims.n, dims.m)
            if not isinstance(bounds, Bounds):
                raise self._fail(ProtocolError("bounds() must return a Bounds instance"))
            if bounds.n != dims.n:
                raise self._fail(SizeMismatch("variable bounds", dims.n, bounds.n))
            if bounds.m != dims.m:
                raise self._fail(SizeMismatch("constraint bounds", dims.m, bounds.m))
            self._bounds = bounds
            self.phase = SessionPhase.BOUNDED
        return self._bounds

    def starting_point(
        self, want_x: bool = True, want_z: bool = False, want_lambda: bool = False
    ) -> StartingPoint:
        """
        Initial iterate.

        Args:
            want_x: Request primal starting values
            want_z: Request bound multiplier starting values
            want_lambda: Request constraint multiplier starting values

        Returns:
            StartingPoint with every requested component populated
        """
        self._require(SessionPhase.BOUNDED, "starting_point")
        dims = self._sizes()
        if (want_z or want_lambda) and not self.capabilities.multipliers:
            raise self._fail(CapabilityError(
                "model does not provide multiplier starting values"
            ))

        start = self._call(
            "starting_point", self.model.starting_point,
            dims.n, dims.m, want_x, want_z, want_lambda,
        )
        if not isinstance(start, StartingPoint):
            raise self._fail(ProtocolError("starting_point() must return a StartingPoint"))

        wanted = (
            ("x", want_x, dims.n),
            ("z_lower", want_z, dims.n),
            ("z_upper", want_z, dims.n),
            ("lagrange", want_lambda, dims.m),
        )
        for name, want, size in wanted:
            value = getattr(start, name)
            if value is None:
                if want:
                    raise self._fail(CapabilityError(
                        f"starting_point() did not supply requested {name}"
                    ))
                continue
            setattr(start, name, self._check_values(f"starting {name}", value, size))

        self.phase = SessionPhase.STARTED
        return start

    def warm_start_iterate(self) -> Iterate:
        """Full primal/dual iterate from a model that can provide one."""
        if not self.capabilities.warm_start:
            raise self._fail(CapabilityError("model does not provide a warm start iterate"))
        dims = self._sizes()
        iterate = self._call("warm_start_iterate", self.model.warm_start_iterate, dims.n, dims.m)
        return Iterate(
            x=self._check_values("warm start x", iterate.x, dims.n),
            z_lower=self._check_values("warm start z_lower", iterate.z_lower, dims.n),
            z_upper=self._check_values("warm start z_upper", iterate.z_upper, dims.n),
            lagrange=self._check_values("warm start lagrange", iterate.lagrange, dims.m),
        )

    # ------------------------------------------------------------------
    # Function evaluations
    # ------------------------------------------------------------------

    def objective(self, x: NDArray, new_x: Optional[bool] = None) -> float:
        x, new_x = self._point(x, new_x, "objective")
        value = self._call("objective", self.model.objective, x, new_x)
        value = self._check_values("objective", value, 1)
        return float(value[0])

    def gradient(self, x: NDArray, new_x: Optional[bool] = None) -> NDArray:
        x, new_x = self._point(x, new_x, "gradient")
        grad = self._call("gradient", self.model.gradient, x, new_x)
        return self._check_values("gradient", grad, self.dims.n)

    def constraints(self, x: NDArray, new_x: Optional[bool] = None) -> NDArray:
        x, new_x = self._point(x, new_x, "constraints")
        g = self._call("constraints", self.model.constraints, x, new_x)
        return self._check_values("constraints", g, self.dims.m)

    # ------------------------------------------------------------------
    # Jacobian
    # ------------------------------------------------------------------

    def jacobian_structure(self) -> SparsityPattern:
        """Jacobian pattern; the model is asked for it only once."""
        if self._jacobian_pattern is None:
            self._require_at_least(SessionPhase.SIZED, "jacobian structure")
            dims = self.dims
            pattern = self._structure("jacobian", self.model.jacobian, dims.nnz_jacobian)
            self._check_ranges("jacobian", pattern, dims.m, dims.n)
            self._jacobian_pattern = pattern
        return self._jacobian_pattern

    def jacobian_values(self, x: NDArray, new_x: Optional[bool] = None) -> NDArray:
        """Jacobian values in the order of jacobian_structure()."""
        pattern = self.jacobian_structure()
        x, new_x = self._point(x, new_x, "jacobian")
        values = self._call("jacobian", self.model.jacobian, QueryValues(x, new_x))
        return self._check_values("jacobian values", values, pattern.nnz)

    def jacobian(self, x: NDArray, new_x: Optional[bool] = None) -> SparseTriplet:
        values = self.jacobian_values(x, new_x)
        return SparseTriplet(self._jacobian_pattern, values)

    # ------------------------------------------------------------------
    # Hessian of the Lagrangian
    # ------------------------------------------------------------------

    def hessian_structure(self) -> SparsityPattern:
        """Lower-triangular Hessian pattern; asked for only once."""
        if self._hessian_pattern is None:
            self._require_hessian()
            self._require_at_least(SessionPhase.SIZED, "hessian structure")
            dims = self.dims
            pattern = self._structure("hessian", self.model.hessian, dims.nnz_hessian)
            self._check_ranges("hessian", pattern, dims.n, dims.n)
            if not pattern.is_lower_triangular():
                raise self._fail(StructureError(
                    "hessian structure must only contain entries with row >= col"
                ))
            self._hessian_pattern = pattern
        return self._hessian_pattern

    def hessian_values(
        self,
        x: NDArray,
        obj_factor: float = 1.0,
        lagrange: Optional[NDArray] = None,
        new_x: Optional[bool] = None,
        new_lambda: Optional[bool] = None,
    ) -> NDArray:
        """
        Values of σ_f ∇²f(x) + Σ λ_i ∇²g_i(x) in hessian_structure() order.

        Args:
            x: Point (n,)
            obj_factor: σ_f
            lagrange: λ (m,), zeros when omitted
            new_x: Point hint; deduced from the previous call when None
            new_lambda: Multiplier hint; deduced when None

        Returns:
            Values (nnz_hessian,)
        """
        pattern = self.hessian_structure()
        dims = self.dims
        x, new_x = self._point(x, new_x, "hessian")
        if lagrange is None:
            lagrange = np.zeros(dims.m)
        lagrange = np.array(lagrange, dtype=float).ravel()
        if len(lagrange) != dims.m:
            raise self._fail(SizeMismatch("lagrange", dims.m, len(lagrange)))
        lagrange.setflags(write=False)

        key = lagrange.tobytes()
        if new_lambda is None:
            new_lambda = key != self._last_lambda
        self._last_lambda = key

        query = QueryHessianValues(
            x=x,
            obj_factor=float(obj_factor),
            lagrange=lagrange,
            new_x=new_x,
            new_lambda=bool(new_lambda),
        )
        values = self._call("hessian", self.model.hessian, query)
        return self._check_values("hessian values", values, pattern.nnz)

    def hessian(
        self,
        x: NDArray,
        obj_factor: float = 1.0,
        lagrange: Optional[NDArray] = None,
        new_x: Optional[bool] = None,
        new_lambda: Optional[bool] = None,
    ) -> SparseTriplet:
        values = self.hessian_values(x, obj_factor, lagrange, new_x, new_lambda)
        return SparseTriplet(self._hessian_pattern, values)

    # ------------------------------------------------------------------
    # Progress and termination
    # ------------------------------------------------------------------

    def intermediate(self, info: IterationInfo) -> bool:
        """Forward progress to the model; True (continue) if it does not listen."""
        if not self.capabilities.intermediate:
            return True
        return bool(self._call("intermediate", self.model.intermediate, info))

    def finalize(self, status: SolverStatus, solution: Solution) -> None:
        """Invoke the termination callback. Allowed exactly once."""
        if self.phase is SessionPhase.FINALIZED:
            raise self._fail(CallSequenceError("session already finalized"))
        if not isinstance(status, SolverStatus):
            raise self._fail(ProtocolError(f"unknown solver status {status!r}"))
        dims = self._sizes()
        sizes = (
            ("x", dims.n), ("z_lower", dims.n), ("z_upper", dims.n),
            ("g", dims.m), ("lagrange", dims.m),
        )
        # failed solves carry NaN in g and f
        for name, size in sizes:
            self._check_values(f"solution {name}", getattr(solution, name), size, finite=False)
        self.phase = SessionPhase.FINALIZED
        logger.info("finalizing with status %s, f = %g", status.name, solution.objective)
        self._call("on_finalized", self.model.on_finalized, status, solution)

    @property
    def finalized(self) -> bool:
        return self.phase is SessionPhase.FINALIZED

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _fail(self, error: Exception) -> Exception:
        logger.error("%s: %s", type(error).__name__, error)
        return error

    def _require(self, phase: SessionPhase, what: str) -> None:
        if self.options.enforce_order and self.phase != phase:
            raise self._fail(CallSequenceError(
                f"{what} requested in phase {self.phase.name}, expected {phase.name}"
            ))

    def _require_at_least(self, phase: SessionPhase, what: str) -> None:
        if self.phase is SessionPhase.FINALIZED:
            raise self._fail(CallSequenceError(f"{what} requested after finalize"))
        if self.options.enforce_order and self.phase < phase:
            raise self._fail(CallSequenceError(
                f"{what} requested in phase {self.phase.name}, expected {phase.name}"
            ))
        self._sizes()

    def _sizes(self) -> ProblemDimensions:
        """Declared sizes, querying the model first if nobody has yet."""
        if self._dims is None:
            self.dimensions()
        return self._dims

    def _require_hessian(self) -> None:
        if not self.capabilities.hessian:
            raise self._fail(CapabilityError("model provides no analytic Hessian"))

    def _call(self, name: str, fn: Callable, *args) -> Any:
        """Run a model callback; foreign exceptions become EvaluationError."""
        self.evaluations[name] += 1
        try:
            return fn(*args)
        except ProtocolError as exc:
            raise self._fail(exc)
        except Exception as exc:
            logger.error("%s callback failed: %s", name, exc)
            raise EvaluationError(name, str(exc)) from exc

    def _point(self, x: NDArray, new_x: Optional[bool], what: str) -> tuple[NDArray, bool]:
        self._require_at_least(SessionPhase.STARTED, what)
        x = np.array(x, dtype=float).ravel()
        if len(x) != self.dims.n:
            raise self._fail(SizeMismatch(f"{what} point", self.dims.n, len(x)))
        x.setflags(write=False)

        key = x.tobytes()
        if new_x is None:
            new_x = key != self._last_x
        self._last_x = key
        return x, bool(new_x)

    def _check_values(
        self, what: str, values: Any, expected: int, finite: bool = True
    ) -> NDArray:
        if values is None:
            raise self._fail(SizeMismatch(what, expected, 0))
        try:
            arr = np.array(values, dtype=float).ravel()
        except (TypeError, ValueError):
            raise self._fail(ProtocolError(f"{what} is not numeric")) from None
        if len(arr) != expected:
            raise self._fail(SizeMismatch(what, expected, len(arr)))
        if finite and self.options.check_finite and not np.all(np.isfinite(arr)):
            raise self._fail(InvalidNumber(f"{what} contains NaN or Inf"))
        return arr

    def _structure(self, name: str, fn: Callable, nnz: int) -> SparsityPattern:
        reply = self._call(name, fn, QueryStructure())
        if isinstance(reply, SparsityPattern):
            pattern = reply
        else:
            try:
                rows, cols = reply
            except (TypeError, ValueError):
                raise self._fail(StructureError(
                    f"{name} structure must be a SparsityPattern or (rows, cols)"
                )) from None
            pattern = SparsityPattern(rows, cols, self.index_style)

        if pattern.index_style is not self.index_style:
            raise self._fail(StructureError(
                f"{name} structure uses {pattern.index_style.name}, "
                f"declared {self.index_style.name}"
            ))
        if pattern.nnz != nnz:
            raise self._fail(SizeMismatch(f"{name} structure", nnz, pattern.nnz))
        return pattern

    def _check_ranges(self, name: str, pattern: SparsityPattern, rows: int, cols: int) -> None:
        zero = pattern.to_zero_based()
        if zero.nnz == 0:
            return
        if zero.rows.min() < 0 or zero.rows.max() >= rows:
            raise self._fail(StructureError(f"{name} row index out of range [0, {rows})"))
        if zero.cols.min() < 0 or zero.cols.max() >= cols:
            raise self._fail(StructureError(f"{name} column index out of range [0, {cols})"))

