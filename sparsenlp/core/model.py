"""Model protocols and capability detection."""

from dataclasses import dataclass
from typing import Protocol, Union

from numpy.typing import NDArray

from sparsenlp.core.bounds import Bounds
from sparsenlp.core.dimensions import IndexStyle, ProblemDimensions
from sparsenlp.core.iterate import IterationInfo, Iterate, Solution, StartingPoint
from sparsenlp.core.sparsity import HessianQuery, JacobianQuery, SparsityPattern
from sparsenlp.core.status import SolverStatus


class Model(Protocol):
    """
    Mandatory capability set of a problem model.

    The model is queried, never written to. Callbacks signal failure by
    raising; the session wraps anything raised here as an EvaluationError.
    """

    def dimensions(self) -> tuple[ProblemDimensions, IndexStyle]:
        """Sizes and index style. Queried once, first."""
        ...

    def bounds(self, n: int, m: int) -> Bounds:
        """Variable and constraint bounds. (n, m) echo the declared sizes."""
        ...

    def starting_point(
        self, n: int, m: int, want_x: bool, want_z: bool, want_lambda: bool
    ) -> StartingPoint:
        """
        Initial iterate.

        Every component whose flag is set must be populated; a model asked
        for something it cannot supply raises instead of returning zeros.
        """
        ...

    def objective(self, x: NDArray, new_x: bool) -> float:
        """f(x)."""
        ...

    def gradient(self, x: NDArray, new_x: bool) -> NDArray:
        """∇f(x), shape (n,)."""
        ...

    def constraints(self, x: NDArray, new_x: bool) -> NDArray:
        """Raw g(x), shape (m,), not offset by the bounds."""
        ...

    def jacobian(self, query: JacobianQuery) -> Union[SparsityPattern, NDArray]:
        """Pattern for QueryStructure, values (nnz_jacobian,) for QueryValues."""
        ...

    def on_finalized(self, status: SolverStatus, solution: Solution) -> None:
        """Called exactly once with the final iterate."""
        ...


class HessianModel(Model, Protocol):
    """Model that also provides an analytic Hessian of the Lagrangian."""

    def hessian(self, query: HessianQuery) -> Union[SparsityPattern, NDArray]:
        """Lower-triangular pattern, or values (nnz_hessian,) in pattern order."""
        ...


class IntermediateCallback(Protocol):
    def intermediate(self, info: IterationInfo) -> bool:
        """Return False to ask the solver to stop."""
        ...


class WarmStartProvider(Protocol):
    def warm_start_iterate(self, n: int, m: int) -> Iterate:
        ...


@dataclass(frozen=True)
class ModelCapabilities:
    """Optional capabilities, fixed at session construction."""

    hessian: bool
    multipliers: bool     # can seed z_L, z_U and λ in starting_point
    intermediate: bool
    warm_start: bool


def deduce_capabilities(model: Model) -> ModelCapabilities:
    """Inspect a model for its optional callbacks."""
    return ModelCapabilities(
        hessian=callable(getattr(model, "hessian", None)),
        multipliers=bool(getattr(model, "provides_multipliers", False)),
        intermediate=callable(getattr(model, "intermediate", None)),
        warm_start=callable(getattr(model, "warm_start_iterate", None)),
    )
