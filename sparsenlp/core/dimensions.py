"""Problem size declaration."""

from dataclasses import dataclass
from enum import Enum, auto

from sparsenlp.core.errors import DimensionError, DimensionMismatch


class IndexStyle(Enum):
    """Numbering convention for every row/col index array in a session."""
    ZERO_BASED = auto()  # C style
    ONE_BASED = auto()   # Fortran style

    @property
    def offset(self) -> int:
        """Index of the first row/column."""
        return 0 if self is IndexStyle.ZERO_BASED else 1


def dense_jacobian_nnz(n: int, m: int) -> int:
    """Entries of a dense m x n Jacobian."""
    return n * m


def dense_hessian_nnz(n: int) -> int:
    """Entries of the lower triangle (diagonal included) of an n x n matrix."""
    return n * (n + 1) // 2


@dataclass(frozen=True)
class ProblemDimensions:
    """Sizes declared once; every derivative buffer is allocated from these."""

    n: int             # variables
    m: int             # constraints
    nnz_jacobian: int  # nonzeros in the constraint Jacobian
    nnz_hessian: int   # nonzeros in the lower triangle of the Lagrangian Hessian

    def __post_init__(self):
        for name in ("n", "m", "nnz_jacobian", "nnz_hessian"):
            value = getattr(self, name)
            if int(value) != value or value < 0:
                raise DimensionError(f"{name} must be a non-negative integer, got {value!r}")

        if self.nnz_jacobian > dense_jacobian_nnz(self.n, self.m):
            raise DimensionError(
                f"nnz_jacobian={self.nnz_jacobian} exceeds n*m={self.n * self.m}"
            )
        if self.nnz_hessian > dense_hessian_nnz(self.n):
            raise DimensionError(
                f"nnz_hessian={self.nnz_hessian} exceeds n(n+1)/2="
                f"{dense_hessian_nnz(self.n)}"
            )


def check_echo(dims: ProblemDimensions, n: int, m: int) -> None:
    """
    Validate the (n, m) pair a solver passes back to a callback.

    Args:
        dims: Dimensions declared by the model
        n: Echoed variable count
        m: Echoed constraint count

    Raises:
        DimensionMismatch: if either count differs
    """
    if n != dims.n or m != dims.m:
        raise DimensionMismatch(
            f"expected (n, m) = ({dims.n}, {dims.m}), got ({n}, {m})"
        )
