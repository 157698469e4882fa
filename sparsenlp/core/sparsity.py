"""Sparse triplet structures and the structure/values request types."""

from dataclasses import dataclass, field
from typing import Union

import numpy as np
import scipy.sparse
from numpy.typing import NDArray

from sparsenlp.core.dimensions import IndexStyle
from sparsenlp.core.errors import SizeMismatch


@dataclass(frozen=True)
class SparsityPattern:
    """
    Row/column index arrays of a sparse matrix.

    Entry i of every values array evaluated against this pattern belongs to
    position (rows[i], cols[i]). Arrays are copied and made read-only.
    """

    rows: NDArray
    cols: NDArray
    index_style: IndexStyle = IndexStyle.ZERO_BASED

    def __post_init__(self):
        rows = np.array(self.rows, dtype=np.int64).ravel()
        cols = np.array(self.cols, dtype=np.int64).ravel()
        if len(rows) != len(cols):
            raise SizeMismatch("column indices", len(rows), len(cols))
        rows.setflags(write=False)
        cols.setflags(write=False)
        object.__setattr__(self, "rows", rows)
        object.__setattr__(self, "cols", cols)

    def __eq__(self, other):
        if not isinstance(other, SparsityPattern):
            return NotImplemented
        return (
            self.index_style == other.index_style
            and np.array_equal(self.rows, other.rows)
            and np.array_equal(self.cols, other.cols)
        )

    def __hash__(self):
        return hash((self.index_style, self.rows.tobytes(), self.cols.tobytes()))

    @property
    def nnz(self) -> int:
        return len(self.rows)

    def pairs(self) -> list[tuple[int, int]]:
        """(row, col) pairs in pattern order."""
        return list(zip(self.rows.tolist(), self.cols.tolist()))

    def to_zero_based(self) -> "SparsityPattern":
        """Same pattern renumbered from 0."""
        if self.index_style is IndexStyle.ZERO_BASED:
            return self
        offset = self.index_style.offset
        return SparsityPattern(self.rows - offset, self.cols - offset, IndexStyle.ZERO_BASED)

    def is_lower_triangular(self) -> bool:
        return bool(np.all(self.rows >= self.cols))


def dense_pattern(
    m: int, n: int, index_style: IndexStyle = IndexStyle.ZERO_BASED
) -> SparsityPattern:
    """All m x n positions, row-major."""
    return mask_pattern(np.ones((m, n), dtype=bool), index_style)


def lower_triangle_pattern(
    n: int, index_style: IndexStyle = IndexStyle.ZERO_BASED
) -> SparsityPattern:
    """Lower triangle with diagonal: for row in 0..n-1, col in 0..row."""
    rows, cols = np.tril_indices(n)
    offset = index_style.offset
    return SparsityPattern(rows + offset, cols + offset, index_style)


def mask_pattern(
    mask: NDArray, index_style: IndexStyle = IndexStyle.ZERO_BASED
) -> SparsityPattern:
    """Pattern of the True entries of a boolean matrix, row-major."""
    rows, cols = np.nonzero(np.asarray(mask, dtype=bool))
    offset = index_style.offset
    return SparsityPattern(rows + offset, cols + offset, index_style)


@dataclass(frozen=True)
class SparseTriplet:
    """Values aligned positionally with a sparsity pattern."""

    pattern: SparsityPattern
    values: NDArray

    def __post_init__(self):
        values = np.asarray(self.values, dtype=float).ravel()
        if len(values) != self.pattern.nnz:
            raise SizeMismatch("triplet values", self.pattern.nnz, len(values))
        object.__setattr__(self, "values", values)

    @property
    def rows(self) -> NDArray:
        return self.pattern.rows

    @property
    def cols(self) -> NDArray:
        return self.pattern.cols

    def to_coo(self, shape: tuple[int, int]) -> scipy.sparse.coo_matrix:
        """COO matrix; duplicate positions are summed on conversion."""
        zero = self.pattern.to_zero_based()
        return scipy.sparse.coo_matrix((self.values, (zero.rows, zero.cols)), shape=shape)

    def to_dense(self, shape: tuple[int, int]) -> NDArray:
        return self.to_coo(shape).toarray()

    def symmetric_dense(self, n: int) -> NDArray:
        """Full symmetric matrix from a lower-triangular triplet."""
        lower = self.to_dense((n, n))
        return lower + np.tril(lower, -1).T


@dataclass(frozen=True)
class QueryStructure:
    """Ask for index arrays only."""


@dataclass(frozen=True)
class QueryValues:
    """Ask for derivative values at x, ordered as the structure reply."""

    x: NDArray
    new_x: bool = True


@dataclass(frozen=True)
class QueryHessianValues:
    """Ask for σ_f ∇²f(x) + Σ λ_i ∇²g_i(x) on the lower-triangular pattern."""

    x: NDArray
    obj_factor: float
    lagrange: NDArray
    new_x: bool = True
    new_lambda: bool = True


JacobianQuery = Union[QueryStructure, QueryValues]
HessianQuery = Union[QueryStructure, QueryHessianValues]
