"""Variable and constraint bounds."""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterable, Optional, Sequence

import numpy as np
from numpy.typing import NDArray

from sparsenlp.core.errors import ProtocolError, SizeMismatch

# Magnitudes at or beyond this denote an unbounded side.
INFINITY = 1e19


class ConstraintKind(Enum):
    """How a constraint row is bounded."""
    EQUALITY = auto()  # g_l == g_u
    LOWER = auto()     # g_l <= g(x)
    UPPER = auto()     # g(x) <= g_u
    RANGE = auto()     # g_l <= g(x) <= g_u, g_l < g_u
    FREE = auto()      # no finite side


@dataclass(frozen=True)
class ConstraintBound:
    """Bounds of one constraint with an explicit kind tag."""

    lower: float
    upper: float
    kind: ConstraintKind

    @classmethod
    def equal_to(cls, value: float) -> "ConstraintBound":
        return cls(float(value), float(value), ConstraintKind.EQUALITY)

    @classmethod
    def at_least(cls, lower: float, infinity: float = INFINITY) -> "ConstraintBound":
        return cls(float(lower), 2 * infinity, ConstraintKind.LOWER)

    @classmethod
    def at_most(cls, upper: float, infinity: float = INFINITY) -> "ConstraintBound":
        return cls(-2 * infinity, float(upper), ConstraintKind.UPPER)

    @classmethod
    def between(cls, lower: float, upper: float) -> "ConstraintBound":
        return cls(float(lower), float(upper), ConstraintKind.RANGE)

    @classmethod
    def free(cls, infinity: float = INFINITY) -> "ConstraintBound":
        return cls(-2 * infinity, 2 * infinity, ConstraintKind.FREE)


def classify(lower: float, upper: float, infinity: float = INFINITY) -> ConstraintKind:
    """Kind implied by a numeric (lower, upper) pair."""
    has_lower = lower > -infinity
    has_upper = upper < infinity
    if has_lower and has_upper:
        return ConstraintKind.EQUALITY if lower == upper else ConstraintKind.RANGE
    if has_lower:
        return ConstraintKind.LOWER
    if has_upper:
        return ConstraintKind.UPPER
    return ConstraintKind.FREE


@dataclass(frozen=True)
class Bounds:
    """
    Per-variable and per-constraint bounds.

    Equality constraints carry ``ConstraintKind.EQUALITY`` in ``kinds``;
    consumers read the tag instead of comparing the numbers.
    """

    x_lower: NDArray
    x_upper: NDArray
    g_lower: NDArray
    g_upper: NDArray
    kinds: tuple[ConstraintKind, ...]
    infinity: float = INFINITY

    def __post_init__(self):
        for name in ("x_lower", "x_upper", "g_lower", "g_upper"):
            arr = np.array(getattr(self, name), dtype=float).ravel()
            arr.setflags(write=False)
            object.__setattr__(self, name, arr)
        object.__setattr__(self, "kinds", tuple(self.kinds))

        if len(self.x_upper) != len(self.x_lower):
            raise SizeMismatch("x_upper", len(self.x_lower), len(self.x_upper))
        if len(self.g_upper) != len(self.g_lower):
            raise SizeMismatch("g_upper", len(self.g_lower), len(self.g_upper))
        if len(self.kinds) != len(self.g_lower):
            raise SizeMismatch("constraint kinds", len(self.g_lower), len(self.kinds))

        if np.any(self.x_lower > self.x_upper):
            raise ProtocolError("variable lower bound exceeds upper bound")
        if np.any(self.g_lower > self.g_upper):
            raise ProtocolError("constraint lower bound exceeds upper bound")

        for i, kind in enumerate(self.kinds):
            lo, hi = self.g_lower[i], self.g_upper[i]
            if kind is ConstraintKind.EQUALITY and lo != hi:
                raise ProtocolError(
                    f"constraint {i} tagged EQUALITY but bounds differ ({lo}, {hi})"
                )
            if kind is not ConstraintKind.EQUALITY and lo == hi:
                raise ProtocolError(
                    f"constraint {i} has equal bounds but is tagged {kind.name}"
                )

    @classmethod
    def from_arrays(
        cls,
        x_lower: Sequence[float],
        x_upper: Sequence[float],
        g_lower: Sequence[float],
        g_upper: Sequence[float],
        infinity: float = INFINITY,
    ) -> "Bounds":
        """Build bounds from raw numbers, deriving each constraint kind."""
        kinds = tuple(
            classify(lo, hi, infinity) for lo, hi in zip(g_lower, g_upper)
        )
        return cls(x_lower, x_upper, g_lower, g_upper, kinds, infinity)

    @classmethod
    def build(
        cls,
        variables: Iterable[tuple[float, float]],
        constraints: Iterable[ConstraintBound],
        infinity: float = INFINITY,
    ) -> "Bounds":
        """Build bounds from (lower, upper) pairs and tagged constraint bounds."""
        variables = list(variables)
        constraints = list(constraints)
        return cls(
            x_lower=[lo for lo, _ in variables],
            x_upper=[hi for _, hi in variables],
            g_lower=[c.lower for c in constraints],
            g_upper=[c.upper for c in constraints],
            kinds=tuple(c.kind for c in constraints),
            infinity=infinity,
        )

    @property
    def n(self) -> int:
        return len(self.x_lower)

    @property
    def m(self) -> int:
        return len(self.g_lower)

    @property
    def equality_mask(self) -> NDArray:
        return np.array([k is ConstraintKind.EQUALITY for k in self.kinds], dtype=bool)

    @property
    def inequality_mask(self) -> NDArray:
        return ~self.equality_mask

    def finite(self, infinity: Optional[float] = None) -> tuple[NDArray, NDArray, NDArray, NDArray]:
        """
        Bounds with the infinity convention replaced by ``±np.inf``.

        Args:
            infinity: Threshold override (defaults to the one stored here)

        Returns:
            (x_lower, x_upper, g_lower, g_upper) as fresh float arrays
        """
        inf = self.infinity if infinity is None else infinity

        def lower(a):
            return np.where(a <= -inf, -np.inf, a)

        def upper(a):
            return np.where(a >= inf, np.inf, a)

        return (
            lower(self.x_lower),
            upper(self.x_upper),
            lower(self.g_lower),
            upper(self.g_upper),
        )
