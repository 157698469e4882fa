"""Per-point memoization for model callbacks."""

from typing import Any, Callable, Optional

from numpy.typing import NDArray


class PointCache:
    """
    Quantities derived from the most recent point x.

    The ``new_x`` hint only ever clears the cache early; a changed x is
    detected from its bytes regardless of the hint, so results never depend
    on the hint being right.
    """

    def __init__(self):
        self._key: Optional[bytes] = None
        self._values: dict[str, Any] = {}
        self.misses = 0

    def get(self, x: NDArray, new_x: bool, name: str, compute: Callable[[NDArray], Any]) -> Any:
        """
        Cached ``compute(x)`` under ``name``.

        Args:
            x: Current point
            new_x: Solver hint that x differs from the previous call
            name: Key of the derived quantity
            compute: Function of x producing it

        Returns:
            The stored or freshly computed quantity
        """
        key = x.tobytes()
        if new_x or key != self._key:
            self._key = key
            self._values = {}
        if name not in self._values:
            self.misses += 1
            self._values[name] = compute(x)
        return self._values[name]

    def clear(self) -> None:
        self._key = None
        self._values = {}
