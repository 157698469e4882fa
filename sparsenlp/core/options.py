"""Session configuration."""

from dataclasses import dataclass

from sparsenlp.core.bounds import INFINITY


@dataclass
class SessionOptions:
    """Checks the session applies at the model boundary."""

    infinity: float = INFINITY  # |bound| >= infinity means unbounded
    check_finite: bool = True   # reject NaN/Inf from evaluators
    enforce_order: bool = True  # size -> bounds -> start -> evaluations -> finalize
