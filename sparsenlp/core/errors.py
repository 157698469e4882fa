"""Exceptions raised across the model/solver boundary."""


class ModelError(Exception):
    """Base class for everything a session can raise on behalf of a model."""


class ProtocolError(ModelError):
    """The model or the caller violated the callback contract."""


class DimensionError(ProtocolError):
    """Declared problem dimensions are inconsistent."""


class DimensionMismatch(ProtocolError):
    """Dimensions echoed back by the solver differ from the declared ones."""


class SizeMismatch(ProtocolError):
    """An array length differs from the count declared up front."""

    def __init__(self, what: str, expected: int, actual: int):
        super().__init__(f"{what}: expected {expected} entries, got {actual}")
        self.what = what
        self.expected = expected
        self.actual = actual


class InvalidNumber(ProtocolError):
    """An evaluator returned NaN or Inf."""


class StructureError(ProtocolError):
    """A sparsity pattern has out-of-range or misplaced indices."""


class CallSequenceError(ProtocolError):
    """A callback was invoked out of the fixed session order."""


class CapabilityError(ProtocolError):
    """A component was requested that the model does not provide."""


class EvaluationError(ModelError):
    """A model callback failed while evaluating."""

    def __init__(self, callback: str, message: str):
        super().__init__(f"{callback}: {message}")
        self.callback = callback
