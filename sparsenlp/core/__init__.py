"""Core protocol types."""

from sparsenlp.core.bounds import Bounds, ConstraintBound, ConstraintKind, INFINITY
from sparsenlp.core.cache import PointCache
from sparsenlp.core.dimensions import IndexStyle, ProblemDimensions, check_echo
from sparsenlp.core.errors import (
    CallSequenceError,
    CapabilityError,
    DimensionError,
    DimensionMismatch,
    EvaluationError,
    InvalidNumber,
    ModelError,
    ProtocolError,
    SizeMismatch,
    StructureError,
)
from sparsenlp.core.iterate import IterationInfo, Iterate, Solution, StartingPoint
from sparsenlp.core.model import (
    HessianModel,
    Model,
    ModelCapabilities,
    deduce_capabilities,
)
from sparsenlp.core.options import SessionOptions
from sparsenlp.core.sparsity import (
    QueryHessianValues,
    QueryStructure,
    QueryValues,
    SparseTriplet,
    SparsityPattern,
    dense_pattern,
    lower_triangle_pattern,
    mask_pattern,
)
from sparsenlp.core.status import SolverStatus

__all__ = [
    "Bounds",
    "ConstraintBound",
    "ConstraintKind",
    "INFINITY",
    "PointCache",
    "IndexStyle",
    "ProblemDimensions",
    "check_echo",
    "CallSequenceError",
    "CapabilityError",
    "DimensionError",
    "DimensionMismatch",
    "EvaluationError",
    "InvalidNumber",
    "ModelError",
    "ProtocolError",
    "SizeMismatch",
    "StructureError",
    "IterationInfo",
    "Iterate",
    "Solution",
    "StartingPoint",
    "HessianModel",
    "Model",
    "ModelCapabilities",
    "deduce_capabilities",
    "SessionOptions",
    "QueryHessianValues",
    "QueryStructure",
    "QueryValues",
    "SparseTriplet",
    "SparsityPattern",
    "dense_pattern",
    "lower_triangle_pattern",
    "mask_pattern",
    "SolverStatus",
]
