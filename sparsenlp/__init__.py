"""
sparsenlp: the callback contract between an interior-point NLP solver and a
problem model.

A model describes

    minimize f(x)  s.t.  g_l <= g(x) <= g_u,  x_l <= x <= x_u

through stateless callbacks:
- sizes and index style, declared once
- bounds and a starting point
- objective, gradient and constraint values
- sparse Jacobian and (optionally) Hessian of the Lagrangian, exchanged in
  two phases: structure first, then values in the same order
- a termination callback receiving the final iterate

``ModelSession`` enforces the protocol; ``solve_with_scipy`` and
``solve_with_ipopt`` drive it with existing solvers.
"""

__version__ = "0.1.0"

from sparsenlp.core.bounds import Bounds, ConstraintBound, ConstraintKind, INFINITY
from sparsenlp.core.dimensions import IndexStyle, ProblemDimensions
from sparsenlp.core.iterate import IterationInfo, Iterate, Solution, StartingPoint
from sparsenlp.core.model import HessianModel, Model, ModelCapabilities
from sparsenlp.core.options import SessionOptions
from sparsenlp.core.sparsity import (
    QueryHessianValues,
    QueryStructure,
    QueryValues,
    SparseTriplet,
    SparsityPattern,
)
from sparsenlp.core.status import SolverStatus
from sparsenlp.session import ModelSession
from sparsenlp.models.hs071 import HS071
from sparsenlp.models.functional import FunctionModel
from sparsenlp.drivers.scipy_driver import ScipyOptions, solve_with_scipy

__all__ = [
    "Bounds",
    "ConstraintBound",
    "ConstraintKind",
    "INFINITY",
    "IndexStyle",
    "ProblemDimensions",
    "IterationInfo",
    "Iterate",
    "Solution",
    "StartingPoint",
    "HessianModel",
    "Model",
    "ModelCapabilities",
    "SessionOptions",
    "QueryHessianValues",
    "QueryStructure",
    "QueryValues",
    "SparseTriplet",
    "SparsityPattern",
    "SolverStatus",
    "ModelSession",
    "HS071",
    "FunctionModel",
    "ScipyOptions",
    "solve_with_scipy",
]
