"""Utilities."""

from sparsenlp.utils.derivatives import (
    DerivativeCheckReport,
    check_derivatives,
    fd_gradient,
    fd_hessian_of_lagrangian,
    fd_jacobian,
)
from sparsenlp.utils.logging_utils import get_logger, set_level

__all__ = [
    "DerivativeCheckReport",
    "check_derivatives",
    "fd_gradient",
    "fd_hessian_of_lagrangian",
    "fd_jacobian",
    "get_logger",
    "set_level",
]
