"""Finite-difference checks of model derivatives."""

from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np
from numpy.typing import NDArray

from sparsenlp.utils.logging_utils import get_logger

logger = get_logger(__name__)


def fd_gradient(fun: Callable[[NDArray], float], x: NDArray, eps: float = 1e-6) -> NDArray:
    """Central-difference gradient of a scalar function."""
    x = np.asarray(x, dtype=float)
    grad = np.zeros_like(x)
    for i in range(len(x)):
        step = np.zeros_like(x)
        step[i] = eps
        grad[i] = (fun(x + step) - fun(x - step)) / (2 * eps)
    return grad


def fd_jacobian(fun: Callable[[NDArray], NDArray], x: NDArray, eps: float = 1e-6) -> NDArray:
    """Central-difference Jacobian of a vector function, shape (m, n)."""
    x = np.asarray(x, dtype=float)
    m = len(np.atleast_1d(fun(x)))
    jac = np.zeros((m, len(x)))
    for j in range(len(x)):
        step = np.zeros_like(x)
        step[j] = eps
        jac[:, j] = (np.atleast_1d(fun(x + step)) - np.atleast_1d(fun(x - step))) / (2 * eps)
    return jac


def fd_hessian_of_lagrangian(
    gradient: Callable[[NDArray], NDArray],
    jacobian: Callable[[NDArray], NDArray],
    x: NDArray,
    lagrange: NDArray,
    obj_factor: float = 1.0,
    eps: float = 1e-6,
) -> NDArray:
    """
    Hessian of σ_f f + λ·g by differencing its analytic gradient.

    Args:
        gradient: ∇f(x), shape (n,)
        jacobian: Dense ∂g/∂x, shape (m, n)
        x: Point (n,)
        lagrange: λ (m,)
        obj_factor: σ_f
        eps: Step size

    Returns:
        Symmetrized Hessian (n, n)
    """
    lagrange = np.asarray(lagrange, dtype=float)

    def lagrangian_gradient(z):
        grad = obj_factor * np.asarray(gradient(z), dtype=float)
        if len(lagrange):
            grad = grad + np.asarray(jacobian(z), dtype=float).T @ lagrange
        return grad

    H = fd_jacobian(lagrangian_gradient, x, eps)
    return 0.5 * (H + H.T)


@dataclass
class DerivativeCheckReport:
    """Largest absolute deviation between analytic and finite differences."""

    gradient_error: float
    jacobian_error: float
    hessian_error: Optional[float]  # None when the model has no Hessian

    def passed(self, tol: float = 1e-4) -> bool:
        errors = [self.gradient_error, self.jacobian_error]
        if self.hessian_error is not None:
            errors.append(self.hessian_error)
        return all(err <= tol for err in errors)


def check_derivatives(
    session,
    x: NDArray,
    lagrange: Optional[NDArray] = None,
    obj_factor: float = 1.0,
    eps: float = 1e-6,
) -> DerivativeCheckReport:
    """
    Compare a session's analytic derivatives with finite differences.

    The Jacobian values are scattered into a dense matrix through the
    structure-phase pattern, so a mismatch between the orderings of the two
    phases shows up as a Jacobian error. The Hessian is checked the same way
    after mirroring its lower triangle.

    Args:
        session: ModelSession past its starting point
        x: Point (n,)
        lagrange: λ (m,); ones when omitted
        obj_factor: σ_f
        eps: Finite-difference step

    Returns:
        DerivativeCheckReport
    """
    dims = session.dims
    n, m = dims.n, dims.m
    x = np.asarray(x, dtype=float)
    if lagrange is None:
        lagrange = np.ones(m)

    grad = session.gradient(x)
    grad_fd = fd_gradient(session.objective, x, eps)
    gradient_error = float(np.max(np.abs(grad - grad_fd), initial=0.0))

    def dense_jacobian(z):
        return session.jacobian(z).to_dense((m, n))

    jac_fd = fd_jacobian(session.constraints, x, eps) if m else np.zeros((0, n))
    jacobian_error = float(np.max(np.abs(dense_jacobian(x) - jac_fd), initial=0.0))

    hessian_error = None
    if session.capabilities.hessian:
        H = session.hessian(x, obj_factor, lagrange).symmetric_dense(n)
        H_fd = fd_hessian_of_lagrangian(
            session.gradient, dense_jacobian, x, lagrange, obj_factor, eps
        )
        hessian_error = float(np.max(np.abs(H - H_fd), initial=0.0))

    report = DerivativeCheckReport(gradient_error, jacobian_error, hessian_error)
    logger.debug("derivative check at %s: %s", x, report)
    return report
