"""Drive a model with scipy's trust-region interior-point method."""

from dataclasses import dataclass
from typing import Optional

import numpy as np
import scipy.optimize
import scipy.sparse
from numpy.typing import NDArray

from sparsenlp.core.bounds import INFINITY, Bounds
from sparsenlp.core.errors import ModelError
from sparsenlp.core.iterate import IterationInfo, Solution
from sparsenlp.core.model import Model
from sparsenlp.core.options import SessionOptions
from sparsenlp.core.status import SolverStatus
from sparsenlp.drivers.result import SolveResult, error_status, failed_solution
from sparsenlp.session import ModelSession
from sparsenlp.utils.logging_utils import get_logger

logger = get_logger(__name__)

# scipy trust-constr exit codes
_SCIPY_STATUS = {
    0: SolverStatus.ITERATION_LIMIT_EXCEEDED,
    1: SolverStatus.CONVERGED,
    2: SolverStatus.STALLED_PROGRESS,
    3: SolverStatus.USER_STOP_REQUESTED,
}


@dataclass
class ScipyOptions:
    """Settings forwarded to ``scipy.optimize.minimize(method="trust-constr")``."""

    maxiter: int = 1000
    gtol: float = 1e-8
    xtol: float = 1e-10
    barrier_tol: float = 1e-8
    initial_tr_radius: float = 1.0
    initial_barrier_parameter: float = 1e-4
    initial_constr_penalty: float = 1.0
    feasibility_tol: float = 1e-6  # max violation and complementarity of a converged point
    use_hessian: bool = True       # False forces quasi-Newton (BFGS) curvature
    verbose: int = 0


def split_bound_multipliers(v: NDArray) -> tuple[NDArray, NDArray]:
    """
    Split a signed bound multiplier into (z_L, z_U).

    A Lagrangian term ``v·x`` for the bounds corresponds to ``z_U - z_L``.
    """
    v = np.asarray(v, dtype=float)
    return np.maximum(-v, 0.0), np.maximum(v, 0.0)


def _bound_distance(values: NDArray, lower: NDArray, upper: NDArray) -> NDArray:
    """Distance to the nearest finite bound; 1 where neither side is finite."""
    to_lower = np.where(np.isfinite(lower), np.abs(values - lower), np.inf)
    to_upper = np.where(np.isfinite(upper), np.abs(upper - values), np.inf)
    distance = np.minimum(to_lower, to_upper)
    return np.where(np.isfinite(distance), distance, 1.0)


def complementarity_error(bounds: Bounds, solution: Solution, infinity: float = INFINITY) -> float:
    """
    Largest |multiplier * distance to its bound| at a solution.

    Zero when every nonzero multiplier sits on an active bound.

    Args:
        bounds: Model bounds
        solution: Final iterate with multipliers
        infinity: Threshold of unbounded sides

    Returns:
        max_i |λ_i d_i(g)| over constraints and |z_i d_i(x)| over variables
    """
    x_l, x_u, g_l, g_u = bounds.finite(infinity)
    errors = [0.0]
    if len(g_l):
        d = _bound_distance(np.asarray(solution.g, dtype=float), g_l, g_u)
        errors.append(float(np.max(np.abs(solution.lagrange * d))))
    if len(x_l):
        x = np.asarray(solution.x, dtype=float)
        lower = np.where(np.isfinite(x_l), np.abs(x - x_l), 1.0)
        upper = np.where(np.isfinite(x_u), np.abs(x_u - x), 1.0)
        errors.append(float(np.max(np.abs(solution.z_lower * lower))))
        errors.append(float(np.max(np.abs(solution.z_upper * upper))))
    return max(errors)


def solve_with_scipy(
    model: Model,
    options: Optional[ScipyOptions] = None,
    session_options: Optional[SessionOptions] = None,
) -> SolveResult:
    """
    Run the full callback sequence against ``trust-constr``.

    size -> bounds -> start -> evaluations -> finalize. The termination
    callback runs exactly once, also when the model raises mid-solve.

    Args:
        model: Problem model
        options: Solver settings
        session_options: Boundary checks

    Returns:
        SolveResult mirroring what the model received in on_finalized
    """
    options = options if options is not None else ScipyOptions()
    session = ModelSession(model, session_options)
    dims, _ = session.dimensions()
    n, m = dims.n, dims.m

    x_last = np.zeros(n)
    iterations = 0
    user_stop = False

    try:
        bounds = session.bounds()
        start = session.starting_point(want_x=True)
        x_last = start.x.copy()
        x_l, x_u, g_l, g_u = bounds.finite(session.options.infinity)

        use_hessian = options.use_hessian and session.capabilities.hessian
        if not use_hessian:
            logger.info("no analytic Hessian in use, falling back to BFGS")

        def objective_hessian(x):
            return _symmetric(session.hessian(x, 1.0, np.zeros(m)), n)

        def constraint_hessian(x, v):
            return _symmetric(session.hessian(x, 0.0, v), n)

        def constraint_jacobian(x):
            return session.jacobian(x).to_coo((m, n)).tocsr()

        constraints = []
        if m > 0:
            constraints.append(scipy.optimize.NonlinearConstraint(
                session.constraints,
                g_l,
                g_u,
                jac=constraint_jacobian,
                hess=constraint_hessian if use_hessian else scipy.optimize.BFGS(),
            ))

        def callback(xk, state):
            nonlocal iterations, user_stop
            iterations = int(state.nit)
            info = IterationInfo(
                iteration=iterations,
                objective=float(state.fun),
                primal_infeasibility=float(state.get("constr_violation", np.nan)),
                dual_infeasibility=float(state.get("optimality", np.nan)),
                barrier_parameter=float(state.get("barrier_parameter", np.nan)),
            )
            if not session.intermediate(info):
                user_stop = True
                return True
            return False

        res = scipy.optimize.minimize(
            session.objective,
            start.x,
            method="trust-constr",
            jac=session.gradient,
            hess=objective_hessian if use_hessian else scipy.optimize.BFGS(),
            bounds=scipy.optimize.Bounds(x_l, x_u),
            constraints=constraints,
            callback=callback,
            options={
                "maxiter": options.maxiter,
                "gtol": options.gtol,
                "xtol": options.xtol,
                "barrier_tol": options.barrier_tol,
                "initial_tr_radius": options.initial_tr_radius,
                "initial_barrier_parameter": options.initial_barrier_parameter,
                "initial_constr_penalty": options.initial_constr_penalty,
                "verbose": options.verbose,
            },
        )
        x_last = np.asarray(res.x, dtype=float)
        iterations = int(getattr(res, "nit", iterations))

        status = _SCIPY_STATUS.get(res.status, SolverStatus.INTERNAL_ERROR)
        if user_stop:
            status = SolverStatus.USER_STOP_REQUESTED
        violation = float(getattr(res, "constr_violation", 0.0))
        if status in (SolverStatus.CONVERGED, SolverStatus.STALLED_PROGRESS) and (
            violation > options.feasibility_tol
        ):
            status = SolverStatus.LOCALLY_INFEASIBLE

        z_lower, z_upper, lagrange = _multipliers(res, n, m)
        solution = Solution(
            x=x_last,
            z_lower=z_lower,
            z_upper=z_upper,
            g=session.constraints(x_last),
            lagrange=lagrange,
            objective=session.objective(x_last),
        )
        complementarity = complementarity_error(bounds, solution, session.options.infinity)
        if status is SolverStatus.CONVERGED and complementarity > options.feasibility_tol:
            logger.info(
                "complementarity %.3g above %.3g, reporting an acceptable point",
                complementarity, options.feasibility_tol,
            )
            status = SolverStatus.ACCEPTABLE_POINT_FOUND
        message = str(res.message)
    except ModelError as exc:
        status = error_status(exc)
        message = str(exc)
        logger.error("solve aborted: %s", exc)
        solution = failed_solution(x_last, n, m)

    logger.info("scipy trust-constr finished: %s (%s)", status.name, message)
    session.finalize(status, solution)
    return SolveResult(
        status=status,
        solution=solution,
        message=message,
        iterations=iterations,
        evaluations=dict(session.evaluations),
    )


def _symmetric(triplet, n: int) -> scipy.sparse.csr_matrix:
    lower = triplet.to_coo((n, n)).tocsr()
    return (lower + scipy.sparse.tril(lower, k=-1).T).tocsr()


def _multipliers(res, n: int, m: int) -> tuple[NDArray, NDArray, NDArray]:
    """(z_L, z_U, λ) from a trust-constr result; zeros where scipy has none."""
    v = list(getattr(res, "v", []) or [])
    lagrange = np.zeros(m)
    if m > 0 and v and len(v[0]) == m:
        lagrange = np.asarray(v[0], dtype=float)
    z_lower, z_upper = np.zeros(n), np.zeros(n)
    # The bound constraint, when present, comes after the nonlinear one
    bound_index = 1 if m > 0 else 0
    if len(v) > bound_index and len(v[bound_index]) == n:
        z_lower, z_upper = split_bound_multipliers(v[bound_index])
    return z_lower, z_upper, lagrange
