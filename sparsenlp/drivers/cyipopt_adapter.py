"""Adapter exposing a model session through cyipopt's problem interface."""

from dataclasses import dataclass, field
from typing import Any, Optional

import numpy as np
from numpy.typing import NDArray

from sparsenlp.core.errors import EvaluationError, InvalidNumber, ModelError
from sparsenlp.core.iterate import IterationInfo, Solution
from sparsenlp.core.model import Model
from sparsenlp.core.options import SessionOptions
from sparsenlp.core.status import SolverStatus
from sparsenlp.drivers.result import SolveResult, error_status, failed_solution
from sparsenlp.session import ModelSession
from sparsenlp.utils.logging_utils import get_logger

logger = get_logger(__name__)

# Ipopt ApplicationReturnStatus codes
_IPOPT_STATUS = {
    0: SolverStatus.CONVERGED,                  # Solve_Succeeded
    1: SolverStatus.ACCEPTABLE_POINT_FOUND,     # Solved_To_Acceptable_Level
    2: SolverStatus.LOCALLY_INFEASIBLE,         # Infeasible_Problem_Detected
    3: SolverStatus.STALLED_PROGRESS,           # Search_Direction_Becomes_Too_Small
    4: SolverStatus.DIVERGING_ITERATES,
    5: SolverStatus.USER_STOP_REQUESTED,
    6: SolverStatus.CONVERGED,                  # Feasible_Point_Found
    -1: SolverStatus.ITERATION_LIMIT_EXCEEDED,
    -2: SolverStatus.RESTORATION_FAILED,
    -3: SolverStatus.STEP_COMPUTATION_ERROR,
    -4: SolverStatus.TIME_LIMIT_EXCEEDED,       # Maximum_CpuTime_Exceeded
    -5: SolverStatus.TIME_LIMIT_EXCEEDED,       # Maximum_WallTime_Exceeded
    -13: SolverStatus.INVALID_NUMBER_ENCOUNTERED,
}


def ipopt_status(code: int) -> SolverStatus:
    """Map an Ipopt return code; anything unknown is an internal error."""
    return _IPOPT_STATUS.get(int(code), SolverStatus.INTERNAL_ERROR)


def _import_cyipopt():
    try:
        import cyipopt
    except ImportError as exc:
        raise ImportError(
            "cyipopt is required for solve_with_ipopt; "
            "install it with `pip install sparsenlp[ipopt]`"
        ) from exc
    return cyipopt


class CyipoptProblem:
    """
    Object handed to ``cyipopt.Problem(problem_obj=...)``.

    Index arrays are always zero-based here, whatever the model declared.
    When ``evaluation_error`` is given, evaluation failures are re-raised as
    that type so Ipopt can reject the trial point instead of aborting.
    """

    def __init__(self, session: ModelSession, evaluation_error: Optional[type] = None):
        self.session = session
        self.evaluation_error = evaluation_error
        self.last_error: Optional[ModelError] = None

    def _guard(self, fn, *args):
        try:
            return fn(*args)
        except (EvaluationError, InvalidNumber) as exc:
            self.last_error = exc
            if self.evaluation_error is None:
                raise
            raise self.evaluation_error(str(exc)) from exc

    def objective(self, x: NDArray) -> float:
        return self._guard(self.session.objective, x)

    def gradient(self, x: NDArray) -> NDArray:
        return self._guard(self.session.gradient, x)

    def constraints(self, x: NDArray) -> NDArray:
        return self._guard(self.session.constraints, x)

    def jacobianstructure(self) -> tuple[NDArray, NDArray]:
        pattern = self.session.jacobian_structure().to_zero_based()
        return pattern.rows, pattern.cols

    def jacobian(self, x: NDArray) -> NDArray:
        return self._guard(self.session.jacobian_values, x)

    def hessianstructure(self) -> tuple[NDArray, NDArray]:
        pattern = self.session.hessian_structure().to_zero_based()
        return pattern.rows, pattern.cols

    def hessian(self, x: NDArray, lagrange: NDArray, obj_factor: float) -> NDArray:
        return self._guard(self.session.hessian_values, x, obj_factor, lagrange)

    def intermediate(
        self,
        alg_mod,
        iter_count,
        obj_value,
        inf_pr,
        inf_du,
        mu,
        d_norm,
        regularization_size,
        alpha_du,
        alpha_pr,
        ls_trials,
    ) -> bool:
        info = IterationInfo(
            iteration=int(iter_count),
            objective=float(obj_value),
            primal_infeasibility=float(inf_pr),
            dual_infeasibility=float(inf_du),
            barrier_parameter=float(mu),
            step_norm=float(d_norm),
        )
        return self.session.intermediate(info)


@dataclass
class IpoptOptions:
    """Ipopt settings; ``extra`` is passed through ``add_option`` verbatim."""

    max_iter: int = 3000
    tol: float = 1e-8
    print_level: int = 0
    init_multipliers: bool = False  # seed z_L, z_U, λ from the model
    extra: dict[str, Any] = field(default_factory=dict)


def solve_with_ipopt(
    model: Model,
    options: Optional[IpoptOptions] = None,
    session_options: Optional[SessionOptions] = None,
) -> SolveResult:
    """
    Run the full callback sequence against Ipopt through cyipopt.

    Args:
        model: Problem model
        options: Ipopt settings
        session_options: Boundary checks

    Returns:
        SolveResult mirroring what the model received in on_finalized
    """
    cyipopt = _import_cyipopt()
    options = options if options is not None else IpoptOptions()
    session = ModelSession(model, session_options)
    dims, _ = session.dimensions()
    n, m = dims.n, dims.m
    infinity = session.options.infinity

    problem = CyipoptProblem(session, cyipopt.CyIpoptEvaluationError)
    x_last = np.zeros(n)

    try:
        bounds = session.bounds()
        seed = options.init_multipliers and session.capabilities.multipliers
        start = session.starting_point(want_x=True, want_z=seed, want_lambda=seed)
        x_last = start.x.copy()

        nlp = cyipopt.Problem(
            n=n,
            m=m,
            problem_obj=problem,
            lb=bounds.x_lower,
            ub=bounds.x_upper,
            cl=bounds.g_lower,
            cu=bounds.g_upper,
        )
        nlp.add_option("sb", "yes")
        nlp.add_option("print_level", options.print_level)
        nlp.add_option("max_iter", options.max_iter)
        nlp.add_option("tol", options.tol)
        nlp.add_option("nlp_lower_bound_inf", -infinity)
        nlp.add_option("nlp_upper_bound_inf", infinity)
        if not session.capabilities.hessian:
            nlp.add_option("hessian_approximation", "limited-memory")
        if seed:
            nlp.add_option("warm_start_init_point", "yes")
        for key, value in options.extra.items():
            nlp.add_option(key, value)

        if seed:
            x, info = nlp.solve(
                start.x, lagrange=start.lagrange, zl=start.z_lower, zu=start.z_upper
            )
        else:
            x, info = nlp.solve(start.x)

        status = ipopt_status(info["status"])
        message = info["status_msg"]
        if isinstance(message, bytes):
            message = message.decode()
        x_last = np.asarray(x, dtype=float)
        solution = Solution(
            x=x_last,
            z_lower=np.asarray(info["mult_x_L"], dtype=float),
            z_upper=np.asarray(info["mult_x_U"], dtype=float),
            g=np.asarray(info["g"], dtype=float),
            lagrange=np.asarray(info["mult_g"], dtype=float),
            objective=float(info["obj_val"]),
        )
    except ModelError as exc:
        status = error_status(exc)
        message = str(exc)
        logger.error("solve aborted: %s", exc)
        solution = failed_solution(x_last, n, m)

    if problem.last_error is not None and not status.is_success:
        logger.warning("last evaluation failure: %s", problem.last_error)

    logger.info("ipopt finished: %s (%s)", status.name, message)
    session.finalize(status, solution)
    return SolveResult(
        status=status,
        solution=solution,
        message=message,
        evaluations=dict(session.evaluations),
    )
