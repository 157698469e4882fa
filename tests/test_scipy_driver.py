"""Solving through scipy.optimize's trust-constr with the session in between."""

import numpy as np
import pytest

from sparsenlp.core.bounds import Bounds, ConstraintBound
from sparsenlp.core.iterate import Solution
from sparsenlp.core.status import SolverStatus
from sparsenlp.drivers.scipy_driver import (
    ScipyOptions,
    complementarity_error,
    solve_with_scipy,
    split_bound_multipliers,
)
from sparsenlp.models.hs071 import HS071

from test_functional import separable_model

X_OPT = np.array([1.0, 4.743, 3.821, 1.379])
FINISHED = (
    SolverStatus.CONVERGED,
    SolverStatus.ACCEPTABLE_POINT_FOUND,
    SolverStatus.STALLED_PROGRESS,
)


class RecordingHS071(HS071):
    """Counts terminal callbacks."""

    def __init__(self):
        super().__init__()
        self.finalize_calls = 0

    def on_finalized(self, status, solution):
        self.finalize_calls += 1
        super().on_finalized(status, solution)


def test_hs071_converges():
    model = RecordingHS071()
    result = solve_with_scipy(model)

    print(f"status: {result.status.name}, iterations: {result.iterations}")
    print(f"x* = {result.solution.x}")

    assert result.status in FINISHED
    assert np.allclose(result.solution.x, X_OPT, atol=2e-3)
    assert result.solution.objective == pytest.approx(17.014, abs=1e-3)
    assert np.allclose(result.solution.g, [25.0, 40.0], atol=1e-4)
    assert model.finalize_calls == 1
    assert model.solution is result.solution
    assert model.status is result.status


def test_hs071_structure_queried_once():
    result = solve_with_scipy(HS071())
    assert result.evaluations["dimensions"] == 1
    assert result.evaluations["bounds"] == 1
    assert result.evaluations["starting_point"] == 1
    assert result.evaluations["on_finalized"] == 1
    # one structure call plus at least one values call each
    assert result.evaluations["jacobian"] >= 2
    assert result.evaluations["hessian"] >= 2


def test_hs071_quasi_newton():
    result = solve_with_scipy(HS071(), ScipyOptions(use_hessian=False, maxiter=3000))
    assert "hessian" not in result.evaluations
    assert np.allclose(result.solution.x, X_OPT, atol=5e-3)


def test_separable_model_solution():
    """The inequality x0 + x1 <= 2 is active with multiplier 1 at the optimum."""
    model = separable_model()
    result = solve_with_scipy(model)
    solution = result.solution

    complementarity = complementarity_error(model.bounds(3, 2), solution)
    print(f"status: {result.status.name}, complementarity: {complementarity:.3g}")

    assert result.status in FINISHED
    if result.status is SolverStatus.CONVERGED:
        assert complementarity <= ScipyOptions().feasibility_tol
    if result.status is SolverStatus.ACCEPTABLE_POINT_FOUND:
        assert complementarity > ScipyOptions().feasibility_tol
    assert np.allclose(solution.x, [0.5, 1.5, 2.0], atol=2e-3)
    assert solution.g[0] <= 2.0 + 1e-6
    assert solution.g[1] == pytest.approx(4.0, abs=1e-5)
    assert solution.objective == pytest.approx(1.5, abs=5e-3)
    assert model.status is result.status


def test_large_initial_barrier_reports_acceptable_point():
    """
    Starting from scipy's default barrier of 0.1, trust-constr meets its
    gradient tolerance with x0 + x1 still about 8e-4 below 2 while the
    multiplier stays near 1.
    """
    model = separable_model()
    result = solve_with_scipy(model, ScipyOptions(initial_barrier_parameter=0.1))

    complementarity = complementarity_error(model.bounds(3, 2), result.solution)
    assert complementarity > ScipyOptions().feasibility_tol
    assert result.status is SolverStatus.ACCEPTABLE_POINT_FOUND
    assert result.success
    assert model.status is SolverStatus.ACCEPTABLE_POINT_FOUND


def _one_constraint_solution(x, g, lagrange, z_lower=0.0, z_upper=0.0):
    return Solution(
        x=np.array([x]),
        z_lower=np.array([z_lower]),
        z_upper=np.array([z_upper]),
        g=np.array([g]),
        lagrange=np.array([lagrange]),
        objective=0.0,
    )


def test_complementarity_error():
    bounds = Bounds.build([(0.0, 1.0)], [ConstraintBound.at_most(2.0)])

    active = _one_constraint_solution(x=0.5, g=2.0, lagrange=1.0)
    assert complementarity_error(bounds, active) == 0.0

    # multiplier kept on a slightly inactive constraint
    slack = _one_constraint_solution(x=0.5, g=1.9992, lagrange=1.0008)
    assert complementarity_error(bounds, slack) == pytest.approx(8e-4 * 1.0008)

    interior_z = _one_constraint_solution(x=0.5, g=2.0, lagrange=0.0, z_lower=0.3)
    assert complementarity_error(bounds, interior_z) == pytest.approx(0.15)


def test_complementarity_ignores_equality_and_free_rows():
    bounds = Bounds.build(
        [(-2e19, 2e19)],
        [ConstraintBound.equal_to(4.0), ConstraintBound.free()],
    )
    solution = Solution(
        x=np.array([3.0]),
        z_lower=np.zeros(1),
        z_upper=np.zeros(1),
        g=np.array([4.1, 7.0]),
        lagrange=np.array([5.0, 0.0]),
        objective=0.0,
    )
    assert complementarity_error(bounds, solution) == 0.0


def test_user_stop():
    class StopAtOnce(RecordingHS071):
        def intermediate(self, info):
            return False

    model = StopAtOnce()
    result = solve_with_scipy(model)
    assert result.status is SolverStatus.USER_STOP_REQUESTED
    assert model.finalize_calls == 1


def test_invalid_number_stops_solve():
    class NaNObjective(RecordingHS071):
        def objective(self, x, new_x):
            return float("nan")

    model = NaNObjective()
    result = solve_with_scipy(model)
    assert result.status is SolverStatus.INVALID_NUMBER_ENCOUNTERED
    assert model.finalize_calls == 1
    assert np.isnan(result.solution.objective)


def test_failing_callback_reported_as_internal_error():
    class Broken(RecordingHS071):
        def gradient(self, x, new_x):
            raise RuntimeError("gradient unavailable")

    model = Broken()
    result = solve_with_scipy(model)
    assert result.status is SolverStatus.INTERNAL_ERROR
    assert "gradient unavailable" in result.message
    assert model.finalize_calls == 1


def test_iteration_limit():
    result = solve_with_scipy(HS071(), ScipyOptions(maxiter=2))
    assert result.status is SolverStatus.ITERATION_LIMIT_EXCEEDED
    assert not result.success


def test_split_bound_multipliers():
    z_lower, z_upper = split_bound_multipliers(np.array([-1.5, 0.0, 2.0]))
    assert np.array_equal(z_lower, [1.5, 0.0, 0.0])
    assert np.array_equal(z_upper, [0.0, 0.0, 2.0])
