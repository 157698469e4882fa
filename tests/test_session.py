"""Tests for protocol enforcement at the session boundary."""

import numpy as np
import pytest

from sparsenlp.core.dimensions import IndexStyle, ProblemDimensions
from sparsenlp.core.errors import (
    CallSequenceError,
    CapabilityError,
    DimensionError,
    DimensionMismatch,
    EvaluationError,
    InvalidNumber,
    SizeMismatch,
    StructureError,
)
from sparsenlp.core.iterate import IterationInfo, Iterate, Solution
from sparsenlp.core.options import SessionOptions
from sparsenlp.core.sparsity import QueryStructure, SparsityPattern
from sparsenlp.core.status import SolverStatus
from sparsenlp.models.hs071 import HS071, X_START
from sparsenlp.session import ModelSession, SessionPhase


def _start(model, options=None):
    session = ModelSession(model, options)
    session.dimensions()
    session.bounds()
    session.starting_point()
    return session


def _solution(x):
    return Solution(
        x=np.asarray(x, dtype=float),
        z_lower=np.zeros(4),
        z_upper=np.zeros(4),
        g=np.zeros(2),
        lagrange=np.zeros(2),
        objective=0.0,
    )


class CountingHS071(HS071):
    """Records how often each phase of the sparse callbacks is hit."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.structure_calls = {"jacobian": 0, "hessian": 0}
        self.dimension_calls = 0
        self.hints = []

    def dimensions(self):
        self.dimension_calls += 1
        return super().dimensions()

    def objective(self, x, new_x):
        self.hints.append(new_x)
        return super().objective(x, new_x)

    def jacobian(self, query):
        if isinstance(query, QueryStructure):
            self.structure_calls["jacobian"] += 1
        return super().jacobian(query)

    def hessian(self, query):
        if isinstance(query, QueryStructure):
            self.structure_calls["hessian"] += 1
        return super().hessian(query)


def test_full_sequence_phases(hs071):
    session = ModelSession(hs071)
    assert session.phase is SessionPhase.CREATED

    dims, style = session.dimensions()
    assert dims == ProblemDimensions(4, 2, 8, 10)
    assert style is IndexStyle.ZERO_BASED
    assert session.phase is SessionPhase.SIZED

    session.bounds()
    assert session.phase is SessionPhase.BOUNDED

    start = session.starting_point()
    assert np.array_equal(start.x, X_START)
    assert start.z_lower is None and start.lagrange is None
    assert session.phase is SessionPhase.STARTED

    session.finalize(SolverStatus.CONVERGED, _solution(start.x))
    assert session.finalized
    assert hs071.status is SolverStatus.CONVERGED


def test_dimensions_queried_once():
    model = CountingHS071()
    session = ModelSession(model)
    first = session.dimensions()
    second = session.dimensions()
    assert first == second
    assert model.dimension_calls == 1


def test_bounds_before_dimensions_rejected(hs071):
    session = ModelSession(hs071)
    with pytest.raises(CallSequenceError):
        session.bounds()


def test_evaluation_before_start_rejected(hs071):
    session = ModelSession(hs071)
    session.dimensions()
    session.bounds()
    with pytest.raises(CallSequenceError):
        session.objective(np.array(X_START))


def test_relaxed_order_allows_direct_evaluation(hs071):
    session = ModelSession(hs071, SessionOptions(enforce_order=False))
    assert session.objective(np.array(X_START)) == pytest.approx(16.0)


def test_finalize_only_once(started_session):
    started_session.finalize(SolverStatus.CONVERGED, _solution(X_START))
    with pytest.raises(CallSequenceError):
        started_session.finalize(SolverStatus.CONVERGED, _solution(X_START))


def test_no_evaluation_after_finalize(started_session):
    started_session.finalize(SolverStatus.INTERNAL_ERROR, _solution(X_START))
    with pytest.raises(CallSequenceError):
        started_session.gradient(np.array(X_START))


def test_structure_queried_once_and_stable():
    model = CountingHS071()
    session = _start(model)

    jac_a = session.jacobian_structure()
    jac_b = session.jacobian_structure()
    hess_a = session.hessian_structure()
    hess_b = session.hessian_structure()
    session.jacobian_values(np.array(X_START))
    session.hessian_values(np.array(X_START), 1.0, np.ones(2))

    assert model.structure_calls == {"jacobian": 1, "hessian": 1}
    assert jac_a.rows.tobytes() == jac_b.rows.tobytes()
    assert jac_a.cols.tobytes() == jac_b.cols.tobytes()
    assert hess_a.rows.tobytes() == hess_b.rows.tobytes()
    assert hess_a.cols.tobytes() == hess_b.cols.tobytes()


def test_new_x_hint_deduced():
    model = CountingHS071()
    session = _start(model)
    x = np.array([1.0, 2.0, 3.0, 4.0])
    session.objective(x)
    session.objective(x)
    session.objective(x + 1.0)
    session.objective(x + 1.0, new_x=True)
    assert model.hints == [True, False, True, True]


def test_point_passed_to_model_is_read_only():
    class Mutating(HS071):
        def objective(self, x, new_x):
            x[0] = 100.0
            return 0.0

    session = _start(Mutating())
    with pytest.raises(EvaluationError):
        session.objective(np.array(X_START))


def test_point_length_checked(started_session):
    with pytest.raises(SizeMismatch):
        started_session.objective(np.ones(3))


def test_lagrange_length_checked(started_session):
    with pytest.raises(SizeMismatch):
        started_session.hessian_values(np.array(X_START), 1.0, np.ones(3))


def test_multiplier_start_requires_capability(hs071):
    session = ModelSession(hs071)
    session.dimensions()
    session.bounds()
    with pytest.raises(CapabilityError):
        session.starting_point(want_x=True, want_lambda=True)


def test_missing_requested_start_component():
    class NoStart(HS071):
        def starting_point(self, n, m, want_x, want_z, want_lambda):
            start = super().starting_point(n, m, want_x, want_z, want_lambda)
            start.x = None
            return start

    session = ModelSession(NoStart())
    session.dimensions()
    session.bounds()
    with pytest.raises(CapabilityError):
        session.starting_point()


def test_dimension_echo_checked_by_model(hs071):
    with pytest.raises(DimensionMismatch):
        hs071.bounds(5, 2)
    with pytest.raises(DimensionMismatch):
        hs071.starting_point(4, 1, True, False, False)


def test_inconsistent_declaration_rejected():
    class Overdeclared(HS071):
        def dimensions(self):
            return ProblemDimensions(4, 2, 9, 10), IndexStyle.ZERO_BASED

    session = ModelSession(Overdeclared())
    with pytest.raises(DimensionError):
        session.dimensions()
    assert session.phase is SessionPhase.CREATED


def test_jacobian_structure_count_mismatch():
    class ShortStructure(HS071):
        def jacobian(self, query):
            if isinstance(query, QueryStructure):
                return SparsityPattern([0] * 7, [0, 1, 2, 3, 0, 1, 2])
            return super().jacobian(query)

    session = _start(ShortStructure())
    with pytest.raises(SizeMismatch):
        session.jacobian_structure()


def test_jacobian_values_count_mismatch():
    class ShortValues(HS071):
        def jacobian(self, query):
            reply = super().jacobian(query)
            if isinstance(query, QueryStructure):
                return reply
            return reply[:-1]

    session = _start(ShortValues())
    with pytest.raises(SizeMismatch):
        session.jacobian_values(np.array(X_START))


def test_jacobian_index_out_of_range():
    class OutOfRange(HS071):
        def jacobian(self, query):
            if isinstance(query, QueryStructure):
                return SparsityPattern([0, 0, 0, 0, 1, 1, 1, 2], [0, 1, 2, 3, 0, 1, 2, 3])
            return super().jacobian(query)

    session = _start(OutOfRange())
    with pytest.raises(StructureError):
        session.jacobian_structure()


def test_structure_index_style_must_match_declaration():
    class WrongStyle(HS071):
        def jacobian(self, query):
            if isinstance(query, QueryStructure):
                return super().jacobian(query).to_zero_based()
            return super().jacobian(query)

    session = _start(WrongStyle(index_style=IndexStyle.ONE_BASED))
    session.hessian_structure()
    with pytest.raises(StructureError):
        session.jacobian_structure()


def test_structure_as_index_pair_accepted():
    class PairStructure(HS071):
        def jacobian(self, query):
            if isinstance(query, QueryStructure):
                pattern = super().jacobian(query)
                return pattern.rows.tolist(), pattern.cols.tolist()
            return super().jacobian(query)

    session = _start(PairStructure())
    assert session.jacobian_structure().nnz == 8


def test_hessian_upper_triangle_rejected():
    class UpperHessian(HS071):
        def hessian(self, query):
            if isinstance(query, QueryStructure):
                lower = super().hessian(query)
                return SparsityPattern(lower.cols, lower.rows)
            return super().hessian(query)

    session = _start(UpperHessian())
    with pytest.raises(StructureError):
        session.hessian_structure()


def test_nan_rejected():
    class NaNGradient(HS071):
        def gradient(self, x, new_x):
            grad = super().gradient(x, new_x)
            grad[2] = np.nan
            return grad

    session = _start(NaNGradient())
    with pytest.raises(InvalidNumber):
        session.gradient(np.array(X_START))


def test_nan_allowed_when_check_disabled():
    class InfObjective(HS071):
        def objective(self, x, new_x):
            return np.inf

    session = _start(InfObjective(), SessionOptions(check_finite=False))
    assert session.objective(np.array(X_START)) == np.inf


def test_model_exception_wrapped():
    class Failing(HS071):
        def constraints(self, x, new_x):
            raise ZeroDivisionError("boom")

    session = _start(Failing())
    with pytest.raises(EvaluationError) as excinfo:
        session.constraints(np.array(X_START))
    assert excinfo.value.callback == "constraints"
    assert isinstance(excinfo.value.__cause__, ZeroDivisionError)


def test_hessian_capability_required():
    class NoHessian:
        """Mandatory callbacks only, delegated to HS071."""

        provides_multipliers = False

        def __init__(self):
            self._inner = HS071()

        def __getattr__(self, name):
            if name == "hessian":
                raise AttributeError(name)
            return getattr(self._inner, name)

    session = _start(NoHessian())
    assert not session.capabilities.hessian
    with pytest.raises(CapabilityError):
        session.hessian_structure()


def test_intermediate_defaults_to_continue(started_session):
    assert started_session.intermediate(IterationInfo(iteration=0, objective=16.0))


def test_intermediate_forwarded():
    class Stopper(HS071):
        def __init__(self):
            super().__init__()
            self.seen = []

        def intermediate(self, info):
            self.seen.append(info.iteration)
            return info.iteration < 2

    model = Stopper()
    session = _start(model)
    assert session.capabilities.intermediate
    assert session.intermediate(IterationInfo(iteration=1, objective=0.0))
    assert not session.intermediate(IterationInfo(iteration=2, objective=0.0))
    assert model.seen == [1, 2]


def test_warm_start():
    class WarmHS071(HS071):
        def warm_start_iterate(self, n, m):
            return Iterate(
                x=np.array([1.0, 4.743, 3.821, 1.379]),
                z_lower=np.array([1.088, 0.0, 0.0, 0.0]),
                z_upper=np.zeros(4),
                lagrange=np.array([-0.552, 0.161]),
            )

    session = _start(WarmHS071())
    iterate = session.warm_start_iterate()
    assert iterate.x[1] == pytest.approx(4.743)
    assert len(iterate.lagrange) == 2

    plain = _start(HS071())
    with pytest.raises(CapabilityError):
        plain.warm_start_iterate()


def test_evaluation_counts(started_session):
    x = np.array(X_START)
    started_session.objective(x)
    started_session.objective(x)
    started_session.gradient(x)
    assert started_session.evaluations["objective"] == 2
    assert started_session.evaluations["gradient"] == 1


def test_relaxed_order_queries_sizes_before_bounds():
    model = CountingHS071()
    session = ModelSession(model, SessionOptions(enforce_order=False))
    bounds = session.bounds()
    assert bounds.n == 4 and bounds.m == 2
    assert model.dimension_calls == 1
    assert session.phase is SessionPhase.BOUNDED


def test_relaxed_order_starting_point_first():
    session = ModelSession(HS071(), SessionOptions(enforce_order=False))
    start = session.starting_point()
    assert np.array_equal(start.x, X_START)
    assert session.dims == ProblemDimensions(4, 2, 8, 10)


def test_finalize_checks_solution_sizes(started_session, hs071):
    short = _solution(X_START)
    short.lagrange = np.zeros(3)
    with pytest.raises(SizeMismatch):
        started_session.finalize(SolverStatus.CONVERGED, short)
    assert not started_session.finalized
    assert hs071.status is None

    wrong_x = _solution(X_START[:3])
    with pytest.raises(SizeMismatch):
        started_session.finalize(SolverStatus.CONVERGED, wrong_x)


def test_finalize_accepts_nan_from_failed_solve(started_session, hs071):
    failed = _solution(X_START)
    failed.g = np.full(2, np.nan)
    failed.objective = float("nan")
    started_session.finalize(SolverStatus.INVALID_NUMBER_ENCOUNTERED, failed)
    assert hs071.solution is failed
    assert hs071.status is SolverStatus.INVALID_NUMBER_ENCOUNTERED
