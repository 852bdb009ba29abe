from unittest.mock import MagicMock

import pytest
from ortools.sat.python import cp_model

from surveillance_engine.constraint_builder import ConstraintBuilder
from surveillance_engine.constraint_config import AssignmentConstraintConfig
from surveillance_engine.exceptions import UnexpectedError
from surveillance_engine.solver import SolverDriver, SolverState


def fake_solver_factory(statuses, value=1):
    """Factory returning MagicMock solvers whose Solve() yields the given statuses in order."""
    created = []
    queue = list(statuses)

    def factory():
        solver = MagicMock()
        status = queue.pop(0)
        if isinstance(status, Exception):
            solver.Solve.side_effect = status
        else:
            solver.Solve.return_value = status
        solver.Value.return_value = value
        solver.ObjectiveValue.return_value = 0.0
        created.append(solver)
        return solver

    factory.created = created
    return factory


@pytest.fixture
def builder(problem_factory):
    problem = problem_factory([(1, 'PR', 2), (2, 'MC', 2)], [(10, 1, 'S1', 2, set())])
    b = ConstraintBuilder(problem, AssignmentConstraintConfig())
    b.build()
    return b


@pytest.fixture
def config():
    return AssignmentConstraintConfig(initial_solve_time=10.0, extended_solve_time=30.0,
                                      num_search_workers=4, random_seed=42)


def test_optimal_on_first_budget(builder, config):
    factory = fake_solver_factory([cp_model.OPTIMAL])
    driver = SolverDriver(config, solver_factory=factory)

    outcome = driver.solve(builder)

    assert outcome.state == SolverState.SOLVED
    assert outcome.is_optimal
    assert outcome.attempts == 1
    assert outcome.assignments == {(0, 0), (1, 0)}
    assert driver.history == [SolverState.INITIAL, SolverState.SOLVING, SolverState.SOLVED]

    params = factory.created[0].parameters
    assert params.max_time_in_seconds == 10.0
    assert params.num_search_workers == 4
    assert params.random_seed == 42


def test_timeout_then_extended_budget_finds_feasible(builder, config):
    factory = fake_solver_factory([cp_model.UNKNOWN, cp_model.FEASIBLE])
    driver = SolverDriver(config, solver_factory=factory)

    outcome = driver.solve(builder)

    assert outcome.state == SolverState.SOLVED
    assert not outcome.is_optimal
    assert outcome.attempts == 2
    assert factory.created[1].parameters.max_time_in_seconds == 30.0
    assert driver.history == [
        SolverState.INITIAL, SolverState.SOLVING, SolverState.TIMED_OUT,
        SolverState.SOLVING, SolverState.SOLVED,
    ]


def test_two_timeouts_are_terminal(builder, config):
    driver = SolverDriver(config, solver_factory=fake_solver_factory([cp_model.UNKNOWN, cp_model.UNKNOWN]))

    outcome = driver.solve(builder)

    assert outcome.state == SolverState.TIMED_OUT
    assert outcome.attempts == 2
    assert outcome.assignments == set()
    assert driver.total_attempts == 2


def test_infeasible_does_not_retry(builder, config):
    factory = fake_solver_factory([cp_model.INFEASIBLE])
    driver = SolverDriver(config, solver_factory=factory)

    outcome = driver.solve(builder)

    assert outcome.state == SolverState.INFEASIBLE
    assert outcome.attempts == 1
    assert len(factory.created) == 1


def test_model_invalid_raises(builder, config):
    driver = SolverDriver(config, solver_factory=fake_solver_factory([cp_model.MODEL_INVALID]))

    with pytest.raises(UnexpectedError, match="MODEL_INVALID"):
        driver.solve(builder)
    assert driver.state == SolverState.ERROR


def test_solver_exception_is_wrapped(builder, config):
    driver = SolverDriver(config, solver_factory=fake_solver_factory([RuntimeError("boom")]))

    with pytest.raises(UnexpectedError) as info:
        driver.solve(builder)
    assert isinstance(info.value.__cause__, RuntimeError)
    assert driver.state == SolverState.ERROR


def test_driver_resets_to_initial_between_solves(builder, config):
    driver = SolverDriver(config, solver_factory=fake_solver_factory([cp_model.INFEASIBLE, cp_model.OPTIMAL]))

    driver.solve(builder)
    driver.solve(builder)

    assert driver.history == [
        SolverState.INITIAL, SolverState.SOLVING, SolverState.INFEASIBLE,
        SolverState.INITIAL, SolverState.SOLVING, SolverState.SOLVED,
    ]


def test_real_solver_end_to_end(builder, config):
    outcome = SolverDriver(config).solve(builder)

    assert outcome.state == SolverState.SOLVED
    assert outcome.assignments == {(0, 0), (1, 0)}
