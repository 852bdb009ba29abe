"""
Solver driver
=============
Runs CP-SAT on a built model with a first time budget and, when the first
attempt ends without a verdict, one extended attempt.

    INITIAL -> SOLVING(initial) -> SOLVED | INFEASIBLE | TIMED_OUT
    TIMED_OUT -> SOLVING(extended) -> SOLVED | INFEASIBLE | TIMED_OUT (terminal)
    MODEL_INVALID or a solver exception -> ERROR (raised as UnexpectedError)
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Set, Tuple

from ortools.sat.python import cp_model

from .constraint_builder import ConstraintBuilder
from .constraint_config import AssignmentConstraintConfig
from .exceptions import UnexpectedError

logger = logging.getLogger(__name__)


class SolverState(str, Enum):
    INITIAL = 'INITIAL'
    SOLVING = 'SOLVING'
    SOLVED = 'SOLVED'
    INFEASIBLE = 'INFEASIBLE'
    TIMED_OUT = 'TIMED_OUT'
    ERROR = 'ERROR'


STATUS_NAMES = {
    cp_model.OPTIMAL: 'OPTIMAL',
    cp_model.FEASIBLE: 'FEASIBLE',
    cp_model.INFEASIBLE: 'INFEASIBLE',
    cp_model.MODEL_INVALID: 'MODEL_INVALID',
    cp_model.UNKNOWN: 'UNKNOWN'
}


@dataclass
class SolveOutcome:
    """Verdict of one solve (initial attempt plus the optional extended one)."""
    state: SolverState
    status_name: str
    is_optimal: bool = False
    solve_time: float = 0.0
    attempts: int = 0
    objective: Optional[float] = None
    assignments: Set[Tuple[int, int]] = field(default_factory=set)

    @property
    def solved(self) -> bool:
        return self.state == SolverState.SOLVED


class SolverDriver:
    """
    Drives CpSolver through the time-budget state machine.

    Args:
        config: Supplies the budgets, worker count and optional random seed
        solver_factory: Callable returning a fresh solver (cp_model.CpSolver by default)
    """

    def __init__(self, config: AssignmentConstraintConfig,
                 solver_factory: Optional[Callable[[], cp_model.CpSolver]] = None):
        self.config = config
        self.solver_factory = solver_factory or cp_model.CpSolver
        self.state = SolverState.INITIAL
        self.history: List[SolverState] = [SolverState.INITIAL]
        self.total_attempts = 0

    def _transition(self, state: SolverState):
        self.state = state
        self.history.append(state)

    def solve(self, builder: ConstraintBuilder) -> SolveOutcome:
        """Solve a built model; raises UnexpectedError on MODEL_INVALID or solver failure."""
        if self.state != SolverState.INITIAL:
            self._transition(SolverState.INITIAL)

        budgets = [self.config.initial_solve_time, self.config.extended_solve_time]
        total_time = 0.0
        attempts = 0
        status_name = 'UNKNOWN'

        for budget in budgets:
            self._transition(SolverState.SOLVING)
            solver = self._make_solver(budget)

            start_time = datetime.now()
            try:
                status = solver.Solve(builder.model)
            except Exception as e:
                self._transition(SolverState.ERROR)
                logger.exception("❌ Solver raised an exception")
                raise UnexpectedError(f"Solver failure: {e}") from e
            finally:
                attempts += 1
                self.total_attempts += 1
            total_time += (datetime.now() - start_time).total_seconds()

            status_name = STATUS_NAMES.get(status, f'UNKNOWN({status})')
            logger.debug(f"  Solver status {status_name} after {total_time:.2f}s (budget {budget}s)")

            if status in (cp_model.OPTIMAL, cp_model.FEASIBLE):
                self._transition(SolverState.SOLVED)
                assignments = {
                    key for key, var in builder.x.items() if solver.Value(var) == 1
                }
                objective = solver.ObjectiveValue() if builder.has_objective else None
                return SolveOutcome(
                    state=SolverState.SOLVED,
                    status_name=status_name,
                    is_optimal=status == cp_model.OPTIMAL,
                    solve_time=total_time,
                    attempts=attempts,
                    objective=objective,
                    assignments=assignments,
                )

            if status == cp_model.INFEASIBLE:
                self._transition(SolverState.INFEASIBLE)
                return SolveOutcome(SolverState.INFEASIBLE, status_name,
                                    solve_time=total_time, attempts=attempts)

            if status == cp_model.MODEL_INVALID:
                self._transition(SolverState.ERROR)
                raise UnexpectedError("Solver rejected the model (MODEL_INVALID)")

            self._transition(SolverState.TIMED_OUT)
            logger.info(f"⏱️  No verdict within {budget}s")

        return SolveOutcome(SolverState.TIMED_OUT, status_name,
                            solve_time=total_time, attempts=attempts)

    def _make_solver(self, budget: float):
        solver = self.solver_factory()
        solver.parameters.max_time_in_seconds = budget
        solver.parameters.num_search_workers = self.config.num_search_workers
        if self.config.random_seed is not None:
            solver.parameters.random_seed = self.config.random_seed
        return solver
