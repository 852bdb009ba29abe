"""
Progressive relaxation controller
=================================
Capacity check, one strict attempt, then rounds that lift the unavailability
of growing batches of teachers (least protected grades first) until the model
becomes feasible or the round cap is hit. The controller's state is an
explicit object advanced one step at a time.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Set

from .constraint_builder import ConstraintBuilder
from .constraint_config import AssignmentConstraintConfig, ConstraintMode, SchedulerDefaults
from .models import ProblemInstance, AssignmentStatus
from .solver import SolverDriver, SolveOutcome, SolverState

logger = logging.getLogger(__name__)


class RelaxationPhase(str, Enum):
    CAPACITY_CHECK = 'CAPACITY_CHECK'
    STRICT = 'STRICT'
    RELAXING = 'RELAXING'
    DONE = 'DONE'


@dataclass
class RelaxationCandidate:
    teacher_index: int
    teacher_id: int
    priority: int
    blocked_exams: int


class RelaxationController:
    """
    State of one run's solve loop.

    Attributes inspected by callers and tests: phase, relaxed, candidates
    (remaining queue), batch_size, round, solve_attempts, warned_over_half,
    last_outcome, status, message, capacity_deficit.
    """

    def __init__(self, problem: ProblemInstance, config: AssignmentConstraintConfig,
                 driver: SolverDriver,
                 builder_factory: Callable[..., ConstraintBuilder] = ConstraintBuilder):
        self.problem = problem
        self.config = config
        self.driver = driver
        self.builder_factory = builder_factory

        self.phase = RelaxationPhase.CAPACITY_CHECK
        self.relaxed: Set[int] = set()
        self.candidates: List[RelaxationCandidate] = []
        self.batch_size = 0
        self.round = 0
        self.solve_attempts = 0
        self.solve_time = 0.0
        self.warned_over_half = False
        self.last_outcome: Optional[SolveOutcome] = None
        self.last_builder: Optional[ConstraintBuilder] = None

        self.status: Optional[AssignmentStatus] = None
        self.message = ''
        self.is_optimal = False
        self.capacity_deficit = 0

    @property
    def done(self) -> bool:
        return self.phase == RelaxationPhase.DONE

    @property
    def solution(self) -> Optional[SolveOutcome]:
        if self.status == AssignmentStatus.SUCCESS:
            return self.last_outcome
        return None

    @property
    def total_constraints(self) -> int:
        return self.last_builder.total_constraints if self.last_builder else 0

    def run(self) -> 'RelaxationController':
        while not self.done:
            self.step()
        return self

    def step(self) -> RelaxationPhase:
        """Advance one phase (or one relaxation round) and return the new phase."""
        if self.phase == RelaxationPhase.CAPACITY_CHECK:
            self._check_capacity()
        elif self.phase == RelaxationPhase.STRICT:
            self._strict_attempt()
        elif self.phase == RelaxationPhase.RELAXING:
            self._relaxation_round()
        return self.phase

    # ==================== PHASES ====================

    def _check_capacity(self):
        needed = self.problem.total_needed
        capacity = self.problem.total_capacity

        if self.config.quota_limit_mode == ConstraintMode.HARD and capacity < needed:
            self.capacity_deficit = needed - capacity
            self._finish(
                AssignmentStatus.INFEASIBLE,
                f"Insufficient total capacity: {capacity} < {needed}. "
                f"Need to increase quotas by {self.capacity_deficit}"
            )
            logger.warning(f"❌ {self.message}")
            return

        logger.info(f"✓ Capacity check: {capacity} available for {needed} needed")
        self.phase = RelaxationPhase.STRICT

    def _strict_attempt(self):
        logger.info("Solving with all constraints (strict attempt)...")
        outcome = self._attempt()

        if outcome.solved:
            self.is_optimal = outcome.is_optimal
            kind = "Optimal" if outcome.is_optimal else "Feasible"
            self._finish(AssignmentStatus.SUCCESS, f"{kind} solution found")
            return

        logger.info(f"⚠️  Strict attempt: {outcome.state.value}")
        self.candidates = self._build_candidates()
        if not self.candidates:
            self._fail("no teacher unavailability can be relaxed")
            return

        self.batch_size = max(1, len(self.candidates) // SchedulerDefaults.INITIAL_BATCH_DIVISOR)
        logger.info(f"Starting progressive relaxation: {len(self.candidates)} candidates, "
                    f"initial batch {self.batch_size}")
        self.phase = RelaxationPhase.RELAXING

    def _relaxation_round(self):
        if not self.candidates:
            self._fail("all candidate teachers relaxed")
            return
        if self.round >= self.config.max_relaxation_rounds:
            self._fail(f"round limit of {self.config.max_relaxation_rounds} reached")
            return

        self.round += 1
        remaining = len(self.candidates)
        if self.round > SchedulerDefaults.LARGE_BATCH_AFTER_ROUND:
            self.batch_size = max(self.batch_size, remaining // SchedulerDefaults.LARGE_BATCH_DIVISOR)
        elif self.round > SchedulerDefaults.MEDIUM_BATCH_AFTER_ROUND:
            self.batch_size = max(self.batch_size, remaining // SchedulerDefaults.MEDIUM_BATCH_DIVISOR)

        batch = self.candidates[:self.batch_size]
        self.candidates = self.candidates[self.batch_size:]
        for candidate in batch:
            self.relaxed.add(candidate.teacher_index)

        freed = sum(c.blocked_exams for c in batch)
        logger.info(f"  Round {self.round}: relaxing {len(batch)} teachers "
                    f"(frees {freed} exam slots, {len(self.relaxed)} relaxed in total)")

        if not self.warned_over_half and \
                len(self.relaxed) > self.problem.num_teachers * SchedulerDefaults.RELAXED_WARNING_RATIO:
            self.warned_over_half = True
            logger.warning(f"⚠️  More than half of the roster relaxed "
                           f"({len(self.relaxed)}/{self.problem.num_teachers})")

        outcome = self._attempt()
        if outcome.solved:
            self.is_optimal = False
            self._finish(
                AssignmentStatus.SUCCESS,
                f"Solution found with relaxed constraints: {len(self.relaxed)} teachers relaxed "
                f"after {self.round} rounds"
            )

    # ==================== HELPERS ====================

    def _attempt(self) -> SolveOutcome:
        builder = self.builder_factory(self.problem, self.config, self.relaxed)
        builder.build()
        self.last_builder = builder

        outcome = self.driver.solve(builder)
        self.solve_attempts += outcome.attempts
        self.solve_time += outcome.solve_time
        self.last_outcome = outcome
        return outcome

    def _build_candidates(self) -> List[RelaxationCandidate]:
        """Participating teachers whose unavailability blocks at least one exam."""
        if self.config.unavailability_mode != ConstraintMode.HARD:
            return []

        candidates = []
        for t in self.problem.participating_indices:
            if t in self.relaxed:
                continue
            blocked = sum(
                1 for e in range(self.problem.num_exams)
                if self.problem.is_unavailable_for_exam(t, e)
            )
            if blocked:
                teacher = self.problem.teachers[t]
                candidates.append(RelaxationCandidate(t, teacher.teacher_id, teacher.priority, blocked))

        candidates.sort(key=lambda c: (-c.priority, -c.blocked_exams, c.teacher_index))
        return candidates

    def _fail(self, reason: str):
        timed_out = self.last_outcome is not None and self.last_outcome.state == SolverState.TIMED_OUT
        if timed_out:
            message = (f"Solver timed out without a solution ({reason}; "
                       f"{len(self.relaxed)} teachers relaxed in {self.round} rounds)")
            self._finish(AssignmentStatus.TIMEOUT, message)
        else:
            message = (f"No feasible solution found ({reason}; "
                       f"{len(self.relaxed)} teachers relaxed in {self.round} rounds)")
            self._finish(AssignmentStatus.INFEASIBLE, message)
        logger.warning(f"❌ {message}")

    def _finish(self, status: AssignmentStatus, message: str):
        self.status = status
        self.message = message
        self.phase = RelaxationPhase.DONE
