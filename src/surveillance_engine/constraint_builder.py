"""
Model builder
=============
One boolean x[t, e] per (teacher index, exam index) pair. Every constraint of
AssignmentConstraintConfig is added according to its mode; soft constraints
contribute weighted terms to a minimised objective. The builder is recreated
from scratch for each solve attempt, with the current relaxed-teacher set.
"""

import logging
from collections import Counter, defaultdict
from typing import Dict, List, Set, Tuple, Iterable

from ortools.sat.python import cp_model

from .constraint_config import AssignmentConstraintConfig, ConstraintMode
from .models import ProblemInstance, SEANCES

logger = logging.getLogger(__name__)


class ConstraintBuilder:
    """Builds optimization model constraints."""

    def __init__(self, problem: ProblemInstance, config: AssignmentConstraintConfig,
                 relaxed: Iterable[int] = ()):
        self.problem = problem
        self.config = config
        self.relaxed: Set[int] = set(relaxed)
        self.model = cp_model.CpModel()
        self.x: Dict[Tuple[int, int], cp_model.IntVar] = {}
        self.constraint_counts = defaultdict(int)
        self.objective_terms = []
        self.objective_breakdown = defaultdict(int)
        self.has_objective = False

    @property
    def total_constraints(self) -> int:
        return sum(self.constraint_counts.values())

    def build(self) -> cp_model.CpModel:
        """Create variables, every configured constraint and the objective."""
        logger.debug(f"Building model ({self.problem.num_teachers} teachers × "
                     f"{self.problem.num_exams} exams, {len(self.relaxed)} relaxed)")

        self.create_variables()
        if not self.problem.exams:
            return self.model

        self.add_exam_coverage()
        self.add_participation()
        self.add_ownership_exclusion()
        self.add_unavailability()
        self.add_quota_limit()
        self.add_time_conflict()
        self.add_owner_presence()
        self.add_no_gaps()
        self.add_equal_assignment()
        self.build_objective()

        logger.debug(f"✓ Model built: {self.total_constraints} hard constraints "
                     f"{dict(self.constraint_counts)}")
        return self.model

    def create_variables(self):
        """Create decision variables."""
        for t in range(self.problem.num_teachers):
            for e in range(self.problem.num_exams):
                self.x[t, e] = self.model.NewBoolVar(f'x_t{t}_e{e}')

    def teacher_total(self, t: int):
        return sum(self.x[t, e] for e in range(self.problem.num_exams))

    # ==================== HARD-ONLY CONSTRAINTS ====================

    def add_exam_coverage(self):
        """Each exam gets exactly its required number of supervisors."""
        if self.config.exam_coverage_mode != ConstraintMode.HARD:
            return
        for e, exam in enumerate(self.problem.exams):
            self.model.Add(
                sum(self.x[t, e] for t in range(self.problem.num_teachers)) == exam.required_supervisors
            )
            self.constraint_counts['coverage'] += 1

    def add_participation(self):
        """Non-participating teachers are never assigned."""
        if self.config.participation_mode != ConstraintMode.HARD:
            return
        for t, teacher in enumerate(self.problem.teachers):
            if teacher.participates:
                continue
            for e in range(self.problem.num_exams):
                self.model.Add(self.x[t, e] == 0)
                self.constraint_counts['participation'] += 1

    def add_ownership_exclusion(self):
        """A teacher never supervises an exam they own."""
        if self.config.ownership_exclusion_mode != ConstraintMode.HARD:
            return
        for e in range(self.problem.num_exams):
            for t in self.problem.owner_indices(e):
                self.model.Add(self.x[t, e] == 0)
                self.constraint_counts['ownership'] += 1

    def add_unavailability(self):
        """Declared unavailability blocks assignment unless the teacher is relaxed."""
        if self.config.unavailability_mode != ConstraintMode.HARD:
            return
        for t in range(self.problem.num_teachers):
            if t in self.relaxed:
                continue
            for e in range(self.problem.num_exams):
                if self.problem.is_unavailable_for_exam(t, e):
                    self.model.Add(self.x[t, e] == 0)
                    self.constraint_counts['unavailability'] += 1

    def add_quota_limit(self):
        if self.config.quota_limit_mode != ConstraintMode.HARD:
            return
        for t, teacher in enumerate(self.problem.teachers):
            self.model.Add(self.teacher_total(t) <= teacher.effective_quota)
            self.constraint_counts['quota'] += 1

    def add_time_conflict(self):
        """At most one exam per teacher per (day, seance)."""
        if self.config.time_conflict_mode != ConstraintMode.HARD:
            return
        for slot, exam_indices in self.problem.exams_by_slot().items():
            if len(exam_indices) < 2:
                continue
            for t in range(self.problem.num_teachers):
                self.model.AddAtMostOne([self.x[t, e] for e in exam_indices])
                self.constraint_counts['time_conflict'] += 1

    # ==================== PREFERENCE CONSTRAINTS ====================

    def add_owner_presence(self):
        """
        Owners should be on site during their exam's slot by supervising another
        exam of the same slot.

        HARD: for each exam with at least one participating owner, the sum over
        (owner, other exam of the slot not owned by that owner) >= 1. An owner
        blocked by unavailability makes the strict model infeasible until the
        relaxation loop lifts that unavailability.
        SOFT: each such pair earns an objective bonus.
        """
        mode = self.config.owner_presence_mode
        if mode == ConstraintMode.DISABLED:
            return

        teachers = self.problem.teachers
        for slot, exam_indices in self.problem.exams_by_slot().items():
            if len(exam_indices) < 2:
                continue

            rewarded = set()
            for e in exam_indices:
                owners = [o for o in self.problem.owner_indices(e) if teachers[o].participates]
                if not owners:
                    continue

                pairs = [
                    (o, other)
                    for o in owners
                    for other in exam_indices
                    if other != e and o not in self.problem.owner_indices(other)
                ]

                if mode == ConstraintMode.HARD:
                    if pairs:
                        self.model.Add(sum(self.x[o, other] for o, other in pairs) >= 1)
                        self.constraint_counts['owner_presence'] += 1
                    else:
                        logger.debug(f"Owner presence skipped for exam {self.problem.exams[e].exam_id}: "
                                     f"no other exam in slot {slot}")
                else:
                    for pair in pairs:
                        if pair in rewarded:
                            continue
                        rewarded.add(pair)
                        self._add_term('owner_presence', -self.config.owner_presence_penalty * self.x[pair])

    def add_no_gaps(self):
        """
        Avoid a free seance between two worked seances on the same day.

        works[t, day, s] is 1 when the teacher supervises any candidate exam at
        seance s. For every pair of occupied seances at least two positions
        apart and every occupied seance between them, the pattern
        worked / free / worked is forbidden (HARD) or priced (SOFT).
        """
        mode = self.config.no_gaps_mode
        if mode == ConstraintMode.DISABLED:
            return

        exams_by_day_seance = defaultdict(list)
        for e, exam in enumerate(self.problem.exams):
            exams_by_day_seance[exam.day, exam.seance_index].append(e)

        skip_unavailable = mode == ConstraintMode.HARD and self.config.no_gaps_skip_unavailable_teachers

        for t in self.problem.participating_indices:
            for day in range(1, self.problem.session.num_exam_days + 1):
                if skip_unavailable and any(
                    self.problem.is_unavailable(t, day, s) for s in range(len(SEANCES))
                ):
                    continue

                works = []
                for s in range(len(SEANCES)):
                    candidates = [
                        e for e in exams_by_day_seance.get((day, s), [])
                        if t not in self.problem.owner_indices(e)
                    ]
                    if not candidates:
                        continue
                    w = self.model.NewBoolVar(f'works_t{t}_d{day}_s{s}')
                    assigned = sum(self.x[t, e] for e in candidates)
                    self.model.Add(assigned >= w)
                    self.model.Add(assigned <= w * len(candidates))
                    works.append((s, w))

                if len(works) < 3:
                    continue

                for i in range(len(works)):
                    for j in range(i + 2, len(works)):
                        for m in range(i + 1, j):
                            start, end, middle = works[i][1], works[j][1], works[m][1]
                            if mode == ConstraintMode.HARD:
                                self.model.Add(start + end - middle <= 1)
                                self.constraint_counts['no_gaps'] += 1
                            else:
                                tag = f't{t}_d{day}_{works[i][0]}{works[m][0]}{works[j][0]}'
                                gap_sum = self.model.NewIntVar(-1, 2, f'gap_sum_{tag}')
                                self.model.Add(gap_sum == start + end - middle)
                                has_gap = self.model.NewBoolVar(f'has_gap_{tag}')
                                self.model.Add(gap_sum <= 1 + has_gap)
                                self.model.Add(gap_sum >= 2 * has_gap)
                                self._add_term('gaps', self.config.no_gaps_penalty * has_gap)

    def add_equal_assignment(self):
        """
        Teachers of the same grade get the same load, shifted by their quota
        difference from the grade baseline (the most frequent quota).
        """
        mode = self.config.equal_assignment_mode
        if mode == ConstraintMode.DISABLED:
            return

        teachers_by_grade: Dict[str, List[int]] = defaultdict(list)
        for t in self.problem.participating_indices:
            grade = self.problem.teachers[t].grade
            if grade is not None:
                teachers_by_grade[grade].append(t)

        tolerance = self.config.equal_assignment_tolerance
        num_exams = self.problem.num_exams

        for grade, members in sorted(teachers_by_grade.items()):
            if len(members) < 2:
                continue

            quotas = {t: self.problem.teachers[t].effective_quota for t in members}
            frequency = Counter(quotas.values())
            baseline = min(frequency.items(), key=lambda kv: (-kv[1], kv[0]))[0]
            reference = next(t for t in members if quotas[t] == baseline)
            ref_total = self.teacher_total(reference)

            for t in members:
                if t == reference:
                    continue
                offset = quotas[t] - baseline

                if mode == ConstraintMode.HARD:
                    if tolerance == 0:
                        self.model.Add(self.teacher_total(t) == ref_total + offset)
                        self.constraint_counts['equal_assignment'] += 1
                    else:
                        self.model.Add(self.teacher_total(t) - ref_total - offset <= tolerance)
                        self.model.Add(self.teacher_total(t) - ref_total - offset >= -tolerance)
                        self.constraint_counts['equal_assignment'] += 2
                else:
                    diff = self.model.NewIntVar(-num_exams - abs(offset), num_exams + abs(offset),
                                                f'grade_diff_{grade}_t{t}')
                    self.model.Add(diff == self.teacher_total(t) - ref_total - offset)
                    neg_diff = self.model.NewIntVar(-num_exams - abs(offset), num_exams + abs(offset),
                                                    f'grade_neg_diff_{grade}_t{t}')
                    self.model.Add(neg_diff == -diff)
                    deviation = self.model.NewIntVar(0, num_exams + abs(offset),
                                                     f'grade_dev_{grade}_t{t}')
                    self.model.AddMaxEquality(deviation, [diff, neg_diff])
                    self._add_term('fairness', self.config.fairness_weight * deviation)

    # ==================== OBJECTIVE ====================

    def _add_term(self, category: str, term):
        self.objective_terms.append(term)
        self.objective_breakdown[category] += 1

    def build_objective(self):
        """Add the unavailability and conflict terms, then minimise if anything is priced."""
        config = self.config

        if config.unavailability_mode == ConstraintMode.HARD:
            for t in sorted(self.relaxed):
                for e in range(self.problem.num_exams):
                    if self.problem.is_unavailable_for_exam(t, e):
                        self._add_term('unavailability',
                                       config.unavailability_violation_penalty * self.x[t, e])

        if config.optimize_conflict_avoidance and config.unavailability_mode != ConstraintMode.DISABLED:
            participating = self.problem.participating_indices
            for e in range(self.problem.num_exams):
                scarcity = sum(
                    1 for t in participating
                    if t not in self.relaxed and self.problem.is_unavailable_for_exam(t, e)
                )
                if scarcity == 0:
                    continue
                for t in participating:
                    self._add_term('conflict_avoidance',
                                   scarcity * config.conflict_avoidance_penalty * self.x[t, e])

        if self.objective_terms:
            self.model.Minimize(sum(self.objective_terms))
            self.has_objective = True
            logger.debug(f"Objective terms: {dict(self.objective_breakdown)}")
