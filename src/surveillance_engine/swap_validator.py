"""
Swap validator
==============
Checks and applies a manual exchange of teachers between two persisted
assignments. Works on the stored assignments only, independently of the
optimisation model.
"""

import logging
from typing import Dict, Optional

from .exceptions import AssignmentNotFound, SwapViolation
from .id_utils import ensure_id
from .models import SwapResult, SwapRule, SwapViolationDetail
from .response_builder import format_slot

logger = logging.getLogger(__name__)


class SwapValidator:
    """Validates and performs assignment swaps through the database manager."""

    def __init__(self, db_manager):
        self.db = db_manager

    def _load(self, assignment_id) -> Dict:
        assignment_id = ensure_id(assignment_id, 'assignment')
        assignment = self.db.get_assignment(assignment_id)
        if assignment is None:
            raise AssignmentNotFound(assignment_id)
        return assignment

    def validate(self, assignment_id_1, assignment_id_2) -> SwapResult:
        """
        Check a swap without changing anything.

        Raises:
            AssignmentNotFound: If either assignment does not exist
        """
        first = self._load(assignment_id_1)
        second = self._load(assignment_id_2)

        if first['session_id'] != second['session_id']:
            return SwapResult.failure("Assignments must be from the same session")
        if not first['actif'] or not second['actif']:
            return SwapResult.failure("Only active assignments can be swapped")
        if first['enseignant_id'] == second['enseignant_id']:
            return SwapResult.failure("Cannot swap assignments for the same teacher")

        violations = []
        for direction, mover, target in (('A->B', first, second), ('B->A', second, first)):
            violation = self._check_direction(direction, mover, target)
            if violation is not None:
                violations.append(violation)

        if violations:
            message = "Swap violates constraints: " + "; ".join(str(v) for v in violations)
            return SwapResult.failure(message, violations)

        return SwapResult.succeeded(self._details(first, second))

    def swap(self, assignment_id_1, assignment_id_2, reason: str = '') -> SwapResult:
        """
        Validate, then exchange the two teachers in one transaction.

        Validation runs again once the write lock is held, so a change committed
        between the first check and the write rejects the swap.
        """
        result = self.validate(assignment_id_1, assignment_id_2)
        if not result.success:
            logger.info(f"❌ Swap {assignment_id_1} <-> {assignment_id_2} rejected: {result.message}")
            return result

        rechecked = []

        def recheck():
            rechecked.append(self.validate(assignment_id_1, assignment_id_2))
            rechecked[-1].raise_for_status()

        try:
            self.db.swap_assignment_teachers(
                ensure_id(assignment_id_1, 'assignment'),
                ensure_id(assignment_id_2, 'assignment'),
                reason or 'Manual swap',
                recheck=recheck,
            )
        except SwapViolation:
            logger.info(f"❌ Swap {assignment_id_1} <-> {assignment_id_2} rejected under lock: "
                        f"{rechecked[-1].message}")
            return rechecked[-1]

        logger.info(f"✓ Swapped assignments {assignment_id_1} <-> {assignment_id_2}")
        return rechecked[-1]

    def _check_direction(self, direction: str, mover: Dict, target: Dict) -> Optional[SwapViolationDetail]:
        """
        Can mover's teacher take target's exam? Checks run in order and stop
        at the first failure: ownership, unavailability, double booking.
        """
        session_id = target['session_id']
        teacher_id = mover['enseignant_id']
        exam_id = target['examen_id']
        jour, seance = target['jour'], target['seance']
        where = format_slot(jour, seance)

        def violation(rule: SwapRule, message: str) -> SwapViolationDetail:
            return SwapViolationDetail(rule, direction, teacher_id, exam_id, jour, seance, message)

        exam = self.db.get_exam(exam_id)
        owners = set()
        if exam is not None:
            owners = self.db.get_exam_owners(session_id, exam['jour'], exam['seance'], exam['salle'])
            if exam['responsable_id'] is not None:
                owners.add(int(exam['responsable_id']))
        if teacher_id in owners:
            return violation(SwapRule.OWNER,
                             f"Teacher {teacher_id} is the owner of exam {exam_id}")

        if self.db.is_unavailable(session_id, teacher_id, jour, seance):
            return violation(SwapRule.UNAVAILABLE,
                             f"Teacher {teacher_id} is unavailable on {where}")

        if self.db.has_active_assignment_at(session_id, teacher_id, jour, seance,
                                            exclude_assignment_id=mover['id']):
            return violation(SwapRule.DOUBLE_BOOKED,
                             f"Teacher {teacher_id} already supervises another exam on {where}")

        return None

    @staticmethod
    def _details(first: Dict, second: Dict) -> Dict:
        return {
            'assignment_1': {
                'id': first['id'],
                'exam_id': first['examen_id'],
                'old_teacher_id': first['enseignant_id'],
                'new_teacher_id': second['enseignant_id'],
            },
            'assignment_2': {
                'id': second['id'],
                'exam_id': second['examen_id'],
                'old_teacher_id': second['enseignant_id'],
                'new_teacher_id': first['enseignant_id'],
            },
        }

