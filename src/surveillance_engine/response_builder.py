"""
Turns a solved model into the AssignmentResult bundle: per-exam rosters,
per-teacher workloads and run metadata.
"""

import logging
from typing import List, Optional

from .models import (
    ProblemInstance, AssignmentStatus, AssignmentResult, AssignmentMetadata,
    ExamAssignment, AssignedTeacher, TeacherWorkload, SEANCES, seance_label,
)
from .solver import SolveOutcome

logger = logging.getLogger(__name__)


class ResponseBuilder:
    """Builds AssignmentResult objects for one problem instance."""

    def __init__(self, problem: ProblemInstance):
        self.problem = problem

    def build_metadata(self, solution_time: float = 0.0, is_optimal: bool = False,
                       total_assignments: int = 0, relaxed_count: int = 0,
                       relaxation_attempts: int = 0, total_constraints: int = 0,
                       solve_attempts: int = 0, capacity_deficit: int = 0) -> AssignmentMetadata:
        problem = self.problem
        return AssignmentMetadata(
            session_id=problem.session.session_id,
            session_name=problem.session.label,
            total_exams=problem.num_exams,
            total_teachers=problem.num_teachers,
            participating_teachers=len(problem.participating_indices),
            total_supervisions_needed=problem.total_needed,
            solution_time_seconds=round(solution_time, 3),
            is_optimal=is_optimal,
            total_assignments_made=total_assignments,
            relaxed_teachers_count=relaxed_count,
            relaxation_attempts=relaxation_attempts,
            total_constraints=total_constraints,
            solve_attempts=solve_attempts,
            capacity_deficit=capacity_deficit,
        )

    def build_success(self, outcome: SolveOutcome, message: str, metadata: AssignmentMetadata) -> AssignmentResult:
        exam_assignments = self.build_exam_assignments(outcome)
        metadata.total_assignments_made = sum(len(e.assigned_teachers) for e in exam_assignments)
        return AssignmentResult(
            status=AssignmentStatus.SUCCESS,
            message=message,
            metadata=metadata,
            exam_assignments=exam_assignments,
            teacher_workloads=self.build_workloads(outcome),
        )

    def build_failure(self, status: AssignmentStatus, message: str,
                      metadata: Optional[AssignmentMetadata] = None) -> AssignmentResult:
        return AssignmentResult(status=status, message=message,
                                metadata=metadata or self.build_metadata())

    def build_exam_assignments(self, outcome: SolveOutcome) -> List[ExamAssignment]:
        problem = self.problem
        result = []
        for e, exam in enumerate(problem.exams):
            assigned = [
                AssignedTeacher(teacher.teacher_id, teacher.name, teacher.grade)
                for t, teacher in enumerate(problem.teachers)
                if (t, e) in outcome.assignments
            ]
            result.append(ExamAssignment(
                exam_id=exam.exam_id,
                day=exam.day,
                day_label=f"Jour {exam.day}",
                seance=exam.seance,
                seance_number=exam.seance_index + 1,
                seance_label=seance_label(exam.seance),
                room=exam.room,
                required_supervisors=exam.required_supervisors,
                owner_ids=sorted(exam.owner_ids),
                exam_date=exam.exam_date,
                start_time=exam.start_time,
                end_time=exam.end_time,
                assigned_teachers=assigned,
            ))
        return result

    def build_workloads(self, outcome: SolveOutcome) -> List[TeacherWorkload]:
        """
        Workload of every teacher of the roster.

        The unavailability credit counts the declared unavailable (day, seance)
        slots that hold at least one exam and in which the teacher supervises
        nothing.
        """
        problem = self.problem
        exam_slots = problem.exams_by_slot()
        workloads = []

        for t, teacher in enumerate(problem.teachers):
            assigned_exams = [e for e in range(problem.num_exams) if (t, e) in outcome.assignments]
            assigned_slots = {problem.exams[e].slot for e in assigned_exams}
            quota = teacher.effective_quota
            count = len(assigned_exams)

            credit = sum(
                1 for slot in problem.unavailable_slots(t)
                if slot in exam_slots and slot not in assigned_slots
            )

            workloads.append(TeacherWorkload(
                teacher_id=teacher.teacher_id,
                name=teacher.name,
                email=teacher.email,
                grade=teacher.grade,
                participates=teacher.participates,
                assigned_count=count,
                quota=quota,
                utilization_percentage=round(count * 100 / quota, 2) if quota > 0 else 0.0,
                unavailability_credit=credit,
                assigned_exam_ids=[problem.exams[e].exam_id for e in assigned_exams],
            ))

        overloaded = [w for w in workloads if w.quota and w.assigned_count > w.quota]
        for w in overloaded:
            logger.warning(f"⚠️  {w.name} assigned {w.assigned_count} > quota {w.quota}")
        return workloads


def format_slot(day: int, seance: str) -> str:
    return f"Jour {day} {seance_label(seance) if seance in SEANCES else seance}"
