"""
Data model shared by the loader, model builder and response builder.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Dict, List, Tuple, Optional, Set, Any

from .exceptions import CapacityImpossible, SolverInfeasible, SolverTimeout, UnexpectedError, SwapViolation


SEANCES = ('S1', 'S2', 'S3', 'S4')

SEANCE_TIMES = {
    'S1': ('08:30', '10:00'),
    'S2': ('10:30', '12:00'),
    'S3': ('12:30', '14:00'),
    'S4': ('14:30', '16:00'),
}

TIME_TO_SEANCE = {
    '08:30:00': 'S1', '10:30:00': 'S2',
    '12:30:00': 'S3', '14:30:00': 'S4',
    '08:30': 'S1', '10:30': 'S2',
    '12:30': 'S3', '14:30': 'S4'
}


def seance_index(seance: str) -> int:
    """Ordinal of a seance code (S1 -> 0). Raises ValueError on unknown codes."""
    code = str(seance).strip().upper()
    if code not in SEANCES:
        raise ValueError(f"Unknown seance '{seance}' (expected one of {', '.join(SEANCES)})")
    return SEANCES.index(code)


def time_to_seance(time_str: str) -> Optional[str]:
    """Convert a start time string to its seance code, or None."""
    if time_str is None:
        return None
    return TIME_TO_SEANCE.get(str(time_str).strip())


def seance_label(seance: str) -> str:
    start, end = SEANCE_TIMES[seance]
    return f"{seance} ({start}-{end})"


@dataclass
class SessionInfo:
    session_id: int
    label: str
    num_exam_days: int


@dataclass
class Teacher:
    teacher_id: int
    name: str
    email: str
    grade: Optional[str]
    participates: bool
    base_quota: int
    priority: int

    @property
    def effective_quota(self) -> int:
        return self.base_quota if self.participates else 0


@dataclass
class LogicalExam:
    """One (day, seance, room) occurrence after grouping raw exam rows."""
    exam_id: int
    day: int
    seance: str
    room: Optional[str]
    required_supervisors: int
    owner_ids: Set[int] = field(default_factory=set)
    exam_date: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    source_row_ids: List[int] = field(default_factory=list)

    @property
    def seance_index(self) -> int:
        return seance_index(self.seance)

    @property
    def slot(self) -> Tuple[int, int]:
        return self.day, self.seance_index

    @property
    def key(self) -> Tuple[int, str, Optional[str]]:
        return self.day, self.seance, self.room


@dataclass
class ProblemInstance:
    """In-memory problem for one run: roster, exams and unavailability matrix."""
    session: SessionInfo
    teachers: List[Teacher]
    exams: List[LogicalExam]
    unavailable: List[List[List[bool]]]
    raw_exam_rows: int = 0

    def __post_init__(self):
        self.teacher_index = {t.teacher_id: i for i, t in enumerate(self.teachers)}

    @property
    def num_teachers(self) -> int:
        return len(self.teachers)

    @property
    def num_exams(self) -> int:
        return len(self.exams)

    @property
    def participating_indices(self) -> List[int]:
        return [i for i, t in enumerate(self.teachers) if t.participates]

    @property
    def total_needed(self) -> int:
        return sum(e.required_supervisors for e in self.exams)

    @property
    def total_capacity(self) -> int:
        return sum(t.base_quota for t in self.teachers if t.participates)

    def is_unavailable(self, t_idx: int, day: int, s_idx: int) -> bool:
        days = self.unavailable[t_idx]
        if 1 <= day <= len(days) and 0 <= s_idx < len(SEANCES):
            return days[day - 1][s_idx]
        return False

    def is_unavailable_for_exam(self, t_idx: int, e_idx: int) -> bool:
        exam = self.exams[e_idx]
        return self.is_unavailable(t_idx, exam.day, exam.seance_index)

    def unavailable_slots(self, t_idx: int) -> List[Tuple[int, int]]:
        return [
            (d + 1, s)
            for d, seances in enumerate(self.unavailable[t_idx])
            for s, flag in enumerate(seances) if flag
        ]

    def owner_indices(self, e_idx: int) -> List[int]:
        return [
            self.teacher_index[oid]
            for oid in sorted(self.exams[e_idx].owner_ids)
            if oid in self.teacher_index
        ]

    def exams_by_slot(self) -> Dict[Tuple[int, int], List[int]]:
        slots: Dict[Tuple[int, int], List[int]] = {}
        for e_idx, exam in enumerate(self.exams):
            slots.setdefault(exam.slot, []).append(e_idx)
        return slots


# ==================== RESULTS ====================

class AssignmentStatus(str, Enum):
    SUCCESS = 'SUCCESS'
    INFEASIBLE = 'INFEASIBLE'
    TIMEOUT = 'TIMEOUT'
    ERROR = 'ERROR'


@dataclass
class AssignedTeacher:
    teacher_id: int
    name: str
    grade: Optional[str]


@dataclass
class ExamAssignment:
    exam_id: int
    day: int
    day_label: str
    seance: str
    seance_number: int
    seance_label: str
    room: Optional[str]
    required_supervisors: int
    owner_ids: List[int]
    exam_date: Optional[str]
    start_time: Optional[str]
    end_time: Optional[str]
    assigned_teachers: List[AssignedTeacher] = field(default_factory=list)


@dataclass
class TeacherWorkload:
    teacher_id: int
    name: str
    email: str
    grade: Optional[str]
    participates: bool
    assigned_count: int
    quota: int
    utilization_percentage: float
    unavailability_credit: int
    assigned_exam_ids: List[int] = field(default_factory=list)


@dataclass
class AssignmentMetadata:
    session_id: int
    session_name: str
    total_exams: int = 0
    total_teachers: int = 0
    participating_teachers: int = 0
    total_supervisions_needed: int = 0
    solution_time_seconds: float = 0.0
    is_optimal: bool = False
    total_assignments_made: int = 0
    relaxed_teachers_count: int = 0
    relaxation_attempts: int = 0
    total_constraints: int = 0
    solve_attempts: int = 0
    capacity_deficit: int = 0


@dataclass
class AssignmentResult:
    status: AssignmentStatus
    message: str
    metadata: AssignmentMetadata
    exam_assignments: Optional[List[ExamAssignment]] = None
    teacher_workloads: Optional[List[TeacherWorkload]] = None
    generated_at: datetime = field(default_factory=datetime.now)

    @property
    def ok(self) -> bool:
        return self.status == AssignmentStatus.SUCCESS

    def raise_for_status(self) -> 'AssignmentResult':
        """Raise the matching error for a non-successful result."""
        meta = self.metadata
        if self.status == AssignmentStatus.INFEASIBLE:
            if meta.capacity_deficit > 0:
                raise CapacityImpossible(
                    needed=meta.total_supervisions_needed,
                    capacity=meta.total_supervisions_needed - meta.capacity_deficit,
                    message=self.message,
                )
            raise SolverInfeasible(self.message, meta.relaxed_teachers_count, meta.relaxation_attempts)
        if self.status == AssignmentStatus.TIMEOUT:
            raise SolverTimeout(self.message)
        if self.status == AssignmentStatus.ERROR:
            raise UnexpectedError(self.message)
        return self

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['status'] = self.status.value
        data['generated_at'] = self.generated_at.isoformat()
        return data


# ==================== SWAPS ====================

class SwapRule(str, Enum):
    SAME_SESSION = 'SAME_SESSION'
    DIFFERENT_TEACHERS = 'DIFFERENT_TEACHERS'
    OWNER = 'OWNER'
    UNAVAILABLE = 'UNAVAILABLE'
    DOUBLE_BOOKED = 'DOUBLE_BOOKED'


@dataclass
class SwapViolationDetail:
    rule: SwapRule
    direction: str
    teacher_id: int
    exam_id: int
    day: int
    seance: str
    message: str

    def __str__(self) -> str:
        return f"{self.direction}: {self.message}"


@dataclass
class SwapResult:
    success: bool
    message: str
    violations: List[SwapViolationDetail] = field(default_factory=list)
    details: Optional[Dict[str, Any]] = None

    @classmethod
    def succeeded(cls, details: Dict[str, Any]) -> 'SwapResult':
        return cls(True, "Assignments swapped successfully", [], details)

    @classmethod
    def failure(cls, message: str, violations: List[SwapViolationDetail] = None) -> 'SwapResult':
        return cls(False, message, list(violations or []))

    def raise_for_status(self) -> 'SwapResult':
        if not self.success:
            raise SwapViolation(self.message, self.violations)
        return self
