"""
Error taxonomy for the assignment engine.

Every error raised by the engine derives from AssignmentError so callers can
catch the whole family at once. Lookup failures also derive from LookupError.
"""

from typing import List, Optional


class AssignmentError(Exception):
    """Base class for assignment engine errors."""


class SessionNotFound(AssignmentError, LookupError):
    """The requested exam session does not exist."""

    def __init__(self, session_id):
        self.session_id = session_id
        super().__init__(f"Session with id {session_id} not found")


class AssignmentNotFound(AssignmentError, LookupError):
    """A persisted assignment referenced by a swap does not exist."""

    def __init__(self, assignment_id):
        self.assignment_id = assignment_id
        super().__init__(f"Assignment not found: {assignment_id}")


class CapacityImpossible(AssignmentError):
    """Total quota of participating teachers is below total demand."""

    def __init__(self, needed: int, capacity: int, message: Optional[str] = None):
        self.needed = needed
        self.capacity = capacity
        self.deficit = needed - capacity
        super().__init__(
            message or
            f"Insufficient total capacity: {capacity} < {needed}. "
            f"Need to increase quotas by {self.deficit}"
        )


class SolverInfeasible(AssignmentError):
    """No assignment exists even after relaxation was exhausted."""

    def __init__(self, message: str, relaxed_teachers: int = 0, relaxation_rounds: int = 0):
        self.relaxed_teachers = relaxed_teachers
        self.relaxation_rounds = relaxation_rounds
        super().__init__(message)


class SolverTimeout(AssignmentError):
    """The solver neither proved feasibility nor infeasibility in time."""


class SwapViolation(AssignmentError):
    """One or more swap checks failed."""

    def __init__(self, message: str, violations: List = None):
        self.violations = list(violations or [])
        details = "; ".join(str(v) for v in self.violations)
        super().__init__(f"{message}: {details}" if details else message)


class UnexpectedError(AssignmentError):
    """Any other failure while loading data or building/solving the model."""
