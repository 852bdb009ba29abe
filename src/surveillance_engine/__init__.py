"""
Exam supervision assignment engine.
"""

from .assignment_engine import AssignmentEngine, execute_assignment_from_db
from .constraint_config import AssignmentConstraintConfig, ConstraintMode
from .exceptions import (
    AssignmentError, SessionNotFound, AssignmentNotFound, CapacityImpossible,
    SolverInfeasible, SolverTimeout, SwapViolation, UnexpectedError,
)
from .models import AssignmentResult, AssignmentStatus, SwapResult
from .service import AssignmentService

__version__ = '1.0.0'

__all__ = [
    'AssignmentEngine',
    'AssignmentService',
    'AssignmentConstraintConfig',
    'ConstraintMode',
    'AssignmentResult',
    'AssignmentStatus',
    'SwapResult',
    'execute_assignment_from_db',
    'AssignmentError',
    'SessionNotFound',
    'AssignmentNotFound',
    'CapacityImpossible',
    'SolverInfeasible',
    'SolverTimeout',
    'SwapViolation',
    'UnexpectedError',
]
