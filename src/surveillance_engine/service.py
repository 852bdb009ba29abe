"""
Public interface of the engine: asynchronous assignment runs, swaps and
pre-run analysis for one database.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional, Union

from .assignment_engine import AssignmentEngine
from .constraint_config import AssignmentConstraintConfig
from .db.db_operations import DatabaseManager
from .decision_support import DecisionSupportSystem, DecisionReport
from .models import SwapResult
from .swap_validator import SwapValidator

logger = logging.getLogger(__name__)


class AssignmentService:
    """
    Runs the engine off the caller's thread.

    Each call to execute_assignment builds its own engine run; concurrent
    runs on the same session must be serialised by the caller.
    """

    def __init__(self, db: Union[str, DatabaseManager] = "planning.db",
                 max_workers: int = 2,
                 progress_callback=None,
                 solver_factory=None):
        self.db = DatabaseManager(db) if isinstance(db, str) else db
        self.progress_callback = progress_callback
        self.solver_factory = solver_factory
        self._executor = ThreadPoolExecutor(max_workers=max_workers,
                                            thread_name_prefix='assignment')

    def execute_assignment(self, session_id: int,
                           config: Optional[AssignmentConstraintConfig] = None) -> Future:
        """
        Submit an assignment run.

        Returns:
            Future resolving to an AssignmentResult; SessionNotFound,
            UnexpectedError and configuration ValueErrors surface from
            Future.result()
        """
        engine = AssignmentEngine(self.db, config=config,
                                  progress_callback=self.progress_callback,
                                  solver_factory=self.solver_factory)
        logger.info(f"Submitting assignment run for session {session_id}")
        return self._executor.submit(engine.execute, session_id)

    def swap(self, assignment_id_1: int, assignment_id_2: int, reason: str = '') -> SwapResult:
        return SwapValidator(self.db).swap(assignment_id_1, assignment_id_2, reason)

    def validate_swap(self, assignment_id_1: int, assignment_id_2: int) -> SwapResult:
        return SwapValidator(self.db).validate(assignment_id_1, assignment_id_2)

    def analyze_session(self, session_id: int) -> DecisionReport:
        return DecisionSupportSystem(self.db).analyze_session(session_id)

    def shutdown(self, wait: bool = True):
        self._executor.shutdown(wait=wait)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown(wait=True)
        return False
