"""
Supervision Assignment Engine
=============================
Runs one session end to end:
- Load roster, unavailability and exams from the database
- Capacity check, strict solve, progressive relaxation
- Build the result bundle and persist it
"""

import argparse
import logging
import sys
from typing import Callable, Optional

from .constraint_config import AssignmentConstraintConfig
from .data_loader import DataLoader
from .db.db_operations import DatabaseManager
from .exceptions import AssignmentError, SessionNotFound, UnexpectedError
from .logging_config import setup_logging
from .models import AssignmentResult, AssignmentStatus, AssignmentMetadata
from .relaxation import RelaxationController
from .response_builder import ResponseBuilder
from .solver import SolverDriver

logger = logging.getLogger(__name__)


def progress_report(callback, message: str, progress: float):
    """Report progress to callback if available."""
    logger.info(message)
    if callback:
        try:
            callback(message, progress)
        except Exception:
            logger.exception("Progress callback failed")


class AssignmentEngine:
    """
    Assignment engine for one database.

    Args:
        db_manager: DatabaseManager (or compatible provider/sink)
        config: Explicit configuration; when None the session's stored
                configuration is used, then the default preset
        progress_callback: Optional callable(message, percent)
        persist: Save results through the database manager
        solver_factory: Optional CpSolver factory (tests inject fakes here)
    """

    def __init__(self, db_manager: DatabaseManager,
                 config: Optional[AssignmentConstraintConfig] = None,
                 progress_callback: Optional[Callable[[str, float], None]] = None,
                 persist: bool = True,
                 solver_factory=None):
        self.db = db_manager
        self.config = config
        self.progress_callback = progress_callback
        self.persist = persist
        self.solver_factory = solver_factory

    def resolve_config(self, session_id: int,
                       config: Optional[AssignmentConstraintConfig] = None) -> AssignmentConstraintConfig:
        """Explicit config, then the stored session config, then the default preset."""
        if config is not None:
            return config.validate()
        if self.config is not None:
            return self.config.validate()

        stored = self.db.get_constraint_config(session_id)
        if stored:
            logger.info(f"Using stored configuration for session {session_id}")
            return AssignmentConstraintConfig.from_dict(stored).validate()
        return AssignmentConstraintConfig.default()

    def execute(self, session_id: int,
                config: Optional[AssignmentConstraintConfig] = None) -> AssignmentResult:
        """
        Run the assignment for a session.

        Returns:
            AssignmentResult with status SUCCESS, INFEASIBLE or TIMEOUT

        Raises:
            SessionNotFound: Unknown session
            UnexpectedError: Any other failure (an ERROR run record is stored)
            ValueError: Invalid configuration
        """
        config = self.resolve_config(session_id, config)
        callback = self.progress_callback

        logger.info(f"\n{'=' * 70}")
        logger.info(f"SUPERVISION ASSIGNMENT - SESSION {session_id}")
        logger.info(f"{'=' * 70}")
        logger.debug("Configuration:\n" + config.describe())

        try:
            progress_report(callback, "📂 Loading session data...", 5)
            problem = DataLoader(self.db).load_problem(session_id)
            builder = ResponseBuilder(problem)

            progress_report(callback, "🔧 Building and solving the model...", 20)
            driver = SolverDriver(config, solver_factory=self.solver_factory)
            controller = RelaxationController(problem, config, driver).run()

            metadata = builder.build_metadata(
                solution_time=controller.solve_time,
                is_optimal=controller.is_optimal,
                relaxed_count=len(controller.relaxed),
                relaxation_attempts=controller.round,
                total_constraints=controller.total_constraints,
                solve_attempts=controller.solve_attempts,
                capacity_deficit=controller.capacity_deficit,
            )

            progress_report(callback, "📊 Building results...", 85)
            if controller.status == AssignmentStatus.SUCCESS:
                result = builder.build_success(controller.solution, controller.message, metadata)
            else:
                result = builder.build_failure(controller.status, controller.message, metadata)

            if self.persist:
                progress_report(callback, "💾 Saving results...", 95)
                saved = self.db.save_assignment_results(result)
                logger.info(f"✓ Saved {saved} assignments")

        except SessionNotFound:
            logger.error(f"❌ Session {session_id} not found")
            raise
        except AssignmentError as e:
            self._record_error(session_id, str(e))
            raise
        except Exception as e:
            logger.exception(f"❌ Assignment failed for session {session_id}")
            self._record_error(session_id, str(e))
            raise UnexpectedError(f"Assignment failed for session {session_id}: {e}") from e

        self._log_summary(result)
        progress_report(callback, "✅ Done", 100)
        return result

    def _record_error(self, session_id: int, message: str):
        if not self.persist:
            return
        try:
            meta = self.db.get_session_metadata(session_id)
            label = meta['label'] if meta else ''
            result = AssignmentResult(AssignmentStatus.ERROR, message,
                                      AssignmentMetadata(session_id=session_id, session_name=label))
            self.db.save_run_metadata(result)
        except Exception:
            logger.exception("Failed to record the ERROR run")

    def _log_summary(self, result: AssignmentResult):
        meta = result.metadata
        icon = '✅' if result.ok else '❌'
        logger.info(f"\n{'=' * 70}")
        logger.info(f"{icon} {result.status.value}: {result.message}")
        logger.info(f"{'=' * 70}")
        logger.info(f"  Exams:              {meta.total_exams}")
        logger.info(f"  Teachers:           {meta.total_teachers} ({meta.participating_teachers} participating)")
        logger.info(f"  Supervisions:       {meta.total_assignments_made}/{meta.total_supervisions_needed}")
        logger.info(f"  Relaxed teachers:   {meta.relaxed_teachers_count} "
                    f"({meta.relaxation_attempts} rounds)")
        logger.info(f"  Solve attempts:     {meta.solve_attempts} ({meta.solution_time_seconds}s)")


def execute_assignment_from_db(
    session_id: int,
    db_path: str = "planning.db",
    config: Optional[AssignmentConstraintConfig] = None,
    preset: Optional[str] = None,
    progress_callback=None,
    persist: bool = True,
    **overrides
) -> AssignmentResult:
    """
    Run the engine on a database file.

    Args:
        session_id: Session ID
        db_path: Path of the sqlite database
        config: Explicit configuration (wins over preset)
        preset: Preset name ('default', 'strict', 'relaxed', 'fairness-optimized')
        progress_callback: Optional callable(message, percent)
        persist: Save results to the database
        **overrides: Individual configuration fields applied on top of the preset
    """
    if config is None and (preset or overrides):
        config = AssignmentConstraintConfig.from_preset(preset or 'default', **overrides)

    engine = AssignmentEngine(DatabaseManager(db_path), config=config,
                              progress_callback=progress_callback, persist=persist)
    return engine.execute(session_id)


# ============================================================================
# CLI INTERFACE
# ============================================================================

def main(argv=None):
    """Command-line interface."""

    parser = argparse.ArgumentParser(
        description='Assign exam supervisions to teachers',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  surveillance-engine --session 1
  surveillance-engine --session 1 --preset strict --time 20
  surveillance-engine --session 1 --analyze
  surveillance-engine --session 1 --swap 12 34
        """
    )

    parser.add_argument(
        '--session', type=int, required=True,
        help='Session ID'
    )
    parser.add_argument(
        '--db', type=str, default='planning.db',
        help='Database path (default: planning.db)'
    )
    parser.add_argument(
        '--preset', type=str, default=None,
        help='Constraint preset: default, strict, relaxed, fairness-optimized'
    )
    parser.add_argument(
        '--time', type=float, default=None,
        help='Initial solve time in seconds (default: 10)'
    )
    parser.add_argument(
        '--extended-time', type=float, default=None,
        help='Extended solve time in seconds (default: 30)'
    )
    parser.add_argument(
        '--workers', type=int, default=None,
        help='Number of search workers (default: 8)'
    )
    parser.add_argument(
        '--no-persist', action='store_true',
        help='Do not save the assignments'
    )
    parser.add_argument(
        '--log-file', type=str, default=None,
        help='Also write logs to this file'
    )
    parser.add_argument(
        '--verbose', '-v', action='store_true',
        help='Debug logging'
    )
    parser.add_argument(
        '--analyze', action='store_true',
        help='Only run the decision support analysis'
    )
    parser.add_argument(
        '--swap', type=int, nargs=2, metavar=('A', 'B'), default=None,
        help='Swap the teachers of two assignments'
    )

    args = parser.parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO, args.log_file)

    db = DatabaseManager(args.db)

    try:
        if args.analyze:
            from .decision_support import DecisionSupportSystem
            dss = DecisionSupportSystem(db)
            print(dss.format_report_text(dss.analyze_session(args.session)))
            return 0

        if args.swap:
            from .swap_validator import SwapValidator
            result = SwapValidator(db).swap(args.swap[0], args.swap[1], reason='CLI swap')
            print(f"{'✅' if result.success else '❌'} {result.message}")
            return 0 if result.success else 1

        overrides = {}
        if args.time is not None:
            overrides['initial_solve_time'] = args.time
        if args.extended_time is not None:
            overrides['extended_solve_time'] = args.extended_time
        if args.workers is not None:
            overrides['num_search_workers'] = args.workers

        config = None
        if args.preset or overrides:
            config = AssignmentConstraintConfig.from_preset(args.preset or 'default', **overrides)

        print(f"""
{'=' * 70}
SUPERVISION ASSIGNMENT ENGINE
{'=' * 70}
Session:              {args.session}
Database:             {args.db}
Preset:               {args.preset or '(stored or default)'}
Persist:              {not args.no_persist}
{'=' * 70}
""")

        engine = AssignmentEngine(db, config=config, persist=not args.no_persist)
        result = engine.execute(args.session)

    except (AssignmentError, ValueError) as e:
        print(f"\n❌ {e}")
        return 1

    print(f"\n{'✅' if result.ok else '❌'} {result.status.value}: {result.message}")
    return 0 if result.ok else 1


if __name__ == '__main__':
    sys.exit(main())
