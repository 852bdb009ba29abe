"""
Problem loader
==============
Reads one session from the database manager and builds the in-memory
ProblemInstance: teacher roster, unavailability matrix and logical exams
(raw exam rows grouped by day/seance/room).
"""

import logging
import sys
from typing import List, Optional

import pandas as pd

from .exceptions import SessionNotFound
from .id_utils import ensure_id, optional_id
from .models import (
    SEANCES, SessionInfo, Teacher, LogicalExam, ProblemInstance,
    time_to_seance,
)

logger = logging.getLogger(__name__)

UNKNOWN_PRIORITY = sys.maxsize


class DataLoader:
    """Loads data from the database."""

    def __init__(self, db_manager):
        self.db = db_manager

    def load_problem(self, session_id: int) -> ProblemInstance:
        """
        Build the problem instance of a session.

        Raises:
            SessionNotFound: If the session does not exist
        """
        session = self.load_session(session_id)
        teachers = self.load_teachers(session.session_id)
        unavailable = self.load_unavailability(session, teachers)
        exams, raw_rows = self.load_exams(session)

        problem = ProblemInstance(
            session=session,
            teachers=teachers,
            exams=exams,
            unavailable=unavailable,
            raw_exam_rows=raw_rows,
        )
        self._log_summary(problem)
        return problem

    def load_session(self, session_id: int) -> SessionInfo:
        meta = self.db.get_session_metadata(session_id)
        if meta is None:
            raise SessionNotFound(session_id)
        return SessionInfo(
            session_id=ensure_id(meta['id'], 'session'),
            label=meta['label'],
            num_exam_days=int(meta['num_exam_days']),
        )

    def load_teachers(self, session_id: int) -> List[Teacher]:
        """Load the whole roster, participating or not, in id order."""
        participation = self.db.get_participation(session_id)
        grades = self.db.get_grades(session_id)
        names = self.db.get_names(session_id)
        emails = self.db.get_emails(session_id)
        quotas = self.db.get_quotas(session_id)
        priorities = self.db.get_priorities_by_grade()

        teachers = []
        unknown_grades = set()
        for raw_id in sorted(participation, key=lambda v: ensure_id(v)):
            tid = ensure_id(raw_id)
            grade = grades.get(raw_id)
            if grade is not None and grade not in priorities:
                unknown_grades.add(grade)
            teachers.append(Teacher(
                teacher_id=tid,
                name=names.get(raw_id, "Unknown"),
                email=emails.get(raw_id, "Unknown"),
                grade=grade,
                participates=bool(participation[raw_id]),
                base_quota=int(quotas.get(raw_id, 0)),
                priority=priorities.get(grade, UNKNOWN_PRIORITY),
            ))

        if unknown_grades:
            logger.warning(f"⚠️  Grades without a priority (relaxed first): {sorted(unknown_grades)}")

        return teachers

    def load_unavailability(self, session: SessionInfo,
                            teachers: List[Teacher]) -> List[List[List[bool]]]:
        """Build unavailable[teacher_index][day - 1][seance ordinal]."""
        index = {t.teacher_id: i for i, t in enumerate(teachers)}
        matrix = [
            [[False] * len(SEANCES) for _ in range(session.num_exam_days)]
            for _ in teachers
        ]

        skipped = 0
        for raw_tid, jour, seance in self.db.get_unavailabilities(session.session_id):
            t_idx = index.get(ensure_id(raw_tid))
            code = str(seance).strip().upper()
            if t_idx is None or code not in SEANCES or not 1 <= int(jour) <= session.num_exam_days:
                skipped += 1
                continue
            matrix[t_idx][int(jour) - 1][SEANCES.index(code)] = True

        if skipped:
            logger.warning(f"⚠️  Skipped {skipped} unavailability records outside the session grid")
        return matrix

    def load_exams(self, session: SessionInfo):
        """
        Group raw exam rows into logical exams.

        Returns:
            (exams, raw_row_count)
        """
        df = self.db.get_exams_for_assignment(session.session_id)
        if df.empty:
            logger.warning(f"⚠️  No exams found for session {session.session_id}")
            return [], 0

        df = df.copy()
        df['seance'] = [self._resolve_seance(s, h) for s, h in zip(df['seance'], df['heure_debut'])]
        df['jour'] = pd.to_numeric(df['jour'], errors='coerce')

        valid = df['seance'].notna() & df['jour'].between(1, session.num_exam_days)
        invalid = df[~valid]
        for _, row in invalid.iterrows():
            logger.warning(f"⚠️  Skipping exam row {row['id']}: jour={row['jour']}, "
                           f"seance={row['seance']} not in session grid")

        df = df[valid].copy()
        df['jour'] = df['jour'].astype(int)
        df = df.sort_values('id')

        exams = []
        for (jour, seance, salle), group in df.groupby(['jour', 'seance', 'salle'],
                                                       sort=False, dropna=False):
            first = group.iloc[0]
            owners = {optional_id(v) for v in group['responsable_id']}
            owners.discard(None)

            requirements = set(int(v) for v in group['nb_surveillants'])
            if len(requirements) > 1:
                logger.warning(f"⚠️  Exam {int(first['id'])} (jour {jour}, {seance}, salle {salle}): "
                               f"inconsistent supervisor counts {sorted(requirements)}, "
                               f"using {int(first['nb_surveillants'])}")

            exams.append(LogicalExam(
                exam_id=ensure_id(first['id'], 'exam'),
                day=int(jour),
                seance=seance,
                room=salle if isinstance(salle, str) else None,
                required_supervisors=int(first['nb_surveillants']),
                owner_ids=owners,
                exam_date=self._text(first['date_examen']),
                start_time=self._text(first['heure_debut']),
                end_time=self._text(first['heure_fin']),
                source_row_ids=[int(v) for v in group['id']],
            ))

        exams.sort(key=lambda e: (e.day, e.seance_index, e.room or '', e.exam_id))
        return exams, len(df) + len(invalid)

    @staticmethod
    def _resolve_seance(seance, heure_debut) -> Optional[str]:
        if isinstance(seance, str) and seance.strip().upper() in SEANCES:
            return seance.strip().upper()
        if isinstance(heure_debut, str):
            return time_to_seance(heure_debut)
        return None

    @staticmethod
    def _text(value) -> Optional[str]:
        return value if isinstance(value, str) else None

    def _log_summary(self, problem: ProblemInstance):
        logger.info(f"{'=' * 70}")
        logger.info(f"LOADED SESSION {problem.session.session_id}: {problem.session.label}")
        logger.info(f"{'=' * 70}")
        logger.info(f"  Teachers:            {problem.num_teachers} "
                    f"({len(problem.participating_indices)} participating)")
        logger.info(f"  Exam rows:           {problem.raw_exam_rows} -> {problem.num_exams} logical exams")

        multi_owner = sum(1 for e in problem.exams if len(e.owner_ids) > 1)
        if multi_owner:
            logger.info(f"  Multi-owner exams:   {multi_owner}")

        if problem.exams:
            required = [e.required_supervisors for e in problem.exams]
            logger.info(f"  Supervisors needed:  {problem.total_needed} "
                        f"(min {min(required)}, max {max(required)} per exam)")
        logger.info(f"  Total capacity:      {problem.total_capacity}")

        unavailable_count = sum(len(problem.unavailable_slots(t)) for t in range(problem.num_teachers))
        logger.debug(f"  Unavailable slots:   {unavailable_count}")

