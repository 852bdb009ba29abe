import pytest

from surveillance_engine.constraint_config import AssignmentConstraintConfig
from surveillance_engine.db.db_operations import DatabaseManager
from surveillance_engine.models import (
    SEANCES, SessionInfo, Teacher, LogicalExam, ProblemInstance,
)


GRADES = [
    # code, priority, default quota
    ('PR', 1, 4),
    ('MC', 2, 4),
    ('MA', 3, 7),
    ('AS', 4, 8),
    ('AC', 5, 9),
    ('PTC', 6, 9),
]


class SessionSeeder:
    """Helper that fills a session in a test database."""

    def __init__(self, db: DatabaseManager, nb_jours: int = 2, nom: str = "Session Test"):
        self.db = db
        self.session_id = db.create_session(nom, nb_jours, '2024-2025', 'S1')

    def teacher(self, nom, grade='MA', quota=2, participe=True, unavailable=(), email=None):
        tid = self.db.add_teacher(self.session_id, nom, 'Prof', grade,
                                  email or f"{nom.lower()}@example.org", participe)
        if quota is not None:
            self.db.set_quota(self.session_id, tid, quota)
        for jour, seance in unavailable:
            self.db.add_unavailability(self.session_id, tid, jour, seance)
        return tid

    def exam(self, jour, seance, salle='A1', owner=None, nb=2, heure_debut=None, date=None):
        return self.db.add_exam(self.session_id, jour, seance, salle, owner, nb,
                                date or f"2025-01-{10 + jour:02d}", heure_debut)


@pytest.fixture
def db(tmp_path):
    manager = DatabaseManager(str(tmp_path / "planning.db"))
    for code, priority, quota in GRADES:
        manager.upsert_grade(code, priority, quota)
    return manager


@pytest.fixture
def seeder(db):
    return SessionSeeder(db)


@pytest.fixture
def seeder_factory(db):
    return lambda **kwargs: SessionSeeder(db, **kwargs)


@pytest.fixture
def fast_config():
    return AssignmentConstraintConfig(
        initial_solve_time=5.0,
        extended_solve_time=5.0,
        num_search_workers=1,
        random_seed=7,
    )


def make_problem(teachers, exams, unavailable=None, days=2):
    """
    Build a ProblemInstance in memory.

    teachers: list of (id, grade, quota) or (id, grade, quota, participates)
    exams: list of (id, day, seance, required, owners) with owners a set of teacher ids
    unavailable: {teacher_id: [(day, seance), ...]}
    """
    roster = []
    for row in teachers:
        tid, grade, quota = row[:3]
        participates = row[3] if len(row) > 3 else True
        priority = dict((c, p) for c, p, _ in GRADES).get(grade, 99)
        roster.append(Teacher(tid, f"Teacher {tid}", f"t{tid}@example.org", grade,
                              participates, quota, priority))

    logical = [
        LogicalExam(eid, day, seance, f"R{eid}", required, set(owners), source_row_ids=[eid])
        for eid, day, seance, required, owners in exams
    ]

    matrix = [[[False] * len(SEANCES) for _ in range(days)] for _ in roster]
    index = {t.teacher_id: i for i, t in enumerate(roster)}
    for tid, slots in (unavailable or {}).items():
        for day, seance in slots:
            matrix[index[tid]][day - 1][SEANCES.index(seance)] = True

    return ProblemInstance(SessionInfo(1, "Session Test", days), roster, logical, matrix,
                           raw_exam_rows=len(logical))


@pytest.fixture
def problem_factory():
    return make_problem
