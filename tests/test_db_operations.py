import pytest

from surveillance_engine.db.db_operations import DatabaseManager
from surveillance_engine.exceptions import SwapViolation
from surveillance_engine.models import AssignmentMetadata, AssignmentResult, AssignmentStatus


def test_schema_is_created_and_reopened(tmp_path):
    path = str(tmp_path / "fresh.db")
    DatabaseManager(path).create_session("S", 3)

    reopened = DatabaseManager(path)
    assert reopened.list_sessions()[0]['nb_jours_examen'] == 3


def test_session_metadata(db):
    sid = db.create_session("Session Principale", 5, '2024-2025', 'S2')

    assert db.get_session_metadata(sid) == {'id': sid, 'label': "Session Principale", 'num_exam_days': 5}
    assert db.get_session_metadata(sid + 100) is None


def test_delete_session_cascades(db, seeder):
    tid = seeder.teacher('Alpha', unavailable=[(1, 'S1')])
    seeder.exam(1, 'S2')

    assert db.delete_session(seeder.session_id)
    assert db.get_session_metadata(seeder.session_id) is None
    assert db.get_unavailabilities(seeder.session_id) == []
    assert db.get_quotas(seeder.session_id) == {}
    assert tid not in db.get_names(seeder.session_id)

    with pytest.raises(Exception, match="not found"):
        db.delete_session(seeder.session_id)


def test_quota_falls_back_to_grade_default_then_zero(db, seeder):
    explicit = seeder.teacher('Alpha', grade='MA', quota=5)
    by_grade = seeder.teacher('Beta', grade='AS', quota=None)
    unknown = seeder.teacher('Gamma', grade='XYZ', quota=None)

    assert db.get_quotas(seeder.session_id) == {explicit: 5, by_grade: 8, unknown: 0}

    db.set_quota(seeder.session_id, explicit, 1)
    assert db.get_quotas(seeder.session_id)[explicit] == 1


def test_roster_lookups(db, seeder):
    present = seeder.teacher('Durand', grade='PR', email='durand@example.org')
    absent = seeder.teacher('Martin', grade=None, participe=False)
    bare = db.add_teacher(seeder.session_id, 'Solo')

    assert list(db.get_teachers(seeder.session_id)['id']) == [present, bare]
    assert db.get_participation(seeder.session_id) == {present: True, absent: False, bare: True}
    assert db.get_grades(seeder.session_id)[absent] is None
    assert db.get_names(seeder.session_id)[present] == "Prof Durand"
    assert db.get_names(seeder.session_id)[bare] == "Solo"
    assert db.get_emails(seeder.session_id)[present] == 'durand@example.org'
    assert db.get_emails(seeder.session_id)[bare] == "Unknown"


def test_unavailability_is_deduplicated_and_normalised(db, seeder):
    tid = seeder.teacher('Alpha')
    db.add_unavailability(seeder.session_id, tid, 2, 's3')
    db.add_unavailability(seeder.session_id, tid, 2, 'S3')

    assert db.get_unavailabilities(seeder.session_id) == [(tid, 2, 'S3')]
    assert db.is_unavailable(seeder.session_id, tid, 2, 's3')
    assert not db.is_unavailable(seeder.session_id, tid, 1, 'S3')


def test_exam_owners_union_across_rows(db, seeder):
    t1 = seeder.teacher('Alpha')
    t2 = seeder.teacher('Beta')
    seeder.exam(1, 'S1', 'A1', owner=t1)
    seeder.exam(1, 'S1', 'A1', owner=t2)
    seeder.exam(1, 'S1', 'A1')
    seeder.exam(1, 'S1', None, owner=t1)

    assert db.get_exam_owners(seeder.session_id, 1, 'S1', 'A1') == {t1, t2}
    assert db.get_exam_owners(seeder.session_id, 1, 'S1', None) == {t1}
    assert len(db.get_exams_for_assignment(seeder.session_id)) == 4


def test_constraint_config_round_trip(db, seeder):
    assert db.get_constraint_config(seeder.session_id) is None

    db.save_constraint_config(seeder.session_id, {'no_gaps_mode': 'SOFT'})
    db.save_constraint_config(seeder.session_id, {'no_gaps_mode': 'HARD', 'no_gaps_penalty': 3})

    assert db.get_constraint_config(seeder.session_id) == {'no_gaps_mode': 'HARD', 'no_gaps_penalty': 3}


def _run(session_id, status, message="done", total=0):
    return AssignmentResult(status, message,
                            AssignmentMetadata(session_id=session_id, session_name="S",
                                               total_assignments_made=total))


def test_failed_run_only_replaces_run_record(db, seeder):
    tid = seeder.teacher('Alpha')
    eid = seeder.exam(1, 'S1')
    db.save_all([{'session_id': seeder.session_id, 'examen_id': eid, 'enseignant_id': tid,
                  'jour': 1, 'seance': 'S1'}])

    saved = db.save_assignment_results(_run(seeder.session_id, AssignmentStatus.INFEASIBLE, "nope"))

    assert saved == 0
    assert db.has_assignments(seeder.session_id)
    assert db.get_last_run(seeder.session_id)['statut'] == 'INFEASIBLE'
    assert db.get_last_run(seeder.session_id)['message'] == "nope"


def test_active_assignment_lookup_excludes_given_row(db, seeder):
    tid = seeder.teacher('Alpha')
    eid = seeder.exam(2, 'S4')
    db.save_all([{'session_id': seeder.session_id, 'examen_id': eid, 'enseignant_id': tid,
                  'jour': 2, 'seance': 'S4'}])
    row = db.get_active_assignments(seeder.session_id)[0]

    assert db.has_active_assignment_at(seeder.session_id, tid, 2, 'S4')
    assert not db.has_active_assignment_at(seeder.session_id, tid, 2, 'S4', exclude_assignment_id=row['id'])
    assert db.get_teacher_assignments(seeder.session_id, tid)[0]['examen_id'] == eid

    db.deactivate_all(seeder.session_id)
    assert not db.has_active_assignment_at(seeder.session_id, tid, 2, 'S4')
    assert db.get_assignment(row['id'])['actif'] is False


def test_delete_assignments_clears_run(db, seeder):
    tid = seeder.teacher('Alpha')
    eid = seeder.exam(1, 'S1')
    db.save_all([{'session_id': seeder.session_id, 'examen_id': eid, 'enseignant_id': tid,
                  'jour': 1, 'seance': 'S1'}])
    db.save_run_metadata(_run(seeder.session_id, AssignmentStatus.SUCCESS, total=1))

    db.delete_assignments(seeder.session_id)

    assert not db.has_assignments(seeder.session_id)
    assert db.get_last_run(seeder.session_id) is None


def test_swap_of_missing_assignment_rolls_back(db, seeder):
    tid = seeder.teacher('Alpha')
    eid = seeder.exam(1, 'S1')
    db.save_all([{'session_id': seeder.session_id, 'examen_id': eid, 'enseignant_id': tid,
                  'jour': 1, 'seance': 'S1'}])
    row = db.get_active_assignments(seeder.session_id)[0]

    with pytest.raises(Exception, match="Failed to swap"):
        db.swap_assignment_teachers(row['id'], 4242)
    assert db.get_audits(seeder.session_id) == []


def test_log_audit_joins_callers_transaction(db, seeder):
    db.log_audit(seeder.session_id, None, 'NOTE', 'standalone')

    conn = db.get_connection()
    db.log_audit(seeder.session_id, None, 'NOTE', 'discarded', conn=conn)
    conn.rollback()
    conn.close()

    assert [x['raison'] for x in db.get_audits(seeder.session_id)] == ['standalone']


def test_swap_recheck_failure_propagates_and_rolls_back(db, seeder):
    t1 = seeder.teacher('Alpha')
    t2 = seeder.teacher('Beta')
    e1 = seeder.exam(1, 'S1')
    e2 = seeder.exam(1, 'S2')
    db.save_all([{'session_id': seeder.session_id, 'examen_id': e1, 'enseignant_id': t1,
                  'jour': 1, 'seance': 'S1'},
                 {'session_id': seeder.session_id, 'examen_id': e2, 'enseignant_id': t2,
                  'jour': 1, 'seance': 'S2'}])
    first, second = sorted(r['id'] for r in db.get_active_assignments(seeder.session_id))

    def recheck():
        raise SwapViolation("Swap violates constraints")

    with pytest.raises(SwapViolation):
        db.swap_assignment_teachers(first, second, recheck=recheck)

    assert db.get_assignment(first)['enseignant_id'] == t1
    assert db.get_audits(seeder.session_id) == []
