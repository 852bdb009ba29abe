from unittest import mock

import pytest

from surveillance_engine.exceptions import AssignmentNotFound, SwapViolation
from surveillance_engine.models import SwapRule
from surveillance_engine.swap_validator import SwapValidator


def assign(db, session_id, exam_id, teacher_id):
    """Store one active assignment and return its id."""
    exam = db.get_exam(exam_id)
    db.save_all([{
        'session_id': session_id,
        'examen_id': exam_id,
        'enseignant_id': teacher_id,
        'jour': exam['jour'],
        'seance': exam['seance'],
    }])
    return next(a['id'] for a in db.get_active_assignments(session_id)
                if a['examen_id'] == exam_id and a['enseignant_id'] == teacher_id)


def teacher_of(db, assignment_id):
    return db.get_assignment(assignment_id)['enseignant_id']


@pytest.fixture
def swap_session(db, seeder):
    ids = {
        't1': seeder.teacher('Alpha', grade='PR'),
        't2': seeder.teacher('Beta', grade='MC'),
        't3': seeder.teacher('Gamma', grade='MA'),
    }
    ids['e1'] = seeder.exam(1, 'S1', 'A1', owner=ids['t3'])
    ids['e2'] = seeder.exam(1, 'S2', 'A1')
    return ids


def test_valid_swap_exchanges_teachers_and_is_audited(db, seeder, swap_session):
    s = swap_session
    a = assign(db, seeder.session_id, s['e1'], s['t1'])
    b = assign(db, seeder.session_id, s['e2'], s['t2'])

    result = SwapValidator(db).swap(a, b, reason='personal request')

    assert result.success
    assert result.details['assignment_1']['new_teacher_id'] == s['t2']
    assert result.details['assignment_2']['new_teacher_id'] == s['t1']
    assert teacher_of(db, a) == s['t2']
    assert teacher_of(db, b) == s['t1']

    audits = db.get_audits(seeder.session_id)
    assert [x['affectation_id'] for x in audits] == [a, b]
    assert {x['action'] for x in audits} == {'SWAP'}
    assert audits[0]['raison'] == 'personal request'


def test_validation_is_symmetric_and_read_only(db, seeder, swap_session):
    s = swap_session
    a = assign(db, seeder.session_id, s['e1'], s['t1'])
    b = assign(db, seeder.session_id, s['e2'], s['t2'])
    validator = SwapValidator(db)

    assert validator.validate(a, b).success
    assert validator.validate(b, a).success
    assert teacher_of(db, a) == s['t1']
    assert db.get_audits(seeder.session_id) == []


def test_owner_of_any_duplicate_row_is_rejected(db, seeder, swap_session):
    s = swap_session
    # second row for the same (day, seance, room) owned by t1
    seeder.exam(1, 'S2', 'A1', owner=s['t1'])
    a = assign(db, seeder.session_id, s['e1'], s['t1'])
    b = assign(db, seeder.session_id, s['e2'], s['t2'])

    result = SwapValidator(db).swap(a, b)

    assert not result.success
    assert result.message.startswith("Swap violates constraints")
    assert [(v.direction, v.rule) for v in result.violations] == [('A->B', SwapRule.OWNER)]
    assert teacher_of(db, a) == s['t1']


def test_owner_in_reverse_direction(db, seeder, swap_session):
    s = swap_session
    a = assign(db, seeder.session_id, s['e1'], s['t1'])
    b = assign(db, seeder.session_id, s['e2'], s['t3'])

    result = SwapValidator(db).validate(a, b)

    assert [(v.direction, v.rule) for v in result.violations] == [('B->A', SwapRule.OWNER)]
    assert result.violations[0].teacher_id == s['t3']


def test_unavailable_teacher_is_rejected(db, seeder, swap_session):
    s = swap_session
    db.add_unavailability(seeder.session_id, s['t2'], 1, 'S1')
    a = assign(db, seeder.session_id, s['e1'], s['t1'])
    b = assign(db, seeder.session_id, s['e2'], s['t2'])

    result = SwapValidator(db).validate(a, b)

    assert not result.success
    violation = result.violations[0]
    assert (violation.direction, violation.rule) == ('B->A', SwapRule.UNAVAILABLE)
    assert "Jour 1 S1" in violation.message


def test_double_booking_is_rejected(db, seeder, swap_session):
    s = swap_session
    e3 = seeder.exam(1, 'S2', 'B1')
    assign(db, seeder.session_id, e3, s['t1'])
    a = assign(db, seeder.session_id, s['e1'], s['t1'])
    b = assign(db, seeder.session_id, s['e2'], s['t2'])

    result = SwapValidator(db).validate(a, b)

    assert [(v.direction, v.rule) for v in result.violations] == [('A->B', SwapRule.DOUBLE_BOOKED)]


def test_same_teacher_and_cross_session_are_rejected(db, seeder, seeder_factory, swap_session):
    s = swap_session
    a = assign(db, seeder.session_id, s['e1'], s['t1'])
    b = assign(db, seeder.session_id, s['e2'], s['t1'])

    other = seeder_factory(nom="Other Session")
    t9 = other.teacher('Omega', grade='PR')
    c = assign(db, other.session_id, other.exam(1, 'S1'), t9)

    validator = SwapValidator(db)
    assert validator.validate(a, b).message == "Cannot swap assignments for the same teacher"
    assert validator.validate(a, c).message == "Assignments must be from the same session"


def test_missing_assignment(db, seeder, swap_session):
    a = assign(db, seeder.session_id, swap_session['e1'], swap_session['t1'])

    with pytest.raises(AssignmentNotFound):
        SwapValidator(db).validate(a, 9999)
    with pytest.raises(ValueError):
        SwapValidator(db).validate(a, 'not-an-id')


def test_raise_for_status(db, seeder, swap_session):
    s = swap_session
    a = assign(db, seeder.session_id, s['e1'], s['t1'])
    b = assign(db, seeder.session_id, s['e2'], s['t3'])

    with pytest.raises(SwapViolation) as info:
        SwapValidator(db).validate(a, b).raise_for_status()
    assert info.value.violations[0].rule == SwapRule.OWNER


def test_swap_then_swap_back_restores_teachers(db, seeder, swap_session):
    s = swap_session
    a = assign(db, seeder.session_id, s['e1'], s['t1'])
    b = assign(db, seeder.session_id, s['e2'], s['t2'])
    validator = SwapValidator(db)

    assert validator.swap(a, b, reason='there').success
    assert validator.swap(a, b, reason='and back').success

    assert teacher_of(db, a) == s['t1']
    assert teacher_of(db, b) == s['t2']
    audits = db.get_audits(seeder.session_id)
    assert len(audits) == 4
    assert [x['affectation_id'] for x in audits] == [a, b, a, b]
    assert [x['raison'] for x in audits] == ['there', 'there', 'and back', 'and back']


def test_inactive_assignments_are_not_swapped(db, seeder, swap_session):
    s = swap_session
    a = assign(db, seeder.session_id, s['e1'], s['t1'])
    b = assign(db, seeder.session_id, s['e2'], s['t2'])
    db.deactivate_all(seeder.session_id)

    result = SwapValidator(db).swap(a, b)

    assert not result.success
    assert result.message == "Only active assignments can be swapped"
    assert teacher_of(db, a) == s['t1']
    assert teacher_of(db, b) == s['t2']
    assert db.get_audits(seeder.session_id) == []


def test_only_one_side_inactive_is_rejected(db, seeder, swap_session):
    s = swap_session
    a = assign(db, seeder.session_id, s['e1'], s['t1'])
    db.deactivate_all(seeder.session_id)
    b = assign(db, seeder.session_id, s['e2'], s['t2'])

    result = SwapValidator(db).validate(a, b)

    assert not result.success
    assert result.message == "Only active assignments can be swapped"


def test_conflict_committed_before_the_write_rejects_swap(db, seeder, swap_session):
    s = swap_session
    e3 = seeder.exam(1, 'S2', 'B1')
    a = assign(db, seeder.session_id, s['e1'], s['t1'])
    b = assign(db, seeder.session_id, s['e2'], s['t2'])
    validator = SwapValidator(db)
    original = validator.validate
    calls = []

    def validate_then_book_t1(*args):
        result = original(*args)
        if not calls:
            # another writer books t1 on the target slot after the first check
            assign(db, seeder.session_id, e3, s['t1'])
        calls.append(result)
        return result

    with mock.patch.object(validator, 'validate', side_effect=validate_then_book_t1):
        result = validator.swap(a, b)

    assert len(calls) == 2
    assert calls[0].success
    assert not result.success
    assert [(v.direction, v.rule) for v in result.violations] == [('A->B', SwapRule.DOUBLE_BOOKED)]
    assert teacher_of(db, a) == s['t1']
    assert teacher_of(db, b) == s['t2']
    assert db.get_audits(seeder.session_id) == []
