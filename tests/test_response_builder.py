from surveillance_engine.models import AssignmentStatus
from surveillance_engine.response_builder import ResponseBuilder
from surveillance_engine.solver import SolveOutcome, SolverState


def outcome(assignments):
    return SolveOutcome(SolverState.SOLVED, 'OPTIMAL', is_optimal=True, solve_time=0.5,
                        attempts=1, assignments=set(assignments))


def test_exam_assignment_fields(problem_factory):
    problem = problem_factory(
        [(1, 'PR', 2), (2, 'MC', 2), (3, 'MA', 2)],
        [(10, 2, 'S3', 2, {3})],
    )
    builder = ResponseBuilder(problem)
    result = builder.build_success(outcome({(0, 0), (1, 0)}), "Optimal solution found",
                                   builder.build_metadata(is_optimal=True))

    assert result.status == AssignmentStatus.SUCCESS
    exam = result.exam_assignments[0]
    assert exam.exam_id == 10
    assert exam.day_label == "Jour 2"
    assert exam.seance_number == 3
    assert exam.seance_label == "S3 (12:30-14:00)"
    assert exam.owner_ids == [3]
    assert [t.teacher_id for t in exam.assigned_teachers] == [1, 2]
    assert exam.assigned_teachers[0].grade == 'PR'
    assert result.metadata.total_assignments_made == 2
    assert result.metadata.total_supervisions_needed == 2


def test_workloads_cover_whole_roster(problem_factory):
    problem = problem_factory(
        [(1, 'PR', 4), (2, 'MC', 0), (3, 'MA', 2, False)],
        [(10, 1, 'S1', 1, set()), (11, 1, 'S2', 1, set())],
    )
    workloads = ResponseBuilder(problem).build_workloads(outcome({(0, 0), (0, 1)}))

    assert [w.teacher_id for w in workloads] == [1, 2, 3]
    first, zero_quota, absent = workloads
    assert first.assigned_count == 2
    assert first.utilization_percentage == 50.0
    assert first.assigned_exam_ids == [10, 11]
    assert zero_quota.utilization_percentage == 0.0
    assert absent.quota == 0
    assert absent.participates is False


def test_unavailability_credit(problem_factory):
    problem = problem_factory(
        [(1, 'PR', 4), (2, 'MC', 4)],
        [(10, 1, 'S1', 1, set()), (11, 2, 'S1', 1, set())],
        unavailable={
            1: [(1, 'S1'), (1, 'S2')],   # S2 holds no exam
            2: [(1, 'S1'), (2, 'S1')],
        },
    )
    # teacher 2 was relaxed and works on day 2 S1
    workloads = ResponseBuilder(problem).build_workloads(outcome({(1, 0), (1, 1)}))

    assert workloads[0].unavailability_credit == 1
    assert workloads[1].unavailability_credit == 0


def test_failure_result_has_no_assignments(problem_factory):
    problem = problem_factory([(1, 'PR', 1)], [(10, 1, 'S1', 2, set())])
    builder = ResponseBuilder(problem)
    result = builder.build_failure(AssignmentStatus.INFEASIBLE, "nope",
                                   builder.build_metadata(capacity_deficit=1))

    assert result.exam_assignments is None
    assert result.teacher_workloads is None
    assert result.metadata.capacity_deficit == 1
    assert result.to_dict()['status'] == 'INFEASIBLE'
