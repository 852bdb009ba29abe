import pytest

from surveillance_engine.constraint_config import (
    AssignmentConstraintConfig, ConstraintMode, PRESETS,
)


def test_default_modes():
    config = AssignmentConstraintConfig.default()
    assert config.exam_coverage_mode == ConstraintMode.HARD
    assert config.owner_presence_mode == ConstraintMode.SOFT
    assert config.no_gaps_mode == ConstraintMode.DISABLED
    assert config.equal_assignment_mode == ConstraintMode.HARD
    assert config.unavailability_violation_penalty == 1000
    assert config.conflict_avoidance_penalty == 1
    assert config.owner_presence_penalty == 2
    assert config.no_gaps_penalty == 5
    assert config.fairness_weight == 1000
    assert config.no_gaps_skip_unavailable_teachers is True
    assert config.validate() is config


def test_presets():
    strict = AssignmentConstraintConfig.strict()
    assert strict.owner_presence_mode == ConstraintMode.HARD
    assert strict.no_gaps_mode == ConstraintMode.HARD

    relaxed = AssignmentConstraintConfig.relaxed()
    assert relaxed.equal_assignment_mode == ConstraintMode.SOFT
    assert relaxed.no_gaps_mode == ConstraintMode.DISABLED

    fair = AssignmentConstraintConfig.fairness_optimized()
    assert fair.owner_presence_penalty == 10
    assert fair.no_gaps_mode == ConstraintMode.SOFT
    assert fair.equal_assignment_mode == ConstraintMode.HARD

    assert set(PRESETS) == {'default', 'strict', 'relaxed', 'fairness-optimized'}


def test_from_preset_accepts_underscore_alias_and_overrides():
    config = AssignmentConstraintConfig.from_preset('fairness_optimized', initial_solve_time=3.0)
    assert config.owner_presence_penalty == 10
    assert config.initial_solve_time == 3.0


def test_from_preset_unknown_name():
    with pytest.raises(ValueError, match="Unknown preset"):
        AssignmentConstraintConfig.from_preset('lenient')


@pytest.mark.parametrize('field_name', [
    'exam_coverage_mode', 'participation_mode', 'ownership_exclusion_mode',
    'unavailability_mode', 'quota_limit_mode', 'time_conflict_mode',
])
def test_hard_only_constraints_reject_soft(field_name):
    config = AssignmentConstraintConfig(**{field_name: ConstraintMode.SOFT})
    with pytest.raises(ValueError, match=field_name):
        config.validate()


def test_negative_penalty_rejected():
    with pytest.raises(ValueError, match="no_gaps_penalty"):
        AssignmentConstraintConfig(no_gaps_penalty=-1).validate()


def test_modes_coerced_from_strings():
    config = AssignmentConstraintConfig(no_gaps_mode='soft', owner_presence_mode='HARD')
    assert config.no_gaps_mode == ConstraintMode.SOFT
    assert config.is_hard('owner_presence')
    assert config.is_soft('no_gaps')


def test_dict_round_trip_is_json_friendly():
    config = AssignmentConstraintConfig.strict()
    data = config.to_dict()
    assert data['no_gaps_mode'] == 'HARD'
    assert AssignmentConstraintConfig.from_dict(data) == config


def test_from_dict_rejects_unknown_keys():
    with pytest.raises(ValueError, match="Unknown configuration keys"):
        AssignmentConstraintConfig.from_dict({'voeux_weight': 3})


def test_describe_lists_modes():
    text = AssignmentConstraintConfig.default().describe()
    assert 'no gaps' in text
    assert 'DISABLED' in text
