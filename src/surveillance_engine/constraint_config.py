"""
Constraint configuration for the supervision assignment model
=============================================================
Each named constraint carries an enforcement mode (DISABLED / SOFT / HARD)
and, for soft constraints, an integer penalty weight. The model builder reads
this flat table and branches on the mode of each entry.
"""

from dataclasses import dataclass, asdict, fields, replace
from enum import Enum
from typing import Dict, Any, Optional


class ConstraintMode(str, Enum):
    DISABLED = 'DISABLED'
    SOFT = 'SOFT'
    HARD = 'HARD'


class SchedulerDefaults:
    """Default values and constants."""

    # Penalty weights
    PENALTY_UNAVAILABILITY_VIOLATION = 1000
    PENALTY_CONFLICT_AVOIDANCE = 1
    PENALTY_OWNER_PRESENCE = 2
    PENALTY_GAP = 5
    FAIRNESS_WEIGHT = 1000

    # Solver budgets
    INITIAL_SOLVE_TIME_SECONDS = 10.0
    EXTENDED_SOLVE_TIME_SECONDS = 30.0
    NUM_SEARCH_WORKERS = 8

    # Relaxation loop
    MAX_RELAXATION_ROUNDS = 15
    INITIAL_BATCH_DIVISOR = 20      # ~5% of the candidate queue
    MEDIUM_BATCH_DIVISOR = 10       # ~10% after round 3
    LARGE_BATCH_DIVISOR = 5         # ~20% after round 7
    MEDIUM_BATCH_AFTER_ROUND = 3
    LARGE_BATCH_AFTER_ROUND = 7
    RELAXED_WARNING_RATIO = 0.5


# Constraints that only make sense as hard rules (or switched off entirely)
HARD_ONLY_CONSTRAINTS = (
    'exam_coverage_mode',
    'participation_mode',
    'ownership_exclusion_mode',
    'unavailability_mode',
    'quota_limit_mode',
    'time_conflict_mode',
)

PENALTY_FIELDS = (
    'owner_presence_penalty',
    'no_gaps_penalty',
    'conflict_avoidance_penalty',
    'unavailability_violation_penalty',
    'fairness_weight',
)


@dataclass
class AssignmentConstraintConfig:
    """Configuration for the assignment engine."""
    exam_coverage_mode: ConstraintMode = ConstraintMode.HARD
    participation_mode: ConstraintMode = ConstraintMode.HARD
    ownership_exclusion_mode: ConstraintMode = ConstraintMode.HARD
    owner_presence_mode: ConstraintMode = ConstraintMode.SOFT
    unavailability_mode: ConstraintMode = ConstraintMode.HARD
    quota_limit_mode: ConstraintMode = ConstraintMode.HARD
    time_conflict_mode: ConstraintMode = ConstraintMode.HARD
    no_gaps_mode: ConstraintMode = ConstraintMode.DISABLED
    equal_assignment_mode: ConstraintMode = ConstraintMode.HARD

    owner_presence_penalty: int = SchedulerDefaults.PENALTY_OWNER_PRESENCE
    no_gaps_penalty: int = SchedulerDefaults.PENALTY_GAP
    no_gaps_skip_unavailable_teachers: bool = True
    optimize_conflict_avoidance: bool = True
    conflict_avoidance_penalty: int = SchedulerDefaults.PENALTY_CONFLICT_AVOIDANCE
    unavailability_violation_penalty: int = SchedulerDefaults.PENALTY_UNAVAILABILITY_VIOLATION
    fairness_weight: int = SchedulerDefaults.FAIRNESS_WEIGHT
    equal_assignment_tolerance: int = 0

    initial_solve_time: float = SchedulerDefaults.INITIAL_SOLVE_TIME_SECONDS
    extended_solve_time: float = SchedulerDefaults.EXTENDED_SOLVE_TIME_SECONDS
    num_search_workers: int = SchedulerDefaults.NUM_SEARCH_WORKERS
    random_seed: Optional[int] = None
    max_relaxation_rounds: int = SchedulerDefaults.MAX_RELAXATION_ROUNDS

    def __post_init__(self):
        # Accept plain strings ('HARD', 'soft') coming from JSON or the CLI
        for f in fields(self):
            if f.name.endswith('_mode'):
                value = getattr(self, f.name)
                if not isinstance(value, ConstraintMode):
                    setattr(self, f.name, ConstraintMode(str(value).upper()))

    def validate(self) -> 'AssignmentConstraintConfig':
        """Raise ValueError on unsupported combinations; return self."""
        errors = []

        for name in HARD_ONLY_CONSTRAINTS:
            if getattr(self, name) == ConstraintMode.SOFT:
                errors.append(f"{name} cannot be SOFT (only HARD or DISABLED)")

        for name in PENALTY_FIELDS:
            if getattr(self, name) < 0:
                errors.append(f"{name} must be >= 0 (got {getattr(self, name)})")

        if self.equal_assignment_tolerance < 0:
            errors.append("equal_assignment_tolerance must be >= 0")
        if self.initial_solve_time <= 0 or self.extended_solve_time <= 0:
            errors.append("solve time budgets must be positive")
        if self.num_search_workers < 1:
            errors.append("num_search_workers must be >= 1")
        if self.max_relaxation_rounds < 0:
            errors.append("max_relaxation_rounds must be >= 0")

        if errors:
            raise ValueError("Invalid constraint configuration: " + "; ".join(errors))
        return self

    def is_hard(self, name: str) -> bool:
        return getattr(self, f'{name}_mode') == ConstraintMode.HARD

    def is_soft(self, name: str) -> bool:
        return getattr(self, f'{name}_mode') == ConstraintMode.SOFT

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, ConstraintMode):
                data[key] = value.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AssignmentConstraintConfig':
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown configuration keys: {sorted(unknown)}")
        return cls(**data)

    # ==================== PRESETS ====================

    @classmethod
    def default(cls) -> 'AssignmentConstraintConfig':
        return cls()

    @classmethod
    def strict(cls) -> 'AssignmentConstraintConfig':
        return cls(
            owner_presence_mode=ConstraintMode.HARD,
            no_gaps_mode=ConstraintMode.HARD,
            no_gaps_skip_unavailable_teachers=True,
        )

    @classmethod
    def relaxed(cls) -> 'AssignmentConstraintConfig':
        return cls(
            owner_presence_mode=ConstraintMode.SOFT,
            no_gaps_mode=ConstraintMode.DISABLED,
            equal_assignment_mode=ConstraintMode.SOFT,
        )

    @classmethod
    def fairness_optimized(cls) -> 'AssignmentConstraintConfig':
        return cls(
            owner_presence_mode=ConstraintMode.SOFT,
            owner_presence_penalty=10,
            no_gaps_mode=ConstraintMode.SOFT,
            no_gaps_penalty=5,
            equal_assignment_mode=ConstraintMode.HARD,
        )

    @classmethod
    def from_preset(cls, name: str, **overrides) -> 'AssignmentConstraintConfig':
        """Build a preset by name, optionally overriding individual fields."""
        key = name.strip().lower().replace('_', '-')
        if key not in PRESETS:
            raise ValueError(
                f"Unknown preset '{name}'. Available: {', '.join(sorted(PRESETS))}"
            )
        config = PRESETS[key]()
        return replace(config, **overrides) if overrides else config

    def describe(self) -> str:
        """Multi-line summary used in run logs."""
        lines = []
        for f in fields(self):
            if f.name.endswith('_mode'):
                label = f.name[:-5].replace('_', ' ')
                lines.append(f"  {label:28s} {getattr(self, f.name).value}")
        lines.append(f"  {'unavailability penalty':28s} {self.unavailability_violation_penalty}")
        lines.append(f"  {'conflict avoidance':28s} "
                     f"{'on' if self.optimize_conflict_avoidance else 'off'} "
                     f"(penalty {self.conflict_avoidance_penalty})")
        lines.append(f"  {'owner presence penalty':28s} {self.owner_presence_penalty}")
        lines.append(f"  {'gap penalty':28s} {self.no_gaps_penalty}")
        lines.append(f"  {'fairness weight':28s} {self.fairness_weight}")
        lines.append(f"  {'solve budgets':28s} {self.initial_solve_time}s then {self.extended_solve_time}s")
        return "\n".join(lines)


PRESETS = {
    'default': AssignmentConstraintConfig.default,
    'strict': AssignmentConstraintConfig.strict,
    'relaxed': AssignmentConstraintConfig.relaxed,
    'fairness-optimized': AssignmentConstraintConfig.fairness_optimized,
}
