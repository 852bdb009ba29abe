"""
Decision Support System for Supervision Assignment
==================================================
Analyzes a session before running the engine: capacity against demand,
availability per grade and recommended per-grade quotas.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Any

import pandas as pd

from .data_loader import DataLoader, UNKNOWN_PRIORITY
from .models import ProblemInstance

logger = logging.getLogger(__name__)

# Blend of the four quota estimates
WEIGHT_PRIORITY = 0.70
WEIGHT_AVAILABILITY = 0.15
WEIGHT_CAPACITY = 0.10
WEIGHT_DEFAULT = 0.05

LOW_AVAILABILITY_PCT = 70
MEDIUM_AVAILABILITY_PCT = 85
LARGE_CHANGE_PCT = 20


@dataclass
class DecisionReport:
    """Container for decision support analysis results."""
    status: str  # 'excellent', 'good', 'warning', 'critical'
    total_needed: int = 0
    current_capacity: int = 0
    deficit: int = 0
    available_pairs: int = 0
    grade_analysis: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    recommended_quotas: Dict[str, int] = field(default_factory=dict)
    std_dev_before: float = 0.0
    std_dev_after: float = 0.0
    fairness: str = ''
    action_items: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    statistics: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_feasible(self) -> bool:
        return self.deficit == 0 and self.available_pairs >= self.total_needed


def fairness_label(std_dev: float) -> str:
    if std_dev < 1:
        return 'EXCELLENT'
    if std_dev < 2:
        return 'VERY GOOD'
    if std_dev < 3:
        return 'GOOD'
    if std_dev < 5:
        return 'FAIR'
    return 'NEEDS IMPROVEMENT'


class DecisionSupportSystem:
    """Analyzes scheduling feasibility and provides recommendations."""

    def __init__(self, db_manager):
        self.db = db_manager

    def analyze_session(self, session_id: int) -> DecisionReport:
        """
        Comprehensive analysis of session feasibility.

        Args:
            session_id: Session ID to analyze

        Returns:
            DecisionReport with recommendations and warnings

        Raises:
            SessionNotFound: If the session does not exist
        """
        problem = DataLoader(self.db).load_problem(session_id)

        teachers_df = self._teacher_frame(problem)
        if teachers_df.empty:
            return self._create_error_report("No participating teacher found")
        if not problem.exams:
            return self._create_error_report("No exam found for this session")

        total_needed = problem.total_needed
        capacity = int(teachers_df['quota'].sum())
        deficit = max(0, total_needed - capacity)
        available_pairs = int(teachers_df['available_exams'].sum())

        grade_analysis = self._analyze_grades(teachers_df)
        recommended = self._recommend_quotas(grade_analysis, total_needed)

        recommended_per_teacher = teachers_df['grade'].map(recommended)
        std_before = float(teachers_df['quota'].std(ddof=0))
        std_after = float(recommended_per_teacher.std(ddof=0))

        warnings = []
        if deficit > 0:
            warnings.append(f"🔴 Insufficient capacity: {capacity} < {total_needed} "
                            f"(missing {deficit} supervisions)")
        if available_pairs < total_needed:
            warnings.append(f"🔴 Only {available_pairs} available (teacher, exam) pairs "
                            f"for {total_needed} supervisions")

        utilization = total_needed * 100 / capacity if capacity > 0 else 100.0
        status = self._determine_status(deficit, available_pairs, total_needed, utilization)

        report = DecisionReport(
            status=status,
            total_needed=total_needed,
            current_capacity=capacity,
            deficit=deficit,
            available_pairs=available_pairs,
            grade_analysis=grade_analysis,
            recommended_quotas=recommended,
            std_dev_before=round(std_before, 2),
            std_dev_after=round(std_after, 2),
            fairness=fairness_label(std_after),
            action_items=self._action_items(grade_analysis, recommended),
            warnings=warnings,
            statistics={
                'total_teachers': len(teachers_df),
                'total_exams': problem.num_exams,
                'total_supervisions_needed': total_needed,
                'avg_supervisions_per_teacher': round(total_needed / len(teachers_df), 1),
                'utilization_pct': round(utilization, 1),
            },
        )

        logger.info(f"Decision support for session {session_id}: {status} "
                    f"(needed {total_needed}, capacity {capacity})")
        return report

    def _teacher_frame(self, problem: ProblemInstance) -> pd.DataFrame:
        rows = []
        num_exams = problem.num_exams
        for t in problem.participating_indices:
            teacher = problem.teachers[t]
            available = sum(
                1 for e in range(num_exams)
                if not problem.is_unavailable_for_exam(t, e) and teacher.teacher_id not in problem.exams[e].owner_ids
            )
            rows.append({
                'teacher_id': teacher.teacher_id,
                'grade': teacher.grade or 'N/A',
                'quota': teacher.base_quota,
                'priority': teacher.priority,
                'available_exams': available,
                'availability_pct': available * 100 / num_exams if num_exams else 0.0,
            })
        return pd.DataFrame(rows, columns=['teacher_id', 'grade', 'quota', 'priority',
                                           'available_exams', 'availability_pct'])

    def _analyze_grades(self, teachers_df: pd.DataFrame) -> Dict[str, Dict[str, Any]]:
        defaults = self.db.get_default_quotas_by_grade()
        grouped = teachers_df.groupby('grade').agg(
            teachers=('teacher_id', 'count'),
            avg_quota=('quota', 'mean'),
            priority=('priority', 'first'),
            availability=('availability_pct', 'mean'),
        )

        analysis = {}
        for grade, row in grouped.iterrows():
            analysis[grade] = {
                'teachers': int(row['teachers']),
                'avg_quota': round(float(row['avg_quota']), 2),
                'priority': int(row['priority']),
                'availability_pct': round(float(row['availability']), 1),
                'default_quota': int(defaults.get(grade, 0)),
            }
        return analysis

    def _recommend_quotas(self, grade_analysis: Dict[str, Dict[str, Any]], total_needed: int) -> Dict[str, int]:
        """
        Priority-weighted quota per grade, blended with availability- and
        capacity-adjusted variants and the scaled grade default.
        """
        if not grade_analysis:
            return {}

        known = [g['priority'] for g in grade_analysis.values() if g['priority'] != UNKNOWN_PRIORITY]
        fallback = (max(known) + 1) if known else 0
        priorities = {
            grade: (info['priority'] if info['priority'] != UNKNOWN_PRIORITY else fallback)
            for grade, info in grade_analysis.items()
        }
        low, high = min(priorities.values()), max(priorities.values())

        multipliers = {
            grade: (0.5 + (p - low) / (high - low)) if high > low else 1.0
            for grade, p in priorities.items()
        }

        total_teachers = sum(info['teachers'] for info in grade_analysis.values())
        baseline = total_needed / total_teachers
        weighted = sum(baseline * multipliers[g] * info['teachers'] for g, info in grade_analysis.items())
        adjustment = total_needed / weighted if weighted > 0 else 1.0

        default_total = sum(info['default_quota'] * info['teachers'] for info in grade_analysis.values())

        recommended = {}
        for grade, info in grade_analysis.items():
            priority_based = baseline * multipliers[grade] * adjustment
            availability = info['availability_pct']

            availability_adjusted = priority_based * (0.95 + 0.10 * availability / 100)
            if availability < LOW_AVAILABILITY_PCT:
                capacity_adjusted = priority_based * 0.90
            elif availability < MEDIUM_AVAILABILITY_PCT:
                capacity_adjusted = priority_based * 0.95
            else:
                capacity_adjusted = priority_based

            if default_total > 0:
                scaled_default = info['default_quota'] * total_needed / default_total
            else:
                scaled_default = priority_based

            blended = (WEIGHT_PRIORITY * priority_based
                       + WEIGHT_AVAILABILITY * availability_adjusted
                       + WEIGHT_CAPACITY * capacity_adjusted
                       + WEIGHT_DEFAULT * scaled_default)
            recommended[grade] = max(1, int(round(blended)))

        return recommended

    def _action_items(self, grade_analysis: Dict[str, Dict[str, Any]],
                      recommended: Dict[str, int]) -> List[str]:
        items = []
        for grade, info in sorted(grade_analysis.items()):
            current = info['avg_quota']
            target = recommended.get(grade, current)
            if current > 0:
                change = (target - current) * 100 / current
                if abs(change) > LARGE_CHANGE_PCT:
                    items.append(f"Adjust {grade} quota from {current:g} to {target} ({change:+.0f}%)")
            elif target > 0:
                items.append(f"Set a quota for {grade} (recommended {target})")

        for grade, info in sorted(grade_analysis.items()):
            if info['availability_pct'] < LOW_AVAILABILITY_PCT:
                items.append(f"Low availability for {grade} ({info['availability_pct']:.0f}%): "
                             f"review declared unavailabilities")

        if not items:
            items.append("Current quotas are well-balanced for this session")
        return items

    def _determine_status(self, deficit: int, available_pairs: int, total_needed: int,
                          utilization: float) -> str:
        """Determine overall status based on capacity and availability."""
        if deficit > 0 or available_pairs < total_needed:
            return 'critical'
        elif utilization > 95:
            return 'warning'
        elif utilization > 85:
            return 'good'
        else:
            return 'excellent'

    def _create_error_report(self, message: str) -> DecisionReport:
        """Create an error report when data is missing."""
        return DecisionReport(
            status='critical',
            action_items=[f"❌ {message}"],
            warnings=[message],
        )

    def format_report_text(self, report: DecisionReport) -> str:
        """Format report as readable text."""
        status_icons = {
            'excellent': '🟢',
            'good': '🟢',
            'warning': '🟡',
            'critical': '🔴'
        }

        lines = []
        lines.append("=" * 70)
        lines.append("FEASIBILITY ANALYSIS - DECISION SUPPORT")
        lines.append("=" * 70)
        lines.append("")
        lines.append(f"{status_icons.get(report.status, '⚪')} STATUS: {report.status.upper()}")
        lines.append("")

        if report.statistics:
            lines.append("📊 CAPACITY:")
            lines.append(f"  • Supervisions needed: {report.total_needed}")
            lines.append(f"  • Current capacity:    {report.current_capacity}")
            lines.append(f"  • Available pairs:     {report.available_pairs}")
            if report.deficit:
                lines.append(f"  ❌ Deficit: {report.deficit}")
            else:
                lines.append(f"  ✅ Capacity sufficient")
            lines.append("")

        if report.grade_analysis:
            lines.append("👥 BY GRADE:")
            for grade, info in sorted(report.grade_analysis.items()):
                lines.append(
                    f"  • {grade:8s}: {info['teachers']:3d} teachers | "
                    f"quota {info['avg_quota']:g} -> {report.recommended_quotas.get(grade, '-')} | "
                    f"availability {info['availability_pct']:.0f}%"
                )
            lines.append(f"  Quota std dev: {report.std_dev_before} -> {report.std_dev_after} "
                         f"({report.fairness})")
            lines.append("")

        if report.warnings:
            lines.append("⚠️  WARNINGS:")
            for warning in report.warnings:
                lines.append(f"  {warning}")
            lines.append("")

        if report.action_items:
            lines.append("💡 ACTIONS:")
            for item in report.action_items:
                lines.append(f"  {item}")
            lines.append("")

        lines.append("=" * 70)
        return "\n".join(lines)
