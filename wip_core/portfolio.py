"""
Portfolio health score.

score = 100
        - min(underbilled_percent x 0.4, 40)
        - min(max(-avg_margin_variance, 0) x 3, 30)
        - min(behind_schedule_percent x 0.3, 30)

floored at 0 and rounded half up. An empty portfolio scores 100 (A).
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import timedelta
from typing import Dict, Iterable

from wip_core.breakdown import sum_breakdown
from wip_core.calculations import calculate_billing_difference, calculate_profit_variance
from wip_core.models import Job
from wip_core.risk import BEHIND_TARGET_GRACE_DAYS
from wip_core.utils import round_half_up


UNDERBILLED_WEIGHT = 0.4
UNDERBILLED_MAX_PENALTY = 40.0
MARGIN_VARIANCE_WEIGHT = 3.0
MARGIN_VARIANCE_MAX_PENALTY = 30.0
BEHIND_SCHEDULE_WEIGHT = 0.3
BEHIND_SCHEDULE_MAX_PENALTY = 30.0

GRADE_BANDS = ((90, "A"), (80, "B"), (70, "C"), (60, "D"))


@dataclass(frozen=True)
class HealthMetrics:
    score: int
    grade: str
    underbilled_percent: float
    avg_margin_variance: float
    behind_schedule_percent: float
    total_active_jobs: int

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


def grade_for_score(score: float) -> str:
    for floor, grade in GRADE_BANDS:
        if score >= floor:
            return grade
    return "F"


def _margin_variance_percent(job: Job) -> float:
    return calculate_profit_variance(job) / sum_breakdown(job.contract) * 100


def _is_behind_schedule(job: Job) -> bool:
    return job.end_date > job.target_end_date + timedelta(days=BEHIND_TARGET_GRACE_DAYS)


def calculate_health_metrics(jobs: Iterable[Job]) -> HealthMetrics:
    """Score Active and On Hold jobs on billing, margin and schedule."""
    active = [job for job in jobs if job.is_open]
    if not active:
        return HealthMetrics(
            score=100,
            grade="A",
            underbilled_percent=0.0,
            avg_margin_variance=0.0,
            behind_schedule_percent=0.0,
            total_active_jobs=0,
        )

    underbilled = [job for job in active if calculate_billing_difference(job).difference < 0]
    underbilled_percent = len(underbilled) / len(active) * 100

    # T&M jobs have no original baseline to vary from
    fixed_price = [job for job in active if not job.is_time_material and sum_breakdown(job.contract) > 0]
    variances = [_margin_variance_percent(job) for job in fixed_price]
    avg_margin_variance = sum(variances) / len(variances) if variances else 0.0

    dated = [job for job in active if job.end_date is not None and job.target_end_date is not None]
    behind = [job for job in dated if _is_behind_schedule(job)]
    behind_schedule_percent = len(behind) / len(dated) * 100 if dated else 0.0

    score = 100.0
    score -= min(underbilled_percent * UNDERBILLED_WEIGHT, UNDERBILLED_MAX_PENALTY)
    score -= min(max(-avg_margin_variance, 0.0) * MARGIN_VARIANCE_WEIGHT, MARGIN_VARIANCE_MAX_PENALTY)
    score -= min(behind_schedule_percent * BEHIND_SCHEDULE_WEIGHT, BEHIND_SCHEDULE_MAX_PENALTY)
    score = max(0, round_half_up(score))

    return HealthMetrics(
        score=score,
        grade=grade_for_score(score),
        underbilled_percent=underbilled_percent,
        avg_margin_variance=avg_margin_variance,
        behind_schedule_percent=behind_schedule_percent,
        total_active_jobs=len(active),
    )
