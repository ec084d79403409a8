"""
Risk and trend signals for open jobs.

The thresholds below back the "needs attention" queue and any report that
filters on it. Change them here, never at a call site.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum
from typing import TYPE_CHECKING, Iterable, List, Optional

from wip_core.breakdown import sum_breakdown
from wip_core.calculations import (
    calculate_earned_revenue,
    calculate_forecasted_margin,
    calculate_profit_variance,
)
from wip_core.models import Job

if TYPE_CHECKING:
    from wip_core.history import SnapshotHistory


UNDERBILLING_MEDIUM_PCT = 10.0
UNDERBILLING_ATTENTION_PCT = 50.0
UNDERBILLING_HIGH_PCT = 75.0

MARGIN_FADE_ATTENTION_PTS = 10.0
MARGIN_FADE_HIGH_PTS = 20.0

SCHEDULE_DRIFT_ATTENTION_WEEKS = 2
SCHEDULE_DRIFT_HIGH_WEEKS = 4

BEHIND_TARGET_GRACE_DAYS = 14

# snapshot flags a margin that has fallen below 80% of its original target
MARGIN_AT_RISK_RATIO = 0.8

REASON_UNDERBILLING = "underbilling"
REASON_MARGIN_FADE = "margin-fade"
REASON_SCHEDULE_DRIFT = "schedule-drift"

SEVERITY_MEDIUM = "medium"
SEVERITY_HIGH = "high"


class RiskLevel(str, Enum):
    NONE = "None"
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


@dataclass(frozen=True)
class MarginFade:
    fade_percent: float
    is_fading: bool
    baseline_margin_percent: Optional[float]


@dataclass(frozen=True)
class JobRiskAnalysis:
    underbilling_risk: RiskLevel
    underbilling_percent: float
    schedule_drift_weeks: int
    margin_fade_percent: float
    is_margin_fading: bool


@dataclass(frozen=True)
class AttentionReason:
    type: str
    message: str
    severity: str


@dataclass(frozen=True)
class AttentionItem:
    job: Job
    reasons: List[AttentionReason]
    profit_variance: float

    @property
    def has_high_severity(self) -> bool:
        return any(r.severity == SEVERITY_HIGH for r in self.reasons)


def calculate_underbilling_percent(job: Job) -> float:
    """Under-billed amount as a percent of earned revenue; 0 when not under billed."""
    earned = calculate_earned_revenue(job).total
    if earned == 0:
        return 0.0
    position = sum_breakdown(job.invoiced) - earned
    if position >= 0:
        return 0.0
    return abs(position / earned) * 100


def calculate_underbilling_risk(job: Job) -> RiskLevel:
    percent = calculate_underbilling_percent(job)
    if percent <= 0:
        return RiskLevel.NONE
    if percent > UNDERBILLING_ATTENTION_PCT:
        return RiskLevel.HIGH
    if percent >= UNDERBILLING_MEDIUM_PCT:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def calculate_schedule_drift(job: Job, today: Optional[date] = None) -> int:
    """Whole weeks by which cost progress lags calendar progress; never negative.

    Needs a start date, an end date after it, a budget, and a job that has
    started; otherwise there is no signal and the drift is 0.
    """
    if job.start_date is None or job.end_date is None:
        return 0
    today = today or date.today()
    total_days = (job.end_date - job.start_date).days
    if total_days <= 0 or today < job.start_date:
        return 0

    budget_total = sum_breakdown(job.budget)
    if budget_total == 0:
        return 0

    elapsed = min((today - job.start_date).days / total_days, 1.0)
    progress = min(max(sum_breakdown(job.costs) / budget_total, 0.0), 1.0)
    if elapsed <= progress:
        return 0

    total_weeks = total_days / 7
    return max(0, math.floor((elapsed - progress) * total_weeks))


def calculate_margin_fade(
    job: Job,
    history: Optional["SnapshotHistory"] = None,
    before: Optional[datetime] = None,
) -> MarginFade:
    """Margin points lost since the most recent prior snapshot."""
    baseline = history.latest(job.id, before=before) if history is not None else None
    if baseline is None or baseline.forecasted_margin_final is None:
        return MarginFade(fade_percent=0.0, is_fading=False, baseline_margin_percent=None)

    prior_percent = baseline.forecasted_margin_final * 100
    current_percent = calculate_forecasted_margin(job) * 100
    fade = max(0.0, prior_percent - current_percent)
    return MarginFade(
        fade_percent=fade,
        is_fading=fade > MARGIN_FADE_ATTENTION_PTS,
        baseline_margin_percent=prior_percent,
    )


def _end_of_day(today: Optional[date]) -> Optional[datetime]:
    """Snapshot cutoff for an evaluation date; snapshots taken later are ignored."""
    return datetime.combine(today, time.max) if today is not None else None


def analyze_job_risk(
    job: Job,
    history: Optional["SnapshotHistory"] = None,
    today: Optional[date] = None,
) -> JobRiskAnalysis:
    fade = calculate_margin_fade(job, history, before=_end_of_day(today))
    return JobRiskAnalysis(
        underbilling_risk=calculate_underbilling_risk(job),
        underbilling_percent=calculate_underbilling_percent(job),
        schedule_drift_weeks=calculate_schedule_drift(job, today),
        margin_fade_percent=fade.fade_percent,
        is_margin_fading=fade.is_fading,
    )


def attention_reasons(
    job: Job,
    history: Optional["SnapshotHistory"] = None,
    today: Optional[date] = None,
) -> List[AttentionReason]:
    """Reasons a single job belongs in the needs-attention queue."""
    reasons: List[AttentionReason] = []

    underbilling = calculate_underbilling_percent(job)
    if underbilling > UNDERBILLING_ATTENTION_PCT:
        reasons.append(
            AttentionReason(
                type=REASON_UNDERBILLING,
                message=f"Underbilled {underbilling:.0f}%",
                severity=SEVERITY_HIGH if underbilling > UNDERBILLING_HIGH_PCT else SEVERITY_MEDIUM,
            )
        )

    fade = calculate_margin_fade(job, history, before=_end_of_day(today)).fade_percent
    if fade > MARGIN_FADE_ATTENTION_PTS:
        reasons.append(
            AttentionReason(
                type=REASON_MARGIN_FADE,
                message=f"Margin fading: -{fade:.1f} pts",
                severity=SEVERITY_HIGH if fade > MARGIN_FADE_HIGH_PTS else SEVERITY_MEDIUM,
            )
        )

    drift = calculate_schedule_drift(job, today)
    if drift > SCHEDULE_DRIFT_ATTENTION_WEEKS:
        reasons.append(
            AttentionReason(
                type=REASON_SCHEDULE_DRIFT,
                message=f"{drift} weeks behind schedule",
                severity=SEVERITY_HIGH if drift > SCHEDULE_DRIFT_HIGH_WEEKS else SEVERITY_MEDIUM,
            )
        )
    return reasons


def find_attention_items(
    jobs: Iterable[Job],
    history: Optional["SnapshotHistory"] = None,
    today: Optional[date] = None,
) -> List[AttentionItem]:
    """Open jobs with at least one attention reason, most severe first."""
    items = []
    for job in jobs:
        if not job.is_open:
            continue
        reasons = attention_reasons(job, history, today)
        if reasons:
            items.append(AttentionItem(job=job, reasons=reasons, profit_variance=calculate_profit_variance(job)))
    # stable sort: high severity first, then more reasons first
    return sorted(items, key=lambda item: (not item.has_high_severity, -len(item.reasons)))
