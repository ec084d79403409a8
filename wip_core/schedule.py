from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from wip_core.models import Job


MOBILIZATION_CRITICAL_DAYS = 14
TARGET_CRITICAL_DAYS = 30

WARNING_MOBILIZATION_PAST_CONTRACT = "mobilization-past-contract"
WARNING_BEHIND_TARGET = "behind-target"

SEVERITY_WARNING = "warning"
SEVERITY_CRITICAL = "critical"


@dataclass(frozen=True)
class ScheduleWarning:
    type: str
    message: str
    severity: str
    phase_id: Optional[int] = None


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def _phase_label(phase) -> str:
    if phase.description:
        return f"Phase {phase.id} ({phase.description})"
    return f"Phase {phase.id}"


def days_behind_target(job: Job) -> Optional[int]:
    """Days the current end date sits past the target end date; None without both dates."""
    if job.end_date is None or job.target_end_date is None:
        return None
    return (job.end_date - job.target_end_date).days


def is_job_behind_target_date(job: Job) -> bool:
    days = days_behind_target(job)
    return days is not None and days > 0


def get_mobilization_warnings(job: Job) -> List[ScheduleWarning]:
    """Warnings for enabled mobilization phases running past the contract end date."""
    warnings: List[ScheduleWarning] = []
    if job.end_date is None:
        return warnings

    for phase in job.mobilizations:
        if not phase.enabled:
            continue
        if phase.demobilize_date is not None and phase.demobilize_date > job.end_date:
            days_over = (phase.demobilize_date - job.end_date).days
            warnings.append(
                ScheduleWarning(
                    type=WARNING_MOBILIZATION_PAST_CONTRACT,
                    message=f"{_phase_label(phase)} demob is {_plural(days_over, 'day')} past contract end",
                    severity=SEVERITY_CRITICAL if days_over > MOBILIZATION_CRITICAL_DAYS else SEVERITY_WARNING,
                    phase_id=phase.id,
                )
            )
        if phase.mobilize_date is not None and phase.mobilize_date > job.end_date:
            warnings.append(
                ScheduleWarning(
                    type=WARNING_MOBILIZATION_PAST_CONTRACT,
                    message=f"{_phase_label(phase)} mobilization starts after contract end",
                    severity=SEVERITY_CRITICAL,
                    phase_id=phase.id,
                )
            )
    return warnings


def get_all_schedule_warnings(job: Job) -> List[ScheduleWarning]:
    """Mobilization warnings followed by the target-date warning, if any."""
    warnings = get_mobilization_warnings(job)
    if is_job_behind_target_date(job):
        days_late = days_behind_target(job)
        warnings.append(
            ScheduleWarning(
                type=WARNING_BEHIND_TARGET,
                message=f"Job is {_plural(days_late, 'day')} behind target completion",
                severity=SEVERITY_CRITICAL if days_late > TARGET_CRITICAL_DAYS else SEVERITY_WARNING,
            )
        )
    return warnings


def has_schedule_warnings(job: Job) -> bool:
    return bool(get_mobilization_warnings(job)) or is_job_behind_target_date(job)
