"""
Job financial snapshots and the read-only history provider used for trend
signals such as margin fade.

A snapshot is immutable: capturing again produces a new record. Preventing
two snapshots for the same job and timestamp is the store's job; see
qa.build_qa_report for detection.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Protocol

from wip_core.breakdown import sum_breakdown
from wip_core.calculations import (
    apply_change_orders,
    calculate_billing_difference,
    calculate_earned_revenue,
    calculate_forecasted_cost,
    calculate_forecasted_margin,
    calculate_forecasted_profit,
    calculate_forecasted_revenue,
    calculate_original_profit,
)
from wip_core.models import ChangeOrder, Job, JobFinancialSnapshot
from wip_core.risk import MARGIN_AT_RISK_RATIO
from wip_core.schedule import is_job_behind_target_date
from wip_core.utils import safe_ratio


class SnapshotHistory(Protocol):
    def latest(self, job_id: str, before: Optional[datetime] = None) -> Optional[JobFinancialSnapshot]:
        ...

    def history(self, job_id: str, limit: int = 10) -> List[JobFinancialSnapshot]:
        ...


class InMemorySnapshotHistory:
    """History provider over an already-loaded list of snapshots."""

    def __init__(self, snapshots: Iterable[JobFinancialSnapshot] = ()):
        self._by_job: Dict[str, List[JobFinancialSnapshot]] = {}
        for snapshot in snapshots:
            self._by_job.setdefault(snapshot.job_id, []).append(snapshot)
        for rows in self._by_job.values():
            rows.sort(key=lambda s: s.snapshot_date, reverse=True)

    def latest(self, job_id: str, before: Optional[datetime] = None) -> Optional[JobFinancialSnapshot]:
        for snapshot in self._by_job.get(job_id, []):
            if before is None or snapshot.snapshot_date < before:
                return snapshot
        return None

    def history(self, job_id: str, limit: int = 10) -> List[JobFinancialSnapshot]:
        return list(self._by_job.get(job_id, [])[:limit])

    def __len__(self) -> int:
        return sum(len(rows) for rows in self._by_job.values())


@dataclass(frozen=True)
class SnapshotDelta:
    metric: str
    previous: float
    current: float
    delta: float
    improved: Optional[bool]


# (metric label, snapshot attribute, lower is better)
COMPARISON_FIELDS = (
    ("Forecasted Profit", "forecasted_profit_final", False),
    ("Costs to Date", "total_cost_to_date", True),
    ("Earned to Date", "earned_to_date", False),
    ("Billing Position", "billing_position_numeric", False),
)


def create_job_snapshot(
    job: Job,
    change_orders: Iterable[ChangeOrder] = (),
    snapshot_date: Optional[datetime] = None,
) -> JobFinancialSnapshot:
    """Capture a job's derived financial position at a point in time."""
    effective = apply_change_orders(job, change_orders)

    contract_total = sum_breakdown(effective.contract)
    budget_total = sum_breakdown(effective.budget)
    original_profit = job.target_profit if job.target_profit is not None else calculate_original_profit(effective)
    if job.target_margin is not None:
        original_margin = job.target_margin
    else:
        original_margin = safe_ratio(original_profit, contract_total)

    forecasted_margin = calculate_forecasted_margin(effective)
    billing = calculate_billing_difference(effective)

    return JobFinancialSnapshot(
        job_id=job.id,
        snapshot_date=snapshot_date or datetime.now(),
        contract_amount=contract_total,
        original_budget_total=budget_total,
        original_profit_target=original_profit,
        original_margin_target=original_margin,
        earned_to_date=calculate_earned_revenue(effective).total,
        invoiced_to_date=sum_breakdown(effective.invoiced),
        cost_labor_to_date=effective.costs.labor,
        cost_material_to_date=effective.costs.material,
        cost_other_to_date=effective.costs.other,
        total_cost_to_date=sum_breakdown(effective.costs),
        forecasted_cost_final=calculate_forecasted_cost(effective),
        forecasted_revenue_final=calculate_forecasted_revenue(effective),
        forecasted_profit_final=calculate_forecasted_profit(effective),
        forecasted_margin_final=forecasted_margin,
        billing_position_numeric=billing.difference,
        billing_position_label=billing.position,
        at_risk_margin=forecasted_margin < original_margin * MARGIN_AT_RISK_RATIO,
        behind_schedule=is_job_behind_target_date(job),
    )


def compare_snapshots(
    current: JobFinancialSnapshot, previous: Optional[JobFinancialSnapshot]
) -> List[SnapshotDelta]:
    """Prev / now / delta rows for the headline snapshot metrics."""
    rows = []
    for label, attr, lower_is_better in COMPARISON_FIELDS:
        now = getattr(current, attr) or 0.0
        prev = (getattr(previous, attr) or 0.0) if previous is not None else 0.0
        delta = now - prev
        if previous is None or delta == 0:
            improved = None
        else:
            improved = (delta < 0) if lower_is_better else (delta > 0)
        rows.append(SnapshotDelta(metric=label, previous=prev, current=now, delta=delta, improved=improved))
    return rows
