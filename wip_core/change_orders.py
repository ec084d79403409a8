from __future__ import annotations

from typing import Dict, Iterable, List

from wip_core.breakdown import CostBreakdown, add_breakdowns, sum_breakdown, sum_breakdowns
from wip_core.models import ChangeOrder, ChangeOrderStatus, Job


def approved_change_orders(change_orders: Iterable[ChangeOrder]) -> List[ChangeOrder]:
    """Change orders that count toward job totals (approved or completed)."""
    return [co for co in change_orders if co.is_approved]


def sum_approved_cos_contract(change_orders: Iterable[ChangeOrder]) -> CostBreakdown:
    return sum_breakdowns(co.contract for co in approved_change_orders(change_orders))


def sum_approved_cos_budget(change_orders: Iterable[ChangeOrder]) -> CostBreakdown:
    return sum_breakdowns(co.budget for co in approved_change_orders(change_orders))


def sum_approved_cos_costs(change_orders: Iterable[ChangeOrder]) -> CostBreakdown:
    return sum_breakdowns(co.costs for co in approved_change_orders(change_orders))


def sum_approved_cos_invoiced(change_orders: Iterable[ChangeOrder]) -> CostBreakdown:
    return sum_breakdowns(co.invoiced for co in approved_change_orders(change_orders))


def sum_approved_cos_cost_to_complete(change_orders: Iterable[ChangeOrder]) -> CostBreakdown:
    return sum_breakdowns(co.cost_to_complete for co in approved_change_orders(change_orders))


def get_pending_cos_contract_total(change_orders: Iterable[ChangeOrder]) -> float:
    """Contract value of pending change orders, not yet included in job totals."""
    return sum(
        sum_breakdown(co.contract) for co in change_orders if co.status == ChangeOrderStatus.PENDING
    )


def count_cos_by_status(change_orders: Iterable[ChangeOrder]) -> Dict[str, int]:
    """Count change orders per status; every status is always present."""
    counts = {status.value: 0 for status in ChangeOrderStatus}
    for co in change_orders:
        counts[co.status.value] += 1
    return counts


def get_next_co_number(change_orders: Iterable[ChangeOrder], job_id: str) -> int:
    """Next sequential CO number for a job: highest existing + 1, or 1."""
    numbers = [co.co_number for co in change_orders if co.job_id == job_id]
    return max(numbers, default=0) + 1


def get_job_total_contract(job: Job, change_orders: Iterable[ChangeOrder]) -> CostBreakdown:
    """Original contract plus the job's approved change orders."""
    own = [co for co in change_orders if co.job_id == job.id]
    return add_breakdowns(job.contract, sum_approved_cos_contract(own))


def change_orders_for_job(change_orders: Iterable[ChangeOrder], job_id: str) -> List[ChangeOrder]:
    return sorted((co for co in change_orders if co.job_id == job_id), key=lambda co: co.co_number)


def group_by_job(change_orders: Iterable[ChangeOrder]) -> Dict[str, List[ChangeOrder]]:
    grouped: Dict[str, List[ChangeOrder]] = {}
    for co in change_orders:
        grouped.setdefault(co.job_id, []).append(co)
    return grouped
