from __future__ import annotations

from dataclasses import fields
from typing import Dict, Iterable, List

import pandas as pd

from wip_core.breakdown import CostBreakdown, sum_breakdown
from wip_core.calculations import calculate_forecasted_cost
from wip_core.models import ChangeOrder, Job, JobFinancialSnapshot
from wip_core.utils import ensure_unique, get_logger


JOB_MONEY_FIELDS = ("contract", "budget", "costs", "cost_to_complete", "invoiced")
TOP_N = 20


def _change_order_frame(change_orders: Iterable[ChangeOrder]) -> pd.DataFrame:
    rows = [
        {"id": co.id, "job_id": co.job_id, "co_number": co.co_number, "status": co.status.value}
        for co in change_orders
    ]
    return pd.DataFrame(rows, columns=["id", "job_id", "co_number", "status"])


def _snapshot_frame(snapshots: Iterable[JobFinancialSnapshot]) -> pd.DataFrame:
    rows = [{"job_id": s.job_id, "snapshot_date": s.snapshot_date} for s in snapshots]
    return pd.DataFrame(rows, columns=["job_id", "snapshot_date"])


def _negative_fields(owner_id: str, owner: object) -> List[Dict[str, object]]:
    found = []
    for name in JOB_MONEY_FIELDS:
        breakdown: CostBreakdown = getattr(owner, name)
        for category in fields(CostBreakdown):
            value = getattr(breakdown, category.name)
            if value < 0:
                found.append({"id": owner_id, "field": f"{name}_{category.name}", "value": value})
    return found


def build_qa_report(
    jobs: List[Job],
    change_orders: List[ChangeOrder],
    snapshots: List[JobFinancialSnapshot],
) -> Dict[str, object]:
    """Generate data quality checks over jobs, change orders and stored snapshots."""
    logger = get_logger()

    co_df = _change_order_frame(change_orders)
    duplicate_cos = (
        co_df[co_df.duplicated(subset=["job_id", "co_number"], keep=False)]
        .groupby(["job_id", "co_number"])
        .size()
        .reset_index(name="count")
        .to_dict(orient="records")
    )
    co_numbers_ok = ensure_unique(co_df, ["job_id", "co_number"])

    snap_df = _snapshot_frame(snapshots)
    duplicate_snapshots = (
        snap_df[snap_df.duplicated(subset=["job_id", "snapshot_date"], keep=False)]
        .groupby(["job_id", "snapshot_date"])
        .size()
        .reset_index(name="count")
        .to_dict(orient="records")
    )

    job_ids = {job.id for job in jobs}
    id_series = pd.Series([job.id for job in jobs], dtype=object)
    duplicate_job_ids = sorted(id_series[id_series.duplicated()].unique().tolist())
    orphan_cos = co_df[~co_df["job_id"].isin(job_ids)]["id"].tolist()
    orphan_snapshots = sorted(set(snap_df[~snap_df["job_id"].isin(job_ids)]["job_id"]))

    negative_amounts = []
    for job in jobs:
        negative_amounts.extend(_negative_fields(job.id, job))
    for co in change_orders:
        negative_amounts.extend(_negative_fields(co.id, co))

    missing_dates = [
        {
            "job_id": job.id,
            "missing": [name for name in ("start_date", "end_date") if getattr(job, name) is None],
        }
        for job in jobs
        if job.is_open and (job.start_date is None or job.end_date is None)
    ]

    over_budget = []
    for job in jobs:
        if job.is_time_material:
            continue
        budget = sum_breakdown(job.budget)
        forecast = calculate_forecasted_cost(job)
        if budget > 0 and forecast > budget:
            over_budget.append(
                {"job_id": job.id, "budget": budget, "forecasted_cost": forecast, "overrun": forecast - budget}
            )
    over_budget = sorted(over_budget, key=lambda r: r["overrun"], reverse=True)[:TOP_N]

    report = {
        "job_count": len(jobs),
        "change_order_count": len(change_orders),
        "snapshot_count": len(snapshots),
        "duplicate_job_ids": duplicate_job_ids,
        "co_numbers_ok": co_numbers_ok,
        "duplicate_co_numbers": duplicate_cos,
        "duplicate_snapshots": duplicate_snapshots,
        "orphan_change_orders": orphan_cos,
        "orphan_snapshot_jobs": orphan_snapshots,
        "negative_amounts": negative_amounts,
        "open_jobs_missing_dates": missing_dates,
        "over_budget_fixed_price": over_budget,
    }

    if not co_numbers_ok:
        logger.warning("QA duplicate change order numbers: %s", len(duplicate_cos))
    if duplicate_snapshots:
        logger.warning("QA duplicate job snapshots: %s", len(duplicate_snapshots))
    logger.info("QA co numbers ok: %s", co_numbers_ok)
    return report
