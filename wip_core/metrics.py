from __future__ import annotations

from datetime import date
from typing import Dict, Iterable, List, Optional

import numpy as np
import pandas as pd

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
    calculate_percent_complete,
    calculate_profit_variance,
)
from wip_core.change_orders import get_pending_cos_contract_total, group_by_job
from wip_core.history import SnapshotHistory
from wip_core.models import ChangeOrder, Job
from wip_core.risk import analyze_job_risk
from wip_core.schedule import get_all_schedule_warnings, is_job_behind_target_date


BASE_COLUMNS = [
    "job_id",
    "job_no",
    "job_name",
    "client",
    "project_manager",
    "job_type",
    "status",
    "as_of_date",
    "contract_total",
    "budget_total",
    "costs_total",
    "cost_to_complete_total",
    "invoiced_total",
    "earned_revenue",
    "percent_complete",
    "billing_difference",
    "billing_label",
    "forecasted_cost",
    "forecasted_revenue",
    "forecasted_profit",
    "original_profit",
    "profit_variance",
    "forecasted_margin",
    "has_approved_cos",
    "pending_co_contract",
]

RISK_COLUMNS = [
    "underbilling_percent",
    "underbilling_risk",
    "schedule_drift_weeks",
    "margin_fade_percent",
    "is_margin_fading",
    "behind_target",
    "schedule_warning_count",
]


def _job_row(job: Job, effective: Job, job_cos: List[ChangeOrder]) -> Dict[str, object]:
    billing = calculate_billing_difference(effective)
    return {
        "job_id": job.id,
        "job_no": job.job_no,
        "job_name": job.job_name,
        "client": job.client,
        "project_manager": job.project_manager,
        "job_type": job.job_type.value,
        "status": job.status.value,
        "as_of_date": job.as_of_date,
        "contract_total": sum_breakdown(effective.contract),
        "budget_total": sum_breakdown(effective.budget),
        "costs_total": sum_breakdown(effective.costs),
        "cost_to_complete_total": sum_breakdown(effective.cost_to_complete),
        "invoiced_total": sum_breakdown(effective.invoiced),
        "earned_revenue": calculate_earned_revenue(effective).total,
        "percent_complete": calculate_percent_complete(effective),
        "billing_difference": billing.difference,
        "billing_label": billing.label,
        "forecasted_cost": calculate_forecasted_cost(effective),
        "forecasted_revenue": calculate_forecasted_revenue(effective),
        "forecasted_profit": calculate_forecasted_profit(effective),
        "original_profit": calculate_original_profit(effective),
        "profit_variance": calculate_profit_variance(effective),
        "forecasted_margin": calculate_forecasted_margin(effective),
        "has_approved_cos": any(co.is_approved for co in job_cos),
        "pending_co_contract": get_pending_cos_contract_total(job_cos),
    }


def _risk_row(job: Job, history: Optional[SnapshotHistory], today: Optional[date]) -> Dict[str, object]:
    analysis = analyze_job_risk(job, history, today)
    return {
        "underbilling_percent": analysis.underbilling_percent,
        "underbilling_risk": analysis.underbilling_risk.value,
        "schedule_drift_weeks": analysis.schedule_drift_weeks,
        "margin_fade_percent": analysis.margin_fade_percent,
        "is_margin_fading": analysis.is_margin_fading,
        "behind_target": is_job_behind_target_date(job),
        "schedule_warning_count": len(get_all_schedule_warnings(job)),
    }


def build_job_metrics(
    jobs: Iterable[Job],
    change_orders: Iterable[ChangeOrder] = (),
    history: Optional[SnapshotHistory] = None,
    today: Optional[date] = None,
    include_risk: bool = True,
) -> pd.DataFrame:
    """One row per job with its derived WIP metrics and, optionally, risk signals."""
    cos_by_job = group_by_job(change_orders)
    columns = BASE_COLUMNS + (RISK_COLUMNS if include_risk else [])

    rows = []
    for job in jobs:
        job_cos = cos_by_job.get(job.id, [])
        effective = apply_change_orders(job, job_cos)
        row = _job_row(job, effective, job_cos)
        if include_risk:
            row.update(_risk_row(effective, history, today))
        rows.append(row)

    df = pd.DataFrame(rows, columns=columns)
    numeric = [c for c in columns if c.endswith(("_total", "_revenue", "_profit", "_cost", "_difference"))]
    df[numeric] = df[numeric].astype(float)

    df["is_under_billed"] = df["billing_difference"] < 0
    df["over_billing"] = df["billing_difference"].clip(lower=0)
    df["under_billing"] = (-df["billing_difference"]).clip(lower=0)
    df["percent_complete_pct"] = df["percent_complete"].astype(float) * 100
    df["forecasted_margin_pct"] = df["forecasted_margin"].astype(float) * 100
    df["billed_pct_of_contract"] = np.where(
        df["contract_total"] > 0, df["invoiced_total"] / df["contract_total"] * 100, 0
    )
    df["cost_overrun"] = np.where(
        df["budget_total"] > 0, (df["forecasted_cost"] - df["budget_total"]).clip(lower=0), 0
    )
    return df
