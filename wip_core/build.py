from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from wip_core import clean, io, metrics, periods, portfolio, qa
from wip_core.calculations import apply_change_orders, default_tm_settings
from wip_core.change_orders import group_by_job
from wip_core.history import InMemorySnapshotHistory, create_job_snapshot
from wip_core.models import ChangeOrder, Job, JobFinancialSnapshot, open_jobs
from wip_core.risk import AttentionItem, find_attention_items
from wip_core.utils import get_logger, load_settings, write_json


ATTENTION_COLUMNS = [
    "job_id",
    "job_no",
    "job_name",
    "project_manager",
    "has_high_severity",
    "reason_count",
    "reasons",
    "profit_variance",
]


@dataclass
class BuildResult:
    jobs: List[Job]
    change_orders: List[ChangeOrder]
    snapshots: List[JobFinancialSnapshot]
    job_metrics: pd.DataFrame
    attention: pd.DataFrame
    weekly_report: pd.DataFrame
    weekly_breakdown: pd.DataFrame
    monthly_trend: pd.DataFrame
    month_end: pd.DataFrame
    health: Dict[str, object]
    qa_report: Dict[str, object]


def attention_frame(items: List[AttentionItem]) -> pd.DataFrame:
    """Flatten the needs-attention queue, keeping its order."""
    rows = [
        {
            "job_id": item.job.id,
            "job_no": item.job.job_no,
            "job_name": item.job.job_name,
            "project_manager": item.job.project_manager,
            "has_high_severity": item.has_high_severity,
            "reason_count": len(item.reasons),
            "reasons": "; ".join(r.message for r in item.reasons),
            "profit_variance": item.profit_variance,
        }
        for item in items
    ]
    return pd.DataFrame(rows, columns=ATTENTION_COLUMNS)


def _report_settings(settings: Dict[str, Any]) -> Dict[str, Any]:
    reports = settings.get("reports") or {}
    return {
        "week_end_day": reports.get("week_end_day", periods.DEFAULT_WEEK_END_DAY),
        "weekly_lookback": int(reports.get("weekly_lookback", periods.DEFAULT_WEEKLY_LOOKBACK)),
        "monthly_lookback": int(reports.get("monthly_lookback", periods.DEFAULT_MONTHLY_LOOKBACK)),
    }


def _snapshot_output(settings: Dict[str, Any]) -> Path:
    configured = (settings.get("snapshots") or {}).get("output")
    return Path(configured) if configured else Path(settings["processed_dir"]) / "job_snapshots.csv"


def _load_inputs(input_path: str | Path, settings: Dict[str, Any]):
    tables = io.read_input_tables(input_path, settings.get("sheets"))
    jobs = clean.jobs_from_frame(tables[io.TABLE_JOBS], default_tm_settings(settings.get("tm_defaults")))
    change_orders = clean.change_orders_from_frame(tables[io.TABLE_CHANGE_ORDERS])
    snapshots = clean.snapshots_from_frame(tables[io.TABLE_SNAPSHOTS])
    return jobs, change_orders, snapshots


def build_reports(
    input_path: str | Path,
    settings_path: str | Path = "config/settings.yaml",
    reference_date: Optional[date] = None,
    output_dir: Optional[str | Path] = None,
) -> BuildResult:
    """Run the end-to-end WIP report build."""
    logger = get_logger()
    settings = load_settings(settings_path)
    report_settings = _report_settings(settings)

    jobs, change_orders, snapshots = _load_inputs(input_path, settings)
    history = InMemorySnapshotHistory(snapshots)

    today = reference_date or periods.latest_effective_date(jobs) or date.today()
    logger.info("Building WIP reports as of %s", today)

    cos_by_job = group_by_job(change_orders)
    effective_jobs = [apply_change_orders(job, cos_by_job.get(job.id, [])) for job in jobs]

    job_metrics = metrics.build_job_metrics(jobs, change_orders, history, today)
    attention = attention_frame(find_attention_items(effective_jobs, history, today))

    weekly = periods.build_weekly_report(
        effective_jobs,
        weeks=report_settings["weekly_lookback"],
        reference_date=today,
        week_end_day=report_settings["week_end_day"],
    )
    monthly = periods.build_monthly_trend(
        effective_jobs, months=report_settings["monthly_lookback"], reference_date=today
    )
    month_end = periods.build_month_end_report(effective_jobs, reference_date=today)

    health = portfolio.calculate_health_metrics(effective_jobs).to_dict()
    qa_report = qa.build_qa_report(jobs, change_orders, snapshots)

    weekly_report = periods.report_frame(weekly)
    weekly_breakdown = periods.breakdown_frame(weekly)
    monthly_trend = periods.report_frame(monthly)
    month_end_frame = periods.report_frame(month_end.jobs)

    processed_dir = Path(output_dir or settings["processed_dir"])
    processed_dir.mkdir(parents=True, exist_ok=True)

    io.save_csv(job_metrics, processed_dir / "job_metrics.csv")
    io.save_csv(attention, processed_dir / "needs_attention.csv")
    io.save_csv(weekly_report, processed_dir / "weekly_report.csv")
    io.save_csv(weekly_breakdown, processed_dir / "weekly_job_breakdown.csv")
    io.save_csv(monthly_trend, processed_dir / "monthly_trend.csv")
    io.save_csv(month_end_frame, processed_dir / "month_end_report.csv")

    write_json(processed_dir / "qa_report.json", qa_report)
    write_json(processed_dir / "portfolio_health.json", health)

    logger.info(
        "Build completed: %s jobs, health %s (%s), %s need attention",
        len(jobs),
        health["score"],
        health["grade"],
        len(attention),
    )

    return BuildResult(
        jobs=jobs,
        change_orders=change_orders,
        snapshots=snapshots,
        job_metrics=job_metrics,
        attention=attention,
        weekly_report=weekly_report,
        weekly_breakdown=weekly_breakdown,
        monthly_trend=monthly_trend,
        month_end=month_end_frame,
        health=health,
        qa_report=qa_report,
    )


def take_job_snapshots(
    input_path: str | Path,
    settings_path: str | Path = "config/settings.yaml",
    output_path: Optional[str | Path] = None,
    snapshot_date: Optional[datetime] = None,
) -> pd.DataFrame:
    """Capture a financial snapshot for every Active and On Hold job and append it to the snapshot table."""
    logger = get_logger()
    settings = load_settings(settings_path)
    target = Path(output_path) if output_path else _snapshot_output(settings)

    jobs, change_orders, _ = _load_inputs(input_path, settings)
    cos_by_job = group_by_job(change_orders)

    stamp = snapshot_date or datetime.now()
    captured = [
        create_job_snapshot(job, cos_by_job.get(job.id, []), snapshot_date=stamp) for job in open_jobs(jobs)
    ]
    new_rows = clean.snapshots_to_frame(captured)

    if target.exists():
        existing = pd.read_csv(target)
        combined = pd.concat([existing, new_rows], ignore_index=True)
    else:
        combined = new_rows
    io.save_csv(combined, target)

    logger.info("Captured %s job snapshots at %s into %s", len(captured), stamp, target)
    return new_rows
