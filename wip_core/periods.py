"""
Weekly and monthly rollups of earned revenue.

Jobs are placed in a period by their effective date (as_of_date, falling
back to last_updated). Jobs with neither are treated as current and land in
the reference period. A stored PeriodSnapshot for a period takes precedence
over the live job list for that period. Periods with neither contribute 0.
"""

from __future__ import annotations

import calendar
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from wip_core.metrics import build_job_metrics
from wip_core.models import Job, JobStatus, PeriodSnapshot
from wip_core.utils import get_logger, safe_ratio


WEEKDAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
DEFAULT_WEEK_END_DAY = "Sunday"
DEFAULT_WEEKLY_LOOKBACK = 5
DEFAULT_MONTHLY_LOOKBACK = 12

CADENCE_WEEKLY = "weekly"
CADENCE_MONTHLY = "monthly"

WEEKLY_STATUSES = (JobStatus.ACTIVE,)
MONTHLY_STATUSES = (JobStatus.ACTIVE, JobStatus.COMPLETED)


@dataclass(frozen=True)
class WeekInfo:
    week_number: int
    year: int
    week_start: date
    week_end: date

    @property
    def key(self) -> Tuple[int, int]:
        return (self.year, self.week_number)


@dataclass(frozen=True)
class MonthInfo:
    month: int
    year: int
    month_name: str
    month_start: date
    month_end: date

    @property
    def key(self) -> Tuple[int, int]:
        return (self.year, self.month)


@dataclass(frozen=True)
class PeriodMetrics:
    total_earned_revenue: float = 0.0
    total_contract_value: float = 0.0
    total_costs_to_date: float = 0.0
    total_invoiced: float = 0.0
    total_over_billing: float = 0.0
    total_under_billing: float = 0.0


@dataclass(frozen=True)
class JobChange:
    job_id: str
    job_no: str
    job_name: str
    client: str
    project_manager: str
    earned_revenue: float
    previous_earned_revenue: float
    change: float


@dataclass(frozen=True)
class WeeklyReportData:
    week_start: date
    week_end: date
    week_number: int
    year: int
    total_earned_revenue: float
    earned_revenue_change: float
    earned_revenue_change_percent: float
    job_breakdown: List[JobChange] = field(default_factory=list)


@dataclass(frozen=True)
class MonthlyTrendRow:
    month: int
    year: int
    month_name: str
    month_start: date
    month_end: date
    total_earned_revenue: float
    earned_revenue_change: float
    earned_revenue_change_percent: float
    job_breakdown: List[JobChange] = field(default_factory=list)


@dataclass(frozen=True)
class MonthEndJobRow:
    job_id: str
    job_no: str
    job_name: str
    client: str
    project_manager: str
    status: str
    contract_value: float
    costs_to_date: float
    percent_complete: float
    earned_revenue: float
    invoiced: float
    over_under_billing: float
    is_over_billed: bool
    forecasted_profit: float
    profit_margin: float


@dataclass(frozen=True)
class MonthEndReportData:
    month: int
    year: int
    month_name: str
    total_earned_revenue: float
    total_contract_value: float
    total_costs_to_date: float
    total_invoiced: float
    total_over_billing: float
    total_under_billing: float
    net_billing_position: float
    jobs: List[MonthEndJobRow] = field(default_factory=list)


def get_week_info(d: date, week_end_day: str = DEFAULT_WEEK_END_DAY) -> WeekInfo:
    """Week containing d, ending on week_end_day; numbered by the ISO week of its last day."""
    if week_end_day not in WEEKDAYS:
        raise ValueError(f"Unknown week end day: {week_end_day}")
    days_ahead = (WEEKDAYS.index(week_end_day) - d.weekday()) % 7
    week_end = d + timedelta(days=days_ahead)
    week_start = week_end - timedelta(days=6)
    iso = week_end.isocalendar()
    return WeekInfo(week_number=iso[1], year=iso[0], week_start=week_start, week_end=week_end)


def get_month_info(d: date) -> MonthInfo:
    last_day = calendar.monthrange(d.year, d.month)[1]
    return MonthInfo(
        month=d.month,
        year=d.year,
        month_name=calendar.month_name[d.month],
        month_start=date(d.year, d.month, 1),
        month_end=date(d.year, d.month, last_day),
    )


def job_effective_date(job: Job) -> Optional[date]:
    """Date the job's financials represent: as_of_date, else last_updated."""
    if job.as_of_date is not None:
        return job.as_of_date
    if job.last_updated is not None:
        return job.last_updated.date()
    return None


def latest_effective_date(jobs: Iterable[Job]) -> Optional[date]:
    dates = [d for d in (job_effective_date(job) for job in jobs) if d is not None]
    return max(dates) if dates else None


def filter_jobs_by_period(jobs: Iterable[Job], period_start: date, period_end: date) -> List[Job]:
    """Jobs whose effective date falls inside [period_start, period_end]."""
    selected = []
    for job in jobs:
        effective = job_effective_date(job)
        if effective is not None and period_start <= effective <= period_end:
            selected.append(job)
    return selected


def calculate_period_metrics(jobs: Iterable[Job]) -> PeriodMetrics:
    """Aggregate earned revenue, contract, costs, invoicing and billing position."""
    df = build_job_metrics(jobs, include_risk=False)
    if df.empty:
        return PeriodMetrics()
    return PeriodMetrics(
        total_earned_revenue=float(df["earned_revenue"].sum()),
        total_contract_value=float(df["contract_total"].sum()),
        total_costs_to_date=float(df["costs_total"].sum()),
        total_invoiced=float(df["invoiced_total"].sum()),
        total_over_billing=float(df["over_billing"].sum()),
        total_under_billing=float(df["under_billing"].sum()),
    )


def _with_status(jobs: Iterable[Job], *statuses: JobStatus) -> List[Job]:
    return [job for job in jobs if job.status in statuses]


def create_weekly_snapshot(
    jobs: Iterable[Job],
    reference_date: Optional[date] = None,
    week_end_day: str = DEFAULT_WEEK_END_DAY,
    now: Optional[datetime] = None,
) -> PeriodSnapshot:
    """Roll up Active jobs into a snapshot for the week containing reference_date."""
    active = _with_status(jobs, JobStatus.ACTIVE)
    week = get_week_info(reference_date or date.today(), week_end_day)
    metrics = calculate_period_metrics(active)
    get_logger().info("Weekly snapshot W%s %s: %s active jobs", week.week_number, week.year, len(active))
    return PeriodSnapshot(
        cadence=CADENCE_WEEKLY,
        year=week.year,
        period=week.week_number,
        period_start=week.week_start,
        period_end=week.week_end,
        active_job_count=len(active),
        jobs=tuple(active),
        created_at=now or datetime.now(),
        **asdict(metrics),
    )


def create_monthly_snapshot(
    jobs: Iterable[Job],
    month: Optional[int] = None,
    year: Optional[int] = None,
    now: Optional[datetime] = None,
) -> PeriodSnapshot:
    """Roll up Active and Completed jobs into a snapshot for a calendar month."""
    jobs = list(jobs)
    stamp = now or datetime.now()
    info = get_month_info(date(year or stamp.year, month or stamp.month, 1))
    active = _with_status(jobs, JobStatus.ACTIVE)
    completed = _with_status(jobs, JobStatus.COMPLETED)
    metrics = calculate_period_metrics(active + completed)
    get_logger().info(
        "Monthly snapshot %s %s: %s active, %s completed", info.month_name, info.year, len(active), len(completed)
    )
    return PeriodSnapshot(
        cadence=CADENCE_MONTHLY,
        year=info.year,
        period=info.month,
        period_start=info.month_start,
        period_end=info.month_end,
        active_job_count=len(active),
        completed_job_count=len(completed),
        jobs=tuple(active + completed),
        created_at=stamp,
        **asdict(metrics),
    )


def _earned_by_job(jobs: Sequence[Job]) -> pd.DataFrame:
    columns = ["job_id", "job_no", "job_name", "client", "project_manager", "earned_revenue"]
    return build_job_metrics(jobs, include_risk=False)[columns]


def _period_jobs(
    jobs: Sequence[Job],
    start: date,
    end: date,
    is_reference: bool,
) -> List[Job]:
    selected = filter_jobs_by_period(jobs, start, end)
    if is_reference:
        selected += [job for job in jobs if job_effective_date(job) is None]
    return selected


def _compare_periods(
    current_jobs: Sequence[Job],
    current_total: float,
    previous_jobs: Sequence[Job],
    previous_total: float,
) -> Tuple[float, float, List[JobChange]]:
    change = current_total - previous_total
    change_percent = safe_ratio(change, previous_total) * 100 if previous_total > 0 else 0.0

    current = _earned_by_job(current_jobs)
    previous = _earned_by_job(previous_jobs)[["job_id", "earned_revenue"]].rename(
        columns={"earned_revenue": "previous_earned_revenue"}
    )
    merged = current.merge(previous.drop_duplicates("job_id"), on="job_id", how="left")
    merged["previous_earned_revenue"] = merged["previous_earned_revenue"].fillna(0.0)
    merged["change"] = merged["earned_revenue"] - merged["previous_earned_revenue"]
    merged = merged.sort_values("change", ascending=False, kind="stable")

    breakdown = [JobChange(**record) for record in merged.to_dict(orient="records")]
    return change, change_percent, breakdown


def _period_series(
    jobs: Sequence[Job],
    periods: List[object],
    snapshots: Dict[Tuple[int, int], PeriodSnapshot],
    start_attr: str,
    end_attr: str,
    statuses: Tuple[JobStatus, ...],
) -> List[Tuple[object, List[Job], float]]:
    """(period, jobs, total) oldest first; the last period is the reference period."""
    series = []
    for index, period in enumerate(periods):
        stored = snapshots.get(period.key)
        if stored is not None:
            period_jobs = _with_status(stored.jobs, *statuses)
            total = stored.total_earned_revenue
        else:
            period_jobs = _with_status(
                _period_jobs(jobs, getattr(period, start_attr), getattr(period, end_attr), index == len(periods) - 1),
                *statuses,
            )
            total = calculate_period_metrics(period_jobs).total_earned_revenue
        series.append((period, period_jobs, total))
    return series


def _index_snapshots(snapshots: Optional[Iterable[PeriodSnapshot]], cadence: str) -> Dict[Tuple[int, int], PeriodSnapshot]:
    indexed: Dict[Tuple[int, int], PeriodSnapshot] = {}
    for snapshot in snapshots or []:
        if snapshot.cadence != cadence:
            continue
        existing = indexed.get(snapshot.key)
        if existing is None or (snapshot.created_at or datetime.min) >= (existing.created_at or datetime.min):
            indexed[snapshot.key] = snapshot
    return indexed


def build_weekly_report(
    jobs: Iterable[Job],
    snapshots: Optional[Iterable[PeriodSnapshot]] = None,
    weeks: int = DEFAULT_WEEKLY_LOOKBACK,
    reference_date: Optional[date] = None,
    week_end_day: str = DEFAULT_WEEK_END_DAY,
) -> List[WeeklyReportData]:
    """Week-over-week earned revenue for the last `weeks` weeks, newest first."""
    jobs = list(jobs)
    reference = reference_date or latest_effective_date(jobs) or date.today()
    last_week = get_week_info(reference, week_end_day)
    # one extra week so the oldest reported week has a predecessor
    periods = [
        get_week_info(last_week.week_end - timedelta(weeks=offset), week_end_day)
        for offset in range(weeks, -1, -1)
    ]
    series = _period_series(
        jobs, periods, _index_snapshots(snapshots, CADENCE_WEEKLY), "week_start", "week_end", WEEKLY_STATUSES
    )

    report = []
    for (_, prev_jobs, prev_total), (week, cur_jobs, cur_total) in zip(series, series[1:]):
        change, change_percent, breakdown = _compare_periods(cur_jobs, cur_total, prev_jobs, prev_total)
        report.append(
            WeeklyReportData(
                week_start=week.week_start,
                week_end=week.week_end,
                week_number=week.week_number,
                year=week.year,
                total_earned_revenue=cur_total,
                earned_revenue_change=change,
                earned_revenue_change_percent=change_percent,
                job_breakdown=breakdown,
            )
        )
    report.reverse()
    get_logger().info("Weekly report built: %s weeks ending %s", len(report), last_week.week_end)
    return report


def _shift_month(d: date, months: int) -> date:
    index = d.year * 12 + (d.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def build_monthly_trend(
    jobs: Iterable[Job],
    snapshots: Optional[Iterable[PeriodSnapshot]] = None,
    months: int = DEFAULT_MONTHLY_LOOKBACK,
    reference_date: Optional[date] = None,
) -> List[MonthlyTrendRow]:
    """Month-over-month earned revenue for the last `months` months, newest first."""
    jobs = list(jobs)
    reference = reference_date or latest_effective_date(jobs) or date.today()
    periods = [get_month_info(_shift_month(reference, -offset)) for offset in range(months, -1, -1)]
    series = _period_series(
        jobs, periods, _index_snapshots(snapshots, CADENCE_MONTHLY), "month_start", "month_end", MONTHLY_STATUSES
    )

    rows = []
    for (_, prev_jobs, prev_total), (month, cur_jobs, cur_total) in zip(series, series[1:]):
        change, change_percent, breakdown = _compare_periods(cur_jobs, cur_total, prev_jobs, prev_total)
        rows.append(
            MonthlyTrendRow(
                month=month.month,
                year=month.year,
                month_name=month.month_name,
                month_start=month.month_start,
                month_end=month.month_end,
                total_earned_revenue=cur_total,
                earned_revenue_change=change,
                earned_revenue_change_percent=change_percent,
                job_breakdown=breakdown,
            )
        )
    rows.reverse()
    return rows


def build_month_end_report(jobs: Iterable[Job], reference_date: Optional[date] = None) -> MonthEndReportData:
    """Month-end WIP schedule over Active and Completed jobs."""
    relevant = _with_status(jobs, *MONTHLY_STATUSES)
    info = get_month_info(reference_date or date.today())
    df = build_job_metrics(relevant, include_risk=False)

    df["abs_billing"] = df["billing_difference"].abs()
    df = df.sort_values("abs_billing", ascending=False, kind="stable")
    rows = [
        MonthEndJobRow(
            job_id=r["job_id"],
            job_no=r["job_no"],
            job_name=r["job_name"],
            client=r["client"],
            project_manager=r["project_manager"],
            status=r["status"],
            contract_value=r["contract_total"],
            costs_to_date=r["costs_total"],
            percent_complete=r["percent_complete_pct"],
            earned_revenue=r["earned_revenue"],
            invoiced=r["invoiced_total"],
            over_under_billing=r["billing_difference"],
            is_over_billed=bool(r["billing_difference"] > 0),
            forecasted_profit=r["forecasted_profit"],
            profit_margin=r["forecasted_margin_pct"],
        )
        for r in df.to_dict(orient="records")
    ]

    over = float(df["over_billing"].sum())
    under = float(df["under_billing"].sum())
    return MonthEndReportData(
        month=info.month,
        year=info.year,
        month_name=info.month_name,
        total_earned_revenue=float(df["earned_revenue"].sum()),
        total_contract_value=float(df["contract_total"].sum()),
        total_costs_to_date=float(df["costs_total"].sum()),
        total_invoiced=float(df["invoiced_total"].sum()),
        total_over_billing=over,
        total_under_billing=under,
        net_billing_position=over - under,
        jobs=rows,
    )


def report_frame(rows: Iterable[object]) -> pd.DataFrame:
    """Flatten report rows to a DataFrame, dropping nested job breakdowns."""
    records = []
    for row in rows:
        record = asdict(row)
        record.pop("job_breakdown", None)
        record.pop("jobs", None)
        records.append(record)
    return pd.DataFrame(records)


def breakdown_frame(rows: Iterable[object]) -> pd.DataFrame:
    """Per-job change rows for every period in a weekly or monthly report."""
    records = []
    for row in rows:
        period = {"year": row.year, "period": getattr(row, "week_number", None) or getattr(row, "month", None)}
        for change in row.job_breakdown:
            records.append({**period, **asdict(change)})
    return pd.DataFrame(records)
