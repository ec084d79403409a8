from datetime import date, datetime

import pytest

from conftest import labor, make_job
from wip_core.models import JobStatus
from wip_core.periods import (
    breakdown_frame,
    build_month_end_report,
    build_monthly_trend,
    build_weekly_report,
    calculate_period_metrics,
    create_monthly_snapshot,
    create_weekly_snapshot,
    get_month_info,
    get_week_info,
    job_effective_date,
    report_frame,
)

REFERENCE = date(2024, 7, 3)
CREATED = datetime(2024, 6, 30, 18, 0)


@pytest.fixture
def period_jobs():
    return [
        make_job(id="A", as_of_date=date(2024, 7, 2), invoiced=labor(30000)),
        make_job(id="B", as_of_date=date(2024, 6, 25), costs=labor(20000), invoiced=labor(50000)),
        make_job(id="C", as_of_date=None, costs=labor(8000), invoiced=labor(10000)),
        make_job(id="D", status=JobStatus.COMPLETED, as_of_date=date(2024, 7, 2)),
        make_job(id="E", status=JobStatus.ON_HOLD, as_of_date=date(2024, 7, 2)),
    ]


def test_week_info_ends_on_configured_day():
    week = get_week_info(REFERENCE)
    assert (week.week_start, week.week_end) == (date(2024, 7, 1), date(2024, 7, 7))
    assert (week.year, week.week_number) == (2024, 27)
    assert get_week_info(date(2024, 7, 7)) == week

    friday = get_week_info(date(2024, 7, 6), "Friday")
    assert (friday.week_start, friday.week_end) == (date(2024, 7, 6), date(2024, 7, 12))


def test_week_info_uses_iso_year_of_week_end():
    week = get_week_info(date(2024, 12, 30))
    assert week.week_end == date(2025, 1, 5)
    assert (week.year, week.week_number) == (2025, 1)


def test_week_info_rejects_unknown_day():
    with pytest.raises(ValueError):
        get_week_info(REFERENCE, "Funday")


def test_month_info():
    info = get_month_info(date(2024, 2, 10))
    assert (info.month_name, info.month_start, info.month_end) == ("February", date(2024, 2, 1), date(2024, 2, 29))


def test_job_effective_date_falls_back_to_last_updated():
    assert job_effective_date(make_job(as_of_date=None, last_updated=datetime(2024, 5, 2, 8))) == date(2024, 5, 2)
    assert job_effective_date(make_job(as_of_date=None)) is None


def test_period_metrics(period_jobs):
    metrics = calculate_period_metrics(period_jobs[:2])
    assert metrics.total_earned_revenue == pytest.approx(75000)
    assert metrics.total_contract_value == pytest.approx(200000)
    assert metrics.total_invoiced == pytest.approx(80000)
    assert metrics.total_over_billing == pytest.approx(25000)
    assert metrics.total_under_billing == pytest.approx(20000)
    assert calculate_period_metrics([]).total_earned_revenue == 0


def test_weekly_snapshot_counts_active_jobs_only(period_jobs):
    snap = create_weekly_snapshot(period_jobs, REFERENCE, now=CREATED)
    assert snap.key == (2024, 27)
    assert snap.active_job_count == 3
    assert {job.id for job in snap.jobs} == {"A", "B", "C"}
    assert snap.total_earned_revenue == pytest.approx(85000)


def test_monthly_snapshot_counts_active_and_completed(period_jobs):
    snap = create_monthly_snapshot(period_jobs, month=6, year=2024, now=CREATED)
    assert snap.key == (2024, 6)
    assert (snap.active_job_count, snap.completed_job_count) == (3, 1)
    assert snap.period_end == date(2024, 6, 30)


def test_weekly_report_buckets_jobs_by_effective_date(period_jobs):
    report = build_weekly_report(period_jobs, weeks=2, reference_date=REFERENCE)
    assert [row.week_number for row in report] == [27, 26]

    current, previous = report
    # A plus undated C land in the reference week; D and E are not Active
    assert current.total_earned_revenue == pytest.approx(60000)
    assert previous.total_earned_revenue == pytest.approx(25000)
    assert current.earned_revenue_change == pytest.approx(35000)
    assert current.earned_revenue_change_percent == pytest.approx(140)
    # nothing before the first reported week
    assert previous.earned_revenue_change_percent == 0
    assert [change.job_id for change in current.job_breakdown] == ["A", "C"]


def test_weekly_report_prefers_stored_snapshot(period_jobs):
    earlier_a = make_job(id="A", as_of_date=date(2024, 6, 26), costs=labor(30000))
    stored = create_weekly_snapshot([earlier_a], date(2024, 6, 26), now=CREATED)

    report = build_weekly_report(period_jobs, snapshots=[stored], weeks=1, reference_date=REFERENCE)
    assert len(report) == 1
    week = report[0]
    assert week.earned_revenue_change == pytest.approx(60000 - 37500)
    assert week.earned_revenue_change_percent == pytest.approx(60)
    changes = {c.job_id: c for c in week.job_breakdown}
    assert changes["A"].previous_earned_revenue == pytest.approx(37500)
    assert changes["A"].change == pytest.approx(12500)
    assert changes["C"].previous_earned_revenue == 0


def test_weekly_report_defaults_reference_to_latest_job_date(period_jobs):
    report = build_weekly_report(period_jobs, weeks=1)
    assert report[0].week_end == date(2024, 7, 7)


def test_monthly_trend_includes_completed_jobs(period_jobs):
    rows = build_monthly_trend(period_jobs, months=2, reference_date=REFERENCE)
    assert [row.month_name for row in rows] == ["July", "June"]
    assert rows[0].total_earned_revenue == pytest.approx(110000)
    assert rows[1].total_earned_revenue == pytest.approx(25000)
    assert rows[0].earned_revenue_change == pytest.approx(85000)
    assert rows[1].earned_revenue_change_percent == 0


def test_month_end_report_sorted_by_billing_exposure(period_jobs):
    report = build_month_end_report(period_jobs, REFERENCE)
    assert report.month_name == "July"
    assert [row.job_id for row in report.jobs] == ["B", "A", "C", "D"]
    assert report.total_over_billing == pytest.approx(25000)
    assert report.total_under_billing == pytest.approx(20000)
    assert report.net_billing_position == pytest.approx(5000)
    assert report.jobs[0].is_over_billed is True
    assert report.jobs[1].percent_complete == pytest.approx(50)


def test_report_frames(period_jobs):
    report = build_weekly_report(period_jobs, weeks=2, reference_date=REFERENCE)
    frame = report_frame(report)
    assert len(frame) == 2
    assert "job_breakdown" not in frame.columns
    changes = breakdown_frame(report)
    assert set(changes["period"]) == {26, 27}
    assert len(changes) == 3


def test_weekly_report_is_repeatable(period_jobs):
    first = build_weekly_report(period_jobs, weeks=3, reference_date=REFERENCE)
    second = build_weekly_report(period_jobs, weeks=3, reference_date=REFERENCE)
    assert first == second
