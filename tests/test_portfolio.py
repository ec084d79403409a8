from datetime import date

import pytest

from conftest import labor, make_job
from wip_core.models import JobStatus, JobType
from wip_core.portfolio import calculate_health_metrics, grade_for_score


def test_empty_portfolio_is_perfect():
    metrics = calculate_health_metrics([])
    assert (metrics.score, metrics.grade, metrics.total_active_jobs) == (100, "A", 0)


def test_only_open_jobs_are_scored():
    jobs = [
        make_job(id="done", status=JobStatus.COMPLETED, invoiced=labor(0)),
        make_job(id="draft", status=JobStatus.DRAFT, invoiced=labor(0)),
    ]
    assert calculate_health_metrics(jobs).score == 100


def test_underbilled_share_at_grade_boundary():
    # 51 of 100 otherwise healthy jobs under billed: 100 - 20.4 = 79.6 -> 80
    jobs = [make_job(id=f"U{i}", invoiced=labor(30000)) for i in range(51)]
    jobs += [make_job(id=f"H{i}") for i in range(49)]
    metrics = calculate_health_metrics(jobs)
    assert metrics.underbilled_percent == pytest.approx(51)
    assert metrics.score == 80
    assert metrics.grade == "B"


def test_single_underbilled_job_hits_penalty_cap():
    metrics = calculate_health_metrics([make_job(invoiced=labor(30000))])
    assert metrics.underbilled_percent == 100
    assert metrics.score == 60
    assert metrics.grade == "D"


def test_negative_margin_variance_penalty_ignores_tm_jobs():
    fading = make_job(id="F", cost_to_complete=labor(45000))
    tm = make_job(id="T", job_type=JobType.TIME_MATERIAL, invoiced=labor(100000))
    metrics = calculate_health_metrics([fading, tm])
    assert metrics.avg_margin_variance == pytest.approx(-5)
    assert metrics.score == 85


def test_behind_schedule_uses_grace_period_and_dated_jobs():
    late = make_job(id="L", target_end_date=date(2024, 12, 1))
    within_grace = make_job(id="G", target_end_date=date(2024, 12, 21))
    undated = make_job(id="N")
    metrics = calculate_health_metrics([late, within_grace, undated])
    assert metrics.behind_schedule_percent == pytest.approx(50)
    assert metrics.score == 85


def test_score_never_below_zero():
    job = make_job(
        invoiced=labor(0),
        cost_to_complete=labor(100000),
        target_end_date=date(2024, 1, 31),
    )
    metrics = calculate_health_metrics([job])
    assert metrics.score == 0
    assert metrics.grade == "F"


@pytest.mark.parametrize(
    "score, grade",
    [(100, "A"), (90, "A"), (89, "B"), (80, "B"), (79, "C"), (70, "C"), (69, "D"), (60, "D"), (59, "F"), (0, "F")],
)
def test_grade_bands_are_inclusive_at_lower_bound(score, grade):
    assert grade_for_score(score) == grade


def test_to_dict_is_json_ready():
    payload = calculate_health_metrics([make_job()]).to_dict()
    assert payload["score"] == 100
    assert payload["grade"] == "A"
    assert payload["total_active_jobs"] == 1


def test_health_metrics_are_repeatable():
    jobs = [
        make_job(id="U", invoiced=labor(10000)),
        make_job(id="F", cost_to_complete=labor(45000)),
        make_job(id="L", target_end_date=date(2024, 12, 1)),
    ]
    assert calculate_health_metrics(jobs) == calculate_health_metrics(jobs)
