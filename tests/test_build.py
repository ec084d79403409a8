import json
from datetime import date, datetime

import pandas as pd
import pytest
import yaml

from wip_core.build import build_reports, take_job_snapshots
from wip_core.io import save_csv


JOBS = [
    {
        "id": "J-1",
        "job_no": "1001",
        "job_name": "Clinic Refit",
        "job_type": "fixed-price",
        "status": "Active",
        "start_date": "2024-01-01",
        "end_date": "2024-12-31",
        "as_of_date": "2024-07-02",
        "contract_labor": 100000,
        "budget_labor": 80000,
        "costs_labor": 40000,
        "cost_to_complete_labor": 40000,
        "invoiced_labor": 10000,
    },
    {
        "id": "J-2",
        "job_no": "1002",
        "job_name": "Service Calls",
        "job_type": "time-material",
        "status": "Active",
        "as_of_date": "2024-06-25",
        "costs_labor": 10000,
        "costs_material": 5000,
        "costs_other": 1000,
        "invoiced_labor": 21850,
    },
    {
        "id": "J-3",
        "job_no": "1003",
        "job_type": "fixed-price",
        "status": "Completed",
        "as_of_date": "2024-05-31",
        "contract_labor": 50000,
        "budget_labor": 40000,
        "costs_labor": 40000,
        "invoiced_labor": 50000,
    },
]

CHANGE_ORDERS = [
    {"job_id": "J-1", "co_number": 1, "status": "approved", "contract_labor": 20000, "budget_labor": 15000},
    {"job_id": "J-1", "co_number": 2, "status": "pending", "contract_labor": 5000},
]


@pytest.fixture
def workspace(tmp_path):
    input_dir = tmp_path / "input"
    save_csv(pd.DataFrame(JOBS), input_dir / "jobs.csv")
    save_csv(pd.DataFrame(CHANGE_ORDERS), input_dir / "change_orders.csv")

    settings = {
        "processed_dir": str(tmp_path / "processed"),
        "reports": {"week_end_day": "Sunday", "weekly_lookback": 3, "monthly_lookback": 2},
        "tm_defaults": {"labor_markup": 1.5, "material_markup": 1.15, "other_markup": 1.1},
        "snapshots": {"output": str(tmp_path / "processed" / "job_snapshots.csv")},
    }
    settings_path = tmp_path / "settings.yaml"
    settings_path.write_text(yaml.safe_dump(settings))
    return input_dir, settings_path, tmp_path / "processed"


def test_build_reports_writes_outputs(workspace):
    input_dir, settings_path, processed = workspace
    result = build_reports(input_dir, settings_path=settings_path, reference_date=date(2024, 7, 3))

    metrics = result.job_metrics.set_index("job_id")
    assert metrics.loc["J-1", "contract_total"] == pytest.approx(120000)
    assert metrics.loc["J-1", "pending_co_contract"] == pytest.approx(5000)
    # T&M defaults from settings price the job at 21850, matching invoicing
    assert metrics.loc["J-2", "earned_revenue"] == pytest.approx(21850)
    assert metrics.loc["J-2", "billing_difference"] == pytest.approx(0, abs=1e-6)

    assert list(result.attention["job_id"]) == ["J-1"]
    assert len(result.weekly_report) == 3
    assert len(result.monthly_trend) == 2
    assert set(result.month_end["job_id"]) == {"J-1", "J-2", "J-3"}
    assert result.qa_report["co_numbers_ok"] is True

    for name in [
        "job_metrics.csv",
        "needs_attention.csv",
        "weekly_report.csv",
        "weekly_job_breakdown.csv",
        "monthly_trend.csv",
        "month_end_report.csv",
        "qa_report.json",
    ]:
        assert (processed / name).exists()
    health = json.loads((processed / "portfolio_health.json").read_text())
    assert health == result.health
    assert health["total_active_jobs"] == 2


def test_take_job_snapshots_appends(workspace):
    input_dir, settings_path, processed = workspace
    first = take_job_snapshots(input_dir, settings_path, snapshot_date=datetime(2024, 6, 30, 17))
    take_job_snapshots(input_dir, settings_path, snapshot_date=datetime(2024, 7, 7, 17))

    assert sorted(first["job_id"]) == ["J-1", "J-2"]
    stored = pd.read_csv(processed / "job_snapshots.csv")
    assert len(stored) == 4
    j1 = first.set_index("job_id").loc["J-1"]
    assert j1["contract_amount"] == pytest.approx(120000)
