from __future__ import annotations

from datetime import date, datetime

import pytest

from wip_core.breakdown import CostBreakdown
from wip_core.models import (
    ChangeOrder,
    ChangeOrderStatus,
    Job,
    JobStatus,
    JobType,
    LaborBillingType,
    TMSettings,
)


def labor(amount: float) -> CostBreakdown:
    return CostBreakdown(labor=amount)


def make_job(**overrides) -> Job:
    """A healthy fixed-price job: half spent, billed to earned, on schedule."""
    fields = dict(
        id="J-100",
        job_no="100",
        job_name="Warehouse Fitout",
        client="Acme",
        project_manager="Sam Lee",
        job_type=JobType.FIXED_PRICE,
        status=JobStatus.ACTIVE,
        start_date=date(2024, 1, 1),
        end_date=date(2024, 12, 31),
        as_of_date=date(2024, 6, 30),
        contract=labor(100000),
        budget=labor(80000),
        costs=labor(40000),
        cost_to_complete=labor(40000),
        invoiced=labor(50000),
    )
    fields.update(overrides)
    return Job(**fields)


def make_co(
    co_number: int, status: ChangeOrderStatus, contract: float, job_id: str = "J-100", **overrides
) -> ChangeOrder:
    fields = dict(
        id=f"{job_id}-CO{co_number}",
        job_id=job_id,
        co_number=co_number,
        status=status,
        contract=labor(contract),
    )
    fields.update(overrides)
    return ChangeOrder(**fields)


@pytest.fixture
def fixed_price_job() -> Job:
    """Contract 100k, budget 80k, 40k spent, 40k to go, 30k invoiced."""
    return make_job(invoiced=labor(30000))


@pytest.fixture
def tm_job() -> Job:
    return make_job(
        id="J-200",
        job_no="200",
        job_type=JobType.TIME_MATERIAL,
        contract=CostBreakdown(),
        budget=CostBreakdown(),
        costs=CostBreakdown(labor=10000, material=5000, other=1000),
        cost_to_complete=CostBreakdown(),
        invoiced=CostBreakdown(),
        tm_settings=TMSettings(
            labor_billing_type=LaborBillingType.MARKUP,
            labor_markup=1.5,
            material_markup=1.15,
            other_markup=1.1,
        ),
    )


@pytest.fixture
def change_orders():
    return [
        make_co(1, ChangeOrderStatus.APPROVED, 20000, budget=labor(15000)),
        make_co(2, ChangeOrderStatus.PENDING, 5000),
        make_co(3, ChangeOrderStatus.REJECTED, 7000),
    ]


@pytest.fixture
def now() -> datetime:
    return datetime(2024, 7, 1, 9, 0)
