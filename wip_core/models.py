from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import List, Optional, Tuple

from wip_core.breakdown import CostBreakdown


class JobType(str, Enum):
    FIXED_PRICE = "fixed-price"
    TIME_MATERIAL = "time-material"


class JobStatus(str, Enum):
    DRAFT = "Draft"
    FUTURE = "Future"
    ACTIVE = "Active"
    ON_HOLD = "On Hold"
    COMPLETED = "Completed"
    ARCHIVED = "Archived"


class ChangeOrderStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


class LaborBillingType(str, Enum):
    FIXED_RATE = "fixed-rate"
    MARKUP = "markup"


OPEN_STATUSES = (JobStatus.ACTIVE, JobStatus.ON_HOLD)
APPROVED_CO_STATUSES = (ChangeOrderStatus.APPROVED, ChangeOrderStatus.COMPLETED)
MAX_MOBILIZATIONS = 4


@dataclass(frozen=True)
class TMSettings:
    """Billing terms for a time-and-materials job.

    Markups are multipliers (1.5 means cost plus 50%). A markup left unset
    bills at cost; an unset labor rate or hour count bills nothing.
    """

    labor_billing_type: LaborBillingType = LaborBillingType.MARKUP
    labor_bill_rate: Optional[float] = None
    labor_hours: Optional[float] = None
    labor_markup: Optional[float] = None
    material_markup: Optional[float] = None
    other_markup: Optional[float] = None


@dataclass(frozen=True)
class MobilizationPhase:
    id: int
    enabled: bool = True
    mobilize_date: Optional[date] = None
    demobilize_date: Optional[date] = None
    description: str = ""


@dataclass(frozen=True)
class Note:
    id: str
    text: str
    date: Optional[datetime] = None


@dataclass(frozen=True)
class Job:
    id: str
    job_no: str = ""
    job_name: str = ""
    client: str = ""
    project_manager: str = ""
    job_type: JobType = JobType.FIXED_PRICE
    status: JobStatus = JobStatus.ACTIVE
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    as_of_date: Optional[date] = None
    on_hold_date: Optional[date] = None
    target_end_date: Optional[date] = None
    last_updated: Optional[datetime] = None
    contract: CostBreakdown = field(default_factory=CostBreakdown)
    budget: CostBreakdown = field(default_factory=CostBreakdown)
    costs: CostBreakdown = field(default_factory=CostBreakdown)
    cost_to_complete: CostBreakdown = field(default_factory=CostBreakdown)
    invoiced: CostBreakdown = field(default_factory=CostBreakdown)
    tm_settings: Optional[TMSettings] = None
    mobilizations: Tuple[MobilizationPhase, ...] = ()
    target_profit: Optional[float] = None
    target_margin: Optional[float] = None
    notes: Tuple[Note, ...] = ()

    @property
    def is_time_material(self) -> bool:
        return self.job_type == JobType.TIME_MATERIAL

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    @property
    def terms(self):
        """Pricing variant that owns earned revenue, profit and margin basis."""
        from wip_core.calculations import terms_for

        return terms_for(self)

    def with_financials(
        self,
        costs: Optional[CostBreakdown] = None,
        cost_to_complete: Optional[CostBreakdown] = None,
        invoiced: Optional[CostBreakdown] = None,
        as_of_date: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> "Job":
        """Return a copy with updated period financials and a fresh last_updated."""
        return replace(
            self,
            costs=costs if costs is not None else self.costs,
            cost_to_complete=cost_to_complete if cost_to_complete is not None else self.cost_to_complete,
            invoiced=invoiced if invoiced is not None else self.invoiced,
            as_of_date=as_of_date if as_of_date is not None else self.as_of_date,
            last_updated=now or datetime.now(),
        )

    def with_status(self, status: JobStatus, now: Optional[datetime] = None) -> "Job":
        """Return a copy moved to a new status; going on hold stamps on_hold_date."""
        stamp = now or datetime.now()
        on_hold_date = self.on_hold_date
        if status == JobStatus.ON_HOLD and self.status != JobStatus.ON_HOLD:
            on_hold_date = stamp.date()
        elif status != JobStatus.ON_HOLD:
            on_hold_date = None
        return replace(self, status=status, on_hold_date=on_hold_date, last_updated=stamp)


@dataclass(frozen=True)
class ChangeOrder:
    id: str
    job_id: str
    co_number: int = 0
    description: str = ""
    status: ChangeOrderStatus = ChangeOrderStatus.PENDING
    co_type: JobType = JobType.FIXED_PRICE
    contract: CostBreakdown = field(default_factory=CostBreakdown)
    budget: CostBreakdown = field(default_factory=CostBreakdown)
    costs: CostBreakdown = field(default_factory=CostBreakdown)
    invoiced: CostBreakdown = field(default_factory=CostBreakdown)
    cost_to_complete: CostBreakdown = field(default_factory=CostBreakdown)
    tm_settings: Optional[TMSettings] = None
    submitted_date: Optional[date] = None
    approved_date: Optional[date] = None
    completed_date: Optional[date] = None

    @property
    def is_approved(self) -> bool:
        return self.status in APPROVED_CO_STATUSES


@dataclass(frozen=True)
class JobFinancialSnapshot:
    job_id: str
    snapshot_date: datetime
    contract_amount: float = 0.0
    original_budget_total: float = 0.0
    original_profit_target: float = 0.0
    original_margin_target: float = 0.0
    earned_to_date: float = 0.0
    invoiced_to_date: float = 0.0
    cost_labor_to_date: float = 0.0
    cost_material_to_date: float = 0.0
    cost_other_to_date: float = 0.0
    total_cost_to_date: float = 0.0
    forecasted_cost_final: Optional[float] = None
    forecasted_revenue_final: Optional[float] = None
    forecasted_profit_final: Optional[float] = None
    forecasted_margin_final: Optional[float] = None
    billing_position_numeric: Optional[float] = None
    billing_position_label: Optional[str] = None
    at_risk_margin: bool = False
    behind_schedule: bool = False
    id: Optional[str] = None


@dataclass(frozen=True)
class PeriodSnapshot:
    """A stored weekly or monthly company rollup and the jobs it captured."""

    cadence: str
    year: int
    period: int
    period_start: date
    period_end: date
    total_earned_revenue: float = 0.0
    total_contract_value: float = 0.0
    total_costs_to_date: float = 0.0
    total_invoiced: float = 0.0
    total_over_billing: float = 0.0
    total_under_billing: float = 0.0
    active_job_count: int = 0
    completed_job_count: int = 0
    jobs: Tuple[Job, ...] = ()
    created_at: Optional[datetime] = None

    @property
    def key(self) -> Tuple[int, int]:
        return (self.year, self.period)


def open_jobs(jobs: List[Job]) -> List[Job]:
    """Jobs in Active or On Hold status."""
    return [job for job in jobs if job.is_open]
