"""
Job financial calculations.

Definitions
-----------
Percent complete  = costs to date / original budget (not capped; a job can
                    run past 100% of budget).
Earned revenue    = fixed-price: contract x min(percent complete, 1)
                    time & material: costs to date x category markup
                    (labor may instead bill rate x hours). A T&M job with
                    no settings is priced as fixed-price.
Billing position  = invoiced to date - earned revenue.
                    > 0 over billed, < 0 under billed, 0 even.
Forecasted profit = fixed-price: contract - (costs + cost to complete)
                    time & material: earned revenue - costs to date.
Margin            = forecasted profit / margin basis, where the basis is the
                    contract (fixed-price) or earned revenue (T&M).

Every function is total: zero denominators resolve to 0.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Dict, Iterable, Optional

from wip_core.breakdown import CostBreakdown, add_breakdowns, sum_breakdown
from wip_core.change_orders import (
    approved_change_orders,
    sum_approved_cos_budget,
    sum_approved_cos_contract,
    sum_approved_cos_cost_to_complete,
    sum_approved_cos_costs,
    sum_approved_cos_invoiced,
)
from wip_core.models import ChangeOrder, Job, LaborBillingType, TMSettings
from wip_core.utils import safe_ratio


LABEL_OVER_BILLED = "Over Billed"
LABEL_UNDER_BILLED = "Under Billed"
LABEL_EVEN = "Even"

POSITION_OVER_BILLED = "over-billed"
POSITION_UNDER_BILLED = "under-billed"
POSITION_ON_TRACK = "on-track"


@dataclass(frozen=True)
class EarnedRevenue:
    total: float
    labor: float
    material: float
    other: float


@dataclass(frozen=True)
class BillingDifference:
    difference: float
    is_over_billed: bool
    label: str
    position: str

    @property
    def is_under_billed(self) -> bool:
        return self.difference < 0


@dataclass(frozen=True)
class TargetVariance:
    profit: Optional[float]
    margin: Optional[float]


@dataclass(frozen=True)
class JobTotals:
    contract: CostBreakdown
    budget: CostBreakdown
    costs: CostBreakdown
    cost_to_complete: CostBreakdown
    invoiced: CostBreakdown
    co_contract: CostBreakdown
    co_budget: CostBreakdown
    co_costs: CostBreakdown
    co_cost_to_complete: CostBreakdown
    co_invoiced: CostBreakdown
    has_approved_cos: bool


class FixedPriceTerms:
    """Revenue recognised by cost-to-budget progress, capped at the contract."""

    def earned_revenue(self, job: Job) -> EarnedRevenue:
        recognised = min(calculate_percent_complete(job), 1.0)
        return EarnedRevenue(
            total=sum_breakdown(job.contract) * recognised,
            labor=job.contract.labor * recognised,
            material=job.contract.material * recognised,
            other=job.contract.other * recognised,
        )

    def forecasted_profit(self, job: Job) -> float:
        return sum_breakdown(job.contract) - calculate_forecasted_cost(job)

    def forecasted_revenue(self, job: Job) -> float:
        return sum_breakdown(job.contract)

    def margin_basis(self, job: Job) -> float:
        return sum_breakdown(job.contract)

    def profit_variance(self, job: Job) -> float:
        return self.forecasted_profit(job) - calculate_original_profit(job)


class TimeMaterialTerms:
    """Revenue accrues as cost plus markup; there is no contract ceiling."""

    def earned_revenue(self, job: Job) -> EarnedRevenue:
        tm = job.tm_settings
        if tm.labor_billing_type == LaborBillingType.FIXED_RATE:
            labor = (tm.labor_bill_rate or 0.0) * (tm.labor_hours or 0.0)
        else:
            labor = job.costs.labor * (tm.labor_markup or 1.0)
        material = job.costs.material * (tm.material_markup or 1.0)
        other = job.costs.other * (tm.other_markup or 1.0)
        return EarnedRevenue(total=labor + material + other, labor=labor, material=material, other=other)

    def forecasted_profit(self, job: Job) -> float:
        return self.earned_revenue(job).total - sum_breakdown(job.costs)

    def forecasted_revenue(self, job: Job) -> float:
        return self.earned_revenue(job).total

    def margin_basis(self, job: Job) -> float:
        return self.earned_revenue(job).total

    def profit_variance(self, job: Job) -> float:
        # no original baseline separate from current earned economics
        return self.forecasted_profit(job)


FIXED_PRICE_TERMS = FixedPriceTerms()
TIME_MATERIAL_TERMS = TimeMaterialTerms()


def terms_for(job: Job):
    """Return the pricing variant for a job.

    A T&M job with no settings is priced against its contract like a
    fixed-price job.
    """
    if job.is_time_material and job.tm_settings is not None:
        return TIME_MATERIAL_TERMS
    return FIXED_PRICE_TERMS


def default_tm_settings(overrides: Optional[Dict[str, float]] = None) -> TMSettings:
    """Default T&M settings for new T&M jobs; `overrides` replaces individual markups."""
    markups = {"labor_markup": 1.5, "material_markup": 1.15, "other_markup": 1.10}
    markups.update({k: float(v) for k, v in (overrides or {}).items() if k in markups})
    return TMSettings(labor_billing_type=LaborBillingType.MARKUP, **markups)


def calculate_percent_complete(job: Job) -> float:
    """Costs to date over budget as a fraction; 0 when there is no budget."""
    return safe_ratio(sum_breakdown(job.costs), sum_breakdown(job.budget))


def calculate_earned_revenue(job: Job) -> EarnedRevenue:
    """Earned revenue to date, by category and in total."""
    return job.terms.earned_revenue(job)


def calculate_billing_difference(job: Job) -> BillingDifference:
    """Invoiced minus earned; positive is over billed."""
    difference = sum_breakdown(job.invoiced) - calculate_earned_revenue(job).total
    if difference > 0:
        return BillingDifference(difference, True, LABEL_OVER_BILLED, POSITION_OVER_BILLED)
    if difference < 0:
        return BillingDifference(difference, False, LABEL_UNDER_BILLED, POSITION_UNDER_BILLED)
    return BillingDifference(0.0, False, LABEL_EVEN, POSITION_ON_TRACK)


def calculate_forecasted_cost(job: Job) -> float:
    """Estimate at completion: costs to date plus cost to complete."""
    return sum_breakdown(job.costs) + sum_breakdown(job.cost_to_complete)


def calculate_forecasted_revenue(job: Job) -> float:
    return job.terms.forecasted_revenue(job)


def calculate_forecasted_profit(job: Job) -> float:
    """Forecasted profit at completion (fixed-price) or to date (T&M)."""
    return job.terms.forecasted_profit(job)


def calculate_original_profit(job: Job) -> float:
    """Contract minus original budget."""
    return sum_breakdown(job.contract) - sum_breakdown(job.budget)


def calculate_forecasted_margin(job: Job) -> float:
    """Forecasted profit over the job's margin basis, as a fraction."""
    return safe_ratio(calculate_forecasted_profit(job), job.terms.margin_basis(job))


def calculate_profit_variance(job: Job) -> float:
    return job.terms.profit_variance(job)


def calculate_target_variance(job: Job) -> TargetVariance:
    """Variance against PM-set targets. None means no target was set."""
    profit = None
    margin = None
    if job.target_profit is not None:
        profit = calculate_forecasted_profit(job) - job.target_profit
    if job.target_margin is not None:
        margin = calculate_forecasted_margin(job) - job.target_margin
    return TargetVariance(profit=profit, margin=margin)


def get_job_totals_with_cos(job: Job, change_orders: Iterable[ChangeOrder] = ()) -> JobTotals:
    """Job breakdowns with approved and completed change orders folded in."""
    change_orders = [co for co in change_orders if co.job_id == job.id]
    co_contract = sum_approved_cos_contract(change_orders)
    co_budget = sum_approved_cos_budget(change_orders)
    co_costs = sum_approved_cos_costs(change_orders)
    co_cost_to_complete = sum_approved_cos_cost_to_complete(change_orders)
    co_invoiced = sum_approved_cos_invoiced(change_orders)
    return JobTotals(
        contract=add_breakdowns(job.contract, co_contract),
        budget=add_breakdowns(job.budget, co_budget),
        costs=add_breakdowns(job.costs, co_costs),
        cost_to_complete=add_breakdowns(job.cost_to_complete, co_cost_to_complete),
        invoiced=add_breakdowns(job.invoiced, co_invoiced),
        co_contract=co_contract,
        co_budget=co_budget,
        co_costs=co_costs,
        co_cost_to_complete=co_cost_to_complete,
        co_invoiced=co_invoiced,
        has_approved_cos=bool(approved_change_orders(change_orders)),
    )


def apply_change_orders(job: Job, change_orders: Iterable[ChangeOrder] = ()) -> Job:
    """Return a copy of the job whose breakdowns include approved change orders."""
    totals = get_job_totals_with_cos(job, change_orders)
    if not totals.has_approved_cos:
        return job
    return replace(
        job,
        contract=totals.contract,
        budget=totals.budget,
        costs=totals.costs,
        cost_to_complete=totals.cost_to_complete,
        invoiced=totals.invoiced,
    )


def calculate_forecasted_profit_with_cos(job: Job, change_orders: Iterable[ChangeOrder] = ()) -> float:
    """Forecasted profit re-run against CO-adjusted totals."""
    return calculate_forecasted_profit(apply_change_orders(job, change_orders))
