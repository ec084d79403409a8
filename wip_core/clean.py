from __future__ import annotations

import re
from dataclasses import replace
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Type, TypeVar

import pandas as pd

from wip_core.breakdown import CostBreakdown
from wip_core.models import (
    MAX_MOBILIZATIONS,
    ChangeOrder,
    ChangeOrderStatus,
    Job,
    JobFinancialSnapshot,
    JobStatus,
    JobType,
    LaborBillingType,
    MobilizationPhase,
    TMSettings,
)
from wip_core.utils import (
    get_logger,
    is_missing,
    normalize_columns,
    normalize_whitespace,
    parse_date,
    parse_datetime,
)


E = TypeVar("E", bound=Enum)

BREAKDOWN_FIELDS = ("labor", "material", "other")
JOB_BREAKDOWNS = ("contract", "budget", "costs", "cost_to_complete", "invoiced")
TM_FIELDS = (
    "tm_labor_billing_type",
    "tm_labor_bill_rate",
    "tm_labor_hours",
    "tm_labor_markup",
    "tm_material_markup",
    "tm_other_markup",
)
TRUTHY_VALUES = {"true", "t", "yes", "y", "1", "x"}

JOB_TYPE_ALIASES = {
    "fixedprice": JobType.FIXED_PRICE,
    "fixed": JobType.FIXED_PRICE,
    "fp": JobType.FIXED_PRICE,
    "lumpsum": JobType.FIXED_PRICE,
    "timematerial": JobType.TIME_MATERIAL,
    "timematerials": JobType.TIME_MATERIAL,
    "timeandmaterial": JobType.TIME_MATERIAL,
    "timeandmaterials": JobType.TIME_MATERIAL,
    "tm": JobType.TIME_MATERIAL,
    "t&m": JobType.TIME_MATERIAL,
    "time&material": JobType.TIME_MATERIAL,
    "time&materials": JobType.TIME_MATERIAL,
}

_AMOUNT_NOISE = re.compile(r"[$,\s]")


def _enum_key(value: Any) -> str:
    return re.sub(r"[\s_\-]", "", normalize_whitespace(value).lower())


def parse_enum(
    enum_cls: Type[E],
    value: Any,
    aliases: Optional[Mapping[str, E]] = None,
    default: Optional[E] = None,
) -> E:
    """Match a loosely formatted value ("OnHold", "on hold") to an enum member."""
    key = _enum_key(value)
    if not key:
        if default is None:
            raise ValueError(f"Missing {enum_cls.__name__} value")
        return default
    for member in enum_cls:
        if _enum_key(member.value) == key or member.name.lower().replace("_", "") == key:
            return member
    if aliases and key in aliases:
        return aliases[key]
    raise ValueError(f"Unknown {enum_cls.__name__}: {value!r}")


def to_amount(value: Any) -> float:
    """Coerce a money-like value to float; blanks and junk become 0."""
    if is_missing(value):
        return 0.0
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    text = _AMOUNT_NOISE.sub("", str(value))
    negative = text.startswith("(") and text.endswith(")")
    text = text.strip("()")
    if not text:
        return 0.0
    try:
        amount = float(text)
    except ValueError:
        return 0.0
    return -amount if negative else amount


def to_optional_amount(value: Any) -> Optional[float]:
    if is_missing(value) or normalize_whitespace(value) == "":
        return None
    return to_amount(value)


def to_bool(value: Any, default: bool = False) -> bool:
    if is_missing(value):
        return default
    if isinstance(value, bool):
        return value
    return normalize_whitespace(value).lower() in TRUTHY_VALUES


def to_int(value: Any, default: int = 0) -> int:
    if is_missing(value):
        return default
    try:
        return int(float(str(value).strip()))
    except ValueError:
        return default


def parse_breakdown(record: Mapping[str, Any], prefix: str) -> CostBreakdown:
    """Read `<prefix>_labor`, `<prefix>_material` and `<prefix>_other` from a flat record."""
    return CostBreakdown(**{name: to_amount(record.get(f"{prefix}_{name}")) for name in BREAKDOWN_FIELDS})


def parse_tm_settings(record: Mapping[str, Any]) -> Optional[TMSettings]:
    """T&M terms from `tm_*` columns; None when the record has none."""
    if all(is_missing(record.get(name)) or normalize_whitespace(record.get(name)) == "" for name in TM_FIELDS):
        return None
    return TMSettings(
        labor_billing_type=parse_enum(
            LaborBillingType, record.get("tm_labor_billing_type"), default=LaborBillingType.MARKUP
        ),
        labor_bill_rate=to_optional_amount(record.get("tm_labor_bill_rate")),
        labor_hours=to_optional_amount(record.get("tm_labor_hours")),
        labor_markup=to_optional_amount(record.get("tm_labor_markup")),
        material_markup=to_optional_amount(record.get("tm_material_markup")),
        other_markup=to_optional_amount(record.get("tm_other_markup")),
    )


def parse_mobilizations(record: Mapping[str, Any]) -> tuple:
    phases = []
    for number in range(1, MAX_MOBILIZATIONS + 1):
        prefix = f"mobilization_{number}"
        mobilize = parse_date(record.get(f"{prefix}_mobilize_date"))
        demobilize = parse_date(record.get(f"{prefix}_demobilize_date"))
        if mobilize is None and demobilize is None:
            continue
        phases.append(
            MobilizationPhase(
                id=number,
                enabled=to_bool(record.get(f"{prefix}_enabled"), default=True),
                mobilize_date=mobilize,
                demobilize_date=demobilize,
                description=normalize_whitespace(record.get(f"{prefix}_description")),
            )
        )
    return tuple(phases)


def job_from_record(record: Mapping[str, Any]) -> Job:
    """Build a Job from one flat row of the jobs table."""
    job_no = normalize_whitespace(record.get("job_no"))
    job_id = normalize_whitespace(record.get("id")) or job_no
    if not job_id:
        raise ValueError("Job record has neither id nor job_no")

    return Job(
        id=job_id,
        job_no=job_no,
        job_name=normalize_whitespace(record.get("job_name")),
        client=normalize_whitespace(record.get("client")),
        project_manager=normalize_whitespace(record.get("project_manager")),
        job_type=parse_enum(JobType, record.get("job_type"), JOB_TYPE_ALIASES, default=JobType.FIXED_PRICE),
        status=parse_enum(JobStatus, record.get("status"), default=JobStatus.ACTIVE),
        start_date=parse_date(record.get("start_date")),
        end_date=parse_date(record.get("end_date")),
        as_of_date=parse_date(record.get("as_of_date")),
        on_hold_date=parse_date(record.get("on_hold_date")),
        target_end_date=parse_date(record.get("target_end_date")),
        last_updated=parse_datetime(record.get("last_updated")),
        tm_settings=parse_tm_settings(record),
        mobilizations=parse_mobilizations(record),
        target_profit=to_optional_amount(record.get("target_profit")),
        target_margin=to_optional_amount(record.get("target_margin")),
        **{name: parse_breakdown(record, name) for name in JOB_BREAKDOWNS},
    )


def change_order_from_record(record: Mapping[str, Any]) -> ChangeOrder:
    """Build a ChangeOrder from one flat row of the change orders table."""
    job_id = normalize_whitespace(record.get("job_id"))
    if not job_id:
        raise ValueError("Change order record has no job_id")
    co_number = to_int(record.get("co_number"))
    co_id = normalize_whitespace(record.get("id")) or f"{job_id}-CO{co_number}"

    return ChangeOrder(
        id=co_id,
        job_id=job_id,
        co_number=co_number,
        description=normalize_whitespace(record.get("description")),
        status=parse_enum(ChangeOrderStatus, record.get("status"), default=ChangeOrderStatus.PENDING),
        co_type=parse_enum(
            JobType, record.get("co_type", record.get("type")), JOB_TYPE_ALIASES, default=JobType.FIXED_PRICE
        ),
        tm_settings=parse_tm_settings(record),
        submitted_date=parse_date(record.get("submitted_date")),
        approved_date=parse_date(record.get("approved_date")),
        completed_date=parse_date(record.get("completed_date")),
        **{name: parse_breakdown(record, name) for name in JOB_BREAKDOWNS},
    )


def snapshot_from_record(record: Mapping[str, Any]) -> JobFinancialSnapshot:
    """Build a JobFinancialSnapshot from one stored snapshot row."""
    job_id = normalize_whitespace(record.get("job_id"))
    snapshot_date = parse_datetime(record.get("snapshot_date"))
    if not job_id or snapshot_date is None:
        raise ValueError("Snapshot record needs job_id and snapshot_date")

    label = normalize_whitespace(record.get("billing_position_label"))
    return JobFinancialSnapshot(
        job_id=job_id,
        snapshot_date=snapshot_date,
        contract_amount=to_amount(record.get("contract_amount")),
        original_budget_total=to_amount(record.get("original_budget_total")),
        original_profit_target=to_amount(record.get("original_profit_target")),
        original_margin_target=to_amount(record.get("original_margin_target")),
        earned_to_date=to_amount(record.get("earned_to_date")),
        invoiced_to_date=to_amount(record.get("invoiced_to_date")),
        cost_labor_to_date=to_amount(record.get("cost_labor_to_date")),
        cost_material_to_date=to_amount(record.get("cost_material_to_date")),
        cost_other_to_date=to_amount(record.get("cost_other_to_date")),
        total_cost_to_date=to_amount(record.get("total_cost_to_date")),
        forecasted_cost_final=to_optional_amount(record.get("forecasted_cost_final")),
        forecasted_revenue_final=to_optional_amount(record.get("forecasted_revenue_final")),
        forecasted_profit_final=to_optional_amount(record.get("forecasted_profit_final")),
        forecasted_margin_final=to_optional_amount(record.get("forecasted_margin_final")),
        billing_position_numeric=to_optional_amount(record.get("billing_position_numeric")),
        billing_position_label=label or None,
        at_risk_margin=to_bool(record.get("at_risk_margin")),
        behind_schedule=to_bool(record.get("behind_schedule")),
        id=normalize_whitespace(record.get("id")) or None,
    )


def count_unparseable_amounts(df: pd.DataFrame, columns: List[str]) -> Dict[str, int]:
    """Non-blank cells per column that to_amount would coerce to 0."""
    counts = {}
    for col in columns:
        if col not in df.columns:
            continue
        raw = df[col].astype(str).str.replace(_AMOUNT_NOISE, "", regex=True).str.strip("()")
        present = df[col].notna() & raw.ne("")
        bad = int((pd.to_numeric(raw, errors="coerce").isna() & present).sum())
        if bad:
            counts[col] = bad
    return counts


def _amount_columns(prefixes) -> List[str]:
    return [f"{p}_{name}" for p in prefixes for name in BREAKDOWN_FIELDS]


def _records(df: pd.DataFrame) -> List[Dict[str, Any]]:
    df = normalize_columns(df)
    return df.to_dict(orient="records")


def _warn_coerced(kind: str, df: pd.DataFrame, columns: List[str]) -> None:
    coerced = count_unparseable_amounts(normalize_columns(df), columns)
    if coerced:
        get_logger().warning("%s: coerced unparseable amounts to 0 %s", kind, coerced)


def jobs_from_frame(df: pd.DataFrame, tm_defaults: Optional[TMSettings] = None) -> List[Job]:
    """Parse the jobs table into Job objects.

    T&M rows without any `tm_*` columns get `tm_defaults` when given, otherwise
    they keep no settings and are priced as fixed-price.
    """
    logger = get_logger()
    _warn_coerced("jobs", df, _amount_columns(JOB_BREAKDOWNS))
    jobs = [job_from_record(record) for record in _records(df)]
    if tm_defaults is not None:
        filled = [job.id for job in jobs if job.is_time_material and job.tm_settings is None]
        if filled:
            logger.info("Applied default T&M settings to %s jobs", len(filled))
            jobs = [
                replace(job, tm_settings=tm_defaults) if job.id in filled else job
                for job in jobs
            ]
    logger.info("Parsed %s jobs", len(jobs))
    return jobs


def change_orders_from_frame(df: pd.DataFrame) -> List[ChangeOrder]:
    """Parse the change orders table into ChangeOrder objects."""
    _warn_coerced("change orders", df, _amount_columns(JOB_BREAKDOWNS))
    change_orders = [change_order_from_record(record) for record in _records(df)]
    get_logger().info("Parsed %s change orders", len(change_orders))
    return change_orders


def snapshots_from_frame(df: pd.DataFrame) -> List[JobFinancialSnapshot]:
    """Parse stored job financial snapshots."""
    snapshots = [snapshot_from_record(record) for record in _records(df)]
    get_logger().info("Parsed %s job snapshots", len(snapshots))
    return snapshots


def snapshots_to_frame(snapshots: List[JobFinancialSnapshot]) -> pd.DataFrame:
    """Flatten snapshots to the stored table layout."""
    columns = list(JobFinancialSnapshot.__dataclass_fields__)
    return pd.DataFrame([{c: getattr(s, c) for c in columns} for s in snapshots], columns=columns)
