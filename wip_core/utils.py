from __future__ import annotations

import json
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
import yaml


LOGGER_NAME = "wip_core"

UNKNOWN_DATE_TOKENS = {"", "TBD", "N/A", "NONE", "NULL", "NAN", "NAT"}


def get_logger() -> logging.Logger:
    """Create or return a module-level logger."""
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter("%(asctime)s %(levelname)s %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
    return logger


def load_settings(path: str | Path) -> Dict[str, Any]:
    """Load YAML settings from disk."""
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Strip and snake_case column names."""
    df = df.copy()
    df.columns = [
        "_".join(c.strip().lower().split()) if isinstance(c, str) else c for c in df.columns
    ]
    return df


def ensure_unique(df: pd.DataFrame, keys: List[str]) -> bool:
    """Return True if dataframe has unique keys."""
    return bool(df.duplicated(subset=keys).sum() == 0)


def is_missing(value: Any) -> bool:
    """True for None, NaN, NaT and pandas NA."""
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def normalize_whitespace(value: Any) -> str:
    """Collapse whitespace to single spaces and strip ends."""
    if is_missing(value):
        return ""
    text = str(value)
    return " ".join(text.split()).strip()


def safe_ratio(numerator: float, denominator: float) -> float:
    """Divide, resolving a zero denominator to 0."""
    if not denominator:
        return 0.0
    return numerator / denominator


def parse_date(value: Any) -> Optional[date]:
    """Parse a date-like value; blanks and 'TBD' become None."""
    if is_missing(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = normalize_whitespace(value)
    if text.upper() in UNKNOWN_DATE_TOKENS:
        return None
    parsed = pd.to_datetime(text, errors="coerce")
    if pd.isna(parsed):
        return None
    return parsed.date()


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse a timestamp-like value into a naive datetime."""
    if is_missing(value):
        return None
    if isinstance(value, pd.Timestamp):
        value = value.to_pydatetime()
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = normalize_whitespace(value)
    if text.upper() in UNKNOWN_DATE_TOKENS:
        return None
    parsed = pd.to_datetime(text, errors="coerce", utc=True)
    if pd.isna(parsed):
        return None
    return parsed.tz_convert(None).to_pydatetime()


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up."""
    return int(np.floor(value + 0.5))


def write_json(path: str | Path, payload: Dict[str, Any]) -> None:
    """Write a JSON payload to disk."""
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, default=str)
