from __future__ import annotations

from pathlib import Path
from typing import Dict, Mapping, Optional

import pandas as pd

from wip_core.utils import get_logger, normalize_columns


TABLE_JOBS = "jobs"
TABLE_CHANGE_ORDERS = "change_orders"
TABLE_SNAPSHOTS = "job_snapshots"

DEFAULT_SHEET_NAMES = {
    TABLE_JOBS: "Jobs",
    TABLE_CHANGE_ORDERS: "Change Orders",
    TABLE_SNAPSHOTS: "Job Snapshots",
}
REQUIRED_TABLES = (TABLE_JOBS,)

# identifiers stay text even when they look numeric
ID_COLUMNS = ("id", "job_no", "job_id")


def _ids_as_text(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    for col in ID_COLUMNS:
        if col in df.columns:
            df[col] = df[col].map(lambda v: v if pd.isna(v) else str(v).removesuffix(".0"))
    return df


def _read_excel_tables(path: Path, sheet_names: Mapping[str, str]) -> Dict[str, pd.DataFrame]:
    tables = {}
    with pd.ExcelFile(path, engine="openpyxl") as xls:
        for table, sheet in sheet_names.items():
            if sheet not in xls.sheet_names:
                continue
            tables[table] = xls.parse(sheet_name=sheet)
    return tables


def _read_csv_tables(path: Path, sheet_names: Mapping[str, str]) -> Dict[str, pd.DataFrame]:
    tables = {}
    for table in sheet_names:
        csv_path = path / f"{table}.csv"
        if csv_path.exists():
            tables[table] = pd.read_csv(csv_path)
    return tables


def read_input_tables(
    path: str | Path, sheet_names: Optional[Mapping[str, str]] = None
) -> Dict[str, pd.DataFrame]:
    """Read jobs, change orders and stored snapshots from an Excel workbook or a CSV folder.

    Excel input looks up each table by its sheet name; a folder is expected to
    hold `jobs.csv`, `change_orders.csv` and `job_snapshots.csv`. Only the jobs
    table is required; a missing optional table comes back empty.
    """
    logger = get_logger()
    input_path = Path(path)
    if not input_path.exists():
        raise FileNotFoundError(f"Input not found: {input_path}")

    sheet_names = {**DEFAULT_SHEET_NAMES, **(sheet_names or {})}
    if input_path.is_dir():
        logger.info("Loading CSV tables from: %s", input_path)
        tables = _read_csv_tables(input_path, sheet_names)
    elif input_path.suffix.lower() in (".xlsx", ".xlsm"):
        logger.info("Loading Excel: %s", input_path)
        tables = _read_excel_tables(input_path, sheet_names)
    else:
        raise ValueError(f"Unsupported input type: {input_path.suffix or input_path}")

    for table in REQUIRED_TABLES:
        if table not in tables:
            raise FileNotFoundError(f"Required table '{table}' not found in {input_path}")
    for table in sheet_names:
        if table not in tables:
            logger.info("Optional table '%s' not present; using empty table", table)
            tables[table] = pd.DataFrame()

    return {name: _ids_as_text(normalize_columns(df)) for name, df in tables.items()}


def save_csv(df: pd.DataFrame, path: str | Path) -> None:
    """Save dataframe to CSV."""
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False)
