import logging
from datetime import date, datetime

import pandas as pd

from wip_core.utils import (
    ensure_unique,
    get_logger,
    load_settings,
    normalize_columns,
    parse_date,
    parse_datetime,
    round_half_up,
    safe_ratio,
    write_json,
)


def test_logger_is_configured_once():
    logger = get_logger()
    assert logger is get_logger()
    assert logger.name == "wip_core"
    assert len(logger.handlers) == 1
    assert logger.level == logging.INFO


def test_safe_ratio():
    assert safe_ratio(5, 0) == 0
    assert safe_ratio(5, 2) == 2.5


def test_round_half_up():
    assert round_half_up(79.6) == 80
    assert round_half_up(80.5) == 81
    assert round_half_up(2.5) == 3
    assert round_half_up(79.4) == 79


def test_parse_date():
    assert parse_date("2024-03-01") == date(2024, 3, 1)
    assert parse_date(" tbd ") is None
    assert parse_date(None) is None
    assert parse_date("not a date") is None
    assert parse_date(datetime(2024, 3, 1, 12)) == date(2024, 3, 1)


def test_parse_datetime_drops_timezone():
    assert parse_datetime("2024-03-01T10:00:00+02:00") == datetime(2024, 3, 1, 8, 0)
    assert parse_datetime(pd.Timestamp("2024-03-01 10:00")) == datetime(2024, 3, 1, 10, 0)
    assert parse_datetime("") is None


def test_normalize_columns_and_uniqueness():
    df = normalize_columns(pd.DataFrame({" Job No ": [1, 1], "Status": ["a", "b"]}))
    assert list(df.columns) == ["job_no", "status"]
    assert ensure_unique(df, ["job_no", "status"]) is True
    assert ensure_unique(df, ["job_no"]) is False


def test_settings_and_json_round_trip(tmp_path):
    settings_path = tmp_path / "settings.yaml"
    settings_path.write_text("processed_dir: out\nreports:\n  weekly_lookback: 5\n")
    assert load_settings(settings_path) == {"processed_dir": "out", "reports": {"weekly_lookback": 5}}

    write_json(tmp_path / "out.json", {"when": date(2024, 1, 1)})
    assert '"2024-01-01"' in (tmp_path / "out.json").read_text()
