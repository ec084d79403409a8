from __future__ import annotations

import argparse
from pathlib import Path

from wip_core.build import take_job_snapshots
from wip_core.utils import parse_datetime


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Capture financial snapshots for open jobs")
    parser.add_argument("--input", required=True, help="Path to Excel workbook or folder of CSV tables")
    parser.add_argument("--settings", default="config/settings.yaml", help="Path to settings YAML")
    parser.add_argument("--output", default=None, help="Snapshot CSV to append to")
    parser.add_argument("--at", default=None, help="Snapshot timestamp; defaults to now")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    take_job_snapshots(
        input_path=Path(args.input),
        settings_path=Path(args.settings),
        output_path=args.output,
        snapshot_date=parse_datetime(args.at),
    )


if __name__ == "__main__":
    main()
