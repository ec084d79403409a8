from __future__ import annotations

import argparse
from pathlib import Path

from wip_core.build import build_reports
from wip_core.utils import parse_date


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Build WIP job metrics, trend reports and portfolio health")
    parser.add_argument("--input", required=True, help="Path to Excel workbook or folder of CSV tables")
    parser.add_argument("--settings", default="config/settings.yaml", help="Path to settings YAML")
    parser.add_argument("--as-of", default=None, help="Reference date (YYYY-MM-DD); defaults to latest job date")
    parser.add_argument("--output-dir", default=None, help="Override processed_dir from settings")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    build_reports(
        input_path=Path(args.input),
        settings_path=Path(args.settings),
        reference_date=parse_date(args.as_of),
        output_dir=args.output_dir,
    )


if __name__ == "__main__":
    main()
