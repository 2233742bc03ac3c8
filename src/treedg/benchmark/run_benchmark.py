"""
treedg - Host/Device Residual Cross-Validation

CLI tool comparing the sequential host reference with the Numba parallel
pipeline stage by stage.

Usage:
    treedg-validate
    treedg-validate --case advection_2d_mortars
    treedg-validate --runs 3
    treedg-validate --dry-run
"""

import sys
import argparse
from pathlib import Path
from typing import List, Optional

from .config_loader import ConfigLoader
from .result_recorder import ResultRecorder
from .runner import ValidationRunner


HERE = Path(__file__).resolve().parent
DEFAULT_CONFIG = HERE / "validation_cases.json"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="treedg-validate",
        description="Stage-by-stage cross-validation of the DGSEM residual pipelines",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  treedg-validate                                # All enabled cases
  treedg-validate --case euler_2d_shock_capturing
  treedg-validate --max-elements 64              # Small meshes only
  treedg-validate --dry-run                      # Preview without running
  treedg-validate --runs 3                       # 3 runs per case
        """
    )

    parser.add_argument(
        "--config", "-c",
        type=str,
        default=None,
        help="Path to the validation cases JSON (default: bundled validation_cases.json)"
    )

    parser.add_argument(
        "--case",
        type=str,
        default=None,
        help="Run only this case"
    )

    parser.add_argument(
        "--max-elements",
        type=int,
        default=None,
        help="Maximum base element count"
    )

    parser.add_argument(
        "--runs", "-r",
        type=int,
        default=None,
        help="Override number of runs per case"
    )

    parser.add_argument(
        "--dry-run", "-n",
        action="store_true",
        help="Show case matrix without executing"
    )

    parser.add_argument(
        "--clear",
        action="store_true",
        help="Remove previous result files before running"
    )

    parser.add_argument(
        "--output-dir", "-o",
        type=str,
        default=None,
        help="Output directory for the CSV/JSON results (default: ./validation_results)"
    )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    config_path = Path(args.config) if args.config else DEFAULT_CONFIG
    if not config_path.is_absolute():
        config_path = Path.cwd() / config_path

    if not config_path.exists():
        print(f"Error: Config file not found: {config_path}")
        return 1

    try:
        config = ConfigLoader(config_path)
    except (ValueError, KeyError) as e:
        print(f"Error loading configuration: {e}")
        return 1

    if args.runs:
        config.execution.runs_per_test = args.runs

    output_dir = Path(args.output_dir) if args.output_dir else Path.cwd() / "validation_results"
    recorder = ResultRecorder(output_dir)

    if args.clear:
        count = recorder.clear_records()
        print(f"Cleared {count} existing records")

    runner = ValidationRunner(config, recorder)
    results, error = runner.run(
        case_filter=args.case,
        max_elements=args.max_elements,
        dry_run=args.dry_run
    )

    if error:
        print(f"\nValidation failed: {error}")
        return 1

    if any(not r.success for r in results):
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
