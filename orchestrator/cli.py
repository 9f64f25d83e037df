"""
Orchestrator - CLI.

============================================================
RESPONSIBILITY
============================================================
Command-line interface for the traffic ingestion pipeline.

- Provides argparse-based CLI
- Selects the process role
- Loads configuration from the environment (and .env)
- Entry point for the application

============================================================
USAGE
============================================================
python -m orchestrator.cli --role all
python -m orchestrator.cli --role collector --once
python -m orchestrator.cli --rollup-date 2025-01-10

============================================================
"""

import argparse
import asyncio
import logging
import sys
from datetime import date
from typing import List, Optional

from core.config import PipelineSettings, load_settings
from core.exceptions import ConfigurationError
from core.logging_setup import setup_logging
from orchestrator.runtime import ROLE_ALL, ROLES, run_pipeline


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date '{value}', expected YYYY-MM-DD") from None


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="traffic-pipeline",
        description="Traffic incident and volume ingestion pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Roles:
  collector  - Poll the sources and publish to the stream
  processor  - Consume the stream and upsert into the store
  scheduler  - Run the snapshot and daily rollups
  all        - Run every role in one process

Examples:
  %(prog)s --role all                     # Run everything
  %(prog)s --role processor --once        # Drain the stream once and exit
  %(prog)s --rollup-date 2025-01-10       # Recompute one day's incident stats
        """
    )

    # --------------------------------------------------------
    # Role Selection
    # --------------------------------------------------------
    parser.add_argument(
        "--role", "-r",
        type=str,
        choices=list(ROLES),
        default=ROLE_ALL,
        help="Process role (default: all)",
    )

    # --------------------------------------------------------
    # Execution Options
    # --------------------------------------------------------
    execution_group = parser.add_argument_group("Execution Options")

    execution_group.add_argument(
        "--once",
        action="store_true",
        help="Run a single cycle and exit (no loop)",
    )

    execution_group.add_argument(
        "--rollup-date",
        type=_parse_date,
        metavar="YYYY-MM-DD",
        help="Run the daily rollup for this date and exit",
    )

    # --------------------------------------------------------
    # Logging Options
    # --------------------------------------------------------
    logging_group = parser.add_argument_group("Logging Options")

    logging_group.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: LOG_LEVEL or INFO)",
    )

    logging_group.add_argument(
        "--log-format",
        type=str,
        choices=["json", "text"],
        help="Logging format (default: LOG_FORMAT or text)",
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version="%(prog)s 1.0.0",
    )

    return parser


# ============================================================
# CLI VALIDATION
# ============================================================

def validate_args(args: argparse.Namespace) -> List[str]:
    """
    Validate CLI arguments.

    Returns:
        List of validation errors
    """
    errors = []
    if args.rollup_date is not None and args.once:
        errors.append("--rollup-date cannot be combined with --once")
    return errors


def print_banner(args: argparse.Namespace, settings: PipelineSettings) -> None:
    """Print startup banner."""
    print()
    print("=" * 60)
    print("  TRAFFIC INGESTION PIPELINE")
    print("=" * 60)
    print(f"  Role:       {args.role}")
    print(f"  Sources:    {settings.sources.data_source_mode}")
    print(f"  Stream:     {settings.stream.stream_key} ({settings.stream.consumer_group})")
    print(f"  Timezone:   {settings.scheduler.local_timezone}")
    if args.once:
        print("  Single cycle")
    if args.rollup_date:
        print(f"  Rollup:     {args.rollup_date.isoformat()}")
    print("=" * 60)
    print()


# ============================================================
# MAIN ENTRY POINT
# ============================================================

def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (default: sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    errors = validate_args(args)
    if errors:
        for error in errors:
            print(f"Error: {error}", file=sys.stderr)
        return 1

    try:
        settings = load_settings()
    except ConfigurationError as e:
        print(f"Configuration error: {e.message} {e.context}", file=sys.stderr)
        return 1

    setup_logging(
        level=args.log_level or settings.log_level,
        log_format=args.log_format or settings.log_format,
        process_role=args.role,
    )
    print_banner(args, settings)

    try:
        return asyncio.run(
            run_pipeline(
                settings,
                role=args.role,
                once=args.once,
                rollup_date=args.rollup_date,
            )
        )
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        return 130


# ============================================================
# MODULE EXECUTION
# ============================================================

if __name__ == "__main__":
    sys.exit(main())
