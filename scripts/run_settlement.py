#!/usr/bin/env python3
"""
Run the monthly host platform-fee settlement.

Settles every host with activity in the period: one settlement expense per
host (Platform Fees, Platform Tips, Shared Revenue), a platform credit for
what the host collected, and an audit CSV attached to the expense.  The run
report is printed to stdout as JSON; structured logs go to stderr.

Usage:
    python3 scripts/run_settlement.py [options]

Examples:
    # Previous calendar month (the scheduled invocation)
    python3 scripts/run_settlement.py --database-url postgresql://...

    # A specific month
    python3 scripts/run_settlement.py --period 2026-09

    # An explicit window, end exclusive
    python3 scripts/run_settlement.py --start 2026-09-01 --end 2026-09-16

    # Re-attach audit exports that failed earlier
    python3 scripts/run_settlement.py --retry-exports

    # First deployment: create the settlement tables, then run
    python3 scripts/run_settlement.py --create-tables --period 2026-09

Exit codes:
    0  every host settled or skipped
    1  at least one host failed
    2  the run could not start (configuration, database or host listing)
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import signal
import sys
from datetime import datetime, timezone
from pathlib import Path
from uuid import UUID, uuid4

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

DB_URL_ENV = "SETTLEMENT_DATABASE_URL"
EXIT_OK = 0
EXIT_HOST_FAILURES = 1
EXIT_FATAL = 2


def _parse_date(value: str) -> datetime:
    return datetime.strptime(value, "%Y-%m-%d").replace(tzinfo=timezone.utc)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Settle platform fees, tips and shared revenue owed by hosts.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--database-url",
        default=os.environ.get(DB_URL_ENV),
        help=f"Database URL (default: ${DB_URL_ENV}).",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Settlement configuration YAML (default: bundled default set).",
    )
    window = parser.add_mutually_exclusive_group()
    window.add_argument(
        "--period",
        default=None,
        help="Calendar month to settle, YYYY-MM (default: previous month).",
    )
    window.add_argument(
        "--start",
        type=_parse_date,
        default=None,
        help="Window start, YYYY-MM-DD (requires --end).",
    )
    parser.add_argument(
        "--end",
        type=_parse_date,
        default=None,
        help="Window end, YYYY-MM-DD, exclusive.",
    )
    parser.add_argument(
        "--storage-dir",
        type=Path,
        default=Path("settlement-exports"),
        help="Directory receiving audit CSV exports.",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Hosts processed in parallel (default: run.max_workers from config).",
    )
    parser.add_argument(
        "--retry-exports",
        action="store_true",
        help="Only re-attach audit exports left pending by earlier runs.",
    )
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables before running (first deployment and tests).",
    )
    parser.add_argument(
        "--actor-id",
        type=UUID,
        default=None,
        help="Actor UUID recorded on created rows (default: new UUID).",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Log level (default: INFO).",
    )
    args = parser.parse_args(argv)

    if (args.start is None) != (args.end is None):
        parser.error("--start and --end must be given together")
    if args.workers is not None and args.workers < 1:
        parser.error("--workers must be at least 1")
    if not args.database_url:
        parser.error(f"--database-url or ${DB_URL_ENV} is required")
    return args


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    import yaml
    from sqlalchemy.exc import SQLAlchemyError

    from settlement_batch import SettlementOrchestrator
    from settlement_kernel.db.engine import create_tables
    from settlement_kernel.domain.period import SettlementPeriod
    from settlement_kernel.exceptions import HostEnumerationError, SettlementError
    from settlement_kernel.logging_config import configure_logging

    configure_logging(level=getattr(logging, args.log_level.upper(), logging.INFO))

    try:
        if args.period:
            period = SettlementPeriod.parse_month(args.period)
        elif args.start is not None:
            period = SettlementPeriod(start=args.start, end=args.end)
        else:
            period = None
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_FATAL

    actor_id = args.actor_id or uuid4()

    try:
        orchestrator = SettlementOrchestrator.from_database_url(
            args.database_url,
            config_path=args.config,
            storage_dir=args.storage_dir,
            actor_id=actor_id,
            max_workers=args.workers,
        )
        if args.create_tables:
            create_tables()
    except (OSError, SettlementError, SQLAlchemyError, yaml.YAMLError) as e:
        print(f"ERROR: Failed to initialize: {e}", file=sys.stderr)
        return EXIT_FATAL

    if args.retry_exports:
        try:
            exported = orchestrator.retry_exports(period)
        except (SettlementError, SQLAlchemyError) as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return EXIT_FATAL
        print(json.dumps({"exportedExpenseIds": [str(e) for e in exported]}, indent=2))
        return EXIT_OK

    signal.signal(signal.SIGTERM, lambda signum, frame: orchestrator.request_stop())

    try:
        report = orchestrator.run(period)
    except HostEnumerationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_FATAL

    print(json.dumps(report.to_dict(), indent=2))
    return EXIT_HOST_FAILURES if report.has_failures else EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
