"""
Command-line entry point for depreciation runs.

Subcommands:
    end-of-month   Run every active business unit (last day of month only).
    manual         Run one business unit now.
    schedules      Fire configured schedules due today.
    preview        List assets the next run would depreciate (read-only).

Run commands require ``--token`` to match the secret in the environment
variable named by ``AssetConfig.trigger_secret_env``
(``DEPRECIATION_TRIGGER_SECRET`` by default).  The database URL comes from
``--database-url`` or ``DATABASE_URL``.

Usage:
    python3 scripts/run_depreciation.py --token $TOKEN end-of-month
    python3 scripts/run_depreciation.py --token $TOKEN manual \\
        --business-unit 3f0c... --date 2024-06-30 --exclude-category 9a1d...
    python3 scripts/run_depreciation.py preview --business-unit 3f0c...
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from dataclasses import asdict
from datetime import date
from pathlib import Path
from uuid import UUID

import yaml

from asset_kernel.exceptions import AssetKernelError, UnauthorizedTriggerError
from asset_kernel.logging_config import configure_logging, get_logger

logger = get_logger("batch.cli")

RUN_COMMANDS = frozenset({"end-of-month", "manual", "schedules"})


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="run_depreciation",
        description="Run asset depreciation: end-of-month, ad hoc, or configured schedules.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--database-url",
        default=os.environ.get("DATABASE_URL"),
        help="SQLAlchemy database URL (default: DATABASE_URL env).",
    )
    parser.add_argument(
        "--token",
        default=None,
        help="Trigger token; must match the configured secret for run commands.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to an asset config YAML file.",
    )
    parser.add_argument(
        "--actor-id",
        type=UUID,
        default=None,
        help="Actor UUID recorded on the run (default: configured system actor).",
    )
    parser.add_argument(
        "--date",
        type=date.fromisoformat,
        default=None,
        help="Run as of this date (YYYY-MM-DD). Default: today.",
    )
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables before running.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log at DEBUG level.",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("end-of-month", help="Run every active business unit on the last day of the month.")
    sub.add_parser("schedules", help="Fire configured schedules that are due today.")

    manual = sub.add_parser("manual", help="Run one business unit now.")
    manual.add_argument("--business-unit", type=UUID, required=True)
    manual.add_argument("--include-category", type=UUID, action="append", default=[])
    manual.add_argument("--exclude-category", type=UUID, action="append", default=[])

    preview = sub.add_parser("preview", help="List assets the next run would depreciate.")
    preview.add_argument("--business-unit", type=UUID, required=True)

    return parser.parse_args(argv)


def _emit(payload: object) -> None:
    print(json.dumps(payload, default=str, indent=2))


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    configure_logging(level=logging.DEBUG if args.verbose else logging.INFO)

    # Lazy imports so we fail fast on args first
    from asset_kernel.db.engine import get_session, init_engine_from_url
    from asset_kernel.db.immutability import register_immutability_listeners
    from asset_kernel.domain.clock import DeterministicClock, SystemClock
    from asset_modules._orm_registry import create_all_tables
    from asset_modules.assets.config import AssetConfig
    from asset_modules.assets.eligibility import ALL_CATEGORIES

    from asset_batch.domain.types import ManualDepreciationFilters
    from asset_batch.services.scheduler import DepreciationScheduler, authorize_trigger

    try:
        config = AssetConfig.from_yaml(args.config) if args.config else AssetConfig.with_defaults()
    except (OSError, yaml.YAMLError, AssetKernelError) as exc:
        print(f"ERROR: Failed to load config: {exc}", file=sys.stderr)
        return 1

    if args.command in RUN_COMMANDS:
        try:
            authorize_trigger(
                f"Bearer {args.token}" if args.token else None,
                os.environ.get(config.trigger_secret_env),
            )
        except UnauthorizedTriggerError as exc:
            print(f"ERROR: {exc.message}", file=sys.stderr)
            return 2

    if not args.database_url:
        print("ERROR: --database-url or DATABASE_URL is required", file=sys.stderr)
        return 1

    init_engine_from_url(args.database_url)
    register_immutability_listeners()
    if args.create_tables:
        create_all_tables()

    clock = SystemClock()
    if args.date is not None:
        clock = DeterministicClock()
        clock.set_date(args.date)

    session = get_session()
    scheduler = DepreciationScheduler(session, clock=clock, config=config)
    actor_id = args.actor_id or config.system_actor_id

    try:
        if args.command == "end-of-month":
            report = scheduler.run_end_of_month_depreciation(actor_id)
            _emit(asdict(report))
            return 1 if any(o.error for o in report.results) else 0

        if args.command == "schedules":
            outcomes = scheduler.run_due_schedules(actor_id)
            _emit([asdict(o) for o in outcomes])
            return 1 if any(o.error for o in outcomes) else 0

        if args.command == "manual":
            filters = ManualDepreciationFilters(
                calculation_date=args.date,
                include_category_ids=frozenset(args.include_category),
                exclude_category_ids=frozenset(args.exclude_category),
            )
            result = scheduler.execute_manual_depreciation(args.business_unit, filters, actor_id)
            _emit(asdict(result))
            return 0

        preview = scheduler.get_assets_needing_depreciation(args.business_unit, ALL_CATEGORIES)
        _emit({
            "is_end_of_month": preview.is_end_of_month,
            "total_count": preview.total_count,
            "total_monthly_depreciation": preview.total_monthly_depreciation,
            "assets": [
                {"id": a.id, "item_code": a.item_code, "monthly_depreciation": a.monthly_depreciation}
                for a in preview.assets
            ],
        })
        return 0

    except AssetKernelError as exc:
        logger.error("depreciation_cli_failed", extra={"error_code": exc.code, "error": exc.message})
        print(f"ERROR: {exc.message}", file=sys.stderr)
        return 1
    finally:
        session.close()
