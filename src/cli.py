"""Command line entry point.

Usage:
    tradecycle init-db
    tradecycle run {hourly,daily,weekly}
    tradecycle visit [--state-path PATH]

``run`` is what an external cron calls when the in-process scheduler is
disabled. ``visit`` is the client opportunistic path: it does nothing if it ran
within the last ``CLIENT_RUN_INTERVAL_HOURS``.
"""

import argparse
import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable
from typing import TypeVar

from src.core.config import settings
from src.core.db_client import close_connection, init_db
from src.core.errors import TriggerFailedError
from src.core.scheduler import job_id
from src.core.scheduler_tracker import run_tracked_job
from src.services.runner_service import TRIGGERS, LastRunStore, OpportunisticRunner, run_trigger


logger = logging.getLogger(__name__)

T = TypeVar("T")


async def _with_store(work: Callable[[], Awaitable[T]]) -> T:
    try:
        return await work()
    finally:
        await close_connection()


async def _init_db() -> None:
    await init_db()
    logger.info("Database initialized at %s", settings.sqlite_db_path)


async def _run(name: str) -> int:
    try:
        report = await run_tracked_job(lambda: run_trigger(name), job_id(name))
    except TriggerFailedError as e:
        logger.error("✗ %s", e)
        return 1
    logger.info("✓ %s", report.describe())
    return 0


async def _visit(state_path: str) -> int:
    runner = OpportunisticRunner(LastRunStore(state_path))
    result = await runner.maybe_run()
    if not result.ran:
        logger.info("Skipped: last run was within %d hours", settings.client_run_interval_hours)
        return 0

    for report in result.reports:
        logger.info("✓ %s", report.describe())
    for error in result.errors:
        logger.warning("✗ %s", error)
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Argument parser for the ``tradecycle`` command."""
    parser = argparse.ArgumentParser(prog="tradecycle", description="Trade and challenge lifecycle engine")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create collections and indexes")

    run_parser = subparsers.add_parser("run", help="Run one named trigger now")
    run_parser.add_argument("trigger", choices=TRIGGERS)

    visit_parser = subparsers.add_parser("visit", help="Run the client opportunistic path")
    visit_parser.add_argument(
        "--state-path",
        type=str,
        default=settings.client_state_path,
        help="File holding the last opportunistic run (default: settings.client_state_path)",
    )

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the ``tradecycle`` command."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    args = build_parser().parse_args(argv)

    if args.command == "init-db":
        asyncio.run(_with_store(_init_db))
        return

    if args.command == "run":
        sys.exit(asyncio.run(_with_store(lambda: _run(args.trigger))))

    sys.exit(asyncio.run(_with_store(lambda: _visit(args.state_path))))


if __name__ == "__main__":
    main()
