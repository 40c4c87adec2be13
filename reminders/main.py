"""Reminder worker entrypoint.

Usage:
    python -m reminders.main process
    python -m reminders.main retry-failed [--hours N] [--force]
    python -m reminders.main worker
"""
import argparse
import asyncio
import logging

from reminders.config import settings
from reminders.logging_config import setup_logging
from database.base import async_session_maker, init_db, close_db
from services.channels import build_channel
from services.reminder_tasks import (
    SchedulerTrigger,
    build_engine,
    inject_engine,
    reminder_scheduler,
    start_reminder_scheduler,
    stop_reminder_scheduler,
)

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="reminders", description="Appointment reminder dispatch")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("process", help="Send every reminder that is due now")

    retry = sub.add_parser("retry-failed", help="Re-arm recently failed reminders")
    retry.add_argument(
        "--hours",
        type=int,
        default=settings.reminder_retry_lookback_hours,
        help="Only retry failures from the last N hours",
    )
    retry.add_argument("--force", action="store_true", help="Ignore the attempt cap")

    sub.add_parser("worker", help="Run the scheduler with periodic scans until stopped")
    return parser


async def process() -> int:
    engine = build_engine(async_session_maker, build_channel(settings), settings)
    handled = await engine.due_scanner.scan()
    logger.info(f"Processed {handled} due reminder(s)")
    return handled


async def retry_failed(hours: int, force: bool = False) -> int:
    engine = build_engine(async_session_maker, build_channel(settings), settings)
    scheduled = await engine.retry_scanner.scan(lookback_hours=hours, force=force)
    logger.info(f"Re-armed {scheduled} failed reminder(s)")
    return scheduled


async def worker():
    await init_db()
    engine = build_engine(
        async_session_maker,
        build_channel(settings),
        settings,
        trigger=SchedulerTrigger(reminder_scheduler),
    )
    inject_engine(engine)
    start_reminder_scheduler(
        scan_interval_minutes=settings.reminder_scan_interval_minutes,
        retry_interval_minutes=settings.reminder_retry_scan_interval_minutes,
    )
    try:
        await asyncio.Event().wait()
    finally:
        stop_reminder_scheduler()
        inject_engine(None)


async def main(argv=None):
    args = build_parser().parse_args(argv)
    setup_logging()
    try:
        if args.command == "process":
            await process()
        elif args.command == "retry-failed":
            await retry_failed(args.hours, args.force)
        elif args.command == "worker":
            await worker()
    finally:
        await close_db()


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Reminder worker stopped")


if __name__ == "__main__":
    run()
