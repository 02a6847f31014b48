"""Operator commands for the download statistics table.

Usage:
    download-stats prune --days 90
    download-stats prune --days 30 --status denied --dry-run
    download-stats setup-table
"""
import argparse
import logging
import sys
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from download_stats.core.logging import setup_logging
from download_stats.db.session import SessionLocal
from download_stats.models.event import DownloadStatus
from download_stats.services.clock import get_clock
from download_stats.services.retention import StatisticsRetention
from download_stats.services.statistics import window_start


logger = logging.getLogger(__name__)

DAYS_TO_KEEP = 90


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="download-stats",
        description="Maintain the download statistics event table.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    prune = subparsers.add_parser("prune", help="Delete download events older than a number of days.")
    prune.add_argument(
        "--days",
        type=int,
        default=DAYS_TO_KEEP,
        help=f"Number of days of events to keep (default: {DAYS_TO_KEEP}).",
    )
    prune.add_argument(
        "--status",
        choices=[s.value for s in DownloadStatus],
        default=None,
        help="Only delete events with this status.",
    )
    prune.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Delete at most this many events, oldest first.",
    )
    prune.add_argument(
        "--dry-run",
        action="store_true",
        help="Report how many events would be deleted without deleting them.",
    )

    subparsers.add_parser("setup-table", help="Create the download statistics table if it is missing.")
    return parser


def _prune(retention: StatisticsRetention, args: argparse.Namespace) -> int:
    cutoff = window_start(args.days, get_clock()())

    if args.dry_run:
        count = retention.count_deletable(end_date=cutoff, status=args.status)
        print(f"DRY RUN: {count} events older than {cutoff:%Y-%m-%d %H:%M:%S} would be deleted.")
        return 0

    deleted = retention.delete_logs(end_date=cutoff, limit=args.limit, status=args.status)
    print(f"Deleted {deleted} events older than {cutoff:%Y-%m-%d %H:%M:%S}.")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command == "prune":
        if args.days < 1:
            parser.error("--days must be a positive integer")
        if args.limit is not None and args.limit < 1:
            parser.error("--limit must be a positive integer")

    setup_logging()

    db = SessionLocal()
    try:
        # Shell access to the host is treated as administrator access
        retention = StatisticsRetention(db, is_administrator=lambda: True)
        if args.command == "setup-table":
            retention.setup_table()
            print("Download statistics table is ready.")
            return 0
        return _prune(retention, args)
    except SQLAlchemyError:
        logger.exception("Command %s failed", args.command)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
