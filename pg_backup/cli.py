"""Command line interface: ``pg_backup <command> [options]``."""

import argparse
import asyncio
import dataclasses
import os
import sys
from datetime import datetime
from typing import List, Optional

from dotenv import load_dotenv

from . import __version__
from ._utils import configure_logging, logger
from .backup.models import LATEST, BranchName
from .config import PgBackupConfig
from .exceptions import PgBackupError
from .pgbackup import PgBackup

DATE_FORMATS = ["%Y-%m-%d_%H-%M-%S", "%Y-%m-%d_%H-%M", "%Y-%m-%d_%H", "%Y-%m-%d"]
BRANCHES = [branch.value for branch in BranchName]


def parse_date(value: str) -> datetime:
    """Parse YYYY-MM-DD with optional _HH, -mm and -ss parts, in local time."""
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    raise argparse.ArgumentTypeError(
        f"invalid date {value!r}, expected YYYY-MM-DD_HH-mm-ss (HH, mm and ss are optional)"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pg_backup",
        description=(
            "Manage PostgreSQL backups on Google Cloud Storage. Uses wal-e to "
            "perform backups, restores and cleanups."
        ),
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-l", "--log",
        action="store_true",
        help="Also log to the console, by default only file logging is enabled",
    )
    parser.add_argument(
        "--env",
        default=None,
        help="Environment file with configuration (default: $PGBACKUP_CONFIG)",
    )

    commands = parser.add_subparsers(dest="command", metavar="command")

    commands.add_parser("backup", help="Perform a base backup of PostgreSQL to the daily branch")

    list_parser = commands.add_parser("list", help="List the base backups in a branch")
    list_parser.add_argument("-b", "--branch", choices=BRANCHES, default="daily")
    list_parser.add_argument("-H", "--host", default=None, help="Host whose backups are listed")
    list_parser.add_argument(
        "--detail",
        action="store_true",
        help="Also list the WAL range (start-end) each backup needs",
    )

    delete_parser = commands.add_parser(
        "delete", help="Delete older backups while retaining the latest N"
    )
    delete_parser.add_argument("-b", "--branch", choices=BRANCHES, default="daily")
    delete_parser.add_argument(
        "-r", "--retain", type=int, default=12,
        help="Number of latest backups to retain (default: 12)",
    )

    restore_parser = commands.add_parser("restore", help="Restore a backup")
    restore_parser.add_argument("-b", "--branch", choices=BRANCHES, default="daily")
    restore_parser.add_argument("-H", "--host", default=None, help="Host whose backup is restored")
    restore_parser.add_argument(
        "--base", default=LATEST, help="Base backup to restore from (default: LATEST)"
    )
    restore_parser.add_argument(
        "-d", "--date", type=parse_date, default=None,
        help="Recovery target, YYYY-MM-DD_HH-mm-ss (default: replay all WAL)",
    )
    restore_parser.add_argument(
        "-f", "--force", action="store_true",
        help="Rename any existing PGDATA directory instead of failing",
    )

    restore_date_parser = commands.add_parser(
        "restore-date",
        help="Restore from the latest backup before a date, daily branch first",
    )
    restore_date_parser.add_argument(
        "-d", "--date", type=parse_date, default=None,
        help="Restore target, YYYY-MM-DD_HH-mm-ss (default: now)",
    )
    restore_date_parser.add_argument("-H", "--host", default=None)

    size_parser = commands.add_parser("size", help="Total size of all backups of a host")
    size_parser.add_argument("-H", "--host", default=None)

    copy_parser = commands.add_parser(
        "copy", help="Copy the daily backup of a weekday to another branch"
    )
    copy_parser.add_argument(
        "-w", "--day", type=int, default=6,
        help="Weekday of the backup: 0 Sunday ... 6 Saturday, -1 last Saturday (default: 6)",
    )
    copy_parser.add_argument(
        "-b", "--branch", choices=BRANCHES, default="weekly",
        help="Destination branch (default: weekly)",
    )

    commands.add_parser("cron", help="Daily and weekly backup and deletion, with a Slack report")

    return parser


async def dispatch(args: argparse.Namespace, app: PgBackup) -> int:
    command = args.command

    if command == "backup":
        result = await app.backup()
        print(result.message)
        print(f"Base backup is {result.data}")
    elif command == "list":
        result = await app.list(args.branch, args.host, detailed=args.detail)
        print(result.message)
    elif command == "delete":
        result = await app.delete(args.branch, args.retain)
        print(result.message)
    elif command == "restore":
        result = await app.restore(
            branch=args.branch,
            host=args.host,
            base_backup=args.base,
            force=args.force,
            recovery_target_time=args.date,
        )
        print(result.message)
    elif command == "restore-date":
        result = await app.restore_from_date(args.date or datetime.now(), args.host)
        print(result.message)
    elif command == "size":
        result = await app.size(args.host)
        print(result.message)
    elif command == "copy":
        result = await app.copy(args.day, dest=args.branch)
        print(result.message)
        logger.debug(f"Copied files: {result.data}")
    elif command == "cron":
        report = await app.cron()
        for entry in report.successes:
            print(f"{entry.step}: {entry.message}")
        for entry in report.failures:
            print(f"{entry.step} FAILED: {entry.message}", file=sys.stderr)
    return 0


def load_config(args: argparse.Namespace) -> PgBackupConfig:
    env_file = args.env or os.getenv("PGBACKUP_CONFIG")
    if env_file:
        load_dotenv(env_file, override=True)
    config = PgBackupConfig.from_env()
    if args.log:
        config = dataclasses.replace(
            config, logging=dataclasses.replace(config.logging, console=True)
        )
    return config


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 0

    try:
        config = load_config(args)
        configure_logging(config.logging)
        app = PgBackup(config)
        return asyncio.run(dispatch(args, app))
    except (PgBackupError, OSError, ValueError) as e:
        logger.error(f'Command "{args.command}" failed', exc_info=True)
        print(f'Command "{args.command}" failed: {e}', file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
