"""Utility functions for backup/restore operations."""

import asyncio
import contextlib
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import AsyncIterator, Callable, Optional, Union

from .._utils import logger
from .models import BranchName

WAL_DIR = "wal_005"
BASE_BACKUP_DIR = "basebackups_005"
WAL_SUFFIX = ".lzo"

SUFFIX_FORMAT = "%Y-%m-%d_%H-%M-%S"

WEEKDAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]


def host_prefix(gs_prefix: str, host: str) -> str:
    return f"{gs_prefix.rstrip('/')}/{host}"


def branch_prefix(gs_prefix: str, host: str, branch: Union[BranchName, str]) -> str:
    """Storage prefix holding one branch of one host.

    Args:
        gs_prefix: Bucket-level prefix, e.g. gs://bucket/
        host: Host whose backups live under the prefix
        branch: Branch name

    Returns:
        Prefix in the form gs://bucket/<host>/<branch>
    """
    return f"{host_prefix(gs_prefix, host)}/{BranchName(branch).value}"


def wal_object_path(prefix: str, segment: str) -> str:
    return f"{prefix}/{WAL_DIR}/{segment}{WAL_SUFFIX}"


def base_backup_pattern(prefix: str, backup_name: str) -> str:
    return f"{prefix}/{BASE_BACKUP_DIR}/{backup_name}**"


def swap_branch(path: str, host: str, src: Union[BranchName, str], dest: Union[BranchName, str]) -> str:
    """Rewrite the branch segment of an object path.

    Only the ``/<host>/<src>/`` segment is replaced, so a host or backup name
    that happens to contain the branch name is left alone.
    """
    marker = f"/{host}/{BranchName(src).value}/"
    if marker not in path:
        raise ValueError(f"Path {path} is not under {marker}")
    return path.replace(marker, f"/{host}/{BranchName(dest).value}/", 1)


def timestamp_suffix(moment: Optional[datetime] = None) -> str:
    return (moment or datetime.now()).strftime(SUFFIX_FORMAT)


def weekday_date(day: int, today: Optional[date] = None) -> date:
    """Date of weekday ``day`` in the Sunday-started week containing ``today``.

    0 is Sunday and 6 is Saturday; values outside 0..6 reach into the
    neighbouring weeks (-1 is the previous Saturday).
    """
    today = today or date.today()
    sunday = today - timedelta(days=today.isoweekday() % 7)
    return sunday + timedelta(days=day)


def describe_day(target: date) -> str:
    return f"{WEEKDAY_NAMES[target.isoweekday() % 7]} {target.isoformat()}"


async def poll_until(
    predicate: Callable[[], bool],
    interval: float,
    timeout: float,
) -> bool:
    """Check ``predicate`` every ``interval`` seconds until it holds.

    Args:
        predicate: Condition to wait for
        interval: Seconds between checks
        timeout: Seconds after which to give up

    Returns:
        True if the predicate held before the timeout, False otherwise
    """
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(interval)

    try:
        await asyncio.wait_for(_poll(), timeout)
    except asyncio.TimeoutError:
        return False
    return True


def latest_log_file(log_dir: Path) -> Optional[Path]:
    if not log_dir.is_dir():
        return None
    files = sorted(p for p in log_dir.iterdir() if p.is_file())
    return files[-1] if files else None


@contextlib.asynccontextmanager
async def follow_log(log_dir: Path) -> AsyncIterator[Optional[Path]]:
    """Follow the newest log file in ``log_dir`` until the block exits.

    Every line is logged at INFO. Yields the followed file, or None when
    there is nothing to follow.
    """
    log_file = latest_log_file(log_dir)
    if log_file is None:
        logger.warning(f"No PostgreSQL log file found in {log_dir}, not following logs")
        yield None
        return

    process = await asyncio.create_subprocess_exec(
        "tail", "-f", str(log_file),
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.DEVNULL,
    )

    async def _forward() -> None:
        async for raw in process.stdout:
            logger.info(f"POSTGRESQL LOG {raw.decode('utf-8', errors='replace').rstrip()}")

    reader = asyncio.create_task(_forward())
    logger.debug(f"Following {log_file}")
    try:
        yield log_file
    finally:
        reader.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await reader
        if process.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                process.terminate()
            await process.wait()
        logger.debug(f"Stopped following {log_file}")
