"""Selection policies over a backup catalog."""

from datetime import date, datetime, tzinfo
from typing import List, Optional, Sequence, Tuple

from .._utils import logger
from ..exceptions import NoBackupBeforeDate
from .models import BackupRecord, BranchName

# Branches tried, in order, when looking for a backup before a date
RESTORE_BRANCH_ORDER: Tuple[BranchName, ...] = (BranchName.DAILY, BranchName.WEEKLY)


def _aware(moment: datetime) -> datetime:
    # naive timestamps are local time
    return moment if moment.tzinfo is not None else moment.astimezone()


def select_for_deletion(records: Sequence[BackupRecord], keep: int) -> bool:
    """Whether deleting down to the newest ``keep`` backups removes anything."""
    if keep < 0:
        raise ValueError(f"keep must not be negative, got {keep}")
    return len(records) > keep


def split_retained(
    records: Sequence[BackupRecord],
    keep: int,
) -> Tuple[List[BackupRecord], List[BackupRecord]]:
    """Split ``records`` into the newest ``keep`` and the older rest, both oldest first."""
    if keep < 0:
        raise ValueError(f"keep must not be negative, got {keep}")
    ordered = sorted(records, key=lambda r: _aware(r.last_modified))
    cut = max(len(ordered) - keep, 0)
    return ordered[cut:], ordered[:cut]


def select_for_weekday(
    records: Sequence[BackupRecord],
    target_day: date,
    tz: Optional[tzinfo] = None,
) -> Optional[BackupRecord]:
    """Latest backup taken on the calendar day ``target_day``.

    Args:
        records: Catalog records in catalog order
        target_day: Calendar day to match
        tz: Timezone the day is evaluated in, local time when None

    Returns:
        The matching record with the latest timestamp, None if nothing matches.
        Records sharing the latest timestamp resolve to the first in catalog order.
    """
    matches = [
        record for record in records
        if _aware(record.last_modified).astimezone(tz).date() == target_day
    ]
    if not matches:
        return None
    # sorted() is stable: equal timestamps keep their catalog order
    matches = sorted(matches, key=lambda r: _aware(r.last_modified), reverse=True)
    return matches[0]


def select_for_date(
    records: Sequence[BackupRecord],
    target: datetime,
) -> Optional[BackupRecord]:
    """Latest backup taken at or before ``target``."""
    target = _aware(target)
    ordered = sorted(records, key=lambda r: _aware(r.last_modified))
    for record in reversed(ordered):
        if _aware(record.last_modified) <= target:
            return record
    return None


async def select_across_branches(
    catalog,
    host: str,
    target: datetime,
    branches: Sequence[BranchName] = RESTORE_BRANCH_ORDER,
) -> Tuple[BranchName, BackupRecord]:
    """Try ``branches`` in order and return the first backup before ``target``.

    Args:
        catalog: BackupCatalog to query
        host: Host whose backups are searched
        target: Latest acceptable backup time
        branches: Candidate branches in priority order

    Raises:
        NoBackupBeforeDate: No branch has a backup at or before ``target``
    """
    logger.info(f"Getting the latest backup before date {target.isoformat()}")
    for branch in branches:
        records = await catalog.list_backups(branch, host)
        record = select_for_date(records, target)
        if record is not None:
            logger.info(f"Base backup {record.name} found in {branch.value} before {target.isoformat()}")
            return branch, record
        logger.info(f"No backups found in {branch.value} before {target.isoformat()}")

    raise NoBackupBeforeDate(target.isoformat(), [branch.value for branch in branches])
