"""Copy a daily base backup and its WAL segments to another branch."""

import asyncio
from datetime import date
from typing import List, Optional

from .._utils import logger
from ..exceptions import (
    BranchCopyFailed,
    CatalogParseError,
    EmptyBackupListing,
    NoBackupForWeekday,
)
from .catalog import BackupCatalog
from .clients import GsutilClient
from .models import BackupRecord, BranchName, OperationResult
from .retention import select_for_weekday
from .utils import (
    base_backup_pattern,
    branch_prefix,
    describe_day,
    swap_branch,
    wal_object_path,
    weekday_date,
)
from .wal import WAL_SEGMENT_MAX, wal_range


class BranchCopier:
    """Replicate one backup from a source branch into a destination branch."""

    def __init__(
        self,
        catalog: BackupCatalog,
        gsutil: GsutilClient,
        gs_prefix: str,
        host: str,
        concurrency: int = 16,
        segment_max: int = WAL_SEGMENT_MAX,
    ):
        """Initialize copier.

        Args:
            catalog: Catalog reader for the source branch
            gsutil: Storage client used to list and copy objects
            gs_prefix: Bucket-level storage prefix
            host: Host whose backups are copied
            concurrency: Maximum simultaneous object copies
            segment_max: WAL low counter rollover value
        """
        self.catalog = catalog
        self.gsutil = gsutil
        self.gs_prefix = gs_prefix
        self.host = host
        self.concurrency = concurrency
        self.segment_max = segment_max

    async def copy_to_branch(
        self,
        weekday: int = 6,
        src: BranchName = BranchName.DAILY,
        dest: BranchName = BranchName.WEEKLY,
        today: Optional[date] = None,
    ) -> OperationResult:
        """Copy the backup taken on ``weekday`` of this week from ``src`` to ``dest``.

        Args:
            weekday: 0 = Sunday ... 6 = Saturday, negative for last week
            src: Branch to copy from
            dest: Branch to copy to
            today: Reference date for the week, defaults to today

        Returns:
            OperationResult with the list of copied destination paths as data

        Raises:
            NoBackupForWeekday: No backup was taken on that day
            EmptyBackupListing: The backup has no objects in storage
            BranchCopyFailed: An object could not be copied
            ValueError: ``src`` and ``dest`` are the same branch
        """
        src, dest = BranchName(src), BranchName(dest)
        if src == dest:
            raise ValueError(f"Cannot copy branch {src.value} onto itself")
        target_day = weekday_date(weekday, today)
        logger.info(f"Starting copy backup for day {describe_day(target_day)}")

        records = await self.catalog.list_backups(src, self.host, detailed=True)
        record = select_for_weekday(records, target_day)
        if record is None:
            raise NoBackupForWeekday(describe_day(target_day))
        logger.info(f"Got backup for day {weekday}: {record.name}")

        files = await self.collect_files(record, src)
        copied = await self._copy_all(files, src, dest)
        return OperationResult(
            message=(
                f"Backup: Copied {src.value} backup {record.name} and corresponding wal files "
                f"to {dest.value}, no. of files : {len(copied)}"
            ),
            data=copied,
        )

    async def collect_files(self, record: BackupRecord, src: BranchName) -> List[str]:
        """Every storage object ``record`` depends on: WAL segments, then base backup files."""
        prefix = branch_prefix(self.gs_prefix, self.host, src)

        pattern = base_backup_pattern(prefix, record.name)
        base_files = await self.gsutil.list_recursive(pattern)
        if not base_files:
            raise EmptyBackupListing(pattern)
        logger.info(f"Got base files, number: {len(base_files)}")

        if not record.has_wal_range:
            raise CatalogParseError(f"Backup {record.name} has no WAL range in the catalog")
        logger.debug(f"Wal start {record.wal_start}, wal end {record.wal_end}")
        wal_files = [
            wal_object_path(prefix, segment)
            for segment in wal_range(record.wal_start, record.wal_end, self.segment_max)
        ]
        logger.info(f"Got WAL files, number: {len(wal_files)}")

        return wal_files + base_files

    async def _copy_all(self, files: List[str], src: BranchName, dest: BranchName) -> List[str]:
        """Copy ``files`` concurrently; the first failure cancels the remaining copies."""
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _copy(path: str) -> str:
            async with semaphore:
                return await self.gsutil.copy(path, swap_branch(path, self.host, src, dest))

        logger.info(f"Starting copying {len(files)} files")
        tasks = {asyncio.ensure_future(_copy(path)): path for path in files}
        pending = set(tasks)
        copied: List[str] = []
        try:
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_EXCEPTION)
                failed = [task for task in done if task.exception() is not None]
                copied.extend(task.result() for task in done if task.exception() is None)
                if failed:
                    path = tasks[failed[0]]
                    logger.error(f"Could not copy file {path}: {failed[0].exception()}")
                    raise BranchCopyFailed(len(copied), len(files), path) from failed[0].exception()
        finally:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
        return copied
