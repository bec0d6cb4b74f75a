"""Backup catalog reader on top of ``wal-e backup-list``."""

from datetime import datetime
from typing import List, Optional, Union

from pydantic import TypeAdapter, ValidationError

from .._utils import logger
from ..exceptions import CatalogParseError, CatalogUnavailable, SubprocessFailed
from .clients import WalEClient
from .models import BackupRecord, BranchName, OperationResult

HEADER_FIRST_CELL = "name"
DETAILED_COLUMNS = 7

_timestamp = TypeAdapter(datetime)


def _split_row(line: str) -> List[str]:
    # Blank cells are None fields and keep their column; only trailing ones go
    cells = line.rstrip("\r").split("\t")
    while cells and not cells[-1].strip():
        cells.pop()
    return cells


def _cell(row: List[str], index: int) -> Optional[str]:
    value = row[index].strip()
    return value or None


def parse_catalog(output: str, detailed: bool = False) -> List[BackupRecord]:
    """Parse tab separated backup-list output into records.

    Args:
        output: Raw catalog output, header row first
        detailed: Whether the output came from ``backup-list --detail``

    Returns:
        Records in catalog order

    Raises:
        CatalogUnavailable: The output has no header row
        CatalogParseError: Any row is unusable; no partial result is returned
    """
    rows = [_split_row(line) for line in output.splitlines() if line.strip()]
    if not rows or rows[0][0].strip().lower() != HEADER_FIRST_CELL:
        raise CatalogUnavailable("?", "?", "backup-list output has no header row")

    records = []
    for line_no, row in enumerate(rows[1:], start=2):
        if len(row) < 2 or not row[1].strip():
            raise CatalogParseError(f"Catalog row {line_no} has no timestamp: {row!r}")
        try:
            last_modified = _timestamp.validate_python(row[1].strip())
        except ValidationError as e:
            raise CatalogParseError(
                f"Catalog row {line_no} has an unparsable timestamp {row[1]!r}"
            ) from e

        fields = {"name": row[0].strip(), "last_modified": last_modified}
        if detailed:
            if len(row) < DETAILED_COLUMNS:
                raise CatalogParseError(
                    f"Catalog row {line_no} has {len(row)} columns, expected {DETAILED_COLUMNS}"
                )
            fields.update(
                expanded_size_bytes=_cell(row, 2),
                wal_start=_cell(row, 3),
                wal_start_offset=_cell(row, 4),
                wal_end=_cell(row, 5),
                wal_end_offset=_cell(row, 6),
            )
        records.append(BackupRecord(**fields))
    return records


class BackupCatalog:
    """Read the archiver's catalog for a branch of a host."""

    def __init__(self, wale: WalEClient):
        self.wale = wale

    async def list_backups(
        self,
        branch: Union[BranchName, str],
        host: str,
        detailed: bool = False,
    ) -> List[BackupRecord]:
        """List base backups of ``branch`` for ``host``, queried fresh every call.

        Raises:
            CatalogUnavailable: backup-list failed or printed no catalog
            CatalogParseError: A row could not be parsed
        """
        branch = BranchName(branch)
        logger.info(f"Getting backups for branch {branch.value} of {host}")
        try:
            output = await self.wale.backup_list(branch, host, detailed=detailed)
        except SubprocessFailed as e:
            logger.error(f"Wal-e backup-list process failed: {e}")
            raise CatalogUnavailable(branch.value, host, f"exit code {e.exit_code}") from e

        try:
            records = parse_catalog(output, detailed=detailed)
        except CatalogUnavailable as e:
            raise CatalogUnavailable(branch.value, host, "backup-list printed no catalog") from e

        logger.info(f"Got {len(records)} backups for branch {branch.value} of {host}")
        return records

    async def describe(
        self,
        branch: Union[BranchName, str],
        host: str,
        detailed: bool = False,
    ) -> OperationResult:
        """Catalog listing formatted for display."""
        records = await self.list_backups(branch, host, detailed=detailed)
        lines = []
        for record in records:
            cells = [record.name, record.last_modified.isoformat()]
            if detailed:
                cells += [
                    record.expanded_size_bytes or "",
                    record.wal_start or "",
                    record.wal_start_offset or "",
                    record.wal_end or "",
                    record.wal_end_offset or "",
                ]
            lines.append("\t".join(cells))
        return OperationResult(
            message=(
                f"Got {BranchName(branch).value} backups as on {datetime.now().isoformat(timespec='seconds')} "
                f"for HOST {host}\n" + "\n".join(lines)
            ),
            data=records,
        )
