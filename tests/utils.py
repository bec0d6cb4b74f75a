"""Test utilities for pg-backup tests."""
from datetime import datetime
from typing import Optional

from pg_backup.backup.models import BackupRecord

CATALOG_HEADER = (
    "name\tlast_modified\texpanded_size_bytes\twal_segment_backup_start\t"
    "wal_segment_offset_backup_start\twal_segment_backup_stop\twal_segment_offset_backup_stop"
)


def make_record(
    name: str,
    last_modified: datetime,
    wal_start: Optional[str] = None,
    wal_end: Optional[str] = None,
) -> BackupRecord:
    """Create a catalog record with optional WAL range."""
    return BackupRecord(
        name=name,
        last_modified=last_modified,
        wal_start=wal_start,
        wal_start_offset="00000028" if wal_start else None,
        wal_end=wal_end,
        wal_end_offset="00000130" if wal_end else None,
    )
