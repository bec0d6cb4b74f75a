"""Data models for backup/restore operations."""

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

LATEST = "LATEST"


class BranchName(str, Enum):
    """Retention lineage, each with its own storage prefix."""

    DAILY = "daily"
    WEEKLY = "weekly"


class BackupRecord(BaseModel):
    """One base backup as listed by the archiver catalog."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Base backup name, unique per branch and host")
    last_modified: datetime = Field(..., description="Catalog last-modified timestamp")
    expanded_size_bytes: Optional[str] = None
    wal_start: Optional[str] = Field(None, description="First WAL segment of the backup")
    wal_start_offset: Optional[str] = None
    wal_end: Optional[str] = Field(None, description="WAL segment the backup stopped in")
    wal_end_offset: Optional[str] = None

    @property
    def has_wal_range(self) -> bool:
        return bool(self.wal_start and self.wal_end)


class RetentionPolicy(BaseModel):
    """How many of the newest backups of a branch to keep."""

    branch: BranchName
    keep: int = Field(..., ge=0, description="Backups to retain, 0 deletes everything")


class RestoreRequest(BaseModel):
    """Parameters of a single restore run."""

    branch: BranchName = BranchName.DAILY
    host: str
    base_backup: str = LATEST
    force: bool = False
    recovery_target_time: Optional[datetime] = None

    @property
    def effective_recovery_target(self) -> Optional[datetime]:
        """Weekly backups are always restored to their natural end state."""
        if self.branch == BranchName.WEEKLY:
            return None
        return self.recovery_target_time


class OperationResult(BaseModel):
    """User-facing outcome of a top-level operation."""

    message: str
    data: Any = None


class ReportEntry(BaseModel):
    step: str
    message: str
    skipped: bool = False


class CronReport(BaseModel):
    """Outcome of every step of one scheduled run."""

    successes: List[ReportEntry] = Field(default_factory=list)
    failures: List[ReportEntry] = Field(default_factory=list)

    def add_success(self, step: str, message: str) -> None:
        self.successes.append(ReportEntry(step=step, message=message))

    def add_failure(self, step: str, message: str) -> None:
        self.failures.append(ReportEntry(step=step, message=message))

    def add_skipped(self, step: str, message: str) -> None:
        self.failures.append(ReportEntry(step=step, message=message, skipped=True))

    def has_failed(self, step: str) -> bool:
        return any(entry.step == step for entry in self.failures)

    @property
    def ok(self) -> bool:
        return not self.failures
