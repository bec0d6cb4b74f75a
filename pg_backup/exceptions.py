"""Exception hierarchy for pg-backup operations."""

from typing import Optional, Sequence


class PgBackupError(Exception):
    """Base exception for pg-backup errors."""
    pass


class MalformedWalId(PgBackupError):
    def __init__(self, wal_id: str):
        super().__init__(f"Malformed WAL segment id {wal_id!r}, expected 24 hex characters")
        self.wal_id = wal_id


class CatalogParseError(PgBackupError):
    """A catalog row could not be turned into a backup record."""
    pass


class CatalogUnavailable(PgBackupError):
    """The catalog could not be read at all."""

    def __init__(self, branch: str, host: str, reason: str = ""):
        message = f"Failed to get backups for HOST {host} in branch {branch}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.branch = branch
        self.host = host


class NoBackupForWeekday(PgBackupError):
    def __init__(self, day: str):
        super().__init__(f"Weekly Backup: Skipped. No daily backup found for the weekday {day}")
        self.day = day


class EmptyBackupListing(PgBackupError):
    def __init__(self, pattern: str):
        super().__init__(f"Got an empty list of files in backup dir {pattern}")
        self.pattern = pattern


class DataDirConflict(PgBackupError):
    def __init__(self, pgdata: str):
        super().__init__(
            f"Directory {pgdata} already exists, rename/move it or use option --force"
        )
        self.pgdata = pgdata


class NoBackupBeforeDate(PgBackupError):
    def __init__(self, target: str, branches: Sequence[str]):
        super().__init__(
            f"No backups found before {target} in branches: {', '.join(branches)}"
        )
        self.target = target
        self.branches = list(branches)


class RecoveryTimeout(PgBackupError):
    def __init__(self, timeout: float, marker: str):
        super().__init__(
            f"Failed to detect {marker} even after {timeout / 60:g} minutes. "
            "Check PostgreSQL logs, maybe recovery is still running"
        )
        self.timeout = timeout
        self.marker = marker


class RecoveryConfigError(PgBackupError):
    """Writing the recovery configuration into the data directory failed."""
    pass


class SubprocessFailed(PgBackupError):
    """An external tool exited with a non-zero status."""

    def __init__(self, command: Sequence[str], exit_code: int, stderr: str = ""):
        message = f"Command {command[0] if command else '?'} exited with code {exit_code}"
        if stderr:
            message = f"{message}\n{stderr}"
        super().__init__(message)
        self.command = list(command)
        self.exit_code = exit_code
        self.stderr = stderr


class ArchiverNotFound(PgBackupError):
    """The archiving tool or its storage credentials are missing."""
    pass


class BranchCopyFailed(PgBackupError):
    def __init__(self, copied: int, total: int, path: Optional[str] = None):
        message = f"Could not copy all files, copied {copied} of {total}"
        if path:
            message = f"{message}, failed on {path}"
        super().__init__(message)
        self.copied = copied
        self.total = total
        self.path = path
