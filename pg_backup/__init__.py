from .pgbackup import PgBackup
from .config import PgBackupConfig
from .backup.models import BranchName, BackupRecord, OperationResult, RestoreRequest

__author__ = "pg-backup developers"
__version__ = "0.3.0"
__url__ = "https://github.com/pg-backup/pg-backup"

__all__ = [
    "PgBackup",
    "PgBackupConfig",
    "BranchName",
    "BackupRecord",
    "OperationResult",
    "RestoreRequest",
]
