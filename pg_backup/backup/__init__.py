"""Backup, retention, branch copy and restore orchestration."""

from .catalog import BackupCatalog, parse_catalog
from .copy import BranchCopier
from .cron import CronRunner
from .manager import BackupManager
from .models import (
    BackupRecord,
    BranchName,
    CronReport,
    OperationResult,
    RestoreRequest,
    RetentionPolicy,
)
from .restore import RestoreManager, RestoreSession, RestoreState, RestoreStateMachine
from .wal import wal_range

__all__ = [
    "BackupCatalog",
    "BackupManager",
    "BackupRecord",
    "BranchCopier",
    "BranchName",
    "CronReport",
    "CronRunner",
    "OperationResult",
    "RestoreManager",
    "RestoreRequest",
    "RestoreSession",
    "RestoreState",
    "RestoreStateMachine",
    "RetentionPolicy",
    "parse_catalog",
    "wal_range",
]
