from datetime import date, datetime
from typing import Optional, Union

from ._utils import SubprocessOptions, logger
from .backup.catalog import BackupCatalog
from .backup.clients import GsutilClient, ServiceController, WalEClient
from .backup.copy import BranchCopier
from .backup.cron import CronRunner
from .backup.manager import BackupManager
from .backup.models import (
    LATEST,
    BranchName,
    CronReport,
    OperationResult,
    RestoreRequest,
    RetentionPolicy,
)
from .backup.restore import RestoreManager
from .config import PgBackupConfig
from .notify import SlackNotifier


class PgBackup:
    """All pg-backup operations for one configured database host."""

    def __init__(
        self,
        config: Optional[PgBackupConfig] = None,
        options: Optional[SubprocessOptions] = None,
    ):
        """Wire clients and orchestrators from configuration.

        Args:
            config: Complete configuration, read from the environment when None
            options: Archiver subprocess options; resolved from config when None
        """
        self.config = config or PgBackupConfig.from_env()
        archiver = self.config.archiver

        self.wale = WalEClient(archiver, options or SubprocessOptions.for_archiver(archiver))
        self.gsutil = GsutilClient(self.config.storage)
        self.service = ServiceController(self.config.service)
        self.notifier = SlackNotifier(self.config.slack)

        self.catalog = BackupCatalog(self.wale)
        self.manager = BackupManager(archiver, self.wale, self.catalog, self.gsutil)
        self.copier = BranchCopier(
            self.catalog,
            self.gsutil,
            archiver.gs_prefix,
            archiver.host,
            concurrency=self.config.storage.copy_concurrency,
            segment_max=archiver.wal_segment_max,
        )
        self.restorer = RestoreManager(
            self.catalog,
            self.wale,
            self.service,
            archiver,
            self.config.service,
            self.config.restore,
        )
        self.cron_runner = CronRunner(
            self.manager, self.copier, self.notifier, self.config.cron, archiver.host
        )
        logger.debug(f"pg-backup initialized for host {archiver.host}")

    @property
    def host(self) -> str:
        return self.config.archiver.host

    async def backup(self) -> OperationResult:
        return await self.manager.do_backup()

    async def list(
        self,
        branch: Union[BranchName, str] = BranchName.DAILY,
        host: Optional[str] = None,
        detailed: bool = False,
    ) -> OperationResult:
        return await self.catalog.describe(branch, host or self.host, detailed=detailed)

    async def delete(self, branch: Union[BranchName, str], keep: int) -> OperationResult:
        return await self.manager.delete_backups(RetentionPolicy(branch=branch, keep=keep))

    async def restore(
        self,
        branch: Union[BranchName, str] = BranchName.DAILY,
        host: Optional[str] = None,
        base_backup: str = LATEST,
        force: bool = False,
        recovery_target_time: Optional[datetime] = None,
    ) -> OperationResult:
        request = RestoreRequest(
            branch=branch,
            host=host or self.host,
            base_backup=base_backup,
            force=force,
            recovery_target_time=recovery_target_time,
        )
        return await self.restorer.restore(request)

    async def restore_from_date(self, target: datetime, host: Optional[str] = None) -> OperationResult:
        return await self.restorer.restore_from_date(target, host or self.host)

    async def copy(
        self,
        weekday: int = 6,
        dest: Union[BranchName, str] = BranchName.WEEKLY,
        src: Union[BranchName, str] = BranchName.DAILY,
    ) -> OperationResult:
        return await self.copier.copy_to_branch(weekday, src=BranchName(src), dest=BranchName(dest))

    async def size(self, host: Optional[str] = None) -> OperationResult:
        return await self.manager.get_size(host)

    async def cron(self, today: Optional[date] = None) -> CronReport:
        return await self.cron_runner.run(today)
