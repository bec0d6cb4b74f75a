"""Scheduled daily/weekly backup and retention run."""

from datetime import date
from typing import Awaitable, Callable, Optional

from .._utils import logger
from ..config import CronConfig
from .copy import BranchCopier
from .manager import BackupManager
from .models import BranchName, CronReport, OperationResult, RetentionPolicy

DAILY_BACKUP = "Daily Backup"
DAILY_DELETE = "Daily Delete"
WEEKLY_BACKUP = "Weekly Backup"
WEEKLY_DELETE = "Weekly Delete"


class CronRunner:
    """Run the scheduled pipeline and report every step exactly once.

    Steps run strictly one after another. A step whose prerequisite failed is
    not attempted and is reported as skipped.
    """

    def __init__(
        self,
        manager: BackupManager,
        copier: BranchCopier,
        notifier,
        config: CronConfig,
        host: str,
    ):
        """Initialize runner.

        Args:
            manager: Backup and retention operations
            copier: Daily to weekly branch copier
            notifier: Object with an async ``send(title, report)``
            config: Retention counts and weekly weekday
            host: Host name used in the report title
        """
        self.manager = manager
        self.copier = copier
        self.notifier = notifier
        self.config = config
        self.host = host

    async def _step(
        self,
        report: CronReport,
        title: str,
        action: Callable[[], Awaitable[OperationResult]],
    ) -> None:
        try:
            result = await action()
        except Exception as e:
            # the scheduled run records failures instead of aborting
            logger.exception(f"{title} failed")
            report.add_failure(title, f"{type(e).__name__}: {e}")
            return
        report.add_success(title, result.message)

    async def run(self, today: Optional[date] = None) -> CronReport:
        """Run the pipeline for ``today`` and send the report.

        Returns:
            The report that was handed to the notifier
        """
        today = today or date.today()
        report = CronReport()
        logger.info("Cron task started")

        await self._step(report, DAILY_BACKUP, self.manager.do_backup)
        if report.has_failed(DAILY_BACKUP):
            report.add_skipped(DAILY_DELETE, "Daily backup failed so not doing Daily Delete")
        else:
            await self._step(
                report,
                DAILY_DELETE,
                lambda: self.manager.delete_backups(
                    RetentionPolicy(branch=BranchName.DAILY, keep=self.config.daily_keep)
                ),
            )

        if today.isoweekday() % 7 == self.config.weekday:
            logger.info("Weekly stuff running too")
            await self._step(
                report,
                WEEKLY_BACKUP,
                lambda: self.copier.copy_to_branch(self.config.weekday - 1, today=today),
            )
            if report.has_failed(WEEKLY_BACKUP):
                report.add_skipped(WEEKLY_DELETE, "Weekly backup failed so not doing Weekly Delete")
            else:
                await self._step(
                    report,
                    WEEKLY_DELETE,
                    lambda: self.manager.delete_backups(
                        RetentionPolicy(branch=BranchName.WEEKLY, keep=self.config.weekly_keep)
                    ),
                )

        if report.ok:
            logger.info("CRON job done")
        else:
            logger.error("CRON job failed\n" + "\n".join(entry.message for entry in report.failures))

        await self.notifier.send(f"Cron job report for *{self.host}*", report)
        return report
