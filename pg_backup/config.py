"""Configuration management for pg-backup."""

import os
import socket
from dataclasses import dataclass, field
from typing import Optional


def _env_int(name: str, default: str) -> int:
    # base 0 accepts hex literals such as 0xFF
    return int(os.getenv(name, default), 0)


@dataclass(frozen=True)
class ArchiverConfig:
    """WAL-E archiving tool configuration."""
    path: str = "/usr/local/bin/wal-e"
    host: str = field(default_factory=socket.gethostname)
    gs_prefix: str = "gs://postgresql-backups/"
    gs_app_creds: str = "/etc/pg_backup/gsAppCreds.json"
    pgdata: str = "/var/lib/postgresql/10/main"
    run_as: str = "postgres"  # OS user the archiver and chown run as
    cwd: Optional[str] = None
    wal_segment_max: int = 0x000000FF

    @classmethod
    def from_env(cls) -> 'ArchiverConfig':
        """Create config from environment variables."""
        return cls(
            path=os.getenv("WALE_PATH", "/usr/local/bin/wal-e"),
            host=os.getenv("WALE_HOST", socket.gethostname()),
            gs_prefix=os.getenv("WALE_GS_PREFIX", "gs://postgresql-backups/"),
            gs_app_creds=os.getenv("WALE_GS_APP_CREDS", "/etc/pg_backup/gsAppCreds.json"),
            pgdata=os.getenv("WALE_PGDATA", "/var/lib/postgresql/10/main"),
            run_as=os.getenv("WALE_RUN_AS", "postgres"),
            cwd=os.getenv("WALE_CWD") or None,
            wal_segment_max=_env_int("WALE_WAL_SEGMENT_MAX", "0xFF"),
        )

    def __post_init__(self):
        """Validate configuration."""
        if not self.gs_prefix.startswith("gs://"):
            raise ValueError(f"gs_prefix must be a gs:// url, got {self.gs_prefix}")
        if not self.host:
            raise ValueError("host must not be empty")
        if self.wal_segment_max <= 0:
            raise ValueError(f"wal_segment_max must be positive, got {self.wal_segment_max}")


@dataclass(frozen=True)
class StorageConfig:
    """gsutil object-storage CLI configuration."""
    gsutil_path: str = "/usr/local/bin/gsutil"
    copy_concurrency: int = 16
    copy_attempts: int = 3

    @classmethod
    def from_env(cls) -> 'StorageConfig':
        """Create config from environment variables."""
        return cls(
            gsutil_path=os.getenv("GSUTIL_PATH", "/usr/local/bin/gsutil"),
            copy_concurrency=int(os.getenv("GSUTIL_COPY_CONCURRENCY", "16")),
            copy_attempts=int(os.getenv("GSUTIL_COPY_ATTEMPTS", "3")),
        )

    def __post_init__(self):
        """Validate configuration."""
        if self.copy_concurrency <= 0:
            raise ValueError(f"copy_concurrency must be positive, got {self.copy_concurrency}")
        if self.copy_attempts <= 0:
            raise ValueError(f"copy_attempts must be positive, got {self.copy_attempts}")


@dataclass(frozen=True)
class ServiceConfig:
    """Database service control."""
    name: str = "postgresql"
    log_dir: str = "/var/log/postgresql"

    @classmethod
    def from_env(cls) -> 'ServiceConfig':
        return cls(
            name=os.getenv("PG_SERVICE_NAME", "postgresql"),
            log_dir=os.getenv("PG_LOG_DIR", "/var/log/postgresql"),
        )


@dataclass(frozen=True)
class RestoreConfig:
    """Restore completion polling."""
    poll_interval: float = 30.0
    timeout: float = 60 * 60.0

    @classmethod
    def from_env(cls) -> 'RestoreConfig':
        return cls(
            poll_interval=float(os.getenv("RESTORE_POLL_INTERVAL", "30")),
            timeout=float(os.getenv("RESTORE_TIMEOUT", "3600")),
        )

    def __post_init__(self):
        """Validate configuration."""
        if self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive, got {self.poll_interval}")
        if self.timeout < self.poll_interval:
            raise ValueError(
                f"timeout ({self.timeout}) must not be shorter than poll_interval ({self.poll_interval})"
            )


@dataclass(frozen=True)
class CronConfig:
    """Scheduled run retention and weekly copy settings."""
    daily_keep: int = 8
    weekly_keep: int = 12
    weekday: int = 6  # 0 = Sunday ... 6 = Saturday

    @classmethod
    def from_env(cls) -> 'CronConfig':
        return cls(
            daily_keep=int(os.getenv("CRON_DAILY_KEEP", "8")),
            weekly_keep=int(os.getenv("CRON_WEEKLY_KEEP", "12")),
            weekday=int(os.getenv("CRON_WEEKDAY", "6")),
        )

    def __post_init__(self):
        """Validate configuration."""
        if self.daily_keep < 0 or self.weekly_keep < 0:
            raise ValueError("retention counts must not be negative")
        if not 0 <= self.weekday <= 6:
            raise ValueError(f"weekday must be between 0 and 6, got {self.weekday}")


@dataclass(frozen=True)
class SlackConfig:
    """Slack incoming webhook used for cron reports."""
    webhook: Optional[str] = None
    channel: str = "@dev-events"
    username: str = "Postgres-Backup-Status"
    icon_emoji: str = ":floppy_disk:"
    timeout: float = 10.0

    @classmethod
    def from_env(cls) -> 'SlackConfig':
        return cls(
            webhook=os.getenv("SLACK_WEBHOOK") or None,
            channel=os.getenv("SLACK_CHANNEL", "@dev-events"),
        )


@dataclass(frozen=True)
class LoggingConfig:
    """Log destinations. Console output is opt-in per invocation."""
    log_dir: Optional[str] = None
    console: bool = False
    level: str = "INFO"

    @classmethod
    def from_env(cls) -> 'LoggingConfig':
        return cls(
            log_dir=os.getenv("PGBACKUP_LOG_DIR") or None,
            console=os.getenv("PGBACKUP_LOG_CONSOLE", "false").lower() == "true",
            level=os.getenv("PGBACKUP_LOG_LEVEL", "INFO").upper(),
        )


@dataclass(frozen=True)
class PgBackupConfig:
    """Main pg-backup configuration."""
    archiver: ArchiverConfig = field(default_factory=ArchiverConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    service: ServiceConfig = field(default_factory=ServiceConfig)
    restore: RestoreConfig = field(default_factory=RestoreConfig)
    cron: CronConfig = field(default_factory=CronConfig)
    slack: SlackConfig = field(default_factory=SlackConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls) -> 'PgBackupConfig':
        """Create complete config from environment variables."""
        return cls(
            archiver=ArchiverConfig.from_env(),
            storage=StorageConfig.from_env(),
            service=ServiceConfig.from_env(),
            restore=RestoreConfig.from_env(),
            cron=CronConfig.from_env(),
            slack=SlackConfig.from_env(),
            logging=LoggingConfig.from_env(),
        )
