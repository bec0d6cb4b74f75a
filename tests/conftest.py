"""Global pytest configuration and fixtures."""

import pytest
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from pg_backup._utils import SubprocessOptions
from pg_backup.config import ArchiverConfig, StorageConfig


@pytest.fixture
def archiver_config(tmp_path):
    """Archiver configuration pointing at a temporary data directory."""
    return ArchiverConfig(
        path=str(tmp_path / "bin" / "wal-e"),
        host="db1",
        gs_prefix="gs://bucket/",
        gs_app_creds=str(tmp_path / "creds.json"),
        pgdata=str(tmp_path / "main"),
        run_as="",
    )


@pytest.fixture
def storage_config():
    return StorageConfig(gsutil_path="gsutil", copy_concurrency=4, copy_attempts=3)


@pytest.fixture
def subprocess_options():
    """Options that run as the current user, skipping any user lookup."""
    return SubprocessOptions()
