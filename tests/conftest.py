"""Global pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest
import pytest_asyncio

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from crm_backup.backup import BackupManager, build_crm_registry
from crm_backup.config import BackupConfig
from crm_backup.database import create_engine_from_config, create_schema


@pytest.fixture
def backup_config(tmp_path) -> BackupConfig:
    """Config pointing every directory and the database at a temp dir."""
    return BackupConfig(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'crm.db'}",
        backup_dir=str(tmp_path / "backups"),
        uploads_dir=str(tmp_path / "uploads"),
        copy_retries=2,
    )


@pytest_asyncio.fixture
async def engine(backup_config):
    """Async engine on a fresh SQLite file with the CRM schema and FKs enforced."""
    engine = create_engine_from_config(backup_config)
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def registry():
    return build_crm_registry()


@pytest.fixture
def manager(engine, backup_config, registry) -> BackupManager:
    return BackupManager(engine, backup_config, registry)
