"""Tests for operator settings persistence."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from crm_backup.backup.models import BackupSettings, RetentionClass
from crm_backup.backup.settings_store import SettingsStore
from tests.utils import insert_rows


@pytest.mark.asyncio
async def test_defaults_when_nothing_stored(engine):
    settings = await SettingsStore(engine).load()

    assert settings.enabled is True
    assert settings.daily_time == "04:00"
    assert (settings.retention_days, settings.retention_months, settings.retention_years) == (30, 12, 5)
    assert settings.last_backup is None


@pytest.mark.asyncio
async def test_partial_record_is_merged_over_defaults(engine):
    await insert_rows(engine, "system_settings", [{
        "id": "s1",
        "key": "backup_settings",
        "category": "backup",
        "value": {"enabled": False, "retention_days": 7},
    }])

    settings = await SettingsStore(engine).load()

    assert settings.enabled is False
    assert settings.retention_days == 7
    assert settings.retention_months == 12


@pytest.mark.asyncio
async def test_invalid_record_falls_back_to_defaults(engine):
    await insert_rows(engine, "system_settings", [{
        "id": "s1", "key": "backup_settings", "category": "backup",
        "value": {"retention_days": "a lot"},
    }])

    settings = await SettingsStore(engine).load()

    assert settings == BackupSettings()


@pytest.mark.asyncio
async def test_read_failure_falls_back_to_defaults():
    engine = MagicMock()
    engine.connect.side_effect = OperationalError("SELECT", {}, Exception("locked"))

    settings = await SettingsStore(engine).load()

    assert settings == BackupSettings()


@pytest.mark.asyncio
async def test_save_then_load(engine):
    store = SettingsStore(engine)
    await store.save(BackupSettings(daily_time="02:30", retention_years=10), updated_by="admin")
    await store.save(BackupSettings(daily_time="03:15", retention_years=10), updated_by="admin")

    settings = await store.load()

    assert settings.daily_time == "03:15"
    assert settings.retention_years == 10


@pytest.mark.asyncio
async def test_record_backup(engine):
    store = SettingsStore(engine)

    await store.record_backup(RetentionClass.MONTHLY)
    settings = await store.load()

    assert settings.last_backup is not None
    assert settings.last_backup_type == RetentionClass.MONTHLY
