"""Tests for retention pruning."""

import os

import pytest

from crm_backup.backup.models import BackupSettings, RetentionClass
from crm_backup.backup.retention import RetentionManager
from crm_backup.backup.store import SnapshotStore


@pytest.fixture
def store(tmp_path):
    return SnapshotStore(str(tmp_path / "backups"))


def _make_folders(store, retention_class, names):
    """Create snapshot folders with increasing mtimes in the order given."""
    class_dir = store.class_dir(retention_class)
    class_dir.mkdir(parents=True, exist_ok=True)
    for index, name in enumerate(names):
        folder = class_dir / name
        folder.mkdir()
        mtime = 1_700_000_000 + index * 86400
        os.utime(folder, (mtime, mtime))


def test_prune_keeps_newest(store):
    _make_folders(store, RetentionClass.DAILY, ["2024-01-01", "2024-01-02", "2024-01-03", "2024-01-04"])

    deleted = RetentionManager(store).prune(RetentionClass.DAILY, keep=3)

    assert deleted == ["2024-01-01"]
    remaining = sorted(p.name for p in store.class_dir(RetentionClass.DAILY).iterdir())
    assert remaining == ["2024-01-02", "2024-01-03", "2024-01-04"]


def test_prune_orders_by_mtime_not_name(store):
    # Folder age comes from mtime; names are only a tie-break
    _make_folders(store, RetentionClass.DAILY, ["2024-01-05", "manual-2024-01-01T00-00-00-000Z", "2024-01-02"])

    deleted = RetentionManager(store).prune(RetentionClass.DAILY, keep=2)

    assert deleted == ["2024-01-05"]


def test_prune_ignores_hidden_folders(store):
    _make_folders(store, RetentionClass.DAILY, [".staging-x", "2024-01-01", "2024-01-02"])

    deleted = RetentionManager(store).prune(RetentionClass.DAILY, keep=1)

    assert deleted == ["2024-01-01"]
    assert (store.class_dir(RetentionClass.DAILY) / ".staging-x").exists()


@pytest.mark.parametrize("keep", [0, -1])
def test_zero_keep_deletes_everything(store, keep):
    _make_folders(store, RetentionClass.MONTHLY, ["2024-01", "2024-02"])

    deleted = RetentionManager(store).prune(RetentionClass.MONTHLY, keep=keep)

    assert sorted(deleted) == ["2024-01", "2024-02"]
    assert list(store.class_dir(RetentionClass.MONTHLY).iterdir()) == []


def test_prune_missing_directory(store):
    assert RetentionManager(store).prune(RetentionClass.YEARLY, keep=1) == []


def test_prune_all_uses_settings(store):
    _make_folders(store, RetentionClass.DAILY, ["2024-01-01", "2024-01-02", "2024-01-03"])
    _make_folders(store, RetentionClass.MONTHLY, ["2023-12", "2024-01"])
    _make_folders(store, RetentionClass.YEARLY, ["2022", "2023"])
    settings = BackupSettings(retention_days=2, retention_months=1, retention_years=5)

    deleted = RetentionManager(store).prune_all(settings)

    assert deleted == {"daily": ["2024-01-01"], "monthly": ["2023-12"], "yearly": []}


def test_zero_yearly_count_keeps_every_yearly_snapshot(store):
    _make_folders(store, RetentionClass.DAILY, ["2024-01-01", "2024-01-02"])
    _make_folders(store, RetentionClass.YEARLY, ["2021", "2022", "2023"])
    settings = BackupSettings(retention_days=0, retention_months=12, retention_years=0)

    deleted = RetentionManager(store).prune_all(settings)

    assert deleted["yearly"] == []
    assert sorted(deleted["daily"]) == ["2024-01-01", "2024-01-02"]
    assert len(list(store.class_dir(RetentionClass.YEARLY).iterdir())) == 3
