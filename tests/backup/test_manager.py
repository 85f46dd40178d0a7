"""Tests for BackupManager."""

import dataclasses
import json
import os
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import delete, update

from crm_backup.backup import BackupManager
from crm_backup.backup.exceptions import RestoreError, SafetyBackupError, SnapshotWriteError
from crm_backup.backup.models import RetentionClass
from crm_backup.schema import Lead
from tests.utils import count_rows, fetch_row, insert_rows, make_lead, make_user, ts


async def _seed(engine, uploads: Path):
    await insert_rows(engine, "users", [make_user("u1"), make_user("u2", account_manager_id="u1")])
    await insert_rows(engine, "leads", [
        make_lead("L1", status="Qualified", agent_id="u1", updated_at="2024-01-01"),
        make_lead("L2", status="New", agent_id="u2", updated_at="2024-01-01"),
    ])
    await insert_rows(engine, "lead_notes", [{"id": "n1", "lead_id": "L2", "content": "first call"}])

    (uploads / "avatars").mkdir(parents=True)
    (uploads / "avatars" / "u1.png").write_text("avatar")
    (uploads / "contract.pdf").write_text("v1")


def test_backup_manager_initialization(manager, backup_config):
    """Test BackupManager initialization."""
    assert manager.backup_dir == Path(backup_config.backup_dir)
    assert manager.backup_dir.exists()
    assert manager.uploads_dir == Path(backup_config.uploads_dir)
    assert manager.replicator.max_attempts == 2


@pytest.mark.asyncio
async def test_create_snapshot(manager, engine):
    await _seed(engine, manager.uploads_dir)

    path = await manager.create_snapshot(RetentionClass.DAILY)

    assert path.parent == manager.backup_dir / "daily"
    assert (path / "files" / "avatars" / "u1.png").read_text() == "avatar"

    snapshots = await manager.list_snapshots()
    assert len(snapshots) == 1
    assert snapshots[0].manifest.record_counts["leads"] == 2
    assert snapshots[0].manifest.record_counts["lead_notes"] == 1


@pytest.mark.asyncio
async def test_restore_is_non_destructive_merge(manager, engine):
    await _seed(engine, manager.uploads_dir)
    snapshot_path = await manager.create_snapshot(RetentionClass.DAILY)

    # Changes after the snapshot: L1 edited, L2 deleted (cascades n1), L3 created
    async with engine.begin() as conn:
        await conn.execute(
            update(Lead.__table__).where(Lead.__table__.c.id == "L1")
            .values(status="Won", updated_at=ts("2024-06-01 00:00:00"))
        )
        await conn.execute(delete(Lead.__table__).where(Lead.__table__.c.id == "L2"))
    await insert_rows(engine, "leads", [make_lead("L3", updated_at="2024-06-02")])

    uploads = manager.uploads_dir
    (uploads / "avatars" / "u1.png").unlink()
    (uploads / "contract.pdf").write_text("v2")
    future = (uploads / "contract.pdf").stat().st_mtime + 3600
    os.utime(uploads / "contract.pdf", (future, future))
    (uploads / "new-upload.txt").write_text("live")

    progress = []
    result = await manager.restore_snapshot(snapshot_path, on_progress=lambda p, pct: progress.append((p, pct)))

    assert result.success is True
    assert result.error is None
    assert result.safety_snapshot_path.parent == manager.backup_dir / "daily"
    assert result.safety_snapshot_path.name.startswith("manual-")

    # L1 live edit wins, L2 and its note come back, L3 untouched
    assert (await fetch_row(engine, "leads", "L1"))["status"] == "Won"
    assert (await fetch_row(engine, "leads", "L2"))["status"] == "New"
    assert await fetch_row(engine, "lead_notes", "n1") is not None
    assert await fetch_row(engine, "leads", "L3") is not None
    assert await count_rows(engine, "leads") == 3

    leads = next(r for r in result.reports if r.entity == "leads")
    assert (leads.inserted, leads.updated, leads.skipped) == (1, 0, 1)
    assert leads.conflicts[0].reason == "Current data is newer"
    assert result.total_inserted == 2
    assert result.total_conflicts == 1

    # Files: deleted one restored, newer live one kept, live-only one kept
    assert (uploads / "avatars" / "u1.png").read_text() == "avatar"
    assert (uploads / "contract.pdf").read_text() == "v2"
    assert (uploads / "new-upload.txt").read_text() == "live"
    assert result.assets.copied == 1

    phases = [p for p, _ in progress if not p.startswith("Merging ")]
    assert phases == [
        "Creating safety backup",
        "Loading backup data",
        "Performing smart merge",
        "Repairing references",
        "Restoring files",
        "Restore completed",
    ]
    percents = [pct for _, pct in progress]
    assert percents == sorted(percents)
    assert progress[-1] == ("Restore completed", 100)


@pytest.mark.asyncio
async def test_restore_twice_is_idempotent(manager, engine):
    await _seed(engine, manager.uploads_dir)
    snapshot_path = await manager.create_snapshot(RetentionClass.DAILY)
    async with engine.begin() as conn:
        await conn.execute(delete(Lead.__table__).where(Lead.__table__.c.id == "L2"))

    first = await manager.restore_snapshot(snapshot_path)
    second = await manager.restore_snapshot(snapshot_path)

    assert first.total_inserted == 2
    assert second.total_inserted == 0
    assert second.total_updated == 0
    assert second.total_conflicts == 0
    assert sum(second.repaired_references.values()) == 0


@pytest.mark.asyncio
async def test_safety_backup_failure_aborts_restore(manager, engine):
    await _seed(engine, manager.uploads_dir)
    snapshot_path = await manager.create_snapshot(RetentionClass.DAILY)
    async with engine.begin() as conn:
        await conn.execute(delete(Lead.__table__).where(Lead.__table__.c.id == "L2"))

    with patch.object(manager.store, "write_snapshot", AsyncMock(side_effect=SnapshotWriteError("disk full"))):
        with pytest.raises(RestoreError) as exc_info:
            await manager.restore_snapshot(snapshot_path)

    assert isinstance(exc_info.value.__cause__, SafetyBackupError)
    assert exc_info.value.result.success is False
    assert "disk full" in exc_info.value.result.error
    assert await fetch_row(engine, "leads", "L2") is None


@pytest.mark.asyncio
async def test_missing_dump_fails_with_result(manager, engine):
    missing = manager.backup_dir / "daily" / "2020-01-01"
    missing.mkdir(parents=True)

    with pytest.raises(RestoreError, match="Snapshot database file not found") as exc_info:
        await manager.restore_snapshot(missing)

    result = exc_info.value.result
    assert result.success is False
    assert result.safety_snapshot_path is not None
    assert result.duration_ms >= 0


@pytest.mark.asyncio
async def test_resolve_and_delete_snapshot(manager, engine):
    path = await manager.create_snapshot(RetentionClass.MONTHLY)

    assert manager.resolve_snapshot("monthly", path.name) == path
    with pytest.raises(ValueError):
        manager.resolve_snapshot("monthly", "../daily")

    assert await manager.delete_snapshot(path) is True
    assert await manager.list_snapshots() == []


@pytest.mark.asyncio
async def test_prune_retention_uses_stored_settings(manager, engine):
    await insert_rows(engine, "system_settings", [{
        "id": "s1", "key": "backup_settings", "category": "backup",
        "value": {"retention_days": 1},
    }])
    daily = manager.backup_dir / "daily"
    for index, name in enumerate(["2024-01-01", "2024-01-02"]):
        (daily / name).mkdir(parents=True)
        os.utime(daily / name, (1_700_000_000 + index, 1_700_000_000 + index))

    deleted = await manager.prune_retention()

    assert deleted["daily"] == ["2024-01-01"]
    assert deleted["monthly"] == []


@pytest.mark.asyncio
async def test_malformed_record_does_not_abort_restore(manager, engine):
    snapshot_path = await manager.create_snapshot(RetentionClass.DAILY)
    dump_path = snapshot_path / "database.json"
    data = json.loads(dump_path.read_text())
    data["users"] = [make_user("u1")]
    data["leads"] = [make_lead("L1"), None]
    dump_path.write_text(json.dumps(data))

    result = await manager.restore_snapshot(snapshot_path)

    assert result.success is True
    assert await fetch_row(engine, "users", "u1") is not None
    assert await fetch_row(engine, "leads", "L1") is not None
    leads = next(r for r in result.reports if r.entity == "leads")
    assert leads.inserted == 1
    assert [c.reason for c in leads.conflicts] == ["Record is not an object"]
    assert result.total_conflicts == 1


@pytest.mark.asyncio
async def test_aborted_merge_attaches_finished_reports(manager, engine):
    await insert_rows(engine, "users", [make_user("u1")])
    await insert_rows(engine, "leads", [make_lead("L1", agent_id="u1")])
    snapshot_path = await manager.create_snapshot(RetentionClass.DAILY)
    async with engine.begin() as conn:
        await conn.execute(delete(Lead.__table__))

    def stop_at_leads(phase, percent):
        if phase == "Merging leads":
            raise RuntimeError("cancelled")

    with pytest.raises(RestoreError, match="cancelled") as exc_info:
        await manager.restore_snapshot(snapshot_path, on_progress=stop_at_leads)

    result = exc_info.value.result
    assert result.success is False
    entities = [r.entity for r in result.reports]
    assert "users" in entities
    assert "leads" not in entities
    users = next(r for r in result.reports if r.entity == "users")
    assert users.skipped == 1
    assert result.total_skipped == users.skipped
    assert await fetch_row(engine, "leads", "L1") is None


@pytest.mark.asyncio
async def test_uncreatable_uploads_dir_does_not_fail_restore(manager, engine, backup_config, tmp_path):
    await _seed(engine, manager.uploads_dir)
    snapshot_path = await manager.create_snapshot(RetentionClass.DAILY)
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    config = dataclasses.replace(backup_config, uploads_dir=str(blocker / "uploads"))
    blocked = BackupManager(engine, config, manager.registry)

    result = await blocked.restore_snapshot(snapshot_path)

    assert result.success is True
    assert result.error is None
    assert result.assets.failed == 2
    assert result.assets.copied == 0
    assert len(result.reports) > 0
