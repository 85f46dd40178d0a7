"""Backup and restore API endpoints."""

import asyncio
from pathlib import Path
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends

from crm_backup._utils import logger
from crm_backup.backup import BackupManager, BackupSettings, RestoreError, SnapshotInfo
from crm_backup.backup.jobs import perform_manual_backup

from ..config import settings as api_settings
from ..dependencies import get_backup_manager, get_job_manager
from ..exceptions import InvalidRequestError, JobNotFoundError, SnapshotMissingError
from ..jobs import JobManager
from ..models import (
    JobResponse,
    JobStatus,
    MessageResponse,
    SettingsUpdate,
    SnapshotCreated,
    SnapshotEntry,
)

router = APIRouter(prefix="/backup", tags=["backup"])


def _entry(info: SnapshotInfo) -> SnapshotEntry:
    return SnapshotEntry(
        retention_class=info.retention_class,
        name=info.name,
        created_at=info.manifest.created_at,
        size_bytes=info.manifest.size_bytes,
        record_counts=info.manifest.record_counts,
        format_version=info.manifest.format_version,
    )


def _resolve_existing(backup_manager: BackupManager, retention_class: str, name: str) -> Path:
    try:
        path = backup_manager.resolve_snapshot(retention_class, name)
    except ValueError as e:
        raise InvalidRequestError(str(e))
    if not path.is_dir():
        raise SnapshotMissingError(retention_class, name)
    return path


@router.get("/list", response_model=List[SnapshotEntry])
async def list_snapshots(
    backup_manager: BackupManager = Depends(get_backup_manager),
) -> List[SnapshotEntry]:
    """List all complete snapshots, newest first."""
    return [_entry(info) for info in await backup_manager.list_snapshots()]


@router.get("/history", response_model=List[SnapshotEntry])
async def snapshot_history(
    backup_manager: BackupManager = Depends(get_backup_manager),
) -> List[SnapshotEntry]:
    """Most recent snapshots across all retention classes."""
    snapshots = await backup_manager.list_snapshots()
    return [_entry(info) for info in snapshots[:api_settings.history_limit]]


@router.post("/create", response_model=SnapshotCreated)
async def create_snapshot(
    backup_manager: BackupManager = Depends(get_backup_manager),
) -> SnapshotCreated:
    """Take a manual snapshot now."""
    path = await perform_manual_backup(backup_manager)
    return SnapshotCreated(retention_class=path.parent.name, name=path.name, path=str(path))


@router.get("/settings", response_model=BackupSettings)
async def get_settings(
    backup_manager: BackupManager = Depends(get_backup_manager),
) -> BackupSettings:
    return await backup_manager.settings.load()


@router.put("/settings", response_model=BackupSettings)
async def update_settings(
    update: SettingsUpdate,
    backup_manager: BackupManager = Depends(get_backup_manager),
) -> BackupSettings:
    """Update operator backup settings; omitted fields keep their value."""
    current = await backup_manager.settings.load()
    changes = update.model_dump(exclude_none=True)
    updated = current.model_copy(update=changes)
    return await backup_manager.settings.save(updated)


@router.delete("/{retention_class}/{name}", response_model=MessageResponse)
async def delete_snapshot(
    retention_class: str,
    name: str,
    backup_manager: BackupManager = Depends(get_backup_manager),
) -> MessageResponse:
    """Delete one snapshot folder."""
    path = _resolve_existing(backup_manager, retention_class, name)
    if not await backup_manager.delete_snapshot(path):
        raise SnapshotMissingError(retention_class, name)
    return MessageResponse(message=f"Snapshot deleted: {retention_class}/{name}")


async def _restore_snapshot_task(
    backup_manager: BackupManager,
    job_manager: JobManager,
    job_id: str,
    path: Path,
):
    """Background task to restore a snapshot."""
    pending = []

    def on_progress(phase: str, percent: int) -> None:
        pending.append(asyncio.ensure_future(job_manager.update_job_progress(job_id, phase, percent)))

    await job_manager.update_job_status(job_id, JobStatus.PROCESSING)
    try:
        result = await backup_manager.restore_snapshot(path, on_progress=on_progress)
    except RestoreError as e:
        await asyncio.gather(*pending)
        logger.error(f"Restore job {job_id} failed: {e}")
        await job_manager.update_job_status(job_id, JobStatus.FAILED, str(e), result=e.result)
        return

    await asyncio.gather(*pending)
    await job_manager.update_job_status(job_id, JobStatus.COMPLETED, result=result)
    logger.info(f"Restore job {job_id} completed: {path}")


@router.post("/restore/{retention_class}/{name}", response_model=JobResponse)
async def restore_snapshot(
    retention_class: str,
    name: str,
    background_tasks: BackgroundTasks,
    backup_manager: BackupManager = Depends(get_backup_manager),
    job_manager: JobManager = Depends(get_job_manager),
) -> JobResponse:
    """Start a merge restore in the background.

    Returns the job for tracking restore progress.
    """
    path = _resolve_existing(backup_manager, retention_class, name)

    job_id = await job_manager.create_job(
        job_type="restore",
        metadata={"retention_class": retention_class, "name": name},
    )
    background_tasks.add_task(_restore_snapshot_task, backup_manager, job_manager, job_id, path)
    return await job_manager.get_job(job_id)


@router.get("/restore-status/{job_id}", response_model=JobResponse)
async def restore_status(
    job_id: str,
    job_manager: JobManager = Depends(get_job_manager),
) -> JobResponse:
    job = await job_manager.get_job(job_id)
    if not job:
        raise JobNotFoundError(job_id)
    return job
