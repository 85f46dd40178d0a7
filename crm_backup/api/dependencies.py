"""Dependency injection for FastAPI."""

from typing import TYPE_CHECKING

from fastapi import Request

from .jobs import JobManager

if TYPE_CHECKING:
    from crm_backup.backup import BackupManager


async def get_backup_manager(request: Request) -> "BackupManager":
    """Get BackupManager instance from app state."""
    return request.app.state.backup_manager


async def get_job_manager(request: Request) -> JobManager:
    """Get the shared JobManager from app state."""
    return request.app.state.job_manager
