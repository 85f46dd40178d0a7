"""Scheduled and manual backup triggers.

The clock is external: a scheduler (cron, APScheduler, a systemd timer) calls
``run_backup_jobs`` once a day at the configured time.
"""

import time
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

from .._utils import logger
from .manager import BackupManager
from .models import RetentionClass


@dataclass
class JobResult:
    """Outcome of one tracked job run."""
    name: str
    success: bool
    duration_ms: int
    error: Optional[str] = None


async def run_job_with_tracking(name: str, job: Callable[[], Awaitable[object]]) -> JobResult:
    """Run a job, timing it and capturing any failure instead of raising."""
    start = time.monotonic()
    logger.info(f"Job started: {name}")
    try:
        await job()
    except Exception as e:
        duration_ms = int((time.monotonic() - start) * 1000)
        logger.error(f"Job failed: {name} after {duration_ms}ms: {e}")
        return JobResult(name=name, success=False, duration_ms=duration_ms, error=str(e))

    duration_ms = int((time.monotonic() - start) * 1000)
    logger.info(f"Job completed: {name} in {duration_ms}ms")
    return JobResult(name=name, success=True, duration_ms=duration_ms)


async def perform_scheduled_backup(
    manager: BackupManager,
    retention_class: RetentionClass,
) -> Optional[Path]:
    """Take a scheduled snapshot, record it, and prune old ones.

    Returns:
        Snapshot path, or None if scheduled backups are disabled
    """
    retention_class = RetentionClass(retention_class)
    settings = await manager.settings.load()
    if not settings.enabled:
        logger.info(f"Scheduled backups disabled, skipping {retention_class.value} backup")
        return None

    path = await manager.create_snapshot(retention_class)
    await manager.settings.record_backup(retention_class)
    await manager.prune_retention()
    return path


async def perform_manual_backup(manager: BackupManager) -> Path:
    """Take an on-demand snapshot. Manual snapshots never trigger pruning."""
    return await manager.create_snapshot(RetentionClass.MANUAL)


async def run_backup_jobs(manager: BackupManager, today: Optional[date] = None) -> List[JobResult]:
    """Run the backup jobs due on ``today``.

    Daily always runs; monthly on the first of the month; yearly on January 1st.
    A failing job does not stop the ones after it.
    """
    today = today or date.today()
    due = [RetentionClass.DAILY]
    if today.day == 1:
        due.append(RetentionClass.MONTHLY)
        if today.month == 1:
            due.append(RetentionClass.YEARLY)

    results = []
    for retention_class in due:
        results.append(await run_job_with_tracking(
            f"{retention_class.value}-backup",
            lambda rc=retention_class: perform_scheduled_backup(manager, rc),
        ))
    return results
