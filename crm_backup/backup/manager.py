"""Backup and restore orchestration for the CRM database and uploaded files."""

import time
from pathlib import Path
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from .._utils import logger
from ..config import BackupConfig
from .exceptions import RestoreError, SafetyBackupError
from .exporters import AssetReplicator, CopyMode, EntityExporter
from .merge import MergeRestoreEngine, ProgressCallback
from .models import RestoreResult, RetentionClass, SnapshotInfo
from .registry import EntityRegistry, build_crm_registry
from .repair import ReferenceRepairer
from .retention import RetentionManager
from .settings_store import SettingsStore
from .store import SnapshotStore
from .utils import FILES_DIRNAME


class BackupManager:
    """Orchestrate snapshot, restore, listing and retention operations.

    Every component receives the engine explicitly; nothing reaches for a
    global database client. Restores are not serialized here: callers must not
    run two restores against the same database at once.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        config: Optional[BackupConfig] = None,
        registry: Optional[EntityRegistry] = None,
    ):
        """Initialize backup manager.

        Args:
            engine: Async engine for the live CRM database
            config: Backup configuration (defaults to ``BackupConfig()``)
            registry: Entity registry (defaults to the CRM schema registry)
        """
        self.engine = engine
        self.config = config or BackupConfig()
        self.registry = registry or build_crm_registry()
        self.uploads_dir = Path(self.config.uploads_dir)

        self.replicator = AssetReplicator(max_attempts=self.config.copy_retries)
        self.store = SnapshotStore(
            self.config.backup_dir,
            replicator=self.replicator,
            format_version=self.config.format_version,
        )
        self.retention = RetentionManager(self.store)
        self.settings = SettingsStore(engine)

    @property
    def backup_dir(self) -> Path:
        return self.store.base_dir

    async def create_snapshot(self, retention_class: RetentionClass) -> Path:
        """Create a full snapshot of the database and uploaded files.

        Args:
            retention_class: daily, monthly, yearly or manual

        Returns:
            Path to the published snapshot folder
        """
        retention_class = RetentionClass(retention_class)
        start = time.monotonic()
        logger.info(f"Starting {retention_class.value} snapshot")

        exporter = EntityExporter(self.engine, self.registry)
        data = await exporter.export()
        path = await self.store.write_snapshot(retention_class, data, self.uploads_dir)

        duration_ms = int((time.monotonic() - start) * 1000)
        logger.info(f"{retention_class.value} snapshot completed in {duration_ms}ms: {path}")
        return path

    async def restore_snapshot(
        self,
        path: Path,
        on_progress: Optional[ProgressCallback] = None,
    ) -> RestoreResult:
        """Merge a snapshot back into the live database without deleting anything.

        Args:
            path: Snapshot folder to restore
            on_progress: Called synchronously with (phase, percent) at checkpoints

        Returns:
            RestoreResult with per-entity reports and totals

        Raises:
            RestoreError: If the restore aborted; ``result`` holds the partial outcome
        """
        path = Path(path)
        start = time.monotonic()
        result = RestoreResult(snapshot_path=path)
        logger.info(f"Starting restore from: {path}")

        def progress(phase: str, percent: int) -> None:
            if on_progress:
                on_progress(phase, percent)

        try:
            progress("Creating safety backup", 10)
            try:
                result.safety_snapshot_path = await self.create_snapshot(RetentionClass.MANUAL)
            except Exception as e:
                raise SafetyBackupError(f"Safety backup failed, restore aborted: {e}") from e
            logger.info(f"Safety backup created: {result.safety_snapshot_path}")

            progress("Loading backup data", 20)
            snapshot = await self.store.load_snapshot(path)

            progress("Performing smart merge", 30)
            merger = MergeRestoreEngine(self.engine, self.registry)
            await merger.merge(snapshot.data, on_progress=on_progress, result=result)

            progress("Repairing references", 85)
            repairer = ReferenceRepairer(self.engine, self.registry)
            result.repaired_references = await repairer.repair(snapshot.data)

            progress("Restoring files", 90)
            files_dir = path / FILES_DIRNAME
            if files_dir.is_dir():
                result.assets = await self.replicator.replicate(
                    files_dir, self.uploads_dir, CopyMode.NEWER_ONLY
                )

            result.success = True
            result.duration_ms = int((time.monotonic() - start) * 1000)
            progress("Restore completed", 100)

        except Exception as e:
            result.success = False
            result.error = str(e)
            result.duration_ms = int((time.monotonic() - start) * 1000)
            logger.error(f"Restore failed: {e}")
            if isinstance(e, RestoreError):
                raise
            raise RestoreError(str(e), result) from e

        logger.info(
            f"Restore completed in {result.duration_ms}ms: {result.total_inserted} inserted, "
            f"{result.total_updated} updated, {result.total_skipped} skipped, "
            f"{result.total_conflicts} conflicts"
        )
        return result

    async def list_snapshots(self) -> List[SnapshotInfo]:
        """List all complete snapshots, newest first."""
        return await self.store.list_snapshots()

    def resolve_snapshot(self, retention_class: RetentionClass, name: str) -> Path:
        """Path of a snapshot folder; raises ValueError for invalid class or name."""
        return self.store.resolve(retention_class, name)

    async def delete_snapshot(self, path: Path) -> bool:
        """Delete a snapshot folder.

        Returns:
            True if deleted, False if not found
        """
        return await self.store.delete_snapshot(Path(path))

    async def prune_retention(self) -> Dict[str, List[str]]:
        """Apply the configured retention counts to every retention class."""
        settings = await self.settings.load()
        return self.retention.prune_all(settings)


__all__ = ["BackupManager"]
