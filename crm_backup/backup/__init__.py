"""Backup and merge-restore for the CRM database."""

from .exceptions import (
    BackupError,
    RestoreError,
    SafetyBackupError,
    SnapshotNotFoundError,
    SnapshotWriteError,
)
from .manager import BackupManager
from .models import (
    BackupSettings,
    Conflict,
    RestoreReport,
    RestoreResult,
    RetentionClass,
    SnapshotInfo,
    SnapshotManifest,
)
from .registry import EntityDescriptor, EntityRegistry, build_crm_registry

__all__ = [
    "BackupManager",
    "BackupSettings",
    "BackupError",
    "Conflict",
    "EntityDescriptor",
    "EntityRegistry",
    "RestoreError",
    "RestoreReport",
    "RestoreResult",
    "RetentionClass",
    "SafetyBackupError",
    "SnapshotInfo",
    "SnapshotManifest",
    "SnapshotNotFoundError",
    "SnapshotWriteError",
    "build_crm_registry",
]
