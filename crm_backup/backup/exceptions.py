"""Exceptions raised by backup and restore operations."""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .models import RestoreResult


class BackupError(Exception):
    """Base exception for backup/restore failures."""
    pass


class SnapshotNotFoundError(BackupError):
    def __init__(self, path):
        self.path = path
        super().__init__(f"Snapshot database file not found: {path}")


class SnapshotWriteError(BackupError):
    """A new snapshot could not be fully written; nothing was published."""
    pass


class SafetyBackupError(BackupError):
    """The mandatory pre-restore snapshot failed, so the restore was refused."""
    pass


class RestoreError(BackupError):
    """A restore aborted. ``result`` carries whatever was merged before the failure."""

    def __init__(self, message: str, result: Optional["RestoreResult"] = None):
        super().__init__(message)
        self.result = result
