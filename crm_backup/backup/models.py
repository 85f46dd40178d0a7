"""Data models for backup/restore operations."""

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..config import DEFAULT_RETENTION


class RetentionClass(str, Enum):
    """Bucket controlling snapshot naming and pruning."""
    DAILY = "daily"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    MANUAL = "manual"

    @property
    def folder(self) -> str:
        """Directory the class is stored under (manual snapshots live with daily ones)."""
        return RetentionClass.DAILY.value if self is RetentionClass.MANUAL else self.value


# Classes that own a directory under the backup root
STORED_CLASSES = (RetentionClass.DAILY, RetentionClass.MONTHLY, RetentionClass.YEARLY)


class SnapshotManifest(BaseModel):
    """Snapshot manifest; its presence marks the snapshot as complete."""

    created_at: datetime = Field(..., description="Snapshot creation timestamp")
    retention_class: RetentionClass = Field(..., description="Retention class the snapshot was taken for")
    size_bytes: int = Field(..., description="Size of the serialized dump in bytes")
    checksum: str = Field(..., description="SHA-256 checksum of the dump file")
    record_counts: Dict[str, int] = Field(..., description="Record count per entity type")
    format_version: str = Field(..., description="Dump format version")
    method: str = Field(default="sqlalchemy", description="Export method")


class SnapshotInfo(BaseModel):
    """Snapshot listing entry."""

    path: Path
    retention_class: RetentionClass
    name: str
    manifest: SnapshotManifest


class LoadedSnapshot(BaseModel):
    """Snapshot read back from disk for a restore."""

    path: Path
    manifest: Optional[SnapshotManifest] = None
    data: Dict[str, Any]
    checksum_verified: bool = False


class Conflict(BaseModel):
    """A record the merge declined to write, with the reason."""

    record_id: Optional[str] = None
    reason: str
    snapshot_timestamp: Optional[str] = None
    current_timestamp: Optional[str] = None


class RestoreReport(BaseModel):
    """Merge outcome for one entity type."""

    entity: str
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    conflicts: List[Conflict] = Field(default_factory=list)


class CopyStats(BaseModel):
    """Outcome of one asset tree copy."""

    copied: int = 0
    skipped: int = 0
    failed: int = 0


class RestoreResult(BaseModel):
    """Aggregated result of a full restore."""

    success: bool = False
    snapshot_path: Optional[Path] = None
    safety_snapshot_path: Optional[Path] = None
    reports: List[RestoreReport] = Field(default_factory=list)
    total_inserted: int = 0
    total_updated: int = 0
    total_skipped: int = 0
    total_conflicts: int = 0
    repaired_references: Dict[str, int] = Field(default_factory=dict)
    assets: Optional[CopyStats] = None
    duration_ms: int = 0
    error: Optional[str] = None

    def add_reports(self, reports: List[RestoreReport]) -> None:
        """Attach per-entity reports and roll their counts into the totals."""
        self.reports.extend(reports)
        for report in reports:
            self.total_inserted += report.inserted
            self.total_updated += report.updated
            self.total_skipped += report.skipped
            self.total_conflicts += len(report.conflicts)


class BackupSettings(BaseModel):
    """Operator backup settings stored in the ``backup_settings`` system setting."""

    enabled: bool = True
    daily_time: str = "04:00"
    retention_days: int = DEFAULT_RETENTION["daily"]
    retention_months: int = DEFAULT_RETENTION["monthly"]
    retention_years: int = DEFAULT_RETENTION["yearly"]
    last_backup: Optional[datetime] = None
    last_backup_type: Optional[RetentionClass] = None

    def keep_count(self, retention_class: RetentionClass) -> int:
        """Number of snapshot folders kept for a stored retention class."""
        return {
            RetentionClass.DAILY: self.retention_days,
            RetentionClass.MONTHLY: self.retention_months,
            RetentionClass.YEARLY: self.retention_years,
        }[RetentionClass(retention_class.folder)]
