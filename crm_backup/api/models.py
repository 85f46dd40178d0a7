"""Pydantic models for API requests and responses."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from ..backup.models import RestoreResult, RetentionClass


class JobStatus(str, Enum):
    """Job status enum."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobProgress(BaseModel):
    """Job progress tracking."""
    percent: int = 0
    phase: str = "initializing"


class JobResponse(BaseModel):
    """Restore job status."""
    job_id: str
    job_type: str
    status: JobStatus
    created_at: datetime
    completed_at: Optional[datetime] = None
    progress: JobProgress = Field(default_factory=JobProgress)
    result: Optional[RestoreResult] = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class SnapshotEntry(BaseModel):
    """Snapshot listing row."""
    retention_class: RetentionClass
    name: str
    created_at: datetime
    size_bytes: int
    record_counts: Dict[str, int]
    format_version: str


class SnapshotCreated(BaseModel):
    retention_class: RetentionClass
    name: str
    path: str


class SettingsUpdate(BaseModel):
    """Partial update of the operator backup settings."""
    enabled: Optional[bool] = None
    daily_time: Optional[str] = Field(default=None, pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    retention_days: Optional[int] = Field(default=None, ge=0)
    retention_months: Optional[int] = Field(default=None, ge=0)
    retention_years: Optional[int] = Field(default=None, ge=0)


class MessageResponse(BaseModel):
    message: str
