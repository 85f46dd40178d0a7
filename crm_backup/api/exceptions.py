"""Custom exceptions for FastAPI application."""

from fastapi import HTTPException
from starlette.status import HTTP_400_BAD_REQUEST, HTTP_404_NOT_FOUND


class BackupAPIError(HTTPException):
    """Base exception for backup API errors."""
    pass


class SnapshotMissingError(BackupAPIError):
    def __init__(self, retention_class: str, name: str):
        super().__init__(HTTP_404_NOT_FOUND, f"Snapshot not found: {retention_class}/{name}")


class JobNotFoundError(BackupAPIError):
    def __init__(self, job_id: str):
        super().__init__(HTTP_404_NOT_FOUND, f"Job {job_id} not found")


class InvalidRequestError(BackupAPIError):
    def __init__(self, detail: str):
        super().__init__(HTTP_400_BAD_REQUEST, detail)
