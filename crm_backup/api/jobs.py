"""Job tracking for background restores."""
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Optional

from crm_backup._utils import logger
from crm_backup.backup.models import RestoreResult

from .models import JobProgress, JobResponse, JobStatus

if TYPE_CHECKING:
    import redis.asyncio as redis


class JobManager:
    """Manages job lifecycle and tracking.

    Jobs are stored in Redis when a client is given, otherwise in a dict owned
    by this process (lost on restart, invisible to other workers).
    """

    def __init__(self, redis_client: Optional["redis.Redis"] = None, job_ttl: int = 604800):
        self.redis = redis_client
        self._local: Dict[str, str] = {}
        # Seconds a job record lives in Redis (default: 7 days)
        self.job_ttl = job_ttl

    async def _store(self, job: JobResponse) -> None:
        payload = job.model_dump_json()
        if self.redis:
            await self.redis.setex(f"job:{job.job_id}", self.job_ttl, payload)
        else:
            self._local[job.job_id] = payload

    async def create_job(self, job_type: str, metadata: Optional[Dict[str, Any]] = None) -> str:
        """Create a new pending job."""
        job_id = str(uuid.uuid4())
        job = JobResponse(
            job_id=job_id,
            job_type=job_type,
            status=JobStatus.PENDING,
            created_at=datetime.now(timezone.utc),
            metadata=metadata or {},
        )
        await self._store(job)
        logger.info(f"Created {job_type} job {job_id}")
        return job_id

    async def get_job(self, job_id: str) -> Optional[JobResponse]:
        """Retrieve job details."""
        if self.redis:
            job_data = await self.redis.get(f"job:{job_id}")
        else:
            job_data = self._local.get(job_id)
        if job_data:
            return JobResponse.model_validate_json(job_data)
        return None

    async def update_job_status(
        self,
        job_id: str,
        status: JobStatus,
        error: Optional[str] = None,
        result: Optional[RestoreResult] = None,
    ) -> bool:
        """Update job status, attaching the restore result when there is one."""
        job = await self.get_job(job_id)
        if not job:
            return False

        job.status = status
        if result is not None:
            job.result = result
        if status == JobStatus.COMPLETED:
            job.completed_at = datetime.now(timezone.utc)
        elif status == JobStatus.FAILED:
            job.error = error
            job.completed_at = datetime.now(timezone.utc)

        await self._store(job)
        logger.info(f"Updated job {job_id} status to {status.value}")
        return True

    async def update_job_progress(self, job_id: str, phase: str, percent: int) -> bool:
        """Update job progress."""
        job = await self.get_job(job_id)
        if not job:
            return False

        job.progress = JobProgress(phase=phase, percent=percent)
        await self._store(job)
        return True
