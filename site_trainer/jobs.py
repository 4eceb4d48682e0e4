"""Job records and the stores that persist them.

A job is created as ``processing`` and written to exactly once more with a
terminal status (``completed`` or ``failed``). Stores refuse writes to a job
that is already terminal; creating a job with an existing id starts a fresh
lifecycle for that id.
"""
import copy
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from urllib.parse import urlparse

from site_trainer.config import JOBS_TABLE
from site_trainer.exceptions import JobFinalizedError, JobNotFoundError, PersistenceError

logger = logging.getLogger(__name__)

STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
JOB_STATUSES = (STATUS_PROCESSING, STATUS_COMPLETED, STATUS_FAILED)
TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_FAILED)

# Job attribute -> persisted column
ROW_FIELDS = {
    "job_id": "jobid",
    "status": "status",
    "url": "url",
    "progress": "progress",
    "page_count": "pagecount",
    "domain": "domain",
    "summary": "summary",
    "error": "error",
    "faqs": "faqs",
    "created_at": "createdat",
    "updated_at": "updatedat",
    "user_id": "user_id",
}
UPDATABLE_FIELDS = ("url", "progress", "page_count", "domain", "summary", "error", "faqs", "user_id")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def domain_from_url(url: str | None) -> str:
    if not url:
        return ""
    if not url.startswith(("http://", "https://")):
        url = "https://" + url
    try:
        return urlparse(url).hostname or ""
    except ValueError:
        logger.warning(f"Invalid URL for domain extraction: {url}")
        return ""


@dataclass
class Job:
    job_id: str
    status: str = STATUS_PROCESSING
    url: str | None = None
    domain: str = ""
    progress: int = 0
    page_count: int = 0
    summary: str | None = None
    faqs: list | None = None
    error: str | None = None
    user_id: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_row(self) -> dict:
        row = {}
        for attr, column in ROW_FIELDS.items():
            value = getattr(self, attr)
            if isinstance(value, datetime):
                value = value.isoformat()
            row[column] = value
        return row

    @classmethod
    def from_row(cls, row: dict) -> "Job":
        values = {}
        for attr, column in ROW_FIELDS.items():
            if column not in row or row[column] is None:
                continue
            value = row[column]
            if attr in ("created_at", "updated_at") and isinstance(value, str):
                value = datetime.fromisoformat(value.replace("Z", "+00:00"))
            values[attr] = value
        return cls(**values)


def _validate_update(job_id: str, status: str, fields: dict) -> None:
    if status not in JOB_STATUSES:
        raise ValueError(f"Unknown job status '{status}'")
    unknown = set(fields) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValueError(f"Cannot update job {job_id}: unknown fields {sorted(unknown)}")


class JobStore(ABC):
    """Persistence for job records, keyed by job id."""

    @abstractmethod
    def create_job(self, job_id: str, url: str | None = None, user_id: str | None = None) -> Job:
        ...

    @abstractmethod
    def update_job_status(self, job_id: str, status: str, **fields) -> Job:
        """Write ``status`` plus any of UPDATABLE_FIELDS and refresh ``updated_at``."""
        ...

    @abstractmethod
    def get_job(self, job_id: str) -> Job | None:
        ...

    @abstractmethod
    def list_jobs(self) -> list[Job]:
        ...


class InMemoryJobStore(JobStore):
    """Process-local store guarded by a lock; jobs are lost on restart."""

    def __init__(self):
        self._jobs: dict[str, Job] = {}
        self._lock = threading.Lock()

    def create_job(self, job_id, url=None, user_id=None):
        job = Job(job_id=job_id, url=url, domain=domain_from_url(url), user_id=user_id)
        with self._lock:
            if job_id in self._jobs:
                logger.info(f"Job {job_id} already exists; starting a new lifecycle")
            self._jobs[job_id] = job
        logger.info(f"Created job {job_id} (url={url}, user={user_id})")
        return copy.deepcopy(job)

    def update_job_status(self, job_id, status, **fields):
        _validate_update(job_id, status, fields)
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(f"Job {job_id} not found")
            if job.is_terminal:
                raise JobFinalizedError(f"Job {job_id} is already {job.status}")
            job.status = status
            for name, value in fields.items():
                setattr(job, name, copy.deepcopy(value))
            job.updated_at = utcnow()
            return copy.deepcopy(job)

    def get_job(self, job_id):
        with self._lock:
            job = self._jobs.get(job_id)
            return copy.deepcopy(job) if job else None

    def list_jobs(self):
        with self._lock:
            jobs = [copy.deepcopy(job) for job in self._jobs.values()]
        return sorted(jobs, key=lambda j: j.created_at, reverse=True)


class SupabaseJobStore(JobStore):
    """Store backed by the ``ai_training_jobs`` table through a supabase client."""

    def __init__(self, client, table: str = JOBS_TABLE):
        self.client = client
        self.table = table

    @classmethod
    def from_settings(cls, settings) -> "SupabaseJobStore":
        from supabase import create_client

        if not settings.supabase_url or not settings.supabase_service_role_key:
            raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")
        return cls(create_client(settings.supabase_url, settings.supabase_service_role_key))

    def _fetch_row(self, job_id: str) -> dict | None:
        try:
            response = self.client.table(self.table).select("*").eq("jobid", job_id).limit(1).execute()
        except Exception as e:
            logger.error(f"Error reading job {job_id}: {e}")
            raise PersistenceError(f"Failed to read job {job_id}: {e}") from e
        rows = response.data or []
        return rows[0] if rows else None

    def create_job(self, job_id, url=None, user_id=None):
        job = Job(job_id=job_id, url=url, domain=domain_from_url(url), user_id=user_id)
        row = job.to_row()
        try:
            self.client.table(self.table).upsert(row, on_conflict="jobid").execute()
        except Exception as e:
            logger.error(f"Error creating job {job_id}: {e}")
            raise PersistenceError(f"Failed to create job {job_id}: {e}") from e
        logger.info(f"Created job {job_id} (url={url}, user={user_id})")
        return job

    def update_job_status(self, job_id, status, **fields):
        _validate_update(job_id, status, fields)
        current = self._fetch_row(job_id)
        if current is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        if current.get("status") in TERMINAL_STATUSES:
            raise JobFinalizedError(f"Job {job_id} is already {current.get('status')}")

        updates = {"status": status, "updatedat": utcnow().isoformat()}
        for name, value in fields.items():
            updates[ROW_FIELDS[name]] = value
        logger.debug(f"Updating job {job_id}: {sorted(updates)}")
        try:
            # the status filter keeps a concurrent terminal write from being overwritten
            response = (self.client.table(self.table).update(updates)
                        .eq("jobid", job_id).eq("status", STATUS_PROCESSING).execute())
        except Exception as e:
            logger.error(f"Error updating job {job_id}: {e}")
            raise PersistenceError(f"Failed to update job {job_id}: {e}") from e
        rows = response.data or []
        if not rows:
            raise JobFinalizedError(f"Job {job_id} was finalized by another writer")
        return Job.from_row(rows[0])

    def get_job(self, job_id):
        row = self._fetch_row(job_id)
        return Job.from_row(row) if row else None

    def list_jobs(self):
        try:
            response = self.client.table(self.table).select("*").order("createdat", desc=True).execute()
        except Exception as e:
            raise PersistenceError(f"Failed to list jobs: {e}") from e
        return [Job.from_row(row) for row in response.data or []]
