from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import StrEnum

from pydantic import BaseModel

from contact_enrichment.schemas.responses import EnrichmentRunReport


class JobStatus(StrEnum):
    pending = "pending"
    running = "running"
    completed = "completed"
    failed = "failed"


_ACTIVE = (JobStatus.pending, JobStatus.running)
_FINISHED = (JobStatus.completed, JobStatus.failed)


class Job(BaseModel):
    job_id: str
    status: JobStatus
    task_type: str = "enrichment"
    created_at: datetime
    finished_at: datetime | None = None
    result: EnrichmentRunReport | None = None
    error: str | None = None


class JobStore:
    """In-memory job registry for background enrichment runs."""

    def __init__(self, max_jobs: int = 1000) -> None:
        self._jobs: dict[str, Job] = {}
        self._max_jobs = max_jobs

    def _evict(self) -> None:
        if len(self._jobs) <= self._max_jobs:
            return
        candidates = sorted(
            (j for j in self._jobs.values() if j.status in _FINISHED),
            key=lambda j: j.created_at,
        )
        while len(self._jobs) > self._max_jobs and candidates:
            self._jobs.pop(candidates.pop(0).job_id, None)

    def create_job(self, task_type: str = "enrichment") -> Job:
        job = Job(
            job_id=uuid.uuid4().hex[:12],
            status=JobStatus.pending,
            task_type=task_type,
            created_at=datetime.now(timezone.utc),
        )
        self._jobs[job.job_id] = job
        self._evict()
        return job

    def get_job(self, job_id: str) -> Job | None:
        return self._jobs.get(job_id)

    def has_active_job(self, task_type: str = "enrichment") -> Job | None:
        """The pending or running job of this type, if any."""
        for job in self._jobs.values():
            if job.task_type == task_type and job.status in _ACTIVE:
                return job
        return None

    def mark_running(self, job_id: str) -> None:
        if job := self._jobs.get(job_id):
            job.status = JobStatus.running

    def mark_completed(self, job_id: str, result: EnrichmentRunReport | None) -> None:
        if job := self._jobs.get(job_id):
            job.status = JobStatus.completed
            job.result = result
            job.finished_at = datetime.now(timezone.utc)

    def mark_failed(self, job_id: str, error: str) -> None:
        if job := self._jobs.get(job_id):
            job.status = JobStatus.failed
            job.error = error
            job.finished_at = datetime.now(timezone.utc)
