"""Tests for JobStore."""

from datetime import datetime, timezone

from contact_enrichment.jobs import JobStatus, JobStore
from contact_enrichment.schemas.responses import EnrichmentRunReport


def _report() -> EnrichmentRunReport:
    now = datetime.now(timezone.utc)
    return EnrichmentRunReport(processed=1, updated=1, unchanged=0, failed=0, started_at=now, finished_at=now)


def test_job_lifecycle():
    store = JobStore()
    job = store.create_job()

    assert job.status == JobStatus.pending
    store.mark_running(job.job_id)
    assert store.get_job(job.job_id).status == JobStatus.running

    store.mark_completed(job.job_id, _report())

    finished = store.get_job(job.job_id)
    assert finished.status == JobStatus.completed
    assert finished.result.updated == 1
    assert finished.finished_at is not None


def test_failed_job_keeps_error():
    store = JobStore()
    job = store.create_job()

    store.mark_failed(job.job_id, "store unavailable")

    assert store.get_job(job.job_id).status == JobStatus.failed
    assert store.get_job(job.job_id).error == "store unavailable"


def test_has_active_job():
    """Pending and running jobs block a new run; finished ones do not."""
    store = JobStore()
    job = store.create_job(task_type="enrichment")

    assert store.has_active_job("enrichment") is job
    assert store.has_active_job("normalize") is None

    store.mark_running(job.job_id)
    assert store.has_active_job("enrichment") is job

    store.mark_completed(job.job_id, None)
    assert store.has_active_job("enrichment") is None


def test_unknown_job_ids_are_ignored():
    store = JobStore()

    store.mark_running("missing")
    store.mark_failed("missing", "x")

    assert store.get_job("missing") is None


def test_eviction_keeps_active_jobs():
    store = JobStore(max_jobs=2)
    first = store.create_job()
    store.mark_completed(first.job_id, None)
    second = store.create_job()
    third = store.create_job()

    assert store.get_job(first.job_id) is None
    assert store.get_job(second.job_id) is not None
    assert store.get_job(third.job_id) is not None
