import asyncio
import logging

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse

from contact_enrichment.dependencies import EnrichmentDep, JobStoreDep, OpportunityStoreDep, SettingsDep
from contact_enrichment.jobs import JobStore
from contact_enrichment.mappers.coverage import compute_coverage
from contact_enrichment.schemas.responses import (
    CoverageReport,
    EnrichmentRequest,
    EnrichmentRunReport,
    JobStatusResponse,
    JobSubmittedResponse,
)
from contact_enrichment.services.enrichment import EnrichmentService

logger = logging.getLogger(__name__)

router = APIRouter()


async def _run_enrichment(
    job_id: str,
    service: EnrichmentService,
    store: JobStore,
    request: EnrichmentRequest,
) -> None:
    store.mark_running(job_id)
    try:
        result = await service.run(
            dry_run=request.dry_run,
            premium_only=request.premium_only,
            batch_size=request.batch_size,
            limit=request.limit,
        )
        store.mark_completed(job_id, result)
    except Exception as exc:
        logger.exception("Enrichment job %s failed", job_id)
        store.mark_failed(job_id, str(exc))


@router.post("/enrichment", response_model=JobSubmittedResponse, status_code=202)
async def submit_enrichment(
    service: EnrichmentDep,
    store: JobStoreDep,
    request: EnrichmentRequest | None = None,
) -> JobSubmittedResponse:
    existing = store.has_active_job("enrichment")
    if existing:
        return JSONResponse(content={
            "job_id": existing.job_id,
            "status": "already_running",
            "message": "An enrichment run is already in progress",
        })

    job = store.create_job(task_type="enrichment")
    asyncio.create_task(_run_enrichment(job.job_id, service, store, request or EnrichmentRequest()))
    return JobSubmittedResponse(
        job_id=job.job_id,
        status=job.status,
        message="Enrichment job submitted",
    )


@router.post("/enrichment/sync", response_model=EnrichmentRunReport)
async def run_enrichment_sync(
    service: EnrichmentDep,
    request: EnrichmentRequest | None = None,
) -> EnrichmentRunReport:
    request = request or EnrichmentRequest()
    return await service.run(
        dry_run=request.dry_run,
        premium_only=request.premium_only,
        batch_size=request.batch_size,
        limit=request.limit,
    )


@router.get("/jobs/{job_id}", response_model=JobStatusResponse)
async def get_job_status(job_id: str, store: JobStoreDep) -> JobStatusResponse:
    job = store.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobStatusResponse(**job.model_dump())


@router.get("/coverage", response_model=CoverageReport)
async def get_coverage(opportunities: OpportunityStoreDep, settings: SettingsDep) -> CoverageReport:
    return compute_coverage(await opportunities.list_all(), settings.high_authority_threshold)
