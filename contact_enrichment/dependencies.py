from typing import Annotated

from fastapi import Depends, Request

from contact_enrichment.config import Settings
from contact_enrichment.database.store import SqlOpportunityStore
from contact_enrichment.jobs import JobStore
from contact_enrichment.services.enrichment import EnrichmentService


def get_enrichment_service(request: Request) -> EnrichmentService:
    return request.app.state.enrichment_service


def get_job_store(request: Request) -> JobStore:
    return request.app.state.job_store


def get_opportunity_store(request: Request) -> SqlOpportunityStore:
    return request.app.state.opportunity_store


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


EnrichmentDep = Annotated[EnrichmentService, Depends(get_enrichment_service)]
JobStoreDep = Annotated[JobStore, Depends(get_job_store)]
OpportunityStoreDep = Annotated[SqlOpportunityStore, Depends(get_opportunity_store)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
