import logging
import sys
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from contact_enrichment.config import Settings
from contact_enrichment.database.store import DatabaseManager, SqlOpportunityStore
from contact_enrichment.exceptions.custom import OpportunityNotFoundError, PersistenceError
from contact_enrichment.exceptions.handlers import (
    opportunity_not_found_handler,
    persistence_error_handler,
)
from contact_enrichment.jobs import JobStore
from contact_enrichment.routers.enrichment import router as enrichment_router
from contact_enrichment.services.enrichment import build_enrichment_service


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = Settings()

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stdout,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)

    db = DatabaseManager(settings.database_url, echo=settings.database_echo)
    db.init_database()
    store = SqlOpportunityStore(db)

    async with httpx.AsyncClient(
        timeout=settings.request_timeout,
        max_redirects=settings.max_redirects,
    ) as client:
        app.state.settings = settings
        app.state.opportunity_store = store
        app.state.enrichment_service = build_enrichment_service(client, store, settings)
        app.state.job_store = JobStore()

        yield

    db.dispose()


app = FastAPI(title="Contact Enrichment", lifespan=lifespan)

app.add_exception_handler(OpportunityNotFoundError, opportunity_not_found_handler)
app.add_exception_handler(PersistenceError, persistence_error_handler)

app.include_router(enrichment_router)
