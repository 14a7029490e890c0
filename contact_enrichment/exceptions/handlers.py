import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from .custom import OpportunityNotFoundError, PersistenceError

logger = logging.getLogger(__name__)


async def persistence_error_handler(_request: Request, exc: PersistenceError) -> JSONResponse:
    logger.error("Persistence error: %s (opportunity=%s)", exc.message, exc.opportunity_id)
    return JSONResponse(
        status_code=503,
        content={"detail": f"Opportunity store error: {exc.message}"},
    )


async def opportunity_not_found_handler(
    _request: Request, exc: OpportunityNotFoundError
) -> JSONResponse:
    logger.warning("Opportunity not found: %s", exc.opportunity_id)
    return JSONResponse(
        status_code=404,
        content={"detail": exc.message},
    )
