from datetime import datetime

from pydantic import BaseModel


class FetchResult(BaseModel):
    url: str  # normalized request URL
    final_url: str
    html: str
    status_code: int
    fetched_at: datetime
    from_cache: bool = False


class FetchFailure(BaseModel):
    url: str
    reason: str  # "http_status" | "timeout" | "network" | "non_html" | "too_large" | "redirects" | "invalid_url"
    status_code: int | None = None
    attempts: int = 0


FetchOutcome = FetchResult | FetchFailure
