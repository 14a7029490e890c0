from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, computed_field

from contact_enrichment.schemas.contact import ContactSummary


class CoverageStats(BaseModel):
    total: int = 0
    with_contact: int = 0

    @computed_field
    @property
    def percentage(self) -> float:
        if not self.total:
            return 0.0
        return round(self.with_contact * 100 / self.total, 1)


class ChannelCounts(BaseModel):
    emails: int = 0
    social: int = 0
    forms: int = 0
    phones: int = 0
    guessed_only: int = 0


class CoverageReport(BaseModel):
    overall: CoverageStats
    premium: CoverageStats
    regular: CoverageStats
    high_authority: CoverageStats
    channels: ChannelCounts


class CoverageDelta(BaseModel):
    before: CoverageReport
    after: CoverageReport
    overall_change: float  # percentage points
    premium_change: float
    newly_covered: int


class OpportunityResult(BaseModel):
    opportunity_id: int
    domain: str
    is_premium: bool = False
    status: str  # "updated" | "unchanged" | "failed" | "dry_run"
    message: str | None = None
    pages_attempted: int = 0
    pages_failed: int = 0
    used_override: bool = False
    before: ContactSummary = ContactSummary()
    after: ContactSummary = ContactSummary()


class EnrichmentRunReport(BaseModel):
    processed: int
    updated: int
    unchanged: int
    failed: int
    dry_run: bool = False
    started_at: datetime
    finished_at: datetime
    coverage: CoverageDelta | None = None
    results: list[OpportunityResult] = []


class EnrichmentRequest(BaseModel):
    dry_run: bool = False
    premium_only: bool = False
    batch_size: int | None = None
    limit: int | None = None


class JobSubmittedResponse(BaseModel):
    job_id: str
    status: str
    message: str


class JobStatusResponse(BaseModel):
    job_id: str
    status: str
    created_at: datetime
    finished_at: datetime | None = None
    result: EnrichmentRunReport | None = None
    error: str | None = None
