import logging
from dataclasses import dataclass, field

from contact_enrichment.config import Settings
from contact_enrichment.extractors.base import Extractor, default_extractors, run_extractors
from contact_enrichment.mappers.contact_merger import combine_findings
from contact_enrichment.schemas.contact import ContactFindings
from contact_enrichment.schemas.fetch import FetchFailure, FetchOutcome
from contact_enrichment.schemas.opportunity import Opportunity
from contact_enrichment.services.email_guesser import EmailGuesser
from contact_enrichment.services.fetcher import Fetcher
from contact_enrichment.services.overrides import OverrideRegistry
from contact_enrichment.services.page_locator import PageLocator

logger = logging.getLogger(__name__)

# Crawling an opportunity stops once it has all of these
_ENOUGH_SOCIAL = 3


@dataclass
class PipelineOutcome:
    findings: ContactFindings
    attempted_pages: list[str] = field(default_factory=list)
    failed_pages: list[str] = field(default_factory=list)
    used_override: bool = False

    @property
    def all_failed(self) -> bool:
        return bool(self.attempted_pages) and len(self.failed_pages) == len(self.attempted_pages)


class _RecordingFetcher:
    """Delegates to a Fetcher and remembers which pages were tried and which failed."""

    def __init__(self, fetcher: Fetcher):
        self._fetcher = fetcher
        self.attempted: dict[str, bool] = {}

    async def fetch(self, url: str) -> FetchOutcome:
        outcome = await self._fetcher.fetch(url)
        self.attempted[outcome.url] = not isinstance(outcome, FetchFailure)
        return outcome


def _has_enough(findings: ContactFindings) -> bool:
    return bool(
        findings.emails
        and findings.contact_forms
        and len(findings.social_profiles) >= _ENOUGH_SOCIAL
    )


class ContactPipeline:
    """Collects contact findings for one opportunity: override or crawl, then guesses."""

    def __init__(
        self,
        fetcher: Fetcher,
        settings: Settings,
        overrides: OverrideRegistry | None = None,
        extractors: list[Extractor] | None = None,
        guesser: EmailGuesser | None = None,
    ):
        self._fetcher = fetcher
        self._settings = settings
        self._overrides = overrides or OverrideRegistry()
        self._extractors = extractors if extractors is not None else default_extractors()
        self._guesser = guesser

    async def collect(self, opportunity: Opportunity) -> PipelineOutcome:
        recorder = _RecordingFetcher(self._fetcher)
        findings = ContactFindings()
        used_override = False

        routine = self._overrides.lookup(opportunity.base_url) or self._overrides.lookup(opportunity.domain)
        if routine is not None:
            try:
                findings = await routine(recorder, opportunity.base_url)
            except Exception:
                logger.exception("Override failed for %s, falling back to crawl", opportunity.domain)
                findings = ContactFindings()
            used_override = not findings.is_empty()

        if findings.is_empty():
            findings = await self._crawl(recorder, opportunity)

        if self._guesser is not None and self._settings.guess_emails and not findings.emails:
            if recorder.attempted and any(recorder.attempted.values()):
                findings.guessed_emails = await self._guesser.guess(opportunity.base_url)

        return PipelineOutcome(
            findings=findings,
            attempted_pages=list(recorder.attempted),
            failed_pages=[url for url, ok in recorder.attempted.items() if not ok],
            used_override=used_override,
        )

    async def _crawl(self, recorder: _RecordingFetcher, opportunity: Opportunity) -> ContactFindings:
        max_pages = (
            self._settings.premium_max_pages if opportunity.is_premium else self._settings.max_pages
        )
        locator = PageLocator(recorder, max_pages=max_pages)
        pages = await locator.locate_pages(opportunity.base_url)

        collected: list[ContactFindings] = []
        combined = ContactFindings()
        for url in pages:
            outcome = await recorder.fetch(url)
            if isinstance(outcome, FetchFailure):
                continue
            collected.append(run_extractors(outcome.html, outcome.final_url or url, self._extractors))
            combined = combine_findings(collected)
            if _has_enough(combined):
                logger.info("Enough contact data for %s after %d pages", opportunity.domain, len(collected))
                break
        return combined
