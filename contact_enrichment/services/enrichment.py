import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

from contact_enrichment.config import Settings
from contact_enrichment.database.store import OpportunityStore
from contact_enrichment.mappers.contact_merger import merge_contact_info
from contact_enrichment.mappers.coverage import compute_coverage, coverage_delta
from contact_enrichment.schemas.contact import ContactInfo, ContactSummary, ExtractionMetadata
from contact_enrichment.schemas.opportunity import Opportunity
from contact_enrichment.schemas.responses import EnrichmentRunReport, OpportunityResult
from contact_enrichment.services.contact_pipeline import ContactPipeline
from contact_enrichment.services.email_guesser import EmailGuesser
from contact_enrichment.services.fetch_state import DomainThrottle, FetchCache
from contact_enrichment.services.fetcher import Fetcher
from contact_enrichment.services.overrides import default_registry

logger = logging.getLogger(__name__)


def _chunks(items: list, size: int) -> list[list]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class EnrichmentService:
    def __init__(
        self,
        store: OpportunityStore,
        pipeline: ContactPipeline,
        settings: Settings,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._store = store
        self._pipeline = pipeline
        self._settings = settings
        self._sleep = sleep

    async def run(
        self,
        dry_run: bool = False,
        premium_only: bool = False,
        batch_size: int | None = None,
        limit: int | None = None,
    ) -> EnrichmentRunReport:
        """Enrich every opportunity that still lacks an email or contact form.

        Premium and high-authority opportunities go first. With ``dry_run``
        everything runs except the write; the coverage delta is projected.
        """
        started_at = datetime.now(timezone.utc)
        size = max(1, batch_size or self._settings.batch_size)
        snapshot = await self._store.list_all()
        before = compute_coverage(snapshot, self._settings.high_authority_threshold)

        targets = await self._store.list_opportunities_needing_contact(premium_only, limit)
        logger.info(
            "Enriching %d opportunities (batch size %d%s)",
            len(targets), size, ", dry run" if dry_run else "",
        )

        merged_by_id: dict[int, ContactInfo] = {}
        results: list[OpportunityResult] = []

        batches = _chunks(targets, size)
        for number, batch in enumerate(batches, start=1):
            outcomes = await asyncio.gather(
                *(
                    self._process_staggered(index, opp, dry_run, merged_by_id)
                    for index, opp in enumerate(batch)
                ),
                return_exceptions=True,
            )
            for opp, outcome in zip(batch, outcomes):
                if isinstance(outcome, BaseException):
                    logger.error("Opportunity %s crashed: %s", opp.id, outcome)
                    outcome = OpportunityResult(
                        opportunity_id=opp.id,
                        domain=opp.domain,
                        is_premium=opp.is_premium,
                        status="failed",
                        message=str(outcome),
                    )
                results.append(outcome)
            logger.info("Batch %d/%d done", number, len(batches))
            if number < len(batches) and self._settings.batch_pause > 0:
                await self._sleep(self._settings.batch_pause)

        if dry_run:
            projected = [
                opp.model_copy(update={"contact_info": merged_by_id.get(opp.id, opp.contact_info)})
                for opp in snapshot
            ]
            after = compute_coverage(projected, self._settings.high_authority_threshold)
        else:
            after = compute_coverage(await self._store.list_all(), self._settings.high_authority_threshold)

        report = EnrichmentRunReport(
            processed=len(results),
            updated=sum(1 for r in results if r.status in ("updated", "dry_run")),
            unchanged=sum(1 for r in results if r.status == "unchanged"),
            failed=sum(1 for r in results if r.status == "failed"),
            dry_run=dry_run,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            coverage=coverage_delta(before, after),
            results=results,
        )
        logger.info(
            "Enrichment finished: %d processed, %d updated, %d unchanged, %d failed; coverage %.1f%% -> %.1f%%",
            report.processed, report.updated, report.unchanged, report.failed,
            before.overall.percentage, after.overall.percentage,
        )
        return report

    async def _process_staggered(
        self,
        index: int,
        opp: Opportunity,
        dry_run: bool,
        merged_by_id: dict[int, ContactInfo],
    ) -> OpportunityResult:
        if index and self._settings.opportunity_stagger > 0:
            await self._sleep(index * self._settings.opportunity_stagger)
        return await self.enrich_one(opp, dry_run, merged_by_id)

    async def enrich_one(
        self,
        opp: Opportunity,
        dry_run: bool = False,
        merged_by_id: dict[int, ContactInfo] | None = None,
    ) -> OpportunityResult:
        """Run the pipeline for one opportunity. Never raises: failures become results."""
        try:
            return await self._enrich_one(opp, dry_run, merged_by_id)
        except Exception as exc:
            logger.exception("Error enriching opportunity %s (%s)", opp.id, opp.domain)
            return OpportunityResult(
                opportunity_id=opp.id,
                domain=opp.domain,
                is_premium=opp.is_premium,
                status="failed",
                message=str(exc),
            )

    async def _enrich_one(
        self,
        opp: Opportunity,
        dry_run: bool,
        merged_by_id: dict[int, ContactInfo] | None,
    ) -> OpportunityResult:
        existing = await self._store.get_contact_info(opp.id)
        outcome = await self._pipeline.collect(opp)

        result = OpportunityResult(
            opportunity_id=opp.id,
            domain=opp.domain,
            is_premium=opp.is_premium,
            status="unchanged",
            pages_attempted=len(outcome.attempted_pages),
            pages_failed=len(outcome.failed_pages),
            used_override=outcome.used_override,
            before=ContactSummary.of(existing),
            after=ContactSummary.of(existing),
        )

        if outcome.all_failed:
            logger.warning("All %d pages failed for %s", len(outcome.attempted_pages), opp.domain)
            result.status = "failed"
            result.message = f"all {len(outcome.attempted_pages)} pages failed"
            return result

        metadata = ExtractionMetadata(
            source=self._settings.extractor_source,
            extractor_version=self._settings.extractor_version,
            last_updated=datetime.now(timezone.utc),
            attempted_pages=outcome.attempted_pages,
        )
        merged, dirty = merge_contact_info(existing, outcome.findings, metadata)
        result.after = ContactSummary.of(merged)
        if not dirty:
            logger.info("No new contact data for %s", opp.domain)
            return result

        if merged_by_id is not None:
            merged_by_id[opp.id] = merged
        if dry_run:
            result.status = "dry_run"
            return result

        await self._store.set_contact_info(opp.id, merged)
        result.status = "updated"
        logger.info(
            "Updated %s: %d emails, %d social, %d forms",
            opp.domain, len(merged.emails), len(merged.social_profiles), len(merged.contact_forms),
        )
        return result


def build_enrichment_service(
    client,
    store: OpportunityStore,
    settings: Settings,
    throttle: DomainThrottle | None = None,
    cache: FetchCache | None = None,
) -> EnrichmentService:
    """Wire the fetcher, pipeline and orchestrator around a shared HTTP client."""
    fetcher = Fetcher(
        client,
        throttle or DomainThrottle(settings.throttle_delay),
        cache or FetchCache(settings.cache_ttl, max_entries=settings.cache_max_entries),
        settings,
    )
    pipeline = ContactPipeline(
        fetcher,
        settings,
        overrides=default_registry(),
        guesser=EmailGuesser() if settings.guess_emails else None,
    )
    return EnrichmentService(store, pipeline, settings)
