"""Tests for EnrichmentService end to end against an in-memory store."""

import asyncio
from unittest.mock import AsyncMock

import pytest
import respx
from httpx import Response

from contact_enrichment.schemas.contact import ContactFindings, ContactInfo, SocialProfile
from contact_enrichment.schemas.opportunity import Opportunity
from contact_enrichment.services.contact_pipeline import ContactPipeline, PipelineOutcome
from contact_enrichment.services.enrichment import EnrichmentService, build_enrichment_service
from contact_enrichment.services.fetch_state import DomainThrottle


def _serve(pages: dict[str, str], default: int = 404) -> None:
    for url, html in pages.items():
        respx.get(url).mock(return_value=Response(200, html=html))
    respx.route().mock(return_value=Response(default))


@pytest.fixture
def service(http_client, store, settings):
    return build_enrichment_service(http_client, store, settings, throttle=DomainThrottle(0))


async def _seed(store, *opportunities: Opportunity) -> None:
    await store.upsert_opportunities(opportunities)


@respx.mock
async def test_run_stores_email_and_social_profile(service, store):
    await _seed(store, Opportunity(id=1, url="https://acme.io", domain="acme.io"))
    _serve({
        "https://acme.io/": (
            '<a href="mailto:press@acme.io">Press</a>'
            '<a href="https://www.linkedin.com/company/acme">LinkedIn</a>'
        ),
    })

    report = await service.run()

    info = await store.get_contact_info(1)
    assert info.emails == ["press@acme.io"]
    assert [(p.platform, p.username) for p in info.social_profiles] == [("linkedin", "acme")]
    assert info.extraction_metadata is not None
    assert "https://acme.io/" in info.extraction_metadata.attempted_pages
    assert report.processed == 1
    assert report.updated == 1
    assert report.results[0].status == "updated"
    assert report.coverage.before.overall.percentage == 0.0
    assert report.coverage.after.overall.percentage == 100.0
    assert report.coverage.newly_covered == 1


@respx.mock
async def test_run_recovers_spelled_out_email(service, store):
    await _seed(store, Opportunity(id=1, url="https://acme.io", domain="acme.io"))
    _serve({"https://acme.io/": "<p>Pitches: press at acme dot io</p>"})

    await service.run()

    info = await store.get_contact_info(1)
    assert info.emails == ["press@acme.io"]


@respx.mock
async def test_dry_run_writes_nothing(service, store):
    await _seed(store, Opportunity(id=1, url="https://acme.io", domain="acme.io"))
    _serve({"https://acme.io/": '<a href="mailto:press@acme.io">Press</a>'})

    report = await service.run(dry_run=True)

    assert await store.get_contact_info(1) is None
    assert report.dry_run is True
    assert report.updated == 1
    assert report.results[0].status == "dry_run"
    assert report.results[0].after.emails == 1
    # projected, not persisted
    assert report.coverage.after.overall.percentage == 100.0


@respx.mock
async def test_unreachable_site_is_failed_and_record_untouched(service, store):
    existing = ContactInfo(phones=["+1 555 010 2000"])
    await _seed(store, Opportunity(id=1, url="https://acme.io", domain="acme.io", contact_info=existing))
    respx.route().mock(return_value=Response(500))

    report = await service.run()

    assert report.failed == 1
    assert report.results[0].status == "failed"
    assert report.results[0].pages_failed == report.results[0].pages_attempted
    info = await store.get_contact_info(1)
    assert info.phones == ["+1 555 010 2000"]
    assert info.extraction_metadata is None


@respx.mock
async def test_existing_data_is_kept(service, store):
    existing = ContactInfo(
        phones=["+1 555 010 2000"],
        social_profiles=[SocialProfile(platform="twitter", url="https://twitter.com/acme", username="acme")],
    )
    await _seed(store, Opportunity(id=1, url="https://acme.io", domain="acme.io", contact_info=existing))
    _serve({"https://acme.io/": "<p>desk@acme.io</p>"})

    await service.run()

    info = await store.get_contact_info(1)
    assert info.emails == ["desk@acme.io"]
    assert info.phones == ["+1 555 010 2000"]
    assert [p.username for p in info.social_profiles] == ["acme"]


@respx.mock
async def test_rerun_on_unchanged_site_is_a_no_op(service, store):
    await _seed(store, Opportunity(id=1, url="https://acme.io", domain="acme.io"))
    _serve({"https://acme.io/": '<a href="https://twitter.com/acme">X</a>'})

    first = await service.run()
    stored = await store.get_contact_info(1)
    second = await service.run()

    assert first.results[0].status == "updated"
    # no email or form yet, so the opportunity is selected again
    assert second.processed == 1
    assert second.results[0].status == "unchanged"
    assert await store.get_contact_info(1) == stored


@respx.mock
async def test_nothing_found_leaves_empty_record_unwritten(service, store):
    await _seed(store, Opportunity(id=1, url="https://acme.io", domain="acme.io"))
    _serve({"https://acme.io/": "<p>Nothing to see</p>"})

    report = await service.run()

    assert report.unchanged == 1
    assert await store.get_contact_info(1) is None


@respx.mock
async def test_bad_link_on_home_page_does_not_fail_the_opportunity(service, store):
    await _seed(store, Opportunity(id=1, url="https://acme.io", domain="acme.io"))
    _serve({
        "https://acme.io/": (
            '<a href="mailto:hello@acme.io">Email</a>'
            '<a href="/contact\x7fform">Contact</a>'
        ),
    })

    report = await service.run()

    assert report.results[0].status == "updated"
    assert report.failed == 0
    assert (await store.get_contact_info(1)).emails == ["hello@acme.io"]


async def test_run_processes_premium_then_authority(store, settings):
    await _seed(
        store,
        Opportunity(id=1, url="https://a.io", domain="a.io", domain_authority=90),
        Opportunity(id=2, url="https://b.io", domain="b.io", is_premium=True, domain_authority=10),
        Opportunity(id=3, url="https://c.io", domain="c.io", is_premium=True, domain_authority=60),
        Opportunity(
            id=4, url="https://d.io", domain="d.io", domain_authority=99,
            contact_info=ContactInfo(emails=["hi@d.io"]),
        ),
    )
    pipeline = AsyncMock(spec=ContactPipeline)
    pipeline.collect.return_value = PipelineOutcome(findings=ContactFindings())
    service = EnrichmentService(store, pipeline, settings)

    report = await service.run(batch_size=1)

    assert [r.opportunity_id for r in report.results] == [3, 2, 1]


async def test_premium_only_and_limit(store, settings):
    await _seed(
        store,
        Opportunity(id=1, url="https://a.io", domain="a.io", domain_authority=90),
        Opportunity(id=2, url="https://b.io", domain="b.io", is_premium=True, domain_authority=10),
        Opportunity(id=3, url="https://c.io", domain="c.io", is_premium=True, domain_authority=60),
    )
    pipeline = AsyncMock(spec=ContactPipeline)
    pipeline.collect.return_value = PipelineOutcome(findings=ContactFindings())
    service = EnrichmentService(store, pipeline, settings)

    report = await service.run(premium_only=True, limit=1)

    assert [r.opportunity_id for r in report.results] == [3]


async def test_pipeline_crash_is_isolated(store, settings):
    await _seed(
        store,
        Opportunity(id=1, url="https://a.io", domain="a.io"),
        Opportunity(id=2, url="https://b.io", domain="b.io"),
    )
    pipeline = AsyncMock(spec=ContactPipeline)
    pipeline.collect.side_effect = [
        RuntimeError("parser exploded"),
        PipelineOutcome(findings=ContactFindings()),
    ]
    service = EnrichmentService(store, pipeline, settings)

    report = await service.run(batch_size=1)

    assert report.processed == 2
    assert report.failed == 1
    assert report.unchanged == 1
    assert report.results[0].message == "parser exploded"


async def test_batches_pause_between_each_other(store, settings):
    await _seed(store, *(Opportunity(id=i, url=f"https://s{i}.io", domain=f"s{i}.io") for i in range(1, 6)))
    pipeline = AsyncMock(spec=ContactPipeline)
    pipeline.collect.return_value = PipelineOutcome(findings=ContactFindings())
    sleep = AsyncMock()
    paced = settings.model_copy(update={"batch_pause": 2.0, "opportunity_stagger": 0.5})
    service = EnrichmentService(store, pipeline, paced, sleep=sleep)

    report = await service.run(batch_size=2)

    assert report.processed == 5
    delays = [c.args[0] for c in sleep.await_args_list]
    # three batches: two pauses, plus one stagger for the second item of each full batch
    assert delays.count(2.0) == 2
    assert delays.count(0.5) == 2



async def test_batch_size_bounds_concurrency(store, settings):
    await _seed(store, *(Opportunity(id=i, url=f"https://s{i}.io", domain=f"s{i}.io") for i in range(1, 6)))
    in_flight = 0
    peak = 0

    async def collect(opp):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.05)
        in_flight -= 1
        return PipelineOutcome(findings=ContactFindings())

    pipeline = AsyncMock(spec=ContactPipeline)
    pipeline.collect.side_effect = collect
    service = EnrichmentService(store, pipeline, settings)

    report = await service.run(batch_size=2)

    assert report.processed == 5
    assert peak == 2
