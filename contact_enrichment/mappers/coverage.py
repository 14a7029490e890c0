from collections.abc import Iterable

from contact_enrichment.schemas.opportunity import Opportunity
from contact_enrichment.schemas.responses import (
    ChannelCounts,
    CoverageDelta,
    CoverageReport,
    CoverageStats,
)


def _has_contact(opp: Opportunity) -> bool:
    return opp.contact_info is not None and not opp.contact_info.is_empty()


def compute_coverage(
    opportunities: Iterable[Opportunity], high_authority_threshold: int = 50
) -> CoverageReport:
    """Share of opportunities holding any contact channel, by segment.

    Guessed emails alone do not count as coverage.
    """
    overall = CoverageStats()
    premium = CoverageStats()
    regular = CoverageStats()
    high_authority = CoverageStats()
    channels = ChannelCounts()

    for opp in opportunities:
        covered = _has_contact(opp)
        buckets = [overall, premium if opp.is_premium else regular]
        if opp.domain_authority >= high_authority_threshold:
            buckets.append(high_authority)
        for bucket in buckets:
            bucket.total += 1
            if covered:
                bucket.with_contact += 1

        info = opp.contact_info
        if info is None:
            continue
        if info.emails:
            channels.emails += 1
        if info.social_profiles:
            channels.social += 1
        if info.contact_forms:
            channels.forms += 1
        if info.phones:
            channels.phones += 1
        if info.guessed_emails and not covered:
            channels.guessed_only += 1

    return CoverageReport(
        overall=overall,
        premium=premium,
        regular=regular,
        high_authority=high_authority,
        channels=channels,
    )


def coverage_delta(before: CoverageReport, after: CoverageReport) -> CoverageDelta:
    return CoverageDelta(
        before=before,
        after=after,
        overall_change=round(after.overall.percentage - before.overall.percentage, 1),
        premium_change=round(after.premium.percentage - before.premium.percentage, 1),
        newly_covered=after.overall.with_contact - before.overall.with_contact,
    )
