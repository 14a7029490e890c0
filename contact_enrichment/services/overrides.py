"""Per-domain extraction overrides for high-value sites whose layout is known.

Shipped entries are data (``SiteProfile``) executed by ``SelectorOverride``;
any ``async (fetcher, base_url) -> ContactFindings`` callable can be
registered for a domain as well.
"""

import logging
import re
from collections.abc import Awaitable, Callable
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup
from pydantic import BaseModel

from contact_enrichment.extractors.base import run_extractors
from contact_enrichment.extractors.emails import EMAIL_RE, EmailExtractor, is_valid_email, normalize_email
from contact_enrichment.extractors.social import match_profile
from contact_enrichment.mappers.contact_merger import combine_findings
from contact_enrichment.schemas.contact import ContactFindings, SocialProfile
from contact_enrichment.schemas.fetch import FetchFailure
from contact_enrichment.services.fetcher import Fetcher, registrable_domain

logger = logging.getLogger(__name__)

OverrideRoutine = Callable[[Fetcher, str], Awaitable[ContactFindings]]


class SiteProfile(BaseModel):
    domain: str
    base_url: str
    pages: list[str] = ["/"]
    email_selectors: list[str] = []
    social_selectors: list[str] = []
    contact_forms: list[str] = []
    # emails on this domain found anywhere in the raw markup are trusted
    email_domain: str | None = None


class SelectorOverride:
    def __init__(self, profile: SiteProfile):
        self.profile = profile
        self._email_extractor = EmailExtractor()
        self._domain_email_re = (
            re.compile(rf"[A-Za-z0-9._%+\-]+@{re.escape(profile.email_domain)}\b", re.I)
            if profile.email_domain
            else None
        )

    async def __call__(self, fetcher: Fetcher, base_url: str) -> ContactFindings:
        root = self.profile.base_url.rstrip("/")
        results: list[ContactFindings] = []

        for path in self.profile.pages:
            url = urljoin(root + "/", path.lstrip("/"))
            outcome = await fetcher.fetch(url)
            if isinstance(outcome, FetchFailure):
                logger.info("Override page %s skipped (%s)", url, outcome.reason)
                continue
            results.append(self._read_page(outcome.html, outcome.final_url or url))

        # Known form URLs are only reported while the site is reachable
        if results:
            results.insert(0, ContactFindings(
                contact_forms=[urljoin(root + "/", f) for f in self.profile.contact_forms]
            ))

        findings = combine_findings(results)
        logger.info(
            "Override for %s: %d emails, %d social, %d forms",
            self.profile.domain,
            len(findings.emails),
            len(findings.social_profiles),
            len(findings.contact_forms),
        )
        return findings

    def _read_page(self, html: str, page_url: str) -> ContactFindings:
        soup = BeautifulSoup(html, "html.parser")
        emails: list[str] = []
        for selector in self.profile.email_selectors:
            for el in soup.select(selector):
                href = el.get("href", "")
                candidates = [href] if href.lower().startswith("mailto:") else EMAIL_RE.findall(el.get_text(" "))
                emails.extend(candidates)
        if self._domain_email_re is not None:
            emails.extend(self._domain_email_re.findall(html))

        profiles: list[SocialProfile] = []
        for selector in self.profile.social_selectors:
            for el in soup.select(selector):
                href = urljoin(page_url, el.get("href", ""))
                found = match_profile(href)
                if found:
                    label = el.get("title") or el.get("aria-label") or el.get_text(" ", strip=True)
                    profiles.append(
                        SocialProfile(platform=found[0], url=href, username=found[1], display_name=label or None)
                    )

        selected = ContactFindings(
            emails=[e for e in (normalize_email(x) for x in emails) if is_valid_email(e)],
            social_profiles=profiles,
        )
        generic = run_extractors(html, page_url, [self._email_extractor])
        return combine_findings([selected, generic])


class OverrideRegistry:
    def __init__(self, profiles: list[SiteProfile] | None = None):
        self._routines: dict[str, OverrideRoutine] = {}
        for profile in profiles or []:
            self.register(profile.domain, SelectorOverride(profile))

    def __contains__(self, domain: str) -> bool:
        return self.lookup(domain) is not None

    def __len__(self) -> int:
        return len(self._routines)

    def register(self, domain: str, routine: OverrideRoutine) -> None:
        self._routines[domain.lower()] = routine

    def lookup(self, url_or_domain: str) -> OverrideRoutine | None:
        """Routine for the URL's root domain (or exact host), if one is registered."""
        raw = url_or_domain if "://" in url_or_domain else f"https://{url_or_domain}"
        host = (urlsplit(raw).hostname or "").lower()
        if host.startswith("www."):
            host = host[4:]
        return self._routines.get(registrable_domain(raw)) or self._routines.get(host)


DEFAULT_SITE_PROFILES = [
    SiteProfile(
        domain="convinceandconvert.com",
        base_url="https://www.convinceandconvert.com",
        pages=["/", "/about/"],
        email_selectors=[".agent-preview-email a"],
        social_selectors=[".footer-social a"],
        contact_forms=["/contact/"],
    ),
    SiteProfile(
        domain="copyblogger.com",
        base_url="https://copyblogger.com",
        pages=["/", "/about/"],
        social_selectors=[".footer-widgets a"],
        contact_forms=["/contact/"],
    ),
    SiteProfile(
        domain="searchengineland.com",
        base_url="https://searchengineland.com",
        pages=["/staff/", "/about/"],
        email_selectors=[".person-card__contact-info a"],
        social_selectors=[".person-card__social-link"],
        contact_forms=["/contact/"],
    ),
    SiteProfile(
        domain="blog.google",
        base_url="https://blog.google",
        pages=["/"],
        social_selectors=["footer a"],
        contact_forms=["https://www.google.com/contact/"],
    ),
    SiteProfile(
        domain="ahrefs.com",
        base_url="https://ahrefs.com",
        pages=["/contact-us/", "/"],
        social_selectors=[".js-footer-social-item"],
        contact_forms=["/contact-us/"],
        email_domain="ahrefs.com",
    ),
    SiteProfile(
        domain="digitalmarketinginstitute.com",
        base_url="https://digitalmarketinginstitute.com",
        pages=["/contact/", "/"],
        social_selectors=[".footer__social a"],
        contact_forms=["/contact/"],
    ),
    SiteProfile(
        domain="searchenginejournal.com",
        base_url="https://www.searchenginejournal.com",
        pages=["/contribute/", "/"],
        social_selectors=[".social-bar a"],
        contact_forms=["/contact/"],
        email_domain="searchenginejournal.com",
    ),
    SiteProfile(
        domain="moz.com",
        base_url="https://moz.com",
        pages=["/about", "/"],
        social_selectors=[".mm-footer-social-links a"],
        contact_forms=["/about/contact"],
        email_domain="moz.com",
    ),
    SiteProfile(
        domain="hubspot.com",
        base_url="https://www.hubspot.com",
        pages=["/blog", "/"],
        social_selectors=[".social-links a"],
        contact_forms=["/contact-us/"],
        email_domain="hubspot.com",
    ),
    SiteProfile(
        domain="semrush.com",
        base_url="https://www.semrush.com",
        pages=["/company/", "/"],
        social_selectors=[".sm-SocialMedia a"],
        contact_forms=["/company/contact-us/"],
        email_domain="semrush.com",
    ),
]


def default_registry() -> OverrideRegistry:
    return OverrideRegistry(DEFAULT_SITE_PROFILES)
