import logging
import re
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup

from contact_enrichment.schemas.fetch import FetchFailure
from contact_enrichment.services.fetcher import Fetcher, normalize_url, registrable_domain

logger = logging.getLogger(__name__)

CONTACT_PATHS = (
    "/contact",
    "/contact-us",
    "/about",
    "/about-us",
    "/team",
    "/support",
    "/write-for-us",
)

# Anchor text or href fragments that suggest a page with contact details
_CONTACT_HINT_RE = re.compile(
    r"contact|about|team|staff|people|get[-\s]?in[-\s]?touch|reach[-\s]?(?:us|out)|"
    r"write[-\s]?for[-\s]?us|kontakt|contacto|contatto|impressum",
    re.IGNORECASE,
)

_SKIP_SCHEMES = ("mailto:", "tel:", "javascript:", "#")
_SKIP_EXTENSIONS = (".pdf", ".jpg", ".jpeg", ".png", ".gif", ".svg", ".zip", ".mp4", ".webp")


class PageLocator:
    def __init__(self, fetcher: Fetcher, max_pages: int = 12):
        self._fetcher = fetcher
        self._max_pages = max_pages

    async def locate_pages(self, base_url: str, max_pages: int | None = None) -> list[str]:
        """Ordered candidate pages: home, common paths, then contact-ish links from home."""
        limit = max_pages if max_pages is not None else self._max_pages
        home = normalize_url(base_url)
        if not home or limit <= 0:
            return []

        parts = urlsplit(home)
        root = f"{parts.scheme}://{parts.netloc}"
        candidates = [home] + [root + path for path in CONTACT_PATHS]

        outcome = await self._fetcher.fetch(home)
        if isinstance(outcome, FetchFailure):
            logger.info("Home page %s unavailable (%s), using path catalog only", home, outcome.reason)
        else:
            candidates.extend(discover_links(outcome.html, outcome.final_url or home))

        pages: list[str] = []
        seen: set[str] = set()
        for url in candidates:
            key = normalize_url(url)
            if not key or key in seen:
                continue
            seen.add(key)
            pages.append(key)
            if len(pages) >= limit:
                break
        return pages


def discover_links(html: str, page_url: str) -> list[str]:
    """Same-site links whose anchor text or href hints at contact details."""
    site = registrable_domain(page_url)
    soup = BeautifulSoup(html, "html.parser")
    found: list[str] = []
    for a in soup.find_all("a", href=True):
        href = a["href"].strip()
        if not href or href.lower().startswith(_SKIP_SCHEMES):
            continue
        text = a.get_text(" ", strip=True)
        if not (_CONTACT_HINT_RE.search(href) or _CONTACT_HINT_RE.search(text)):
            continue
        absolute = urljoin(page_url, href)
        if not absolute.startswith(("http://", "https://")):
            continue
        if urlsplit(absolute).path.lower().endswith(_SKIP_EXTENSIONS):
            continue
        if registrable_domain(absolute) != site:
            continue
        found.append(absolute)
    return found
