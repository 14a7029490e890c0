import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx
import tldextract

from contact_enrichment.config import Settings
from contact_enrichment.schemas.fetch import FetchFailure, FetchOutcome, FetchResult
from contact_enrichment.services.fetch_state import DomainThrottle, FetchCache

logger = logging.getLogger(__name__)

# Offline extractor: only the public-suffix snapshot bundled with tldextract.
_TLD_EXTRACT = tldextract.TLDExtract(suffix_list_urls=())

USER_AGENTS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) "
    "Version/17.4 Safari/605.1.15",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:125.0) Gecko/20100101 Firefox/125.0",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36 Edg/124.0.0.0",
)

_BASE_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

_TRACKING_PARAMS = frozenset({
    "fbclid", "gclid", "dclid", "msclkid", "yclid",
    "mc_cid", "mc_eid", "_ga", "_hsenc", "_hsmi", "ref",
})

_HTML_TYPES = ("text/html", "application/xhtml+xml")

# Status codes that will not change on retry
_PERMANENT_STATUSES = frozenset({404, 410})

_DEFAULT_PORTS = {"http": 80, "https": 443}


def _is_tracking_param(name: str) -> bool:
    lower = name.lower()
    return lower.startswith("utm_") or lower in _TRACKING_PARAMS


def normalize_url(url: str) -> str:
    """Canonical form used for cache keys and page de-duplication.

    Defaults the scheme to https, lower-cases the host, strips tracking
    parameters and drops fragments other than client-side routes.
    Returns an empty string when no host can be recovered.
    """
    raw = (url or "").strip()
    if not raw:
        return ""
    if "://" not in raw:
        raw = "https://" + raw.lstrip("/")

    try:
        parts = urlsplit(raw)
    except ValueError:
        return ""
    host = (parts.hostname or "").lower()
    if not host:
        return ""
    scheme = (parts.scheme or "https").lower()

    netloc = host
    try:
        port = parts.port
    except ValueError:
        port = None
    if port and _DEFAULT_PORTS.get(scheme) != port:
        netloc = f"{host}:{port}"

    query = urlencode(
        [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if not _is_tracking_param(k)]
    )
    fragment = parts.fragment if parts.fragment.startswith(("/", "!")) else ""
    return urlunsplit((scheme, netloc, parts.path or "/", query, fragment))


def registrable_domain(url: str) -> str:
    """eTLD+1 of a URL or bare host (``blog.acme.co.uk`` -> ``acme.co.uk``)."""
    raw = (url or "").strip()
    if "://" not in raw:
        raw = "https://" + raw.lstrip("/")
    try:
        host = (urlsplit(raw).hostname or "").lower()
    except ValueError:
        return ""
    if not host:
        return ""
    ext = _TLD_EXTRACT(host)
    if ext.domain and ext.suffix:
        return f"{ext.domain}.{ext.suffix}"
    return host


def backoff_delay(attempt: int, base: float, cap: float) -> float:
    """Delay before retry number ``attempt`` (1-based), with up to 30% jitter."""
    delay = min(cap, base * (2 ** (attempt - 1)))
    return delay + random.uniform(0, delay * 0.3)


class _PermanentFailure(Exception):
    def __init__(self, reason: str, status_code: int | None = None):
        self.reason = reason
        self.status_code = status_code
        super().__init__(reason)


class _TransientFailure(Exception):
    def __init__(self, reason: str, status_code: int | None = None):
        self.reason = reason
        self.status_code = status_code
        super().__init__(reason)


class Fetcher:
    """Polite HTTP GET for third-party pages.

    Every attempt waits on the shared per-domain throttle, transient errors are
    retried with exponential backoff, and successful pages are cached by
    normalized URL. ``fetch`` never raises: failures come back as values.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        throttle: DomainThrottle,
        cache: FetchCache,
        settings: Settings,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._client = client
        self._throttle = throttle
        self._cache = cache
        self._settings = settings
        self._sleep = sleep

    async def fetch(self, url: str) -> FetchOutcome:
        key = normalize_url(url)
        if not key:
            return FetchFailure(url=url, reason="invalid_url")

        cached = await self._cached(key)
        if cached is not None:
            return cached

        async with self._cache.claim(key):
            # another caller may have fetched it while this one waited
            cached = await self._cached(key)
            if cached is not None:
                return cached
            return await self._fetch_uncached(key)

    async def _cached(self, key: str) -> FetchResult | None:
        entry = await self._cache.get(key)
        if entry is None:
            return None
        logger.debug("Cache hit for %s", key)
        return FetchResult(
            url=key,
            final_url=entry.final_url,
            html=entry.html,
            status_code=entry.status_code,
            fetched_at=entry.fetched_at,
            from_cache=True,
        )

    async def _fetch_uncached(self, key: str) -> FetchOutcome:
        domain = registrable_domain(key)
        max_attempts = max(1, self._settings.max_attempts)
        last: _TransientFailure | None = None

        for attempt in range(1, max_attempts + 1):
            if attempt > 1:
                delay = backoff_delay(attempt - 1, self._settings.backoff_base, self._settings.backoff_cap)
                logger.debug("Retrying %s in %.2fs (attempt %d/%d)", key, delay, attempt, max_attempts)
                await self._sleep(delay)

            await self._throttle.wait(domain)
            try:
                resp = await self._get(key)
            except _PermanentFailure as exc:
                logger.info("Fetch of %s failed permanently: %s", key, exc.reason)
                return FetchFailure(
                    url=key, reason=exc.reason, status_code=exc.status_code, attempts=attempt
                )
            except _TransientFailure as exc:
                logger.debug("Transient failure for %s: %s (attempt %d)", key, exc.reason, attempt)
                last = exc
                continue

            entry = await self._cache.put(key, resp.text, str(resp.url), resp.status_code)
            return FetchResult(
                url=key,
                final_url=entry.final_url,
                html=entry.html,
                status_code=entry.status_code,
                fetched_at=entry.fetched_at,
            )

        logger.warning("Giving up on %s after %d attempts (%s)", key, max_attempts, last.reason)
        return FetchFailure(
            url=key, reason=last.reason, status_code=last.status_code, attempts=max_attempts
        )

    async def _get(self, url: str) -> httpx.Response:
        headers = {**_BASE_HEADERS, "User-Agent": random.choice(USER_AGENTS)}
        try:
            resp = await self._client.get(
                url,
                follow_redirects=True,
                timeout=self._settings.request_timeout,
                headers=headers,
            )
        except httpx.InvalidURL as exc:
            raise _PermanentFailure("invalid_url") from exc
        except httpx.TooManyRedirects as exc:
            raise _PermanentFailure("redirects") from exc
        except httpx.TimeoutException as exc:
            raise _TransientFailure("timeout") from exc
        except httpx.HTTPError as exc:
            raise _TransientFailure("network") from exc

        status = resp.status_code
        if status in _PERMANENT_STATUSES:
            raise _PermanentFailure("http_status", status)
        if not 200 <= status < 300:
            raise _TransientFailure("http_status", status)

        content_type = resp.headers.get("content-type", "").lower()
        if content_type and not any(t in content_type for t in _HTML_TYPES):
            logger.debug("Skipping non-HTML %s (content-type: %s)", url, content_type)
            raise _PermanentFailure("non_html", status)

        declared = resp.headers.get("content-length", "")
        if declared.isdigit() and int(declared) > self._settings.max_body_bytes:
            raise _PermanentFailure("too_large", status)
        if len(resp.content) > self._settings.max_body_bytes:
            logger.debug("Skipping oversized page %s (%d bytes)", url, len(resp.content))
            raise _PermanentFailure("too_large", status)

        return resp
