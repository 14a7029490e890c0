import logging

import dns.asyncresolver
import dns.exception
import dns.resolver

from contact_enrichment.services.fetcher import registrable_domain

logger = logging.getLogger(__name__)

GUESS_PREFIXES = ("contact", "info", "hello", "editor", "support")

_LOOKUP_TIMEOUT = 5.0


class EmailGuesser:
    """Pattern-generated addresses for domains that accept mail.

    Guesses are never verified against the site; callers keep them apart
    from extracted emails.
    """

    def __init__(self, resolver: dns.asyncresolver.Resolver | None = None, prefixes=GUESS_PREFIXES):
        self._resolver = resolver
        self._prefixes = tuple(prefixes)

    async def has_mx(self, domain: str) -> bool:
        resolver = self._resolver or dns.asyncresolver.Resolver()
        try:
            answer = await resolver.resolve(domain, "MX", lifetime=_LOOKUP_TIMEOUT)
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer, dns.resolver.NoNameservers):
            return False
        except dns.exception.DNSException:
            logger.debug("MX lookup for %s failed", domain, exc_info=True)
            return False
        return len(answer) > 0

    async def guess(self, url_or_domain: str) -> list[str]:
        """Best-effort, never raises: an empty list when the domain has no MX."""
        domain = registrable_domain(url_or_domain)
        if not domain:
            return []
        try:
            if not await self.has_mx(domain):
                return []
        except Exception:
            logger.exception("MX check failed for %s", domain)
            return []
        return [f"{prefix}@{domain}" for prefix in self._prefixes]
