"""Email discovery.

``EmailExtractor`` runs an ordered list of strategies over a parsed page. Each
strategy yields raw candidates; the extractor normalizes, validates and
de-duplicates them. Strategies are plain objects with a ``name`` and a
``find(doc)`` method, so callers can reorder, drop or add their own.
"""

import logging
import re
from collections.abc import Iterable, Iterator
from urllib.parse import unquote

from contact_enrichment.extractors.base import Extractor, PageDocument, walk_values
from contact_enrichment.schemas.contact import ContactFindings

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+\-]+@[a-zA-Z0-9.\-]+\.[a-zA-Z]{2,}")
_EMAIL_FULL_RE = re.compile(r"^[a-z0-9._%+\-]+@[a-z0-9](?:[a-z0-9\-]*[a-z0-9])?(?:\.[a-z0-9](?:[a-z0-9\-]*[a-z0-9])?)*\.[a-z]{2,24}$")

# Domains that only appear in templates, docs or third-party embeds
_PLACEHOLDER_DOMAINS = frozenset({
    "example.com", "example.net", "domain.com", "yourdomain.com", "yoursite.com",
    "email.com", "test.com", "localhost", "sentry.io", "wixpress.com",
    "w3.org", "schema.org", "sentry-next.wixpress.com",
})

_NO_REPLY_LOCALS = frozenset({
    "noreply", "no-reply", "donotreply", "do-not-reply", "no_reply",
    "mailer-daemon", "postmaster", "abuse",
})

_ASSET_SUFFIXES = frozenset({
    "png", "jpg", "jpeg", "gif", "svg", "webp", "ico", "bmp", "tiff",
    "css", "js", "json", "mp4", "woff", "woff2",
})

_HASH_LOCAL_RE = re.compile(r"^[a-f0-9]{16,}$")

_OPEN = r"[\(\[\{]"
_CLOSE = r"[\)\]\}]"
_BRACKET_AT = rf"\s*{_OPEN}\s*at\s*{_CLOSE}\s*"
_BRACKET_DOT = rf"\s*{_OPEN}\s*dot\s*{_CLOSE}\s*"
_BRACKETED_RE = re.compile(
    rf"([a-zA-Z0-9._%+\-]+){_BRACKET_AT}([a-zA-Z0-9\-]+(?:(?:{_BRACKET_DOT}|\.)[a-zA-Z0-9\-]+)+)",
    re.IGNORECASE,
)
_BRACKET_DOT_RE = re.compile(_BRACKET_DOT, re.IGNORECASE)

_WORDS_RE = re.compile(
    r"\b([a-zA-Z0-9._%+\-]+)\s+at\s+([a-zA-Z0-9\-]+(?:\s+dot\s+[a-zA-Z0-9\-]+)+)\b",
    re.IGNORECASE,
)
_WORD_DOT_RE = re.compile(r"\s+dot\s+", re.IGNORECASE)

# Words that precede "at" in ordinary prose ("available at amazon dot com")
_PROSE_LOCALS = frozenset({
    "a", "also", "an", "and", "are", "arrive", "available", "based", "be", "buy", "by",
    "download", "even", "featured", "find", "found", "from", "get", "go", "here", "hosted",
    "is", "it", "just", "learn", "listed", "live", "located", "look", "looking", "me",
    "meet", "more", "now", "of", "offered", "online", "only", "or", "order", "posted",
    "priced", "published", "purchase", "read", "sale", "see", "seen", "shop", "sold",
    "stay", "stock", "that", "the", "them", "there", "this", "to", "us", "was", "were",
    "work", "working", "works", "written", "you",
})

_ENCODED_AT = r"(?:&#0*64;|&#x0*40;|&commat;|%40)"
_ENCODED_DOT = r"(?:&#0*46;|&#x0*2e;|&period;|%2e)"
_ENCODED_RE = re.compile(
    rf"[a-zA-Z0-9._%+\-]+{_ENCODED_AT}[a-zA-Z0-9\-]+(?:(?:{_ENCODED_DOT}|\.)[a-zA-Z0-9\-]+)+",
    re.IGNORECASE,
)
_ENCODED_AT_RE = re.compile(_ENCODED_AT, re.IGNORECASE)
_ENCODED_DOT_RE = re.compile(_ENCODED_DOT, re.IGNORECASE)

_CF_HREF_RE = re.compile(r"/cdn-cgi/l/email-protection#([0-9a-fA-F]+)")

_STRING_CONCAT_RE = re.compile(
    r"""(?:(['"])[^'"\n]{0,80}\1\s*\+\s*)+(['"])[^'"\n]{0,80}\2"""
)
_STRING_LITERAL_RE = re.compile(r"""(['"])([^'"\n]*)\1""")


def normalize_email(raw: str) -> str:
    email = unquote(raw or "").strip()
    if email.lower().startswith("mailto:"):
        email = email[7:]
    email = email.split("?", 1)[0]
    return email.strip().strip(".,;:<>()[]{}\"'").lower()


def is_valid_email(email: str) -> bool:
    if not _EMAIL_FULL_RE.match(email):
        return False
    local, _, domain = email.partition("@")
    if len(local) > 64:
        return False
    if local in _NO_REPLY_LOCALS:
        return False
    if _HASH_LOCAL_RE.match(local):
        return False
    if domain.rsplit(".", 1)[-1] in _ASSET_SUFFIXES:
        return False
    if domain in _PLACEHOLDER_DOMAINS or any(domain.endswith("." + d) for d in _PLACEHOLDER_DOMAINS):
        return False
    return True


def decode_cfemail(encoded: str) -> str | None:
    """Decode a Cloudflare ``data-cfemail`` payload (XOR with the first byte)."""
    try:
        data = bytes.fromhex(encoded)
    except ValueError:
        return None
    if len(data) < 2:
        return None
    key = data[0]
    try:
        return bytes(b ^ key for b in data[1:]).decode("utf-8")
    except UnicodeDecodeError:
        return None


def _bracketed(text: str) -> list[str]:
    return [f"{local}@{_BRACKET_DOT_RE.sub('.', domain)}" for local, domain in _BRACKETED_RE.findall(text)]


def _spelled_out(text: str) -> list[str]:
    return [
        f"{local}@{_WORD_DOT_RE.sub('.', domain)}"
        for local, domain in _WORDS_RE.findall(text)
        if local.lower() not in _PROSE_LOCALS
    ]


def deobfuscate(text: str) -> list[str]:
    """Recover addresses from ``(at)``/``[dot]`` and ``at``/``dot`` spellings."""
    return _bracketed(text) + _spelled_out(text)


class MailtoStrategy:
    name = "mailto"

    def find(self, doc: PageDocument) -> Iterator[str]:
        for a in doc.soup.find_all("a", href=True):
            href = a["href"].strip()
            if href.lower().startswith("mailto:"):
                # mailto:a@x.com,b@x.com
                for part in href[7:].split("?", 1)[0].split(","):
                    yield part


class PlainTextStrategy:
    name = "plain"

    def find(self, doc: PageDocument) -> Iterator[str]:
        yield from EMAIL_RE.findall(doc.text)


class BracketedStrategy:
    name = "bracketed"

    def find(self, doc: PageDocument) -> Iterator[str]:
        yield from _bracketed(doc.text)


class SpelledOutStrategy:
    name = "spelled_out"

    def find(self, doc: PageDocument) -> Iterator[str]:
        yield from _spelled_out(doc.text)


class EncodedMarkupStrategy:
    name = "encoded"

    def find(self, doc: PageDocument) -> Iterator[str]:
        for match in _ENCODED_RE.findall(doc.html):
            decoded = _ENCODED_DOT_RE.sub(".", _ENCODED_AT_RE.sub("@", match))
            yield decoded


class CloudflareStrategy:
    name = "cloudflare"

    def find(self, doc: PageDocument) -> Iterator[str]:
        for el in doc.soup.find_all(attrs={"data-cfemail": True}):
            decoded = decode_cfemail(el["data-cfemail"])
            if decoded:
                yield decoded
        for a in doc.soup.find_all("a", href=True):
            m = _CF_HREF_RE.search(a["href"])
            if m:
                decoded = decode_cfemail(m.group(1))
                if decoded:
                    yield decoded


class DataAttributeStrategy:
    name = "data_attribute"

    _ATTRS = ("data-email", "data-mail")

    def find(self, doc: PageDocument) -> Iterator[str]:
        for attr in self._ATTRS:
            for el in doc.soup.find_all(attrs={attr: True}):
                value = el[attr].strip()
                if "@" in value:
                    yield value
                else:
                    yield from deobfuscate(value)


class ScriptConcatenationStrategy:
    name = "script_concat"

    def find(self, doc: PageDocument) -> Iterator[str]:
        for script in doc.scripts():
            for match in _STRING_CONCAT_RE.finditer(script):
                joined = "".join(lit for _, lit in _STRING_LITERAL_RE.findall(match.group(0)))
                if "@" in joined:
                    yield from EMAIL_RE.findall(joined)


class StructuredDataStrategy:
    name = "structured"

    def find(self, doc: PageDocument) -> Iterator[str]:
        for node in doc.json_ld:
            for value in walk_values(node, "email"):
                if isinstance(value, str):
                    yield value
                elif isinstance(value, list):
                    yield from (v for v in value if isinstance(v, str))
        for el in doc.soup.find_all(attrs={"itemprop": "email"}):
            yield el.get("content") or el.get("href") or el.get_text(strip=True)


DEFAULT_STRATEGIES = (
    MailtoStrategy(),
    PlainTextStrategy(),
    BracketedStrategy(),
    SpelledOutStrategy(),
    EncodedMarkupStrategy(),
    CloudflareStrategy(),
    DataAttributeStrategy(),
    ScriptConcatenationStrategy(),
    StructuredDataStrategy(),
)


class EmailExtractor(Extractor):
    name = "emails"

    def __init__(self, strategies: Iterable | None = None):
        self.strategies = list(strategies) if strategies is not None else list(DEFAULT_STRATEGIES)

    def extract_document(self, doc: PageDocument) -> ContactFindings:
        emails: list[str] = []
        seen: set[str] = set()
        for strategy in self.strategies:
            for raw in strategy.find(doc):
                email = normalize_email(raw)
                if email in seen or not is_valid_email(email):
                    continue
                seen.add(email)
                emails.append(email)
                logger.debug("Email %s found by %s on %s", email, strategy.name, doc.page_url)
        return ContactFindings(emails=emails)
