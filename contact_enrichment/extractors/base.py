import json
import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from bs4 import BeautifulSoup, Comment

from contact_enrichment.exceptions.custom import ParseFailure
from contact_enrichment.mappers.contact_merger import combine_findings
from contact_enrichment.schemas.contact import ContactFindings

logger = logging.getLogger(__name__)

_INVISIBLE_TAGS = frozenset({"script", "style", "noscript", "template", "head", "title"})


def parse_json_ld(raw: str, source: str | None = None) -> list[dict]:
    """Decode one ``application/ld+json`` block into a flat list of nodes.

    ``@graph`` containers and top-level arrays are unrolled. Raises
    ``ParseFailure`` when the block is not valid JSON.
    """
    text = (raw or "").strip()
    if not text:
        return []
    # CDATA wrappers show up in older CMS themes
    if text.startswith("<![CDATA[") and text.endswith("]]>"):
        text = text[9:-3].strip()
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ParseFailure(f"Invalid JSON-LD: {exc}", source) from exc

    nodes: list[dict] = []
    pending = [data]
    while pending:
        item = pending.pop(0)
        if isinstance(item, list):
            pending.extend(item)
        elif isinstance(item, dict):
            nodes.append(item)
            graph = item.get("@graph")
            if isinstance(graph, list):
                pending.extend(graph)
    return nodes


def node_types(node: dict) -> set[str]:
    raw = node.get("@type", [])
    if isinstance(raw, str):
        raw = [raw]
    return {str(t).rsplit("/", 1)[-1] for t in raw if t}


def walk_values(data, key: str) -> Iterator:
    """Yield every value stored under ``key`` anywhere in a JSON structure."""
    if isinstance(data, dict):
        for k, v in data.items():
            if k == key:
                yield v
            yield from walk_values(v, key)
    elif isinstance(data, list):
        for item in data:
            yield from walk_values(item, key)


@dataclass
class PageDocument:
    """One fetched page parsed once and shared by every extractor."""

    html: str
    page_url: str
    soup: BeautifulSoup
    _text: str | None = field(default=None, repr=False)
    _json_ld: list[dict] | None = field(default=None, repr=False)

    @classmethod
    def parse(cls, html: str, page_url: str) -> "PageDocument":
        try:
            soup = BeautifulSoup(html or "", "html.parser")
        except Exception as exc:
            raise ParseFailure(f"Unparseable markup: {exc}", page_url) from exc
        return cls(html=html or "", page_url=page_url, soup=soup)

    @property
    def text(self) -> str:
        """Visible text only: scripts, styles and comments are skipped."""
        if self._text is None:
            parts = []
            for node in self.soup.find_all(string=True):
                if isinstance(node, Comment):
                    continue
                if node.parent is not None and node.parent.name in _INVISIBLE_TAGS:
                    continue
                stripped = node.strip()
                if stripped:
                    parts.append(stripped)
            self._text = " ".join(parts)
        return self._text

    @property
    def json_ld(self) -> list[dict]:
        """All JSON-LD nodes on the page; malformed blocks are logged and skipped."""
        if self._json_ld is None:
            nodes: list[dict] = []
            for script in self.soup.find_all("script", type="application/ld+json"):
                try:
                    nodes.extend(parse_json_ld(script.string or script.get_text(), self.page_url))
                except ParseFailure as exc:
                    logger.debug("Skipping JSON-LD block on %s: %s", self.page_url, exc.message)
            self._json_ld = nodes
        return self._json_ld

    def scripts(self) -> Iterator[str]:
        for script in self.soup.find_all("script"):
            if script.get("type") == "application/ld+json":
                continue
            content = script.string or script.get_text()
            if content:
                yield content


class Extractor:
    """Pure page -> findings transformation. Subclasses implement ``extract_document``."""

    name = "extractor"

    def extract(self, html: str, page_url: str) -> ContactFindings:
        return self.extract_document(PageDocument.parse(html, page_url))

    def extract_document(self, doc: PageDocument) -> ContactFindings:
        raise NotImplementedError


def default_extractors() -> list[Extractor]:
    from contact_enrichment.extractors.address import AddressExtractor
    from contact_enrichment.extractors.emails import EmailExtractor
    from contact_enrichment.extractors.forms import ContactFormExtractor
    from contact_enrichment.extractors.phones import PhoneExtractor
    from contact_enrichment.extractors.social import SocialProfileExtractor

    return [
        EmailExtractor(),
        PhoneExtractor(),
        SocialProfileExtractor(),
        ContactFormExtractor(),
        AddressExtractor(),
    ]


def run_extractors(
    html: str, page_url: str, extractors: Iterable[Extractor] | None = None
) -> ContactFindings:
    """Parse ``html`` once and combine every extractor's findings.

    A failure in one extractor is logged and does not affect the others.
    """
    try:
        doc = PageDocument.parse(html, page_url)
    except ParseFailure as exc:
        logger.warning("Skipping %s: %s", page_url, exc.message)
        return ContactFindings()

    results: list[ContactFindings] = []
    for extractor in extractors if extractors is not None else default_extractors():
        try:
            results.append(extractor.extract_document(doc))
        except ParseFailure as exc:
            logger.info("%s could not parse %s: %s", extractor.name, page_url, exc.message)
        except Exception:
            logger.exception("%s failed on %s", extractor.name, page_url)
    return combine_findings(results)
