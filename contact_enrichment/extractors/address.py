import logging
import re

from contact_enrichment.extractors.base import Extractor, PageDocument, node_types
from contact_enrichment.schemas.contact import ContactFindings

logger = logging.getLogger(__name__)

ADDRESS_SCORE_THRESHOLD = 3

_ORGANIZATION_TYPES = frozenset({
    "Organization", "LocalBusiness", "Corporation", "NewsMediaOrganization",
    "EducationalOrganization", "Store", "ProfessionalService", "Place",
})

_POSTAL_PARTS = (
    "streetAddress", "addressLocality", "addressRegion", "postalCode", "addressCountry",
)

_POSTAL_CODE_RE = re.compile(r"\b\d{5}(?:-\d{4})?\b|\b[A-Z]{1,2}\d[A-Z\d]?\s*\d[A-Z]{2}\b")
_ZIP_WORD_RE = re.compile(r"\bzip\b|\bpostal\b|\bpostcode\b", re.I)
_STREET_RE = re.compile(
    r"\b(?:st|street|ave|avenue|blvd|boulevard|ln|lane|dr|drive|way|road|rd|suite|ste|floor|plaza|square)\b\.?",
    re.I,
)
_LEADING_NUMBER_RE = re.compile(r"^\d+\s+\w+")
_STATE_RE = re.compile(
    r"\b(?:AL|AK|AZ|AR|CA|CO|CT|DE|FL|GA|HI|ID|IL|IN|IA|KS|KY|LA|ME|MD|MA|MI|MN|MS|MO|MT|NE|NV|NH|NJ|NM|"
    r"NY|NC|ND|OH|OK|OR|PA|RI|SC|SD|TN|TX|UT|VT|VA|WA|WV|WI|WY)\b"
)
_CITY_STATE_ZIP_RE = re.compile(r"\w+,\s*[A-Z]{2}\s*\d{5}")

_REGION_SELECTORS = (
    "address",
    '[itemtype*="PostalAddress"]',
    '[class*="address"]',
    '[id*="address"]',
    '[class*="contact"]',
    '[id*="contact"]',
    "footer",
)

_MAX_CANDIDATE_LEN = 300


def address_score(text: str) -> int:
    """Heuristic likelihood that ``text`` is a postal address (see ADDRESS_SCORE_THRESHOLD)."""
    score = 0
    if _POSTAL_CODE_RE.search(text):
        score += 2
    if _ZIP_WORD_RE.search(text):
        score += 1
    if _STREET_RE.search(text):
        score += 2
    if _LEADING_NUMBER_RE.match(text.strip()):
        score += 1
    if _STATE_RE.search(text):
        score += 1
    if _CITY_STATE_ZIP_RE.search(text):
        score += 3
    return score


def format_postal_address(value) -> str | None:
    if isinstance(value, str):
        return " ".join(value.split()) or None
    if not isinstance(value, dict):
        return None
    parts = []
    for key in _POSTAL_PARTS:
        part = value.get(key)
        if isinstance(part, dict):
            part = part.get("name")
        if isinstance(part, str) and part.strip():
            parts.append(" ".join(part.split()))
    return ", ".join(parts) or None


class AddressExtractor(Extractor):
    """Postal address: structured data first, then scored page regions."""

    name = "address"

    def __init__(self, threshold: int = ADDRESS_SCORE_THRESHOLD):
        self.threshold = threshold

    def extract_document(self, doc: PageDocument) -> ContactFindings:
        structured = self._structured(doc)
        if structured:
            return ContactFindings(address=structured, address_source="structured")

        heuristic = self._heuristic(doc)
        if heuristic:
            return ContactFindings(address=heuristic, address_source="heuristic")
        return ContactFindings()

    def _structured(self, doc: PageDocument) -> str | None:
        for node in doc.json_ld:
            if not node_types(node) & _ORGANIZATION_TYPES:
                continue
            addresses = node.get("address")
            for value in addresses if isinstance(addresses, list) else [addresses]:
                formatted = format_postal_address(value)
                if formatted:
                    return formatted

        for el in doc.soup.find_all(attrs={"itemtype": re.compile("PostalAddress")}):
            parts = []
            for key in _POSTAL_PARTS:
                prop = el.find(attrs={"itemprop": key})
                if prop is not None:
                    value = prop.get("content") or prop.get_text(" ", strip=True)
                    if value:
                        parts.append(" ".join(value.split()))
            if parts:
                return ", ".join(parts)
        return None

    def _heuristic(self, doc: PageDocument) -> str | None:
        best: tuple[int, str] | None = None
        for selector in _REGION_SELECTORS:
            for region in doc.soup.select(selector):
                for line in self._candidate_lines(region):
                    score = address_score(line)
                    if score >= self.threshold and (best is None or score > best[0]):
                        best = (score, line)
        return best[1] if best else None

    @staticmethod
    def _candidate_lines(region) -> list[str]:
        # <br>-separated lines are joined; block children are scored on their own
        text = region.get_text(", ", strip=True)
        candidates = [" ".join(text.split())]
        for child in region.find_all(["p", "li", "span", "div"], recursive=True):
            candidates.append(" ".join(child.get_text(", ", strip=True).split()))
        return [c for c in candidates if c and len(c) <= _MAX_CANDIDATE_LEN]
