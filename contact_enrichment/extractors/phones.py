import logging
import re
from collections.abc import Callable
from urllib.parse import unquote

from contact_enrichment.extractors.base import Extractor, PageDocument, walk_values
from contact_enrichment.schemas.contact import ContactFindings

logger = logging.getLogger(__name__)

_PHONE_PATTERNS = (
    # +44 20 7946 0958, +1 (555) 123-4567, +33.1.23.45.67.89
    re.compile(r"\+\d{1,3}(?:[\s.\-]?\(?\d{1,4}\)?){2,5}"),
    # (555) 123-4567, (020) 7946 0958
    re.compile(r"\(\d{2,4}\)\s*\d{3,4}[\s.\-]?\d{3,4}"),
    # 555-123-4567, 555.123.4567
    re.compile(r"(?<![\d.\-])\d{3}[.\-]\d{3}[.\-]\d{4}(?![\d.\-])"),
)

_MIN_DIGITS = 7
_MAX_DIGITS = 15


def _collapse_whitespace(phone: str) -> str:
    return " ".join(phone.split())


def _digit_count(phone: str) -> int:
    return sum(c.isdigit() for c in phone)


class PhoneExtractor(Extractor):
    """Phone numbers from ``tel:`` links, structured data and visible text.

    Values are kept as written (whitespace collapsed). ``normalizer`` can map
    each match to a canonical form, or to ``None`` to drop it.
    """

    name = "phones"

    def __init__(self, normalizer: Callable[[str], str | None] | None = None):
        self._normalizer = normalizer or _collapse_whitespace

    def extract_document(self, doc: PageDocument) -> ContactFindings:
        phones: list[str] = []
        seen: set[str] = set()

        def add(raw: str) -> None:
            candidate = raw.strip().strip(",;")
            if not _MIN_DIGITS <= _digit_count(candidate) <= _MAX_DIGITS:
                return
            value = self._normalizer(candidate)
            if value and value not in seen:
                seen.add(value)
                phones.append(value)

        for a in doc.soup.find_all("a", href=True):
            href = a["href"].strip()
            if href.lower().startswith("tel:"):
                add(unquote(href[4:]))

        for node in doc.json_ld:
            for value in walk_values(node, "telephone"):
                if isinstance(value, str):
                    add(value)

        # Broader patterns first; a match inside an earlier one is the same number
        text = doc.text
        taken: list[tuple[int, int]] = []
        for pattern in _PHONE_PATTERNS:
            for match in pattern.finditer(text):
                start, end = match.span()
                if any(start < e and s < end for s, e in taken):
                    continue
                taken.append((start, end))
                add(match.group(0))

        return ContactFindings(phones=phones)
