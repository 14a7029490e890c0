import logging
import re
from urllib.parse import urljoin

from bs4 import Tag

from contact_enrichment.extractors.base import Extractor, PageDocument
from contact_enrichment.schemas.contact import ContactFindings

logger = logging.getLogger(__name__)

FORM_SCORE_THRESHOLD = 4

_CONTACT_RE = re.compile(r"contact|get[-_\s]?in[-_\s]?touch|enquir|inquir|reach[-_\s]?us|kontakt|contacto", re.I)
_SUBMIT_RE = re.compile(r"send|submit|contact|get in touch|enquire|inquire", re.I)
_SEARCH_RE = re.compile(r"search|\bq\b", re.I)
_NEWSLETTER_RE = re.compile(r"newsletter|subscribe|mailchimp|signup|sign-up", re.I)
_LOGIN_RE = re.compile(r"login|log-in|signin|sign-in|password", re.I)

_SKIP_SCHEMES = ("mailto:", "tel:", "javascript:", "#")


def _attr_text(el: Tag, *names: str) -> str:
    values = []
    for name in names:
        value = el.get(name)
        if isinstance(value, list):
            value = " ".join(value)
        if value:
            values.append(value)
    return " ".join(values)


def _fields(form: Tag) -> list[Tag]:
    return form.find_all(["input", "textarea", "select"])


def _has_field(form: Tag, pattern: str, input_type: str | None = None) -> bool:
    regex = re.compile(pattern, re.I)
    for field in _fields(form):
        if input_type and field.get("type", "").lower() == input_type:
            return True
        if regex.search(_attr_text(field, "name", "id", "placeholder", "aria-label")):
            return True
    return False


def score_form(form: Tag, page_title: str = "", page_url: str = "") -> int:
    """Heuristic likelihood that ``form`` is a contact form (see FORM_SCORE_THRESHOLD)."""
    score = 0
    attrs = _attr_text(form, "id", "class", "name", "action", "aria-label")
    if _CONTACT_RE.search(attrs):
        score += 3

    if _has_field(form, r"e-?mail", input_type="email"):
        score += 2
    if _has_field(form, r"name"):
        score += 1
    if form.find("textarea") is not None or _has_field(form, r"message|comment|enquiry|inquiry"):
        score += 2
    if _has_field(form, r"subject|topic"):
        score += 1
    if _has_field(form, r"phone|tel", input_type="tel"):
        score += 1

    for button in form.find_all(["button", "input"]):
        if button.name == "input" and button.get("type", "").lower() != "submit":
            continue
        label = button.get_text(" ", strip=True) if button.name == "button" else button.get("value", "")
        if _SUBMIT_RE.search(label or ""):
            score += 2
            break

    if form.find(attrs={"data-sitekey": True}) or form.find(class_=re.compile("captcha", re.I)):
        score += 1
    # honeypot fields are hidden traps for bots, almost only seen on contact forms
    for field in form.find_all("input"):
        hidden_style = "display:none" in field.get("style", "").replace(" ", "")
        if hidden_style or re.search(r"honeypot|hp_|_gotcha", _attr_text(field, "name", "class", "id"), re.I):
            score += 1
            break

    parent = form.parent
    if parent is not None and _CONTACT_RE.search(_attr_text(parent, "id", "class")):
        score += 2
    else:
        heading = form.find_previous(["h1", "h2", "h3"])
        if heading is not None and _CONTACT_RE.search(heading.get_text(" ", strip=True)):
            score += 2

    if _CONTACT_RE.search(page_title) or _CONTACT_RE.search(page_url):
        score += 2

    if form.get("role") == "search" or _has_field(form, r"search", input_type="search"):
        score -= 5
    if _NEWSLETTER_RE.search(attrs):
        score -= 3
    if _LOGIN_RE.search(attrs) or form.find("input", attrs={"type": "password"}) is not None:
        score -= 5
    return score


class ContactFormExtractor(Extractor):
    name = "forms"

    def __init__(self, threshold: int = FORM_SCORE_THRESHOLD):
        self.threshold = threshold

    def extract_document(self, doc: PageDocument) -> ContactFindings:
        title = doc.soup.title.get_text(" ", strip=True) if doc.soup.title else ""
        h1 = doc.soup.find("h1")
        if h1 is not None:
            title = f"{title} {h1.get_text(' ', strip=True)}"

        for form in doc.soup.find_all("form"):
            score = score_form(form, title, doc.page_url)
            if score >= self.threshold:
                logger.debug("Contact form on %s (score %d)", doc.page_url, score)
                return ContactFindings(contact_forms=[doc.page_url])

        link = self._contact_link(doc)
        if link:
            return ContactFindings(contact_forms=[link])
        return ContactFindings()

    def _contact_link(self, doc: PageDocument) -> str | None:
        for a in doc.soup.find_all("a", href=True):
            href = a["href"].strip()
            if not href or href.lower().startswith(_SKIP_SCHEMES):
                continue
            text = a.get_text(" ", strip=True)
            if _CONTACT_RE.search(text) or _CONTACT_RE.search(href):
                absolute = urljoin(doc.page_url, href)
                if absolute.startswith(("http://", "https://")):
                    return absolute
        return None
