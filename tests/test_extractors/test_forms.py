from bs4 import BeautifulSoup

from contact_enrichment.extractors.forms import (
    FORM_SCORE_THRESHOLD,
    ContactFormExtractor,
    score_form,
)

CONTACT_FORM = """
<form id="contact-form" action="/send">
  <input name="name" placeholder="Your name">
  <input type="email" name="email">
  <input name="subject">
  <textarea name="message"></textarea>
  <button type="submit">Send message</button>
</form>
"""

SEARCH_FORM = """
<form role="search" action="/search">
  <input type="search" name="q">
  <button>Search</button>
</form>
"""

NEWSLETTER_FORM = """
<form class="newsletter-signup" action="https://list.example.net/subscribe">
  <input type="email" name="email">
  <button>Subscribe</button>
</form>
"""

LOGIN_FORM = """
<form id="login">
  <input name="username">
  <input type="password" name="password">
  <button>Sign in</button>
</form>
"""


def _forms(body: str, page: str = "https://acme.io/write-for-us") -> list[str]:
    return ContactFormExtractor().extract(f"<html><body>{body}</body></html>", page).contact_forms


def _score(markup: str) -> int:
    return score_form(BeautifulSoup(markup, "html.parser").form)


def test_contact_form_scores_above_threshold():
    assert _score(CONTACT_FORM) >= FORM_SCORE_THRESHOLD


def test_search_newsletter_and_login_forms_score_below_threshold():
    assert _score(SEARCH_FORM) < FORM_SCORE_THRESHOLD
    assert _score(NEWSLETTER_FORM) < FORM_SCORE_THRESHOLD
    assert _score(LOGIN_FORM) < FORM_SCORE_THRESHOLD


def test_reports_page_with_contact_form():
    body = SEARCH_FORM + CONTACT_FORM

    assert _forms(body) == ["https://acme.io/write-for-us"]


def test_contact_heading_counts():
    body = "<h2>Get in touch</h2><form><input type='email' name='email'><textarea></textarea></form>"

    assert _forms(body, "https://acme.io/") == ["https://acme.io/"]


def test_only_non_contact_forms():
    assert _forms(SEARCH_FORM + NEWSLETTER_FORM + LOGIN_FORM, "https://acme.io/") == []


def test_falls_back_to_contact_link():
    body = (
        '<a href="mailto:hi@acme.io">Contact us by email</a>'
        '<a href="/company/contact-us">Contact</a>'
    )

    assert _forms(body, "https://acme.io/blog/post") == ["https://acme.io/company/contact-us"]
