from contact_enrichment.extractors.phones import PhoneExtractor

PAGE = "https://acme.io/contact"


def _phones(body: str, extractor: PhoneExtractor | None = None) -> list[str]:
    return (extractor or PhoneExtractor()).extract(f"<html><body>{body}</body></html>", PAGE).phones


def test_tel_link():
    assert _phones('<a href="tel:+1-555-123-4567">Call us</a>') == ["+1-555-123-4567"]


def test_text_patterns():
    body = "<p>London +44 20 7946 0958 or New York (555) 123-4567, fax 555.987.6543</p>"

    assert _phones(body) == ["+44 20 7946 0958", "(555) 123-4567", "555.987.6543"]


def test_tel_links_come_first_and_duplicates_collapse():
    body = '<p>Office: +44 20 7946 0958</p><a href="tel:+44 20 7946 0958">+44 20 7946 0958</a>'

    assert _phones(body) == ["+44 20 7946 0958"]


def test_json_ld_telephone():
    body = (
        '<script type="application/ld+json">'
        '{"@type": "LocalBusiness", "telephone": "+1 (555) 987-6543"}'
        "</script>"
    )

    assert _phones(body) == ["+1 (555) 987-6543"]


def test_short_numbers_and_years_are_ignored():
    assert _phones("<p>Since 1998, suite 200. Call +1 23.</p>") == []


def test_custom_normalizer_merges_formats():
    def digits_only(phone: str) -> str:
        return "".join(c for c in phone if c.isdigit() or c == "+")

    body = '<a href="tel:+1-555-123-4567">Call</a><p>+1 555 123 4567</p>'

    assert _phones(body, PhoneExtractor(normalizer=digits_only)) == ["+15551234567"]
