"""Tests for reading stored contact payloads of any historical shape."""

import json
from datetime import datetime, timezone

import pytest

from contact_enrichment.exceptions.custom import ParseFailure
from contact_enrichment.mappers.contact_normalizer import normalize_contact_payload
from contact_enrichment.schemas.contact import ContactInfo, ExtractionMetadata, SocialProfile

LEGACY = {
    "email": "Editor@Acme.io",
    "additionalEmails": ["press@acme.io", "logo@2x.png", "editor@acme.io"],
    "phone": "+1 555 010 2000",
    "form": "https://acme.io/contact",
    "social": [
        "https://twitter.com/acme",
        {"url": "https://www.linkedin.com/company/acme", "displayName": "Acme Inc"},
        "https://acme.io/not-a-profile",
    ],
    "address": {"streetAddress": "1 Main St", "addressLocality": "Springfield"},
    "extractionDetails": {"source": "legacy-scraper", "version": "1.3"},
    "lastUpdated": "2023-11-02T10:00:00Z",
}


def test_none_and_empty_payloads():
    assert normalize_contact_payload(None) is None
    assert normalize_contact_payload("") is None


def test_legacy_shape():
    info = normalize_contact_payload(LEGACY)

    assert info.emails == ["editor@acme.io", "press@acme.io"]
    assert info.phones == ["+1 555 010 2000"]
    assert info.contact_forms == ["https://acme.io/contact"]
    assert [(p.platform, p.username) for p in info.social_profiles] == [
        ("twitter", "acme"),
        ("linkedin", "acme"),
    ]
    assert info.social_profiles[1].display_name == "Acme Inc"
    assert info.address == "1 Main St, Springfield"
    assert info.address_source == "structured"
    assert info.extraction_metadata.source == "legacy-scraper"
    assert info.extraction_metadata.extractor_version == "1.3"


def test_double_encoded_payload():
    encoded = json.dumps(json.dumps(LEGACY))

    assert normalize_contact_payload(encoded) == normalize_contact_payload(LEGACY)


def test_canonical_payload_reads_back_unchanged():
    info = ContactInfo(
        emails=["press@acme.io"],
        social_profiles=[SocialProfile(platform="twitter", url="https://twitter.com/acme", username="acme")],
        contact_forms=["https://acme.io/contact"],
        address="9 Harbour Way, Oakland, CA 94607",
        address_source="heuristic",
        guessed_emails=["info@acme.io"],
        extraction_metadata=ExtractionMetadata(
            source="contact-enrichment",
            extractor_version="2.0",
            last_updated=datetime(2024, 5, 1, tzinfo=timezone.utc),
            attempted_pages=["https://acme.io/"],
        ),
    )

    assert normalize_contact_payload(info.to_payload()) == info
    assert normalize_contact_payload(json.dumps(info.to_payload())) == info


def test_guessed_emails_never_duplicate_verified():
    info = normalize_contact_payload({"emails": ["info@acme.io"], "guessedEmails": ["info@acme.io", "hello@acme.io"]})

    assert info.guessed_emails == ["hello@acme.io"]


@pytest.mark.parametrize("raw", ["not json", "[1, 2]", json.dumps("just a string")])
def test_unreadable_payloads_raise(raw):
    with pytest.raises(ParseFailure):
        normalize_contact_payload(raw)


def test_invalid_metadata_raises():
    with pytest.raises(ParseFailure):
        normalize_contact_payload({"emails": ["a@acme.io"], "lastUpdated": "yesterday-ish"})
