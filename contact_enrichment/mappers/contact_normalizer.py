"""Read stored contact payloads of any historical shape into ``ContactInfo``.

Older writers used ``email`` + ``additionalEmails``, ``form``/``contactForm``,
``social`` and ``extractionDetails``; some rows were JSON-encoded twice.
"""

import json

from pydantic import ValidationError

from contact_enrichment.exceptions.custom import ParseFailure
from contact_enrichment.extractors.address import format_postal_address
from contact_enrichment.extractors.emails import is_valid_email, normalize_email
from contact_enrichment.extractors.social import match_profile
from contact_enrichment.mappers.contact_merger import combine_findings
from contact_enrichment.schemas.contact import (
    ContactFindings,
    ContactInfo,
    ExtractionMetadata,
    SocialProfile,
)

_EMAIL_KEYS = ("email", "emails", "additionalEmails")
_PHONE_KEYS = ("phone", "phones")
_FORM_KEYS = ("contactForms", "form", "contactForm", "formUrl", "contactFormUrl")
_SOCIAL_KEYS = ("socialProfiles", "social")

_MAX_DECODE_DEPTH = 3


def _decode(raw) -> dict:
    value = raw
    for _ in range(_MAX_DECODE_DEPTH):
        if not isinstance(value, (str, bytes)):
            break
        try:
            value = json.loads(value)
        except (json.JSONDecodeError, ValueError) as exc:
            raise ParseFailure(f"Contact payload is not valid JSON: {exc}") from exc
    if not isinstance(value, dict):
        raise ParseFailure(f"Contact payload must be an object, got {type(value).__name__}")
    return value


def _strings(data: dict, keys: tuple[str, ...]) -> list[str]:
    values: list[str] = []
    for key in keys:
        item = data.get(key)
        if isinstance(item, str):
            values.append(item)
        elif isinstance(item, list):
            values.extend(v for v in item if isinstance(v, str))
    return [v.strip() for v in values if v and v.strip()]


def _profiles(data: dict) -> list[SocialProfile]:
    profiles: list[SocialProfile] = []
    for key in _SOCIAL_KEYS:
        items = data.get(key)
        if not isinstance(items, list):
            continue
        for item in items:
            if isinstance(item, str):
                item = {"url": item}
            if not isinstance(item, dict) or not item.get("url"):
                continue
            platform, username = item.get("platform"), item.get("username")
            if not (platform and username):
                found = match_profile(item["url"])
                if found is None:
                    continue
                platform, username = found
            profiles.append(
                SocialProfile(
                    platform=str(platform).lower(),
                    url=item["url"],
                    username=str(username),
                    display_name=item.get("displayName") or item.get("display_name"),
                    description=item.get("description"),
                )
            )
    return profiles


def _metadata(data: dict) -> ExtractionMetadata | None:
    try:
        if isinstance(data.get("extractionMetadata"), dict):
            return ExtractionMetadata.model_validate(data["extractionMetadata"])
        details = data.get("extractionDetails")
        updated = data.get("lastUpdated") or (details or {}).get("lastUpdated")
        if not updated:
            return None
        details = details if isinstance(details, dict) else {}
        return ExtractionMetadata(
            source=str(details.get("source", "legacy")),
            extractor_version=str(details.get("version", "1.0")),
            last_updated=updated,
        )
    except ValidationError as exc:
        raise ParseFailure(f"Invalid extraction metadata: {exc}") from exc


def normalize_contact_payload(raw) -> ContactInfo | None:
    """Canonical ``ContactInfo`` for a stored payload, or None when there is none.

    Raises ``ParseFailure`` for payloads that cannot be interpreted.
    """
    if raw is None or raw == "":
        return None
    data = _decode(raw)

    emails = []
    for value in _strings(data, _EMAIL_KEYS):
        email = normalize_email(value)
        if is_valid_email(email):
            emails.append(email)

    address = data.get("address")
    address_text = format_postal_address(address) if address else None
    address_source = data.get("addressSource")
    if address_source not in ("structured", "heuristic"):
        address_source = "structured" if isinstance(address, dict) else ("heuristic" if address_text else None)

    try:
        findings = combine_findings([
            ContactFindings(
                emails=emails,
                phones=_strings(data, _PHONE_KEYS),
                social_profiles=_profiles(data),
                contact_forms=_strings(data, _FORM_KEYS),
                address=address_text,
                address_source=address_source if address_text else None,
                guessed_emails=[normalize_email(g) for g in _strings(data, ("guessedEmails",))],
            )
        ])
    except ValidationError as exc:
        raise ParseFailure(f"Invalid contact payload: {exc}") from exc

    verified = set(findings.emails)
    return ContactInfo(
        emails=findings.emails,
        phones=findings.phones,
        social_profiles=findings.social_profiles,
        contact_forms=findings.contact_forms,
        address=findings.address,
        address_source=findings.address_source,
        guessed_emails=[g for g in findings.guessed_emails if g not in verified],
        extraction_metadata=_metadata(data),
    )
