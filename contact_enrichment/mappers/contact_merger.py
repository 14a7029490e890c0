from collections.abc import Callable, Iterable

from contact_enrichment.schemas.contact import (
    ContactFindings,
    ContactInfo,
    ExtractionMetadata,
    SocialProfile,
)


def _is_empty(value: str | None) -> bool:
    return value is None or value.strip() == ""


def _union(current: Iterable[str], new: Iterable[str], key: Callable[[str], str]) -> list[str]:
    """Ordered union: existing items keep their position, unseen new items are appended."""
    result: list[str] = []
    seen: set[str] = set()
    for value in [*current, *new]:
        if _is_empty(value):
            continue
        k = key(value)
        if k in seen:
            continue
        seen.add(k)
        result.append(value)
    return result


def _email(value: str) -> str:
    return value.strip().lower()


def _phone(value: str) -> str:
    return " ".join(value.split())


def _url(value: str) -> str:
    return value.strip()


def _merge_profiles(
    current: Iterable[SocialProfile], new: Iterable[SocialProfile]
) -> list[SocialProfile]:
    merged: list[SocialProfile] = []
    index: dict[tuple[str, str], SocialProfile] = {}
    for profile in current:
        if profile.key in index:
            continue
        copy = profile.model_copy()
        index[profile.key] = copy
        merged.append(copy)
    for profile in new:
        known = index.get(profile.key)
        if known is None:
            copy = profile.model_copy()
            index[profile.key] = copy
            merged.append(copy)
            continue
        if _is_empty(known.display_name) and not _is_empty(profile.display_name):
            known.display_name = profile.display_name
        if _is_empty(known.description) and not _is_empty(profile.description):
            known.description = profile.description
    return merged


def _should_replace_address(
    old: str | None, old_source: str | None, new: str | None, new_source: str | None
) -> bool:
    if _is_empty(new):
        return False
    if _is_empty(old):
        return True
    return new_source == "structured" and old_source != "structured" and old != new


def combine_findings(results: Iterable[ContactFindings]) -> ContactFindings:
    """Fold findings from several extractors or pages into one, first seen wins."""
    combined = ContactFindings()
    for item in results:
        combined.emails = _union(combined.emails, (e.lower() for e in item.emails), _email)
        combined.phones = _union(combined.phones, (_phone(p) for p in item.phones), _phone)
        combined.social_profiles = _merge_profiles(combined.social_profiles, item.social_profiles)
        combined.contact_forms = _union(combined.contact_forms, item.contact_forms, _url)
        combined.guessed_emails = _union(combined.guessed_emails, item.guessed_emails, _email)
        if _should_replace_address(
            combined.address, combined.address_source, item.address, item.address_source
        ):
            combined.address = item.address
            combined.address_source = item.address_source
    return combined


def merge_contact_info(
    existing: ContactInfo | None,
    findings: ContactFindings,
    metadata: ExtractionMetadata,
) -> tuple[ContactInfo, bool]:
    """Merge newly extracted findings into the stored record.

    Never removes data. Returns (merged_record, dirty) where ``dirty`` is True
    only if the content (metadata excluded) changed. Metadata is refreshed
    only for dirty records so repeated runs on unchanged sites are no-ops.
    """
    current = existing or ContactInfo()

    emails = _union(current.emails, (e.lower() for e in findings.emails), _email)
    verified = {e.lower() for e in emails}
    guessed = [
        g for g in _union(current.guessed_emails, findings.guessed_emails, _email)
        if g.lower() not in verified
    ]

    address, address_source = current.address, current.address_source
    if _should_replace_address(address, address_source, findings.address, findings.address_source):
        address, address_source = findings.address, findings.address_source

    merged = ContactInfo(
        emails=emails,
        phones=_union(current.phones, (_phone(p) for p in findings.phones), _phone),
        social_profiles=_merge_profiles(current.social_profiles, findings.social_profiles),
        contact_forms=_union(current.contact_forms, findings.contact_forms, _url),
        address=address,
        address_source=address_source,
        guessed_emails=guessed,
        extraction_metadata=current.extraction_metadata,
    )

    dirty = merged.content() != current.content()
    if dirty:
        merged.extraction_metadata = metadata
    return merged, dirty
