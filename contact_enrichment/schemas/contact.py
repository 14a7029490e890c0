from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

AddressSource = Literal["structured", "heuristic"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SocialProfile(_CamelModel):
    platform: str
    url: str
    username: str
    display_name: str | None = None
    description: str | None = None

    @property
    def key(self) -> tuple[str, str]:
        return self.platform, self.username.lower()


class ExtractionMetadata(_CamelModel):
    source: str
    extractor_version: str
    last_updated: datetime
    attempted_pages: list[str] = []


class ContactFindings(_CamelModel):
    """Typed findings produced by extractors or overrides for one or more pages."""

    emails: list[str] = []
    phones: list[str] = []
    social_profiles: list[SocialProfile] = []
    contact_forms: list[str] = []
    address: str | None = None
    address_source: AddressSource | None = None
    guessed_emails: list[str] = []

    def is_empty(self) -> bool:
        return not (
            self.emails
            or self.phones
            or self.social_profiles
            or self.contact_forms
            or self.address
        )


class ContactInfo(_CamelModel):
    """Canonical enriched contact record persisted per opportunity."""

    emails: list[str] = []
    phones: list[str] = []
    social_profiles: list[SocialProfile] = []
    contact_forms: list[str] = []
    address: str | None = None
    address_source: AddressSource | None = None
    guessed_emails: list[str] = []  # pattern-generated, never verified on the site
    extraction_metadata: ExtractionMetadata | None = None

    def is_empty(self) -> bool:
        return not (
            self.emails
            or self.phones
            or self.social_profiles
            or self.contact_forms
            or self.address
        )

    def has_direct_channel(self) -> bool:
        return bool(self.emails or self.contact_forms)

    def content(self) -> dict:
        """Comparable content, excluding metadata."""
        return self.model_dump(exclude={"extraction_metadata"})

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True, mode="json", exclude_none=False)


class ContactSummary(BaseModel):
    emails: int = 0
    phones: int = 0
    social_profiles: int = 0
    contact_forms: int = 0
    has_address: bool = False
    guessed_emails: int = 0

    @classmethod
    def of(cls, info: ContactInfo | None) -> "ContactSummary":
        if info is None:
            return cls()
        return cls(
            emails=len(info.emails),
            phones=len(info.phones),
            social_profiles=len(info.social_profiles),
            contact_forms=len(info.contact_forms),
            has_address=bool(info.address),
            guessed_emails=len(info.guessed_emails),
        )
