from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OpportunityRecord(Base):
    """A discovered site to reach out to, with its enriched contact payload."""

    __tablename__ = "opportunities"

    id = Column(Integer, primary_key=True)
    url = Column(Text, nullable=False)
    domain = Column(String(255), nullable=False)
    is_premium = Column(Boolean, nullable=False, default=False)
    domain_authority = Column(Integer, nullable=False, default=0)

    # Canonical ContactInfo payload (camelCase keys); older rows may hold legacy shapes
    contact_info = Column(JSON)
    # Denormalized from contact_info for selection queries
    has_contact = Column(Boolean, nullable=False, default=False)
    has_direct_channel = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("idx_opportunity_selection", "has_direct_channel", "is_premium", "domain_authority"),
        Index("idx_opportunity_domain", "domain"),
    )

    def __repr__(self):
        return f"<OpportunityRecord(id={self.id}, domain='{self.domain}', premium={self.is_premium})>"
