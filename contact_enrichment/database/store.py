"""Opportunity persistence.

``SqlOpportunityStore`` is the SQLAlchemy-backed store. Its public methods are
coroutines that run the blocking session work in a worker thread, so the
enrichment pipeline can await them like any other I/O.
"""

import asyncio
import logging
import threading
from collections.abc import Generator, Iterable
from contextlib import contextmanager
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel
from sqlalchemy import create_engine, make_url, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from contact_enrichment.database.models import Base, OpportunityRecord
from contact_enrichment.exceptions.custom import (
    OpportunityNotFoundError,
    ParseFailure,
    PersistenceError,
)
from contact_enrichment.mappers.contact_normalizer import normalize_contact_payload
from contact_enrichment.schemas.contact import ContactInfo
from contact_enrichment.schemas.opportunity import Opportunity

logger = logging.getLogger(__name__)


class NormalizeSummary(BaseModel):
    total: int = 0
    rewritten: int = 0
    unchanged: int = 0
    invalid: int = 0


class OpportunityStore(Protocol):
    async def list_opportunities_needing_contact(
        self, premium_only: bool = False, limit: int | None = None
    ) -> list[Opportunity]: ...

    async def get_contact_info(self, opportunity_id: int) -> ContactInfo | None: ...

    async def set_contact_info(self, opportunity_id: int, info: ContactInfo) -> None: ...

    async def list_all(self) -> list[Opportunity]: ...

    async def upsert_opportunities(self, items: Iterable[Opportunity]) -> int: ...

    async def normalize_contact_records(self) -> NormalizeSummary: ...


class DatabaseManager:
    """Engine and session lifecycle for one database URL."""

    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url
        self.echo = echo
        self._engine = None
        self._session_factory = None

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def engine(self):
        if self._engine is None:
            kwargs = {"echo": self.echo, "pool_pre_ping": True}
            if self.is_sqlite:
                kwargs["connect_args"] = {"check_same_thread": False, "timeout": 30}
                path = make_url(self.database_url).database
                if path and path != ":memory:":
                    Path(path).parent.mkdir(parents=True, exist_ok=True)
                else:
                    # an in-memory database lives on a single connection
                    kwargs["poolclass"] = StaticPool
            self._engine = create_engine(self.database_url, **kwargs)
            logger.info("Database engine created: %s://...", self.database_url.split("://")[0])
        return self._engine

    def get_session_factory(self):
        if self._session_factory is None:
            self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        return self._session_factory

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Session that commits on success and rolls back on any error."""
        session = self.get_session_factory()()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def init_database(self) -> None:
        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            logger.exception("Failed to initialize database")
            raise PersistenceError(f"Cannot initialize database: {exc}") from exc
        logger.info("Database tables created")

    def health_check(self) -> bool:
        try:
            with self.get_session() as session:
                session.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            logger.exception("Database health check failed")
            return False

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._session_factory = None


def _flags(info: ContactInfo | None) -> tuple[bool, bool]:
    if info is None:
        return False, False
    return not info.is_empty(), info.has_direct_channel()


class SqlOpportunityStore:
    def __init__(self, db: DatabaseManager):
        self._db = db
        # SQLite allows one writer at a time
        self._lock = threading.Lock() if db.is_sqlite else None

    async def list_opportunities_needing_contact(
        self, premium_only: bool = False, limit: int | None = None
    ) -> list[Opportunity]:
        """Opportunities without an email or contact form, premium first then by authority."""
        return await self._run(self._list_needing_contact, premium_only, limit)

    async def get_contact_info(self, opportunity_id: int) -> ContactInfo | None:
        return await self._run(self._get_contact_info, opportunity_id, opportunity_id=opportunity_id)

    async def set_contact_info(self, opportunity_id: int, info: ContactInfo) -> None:
        await self._run(self._set_contact_info, opportunity_id, info, opportunity_id=opportunity_id)

    async def list_all(self) -> list[Opportunity]:
        return await self._run(self._list_all)

    async def upsert_opportunities(self, items: Iterable[Opportunity]) -> int:
        return await self._run(self._upsert, list(items))

    async def normalize_contact_records(self) -> NormalizeSummary:
        return await self._run(self._normalize_all)

    async def _run(self, fn, *args, opportunity_id: int | None = None):
        try:
            return await asyncio.to_thread(self._locked, fn, *args)
        except SQLAlchemyError as exc:
            logger.exception("Store operation %s failed", fn.__name__)
            raise PersistenceError(str(exc), opportunity_id) from exc

    def _locked(self, fn, *args):
        if self._lock is None:
            return fn(*args)
        with self._lock:
            return fn(*args)

    # Blocking implementations, run in a worker thread

    def _list_needing_contact(self, premium_only: bool, limit: int | None) -> list[Opportunity]:
        with self._db.get_session() as session:
            query = session.query(OpportunityRecord).filter(
                OpportunityRecord.has_direct_channel.is_(False)
            )
            if premium_only:
                query = query.filter(OpportunityRecord.is_premium.is_(True))
            query = query.order_by(
                OpportunityRecord.is_premium.desc(),
                OpportunityRecord.domain_authority.desc(),
                OpportunityRecord.id.asc(),
            )
            if limit:
                query = query.limit(limit)
            return [self._to_opportunity(r) for r in query.all()]

    def _get_contact_info(self, opportunity_id: int) -> ContactInfo | None:
        with self._db.get_session() as session:
            record = session.get(OpportunityRecord, opportunity_id)
            if record is None:
                raise OpportunityNotFoundError(opportunity_id)
            return self._read_contact(record)

    def _set_contact_info(self, opportunity_id: int, info: ContactInfo) -> None:
        with self._db.get_session() as session:
            record = session.get(OpportunityRecord, opportunity_id)
            if record is None:
                raise OpportunityNotFoundError(opportunity_id)
            record.contact_info = info.to_payload()
            record.has_contact, record.has_direct_channel = _flags(info)

    def _list_all(self) -> list[Opportunity]:
        with self._db.get_session() as session:
            records = session.query(OpportunityRecord).order_by(OpportunityRecord.id).all()
            return [self._to_opportunity(r) for r in records]

    def _upsert(self, items: list[Opportunity]) -> int:
        with self._db.get_session() as session:
            for item in items:
                record = session.get(OpportunityRecord, item.id)
                if record is None:
                    record = OpportunityRecord(id=item.id)
                    session.add(record)
                record.url = item.url
                record.domain = item.domain
                record.is_premium = item.is_premium
                record.domain_authority = item.domain_authority
                if item.contact_info is not None:
                    record.contact_info = item.contact_info.to_payload()
                record.has_contact, record.has_direct_channel = _flags(self._read_contact(record))
        logger.info("Upserted %d opportunities", len(items))
        return len(items)

    def _normalize_all(self) -> NormalizeSummary:
        summary = NormalizeSummary()
        with self._db.get_session() as session:
            records = session.query(OpportunityRecord).filter(
                OpportunityRecord.contact_info.isnot(None)
            ).all()
            for record in records:
                summary.total += 1
                try:
                    info = normalize_contact_payload(record.contact_info)
                except ParseFailure as exc:
                    logger.warning("Opportunity %s has unreadable contact info: %s", record.id, exc.message)
                    summary.invalid += 1
                    continue
                payload = info.to_payload() if info is not None else None
                if payload == record.contact_info:
                    summary.unchanged += 1
                    continue
                record.contact_info = payload
                record.has_contact, record.has_direct_channel = _flags(info)
                summary.rewritten += 1
        logger.info(
            "Normalized contact info: %d total, %d rewritten, %d unchanged, %d invalid",
            summary.total, summary.rewritten, summary.unchanged, summary.invalid,
        )
        return summary

    @staticmethod
    def _read_contact(record: OpportunityRecord) -> ContactInfo | None:
        try:
            return normalize_contact_payload(record.contact_info)
        except ParseFailure as exc:
            logger.warning("Ignoring unreadable contact info on opportunity %s: %s", record.id, exc.message)
            return None

    def _to_opportunity(self, record: OpportunityRecord) -> Opportunity:
        return Opportunity(
            id=record.id,
            url=record.url,
            domain=record.domain,
            is_premium=record.is_premium,
            domain_authority=record.domain_authority or 0,
            contact_info=self._read_contact(record),
        )
