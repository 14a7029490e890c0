from unittest.mock import AsyncMock

import httpx
import pytest
from httpx import ASGITransport

from contact_enrichment.config import Settings
from contact_enrichment.database.store import DatabaseManager, SqlOpportunityStore
from contact_enrichment.services.fetch_state import DomainThrottle, FetchCache
from contact_enrichment.services.fetcher import Fetcher


@pytest.fixture
def mock_env(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite://")
    monkeypatch.setenv("THROTTLE_DELAY", "0")
    monkeypatch.setenv("GUESS_EMAILS", "false")
    monkeypatch.setenv("OPPORTUNITY_STAGGER", "0")
    monkeypatch.setenv("BATCH_PAUSE", "0")
    monkeypatch.setenv("BACKOFF_BASE", "0")
    monkeypatch.setenv("MAX_ATTEMPTS", "2")


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        throttle_delay=0,
        max_attempts=3,
        backoff_base=0,
        guess_emails=False,
        opportunity_stagger=0,
        batch_pause=0,
    )


@pytest.fixture
def db():
    manager = DatabaseManager("sqlite://")
    manager.init_database()
    yield manager
    manager.dispose()


@pytest.fixture
def store(db):
    return SqlOpportunityStore(db)


@pytest.fixture
def http_client():
    return httpx.AsyncClient()


@pytest.fixture
def fetcher(http_client, settings):
    return Fetcher(
        http_client,
        DomainThrottle(0),
        FetchCache(),
        settings,
        sleep=AsyncMock(),
    )


@pytest.fixture
async def client(mock_env):
    from contact_enrichment.main import app, lifespan

    async with lifespan(app):
        async with httpx.AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as c:
            yield c
