"""Global pytest fixtures wiring the send core to a throwaway SQLite database.

Each test gets:
  * a file-backed `sqlite+aiosqlite` database under `tmp_path` (file-backed so concurrent
    sessions really are separate connections contending for the write lock)
  * the tables created straight from metadata (Alembic is exercised separately in deployment)
  * ledger / sender / message repositories and a `ProviderGateway` pointed at a fake base URL
    that tests mock with `respx_mock`
"""
from __future__ import annotations

import pytest
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sendcore.clients.provider import ProviderGateway
from sendcore.core.settings import Settings
from sendcore.db import build_engine, build_session_factory, create_all
from sendcore.services.factory import Services, build_services

PROVIDER_BASE_URL = "https://provider.test/clientapi"
BUSINESS_ID = "biz_1"


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'sendcore-test.db'}",
        PROVIDER_BASE_URL=PROVIDER_BASE_URL,
        PROVIDER_API_KEY="test-key",
        PROVIDER_TIMEOUT_SECONDS=5,
    )


@pytest.fixture
async def session_factory(settings) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    engine = build_engine(settings)
    await create_all(engine)
    try:
        yield build_session_factory(engine)
    finally:
        await engine.dispose()


@pytest.fixture
def gateway(settings) -> ProviderGateway:
    return ProviderGateway.from_settings(settings)


@pytest.fixture
def services(session_factory, settings, gateway) -> Services:
    return build_services(session_factory, settings, gateway=gateway)


@pytest.fixture
def ledger(services):
    return services.ledger


@pytest.fixture
def senders(services):
    return services.senders


@pytest.fixture
def messages(services):
    return services.messages


@pytest.fixture
def orchestrator(services):
    return services.orchestrator
