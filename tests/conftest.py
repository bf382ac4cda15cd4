"""
Pytest configuration for the QCM tests

Provides an in-memory database, a temporary local store, a stubbed edge
proxy and a chat UI writing to a buffer.
"""

import io
import random

import httpx
import pytest
import pytest_asyncio
from rich.console import Console
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from qcm.database.db import Base
from qcm.database import models  # noqa: F401  (registers the tables)
from qcm.questionnaire.controller import QuestionnaireController
from qcm.questionnaire.ui import ChatUI
from qcm.services.local_store import LocalStore
from qcm.services.proxy_client import ProxyClient
from qcm.services.session_store import SessionStore
from tests.fakes import CLIENT_ORIGIN, FakeClock, ProxyStub

PROXY_URL = "https://proxy.test/"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def local_store(tmp_path):
    return LocalStore(tmp_path / "local_store.json")


@pytest_asyncio.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, expire_on_commit=False)


@pytest.fixture
def session_store(session_factory, local_store, clock):
    return SessionStore(session_factory, local_store, clock=clock)


@pytest.fixture
def proxy_stub():
    return ProxyStub()


@pytest.fixture
def http_client(proxy_stub):
    return httpx.AsyncClient(transport=httpx.MockTransport(proxy_stub))


@pytest_asyncio.fixture
async def proxy_client(http_client, local_store):
    client = ProxyClient(
        PROXY_URL, local_store, http_client=http_client, origin=CLIENT_ORIGIN
    )
    yield client
    await client.aclose()


@pytest.fixture
def console():
    return Console(file=io.StringIO(), width=120, color_system=None)


@pytest.fixture
def chat_ui(console):
    return ChatUI(console=console)


@pytest.fixture
def controller(session_store, proxy_client, chat_ui, local_store, clock):
    controller = QuestionnaireController(
        session_store,
        proxy_client,
        chat_ui,
        local_store,
        rng=random.Random(0),
        clock=clock,
    )
    chat_ui.bind(controller)
    return controller
