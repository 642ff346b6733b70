"""Shared fixtures.

Tests run against mongomock-motor, an in-memory stand-in for MongoDB that
evaluates the same query and update documents, and a clock pinned to a fixed
instant so deadline behaviour is deterministic.
"""

from __future__ import annotations

import datetime
import uuid
from typing import Any, AsyncIterator, Dict, List

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from bidcraft.auction import AuctionEngine
from bidcraft.config import Settings
from bidcraft.database import MongoStore
from bidcraft.main import create_app
from bidcraft.notifications import Mailer
from bidcraft.routers.auth import create_access_token

START = datetime.datetime(2026, 1, 1, 12, 0, 0)


class FakeClock:
    """Clock that only moves when a test moves it."""

    def __init__(self, now: datetime.datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, **kwargs: Any) -> datetime.datetime:
        self.now += datetime.timedelta(**kwargs)
        return self.now


class RecordingMailer(Mailer):
    """Mailer that keeps sent mail in memory, or fails every send."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: List[Dict[str, Any]] = []

    async def send_mail(self, to, subject, html=None, text=None):
        if self.fail:
            raise ConnectionError("SMTP unreachable")
        self.sent.append({"to": to, "subject": subject, "html": html, "text": text})


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def settings() -> Settings:
    test_settings = Settings()
    test_settings.JWT_SECRET_KEY = "test-secret"
    test_settings.CORS_ORIGINS = "http://localhost:3000"
    return test_settings


@pytest_asyncio.fixture
async def store() -> MongoStore:
    mongo_store = MongoStore(db_name="bidcraft_test", client=AsyncMongoMockClient())
    await mongo_store.connect()
    return mongo_store


@pytest.fixture
def engine(store: MongoStore, clock: FakeClock) -> AuctionEngine:
    return AuctionEngine(store.db, clock=clock)


@pytest.fixture
def app(settings: Settings, store: MongoStore, mailer: RecordingMailer, clock: FakeClock):
    return create_app(settings=settings, store=store, mailer=mailer, clock=clock)


@pytest_asyncio.fixture
async def client(app) -> AsyncIterator[AsyncClient]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


async def make_user(db, role: str, status: str = "active", email: str | None = None) -> Dict[str, Any]:
    """Insert a user document directly, skipping password hashing."""
    user_id = str(uuid.uuid4())
    user = {
        "id": user_id,
        "email": email or f"{role}-{user_id[:8]}@example.com",
        "hashed_password": "not-a-real-hash",
        "role": role,
        "status": status,
        "created_at": START,
        "updated_at": START,
    }
    await db.users.insert_one(user)
    user.pop("_id", None)
    return user


def auth_headers(settings: Settings, user: Dict[str, Any]) -> Dict[str, str]:
    token = create_access_token(settings, {"sub": user["id"], "role": user["role"]})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def buyer(store: MongoStore) -> Dict[str, Any]:
    return await make_user(store.db, "buyer", email="buyer@example.com")


@pytest_asyncio.fixture
async def providers(store: MongoStore) -> List[Dict[str, Any]]:
    return [await make_user(store.db, "provider", email=f"p{i}@example.com") for i in range(1, 4)]


@pytest_asyncio.fixture
async def project(engine: AuctionEngine, buyer: Dict[str, Any]) -> Dict[str, Any]:
    """An open project whose deadline is one day after START."""
    return await engine.create_project(
        buyer_id=buyer["id"],
        title="Office network rewiring",
        description="Replace cabling and switches on two floors",
        budget_min=500,
        budget_max=2000,
        deadline=START + datetime.timedelta(days=1),
        category="IT",
    )
