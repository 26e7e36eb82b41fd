import os
import sys
from datetime import datetime, time, timezone
from pathlib import Path

# No engine at import time; every test gets its own SQLite file
os.environ["DATABASE_URL"] = "disabled"
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient


# Ensure project root is on sys.path so top-level packages import
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))


# Explicitly enable pytest-asyncio plugin for async tests/fixtures
pytest_plugins = ("pytest_asyncio",)


from core.auth import create_access_token
from core.container import ServiceContainer
from core.db import build_engine, build_session_maker, create_all
from models.db_models import DeviceToken, NotificationPreference, User
from models.notification import Channel, MulticastOutcome, SendOutcome


class FrozenClock:
    """Injectable clock; tests move `now` to probe the lead-time window."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class RecordingSender:
    """Fake single-target sender: records (recipient, content), returns `outcome` or raises `exc`."""

    def __init__(self, outcome: SendOutcome = None, exc: Exception = None):
        self.outcome = outcome or SendOutcome(success=True, message_id="msg-1")
        self.exc = exc
        self.calls = []

    async def send(self, recipient, content):
        self.calls.append((recipient, content))
        if self.exc is not None:
            raise self.exc
        return self.outcome


class RecordingPushSender:
    """Fake multicast sender: the first `succeed` tokens succeed, the rest fail."""

    def __init__(self, succeed: int = None):
        self.succeed = succeed
        self.calls = []

    async def send_multicast(self, tokens, content):
        self.calls.append((list(tokens), content))
        ok_count = len(tokens) if self.succeed is None else min(self.succeed, len(tokens))
        return MulticastOutcome(
            success_count=ok_count,
            failure_count=len(tokens) - ok_count,
            message_ids=[f"push-{i}" for i in range(ok_count)],
        )


def auth_headers(user_id: str, role: str = "user") -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id, role)}"}


async def seed_user(session_maker, user_id, email=None, phone=None, tokens=(), preferences=None, name="Test User"):
    async with session_maker() as session:
        async with session.begin():
            session.add(User(user_id=user_id, name=name, email=email, phone=phone, is_active=True))
            for token in tokens:
                session.add(DeviceToken(user_id=user_id, token=token, platform="ANDROID", is_active=True))
            if preferences is not None:
                session.add(NotificationPreference(user_id=user_id, **preferences))


async def seed_route(container, route_id="R1", capacity=40, price=9000, stops=None, active=True,
                     departure=time(8, 0)):
    if stops is None:
        stops = [
            {"name": "Kampala", "order": 0, "price_from_origin": 0},
            {"name": "Masaka", "order": 1, "price_from_origin": 2000},
            {"name": "Lyantonde", "order": 2, "price_from_origin": 5000},
            {"name": "Mbarara", "order": 3, "price_from_origin": 9000},
        ]
    return await container.routes.upsert_route(
        route_id=route_id,
        origin="Kampala",
        destination="Mbarara",
        price=price,
        departure_time=departure,
        bus_plate=f"UAX-{route_id}",
        bus_capacity=capacity,
        stops=stops,
        active=active,
    )


@pytest_asyncio.fixture()
async def session_maker(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await create_all(engine)
    yield build_session_maker(engine)
    await engine.dispose()


@pytest.fixture()
def clock():
    return FrozenClock(datetime(2025, 11, 1, 0, 0, tzinfo=timezone.utc))


@pytest.fixture()
def senders():
    return {
        Channel.EMAIL: RecordingSender(SendOutcome(success=True, message_id="email-1")),
        Channel.SMS: RecordingSender(SendOutcome(success=True, message_id="sms-1")),
        Channel.PUSH: RecordingPushSender(),
        Channel.IN_APP: RecordingSender(SendOutcome(success=True, message_id="inapp-1")),
    }


@pytest_asyncio.fixture()
async def container(session_maker, senders, clock):
    services = ServiceContainer(session_maker, senders=senders, notification_mode="inline", clock=clock)
    yield services
    await services.close()


@pytest_asyncio.fixture()
async def client(container):
    """Async test client for the API, wired to the test container."""
    from main import create_app

    app = create_app(container)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
        yield ac
