from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Awaitable, Callable, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from glimpse.config import get_settings
from glimpse.container import ServiceContainer, build_container
from glimpse.db import ensure_indexes
from glimpse.events import InMemoryEventPublisher
from glimpse.main import create_app
from glimpse.models.account import AccountDocument
from glimpse.models.profile import ContextType, ProfileDocument
from glimpse.models.quota import Tier

# 2024-06-10 14:59:00 UTC, one minute before midnight in Asia/Seoul
START_MS = 1_718_031_540_000


class FakeClock:
    def __init__(self, start_ms: int = START_MS) -> None:
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, *, ms: int = 0, seconds: float = 0, minutes: float = 0, hours: float = 0, days: float = 0) -> int:
        self.now += int(ms + seconds * 1000 + minutes * 60_000 + hours * 3_600_000 + days * 86_400_000)
        return self.now


@pytest.fixture(autouse=True)
def _env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MONGO_URI", "mongodb://localhost:27017/test")
    monkeypatch.setenv("MONGO_DB_NAME", "glimpse-test")
    monkeypatch.setenv("JWT_SECRET", "test-secret")
    monkeypatch.setenv("AUTH_PROVIDER", "dev")
    monkeypatch.setenv("REDIS_URL", "")
    monkeypatch.setenv("REDIS_PUBSUB_ENABLED", "false")
    monkeypatch.setenv("QUOTA_TIMEZONE", "Asia/Seoul")
    get_settings.cache_clear()  # type: ignore[attr-defined]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def mongo_db() -> AsyncIterator:
    client = AsyncMongoMockClient()
    db = client["glimpse-test"]
    await ensure_indexes(db)
    yield db
    client.close()


@pytest.fixture
def publisher() -> InMemoryEventPublisher:
    return InMemoryEventPublisher()


@pytest.fixture
def container(mongo_db, clock: FakeClock, publisher: InMemoryEventPublisher) -> ServiceContainer:
    return build_container(mongo_db, get_settings(), clock=clock, publisher=publisher)


@pytest_asyncio.fixture
async def api_client(container: ServiceContainer) -> AsyncIterator[AsyncClient]:
    app = create_app(container)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as client:
        yield client


@pytest.fixture
def make_account(container: ServiceContainer, clock: FakeClock) -> Callable[..., Awaitable[AccountDocument]]:
    async def _make(
        account_id: str,
        tier: Tier = Tier.BASIC,
        *,
        real_name: Optional[str] = None,
        tier_expires_at: Optional[int] = None,
    ) -> AccountDocument:
        account = await container.accounts.create_account(
            account_id=account_id,
            phone_number_hash=f"hash-{account_id}",
            created_at=clock(),
            verified_at=clock(),
            real_name=real_name,
        )
        if tier is not Tier.BASIC or tier_expires_at is not None:
            account = await container.accounts.set_tier(account_id, tier, tier_expires_at)
        return account

    return _make


@pytest.fixture
def make_profile(container: ServiceContainer) -> Callable[..., Awaitable[ProfileDocument]]:
    async def _make(
        account_id: str,
        context_id: Optional[str] = "g1",
        context_type: ContextType = ContextType.CREATED,
        **kwargs,
    ) -> ProfileDocument:
        return await container.profiles.get_or_create_profile(account_id, context_type, context_id, **kwargs)

    return _make
