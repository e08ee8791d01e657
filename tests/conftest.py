"""Shared test fixtures."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import fakeredis
import fakeredis.aioredis
import pytest

from scrimbot.config import Settings
from scrimbot.core.event_bus import EventBus
from scrimbot.core.lobby_engine import LobbyEngine
from scrimbot.core.store import MemoryLobbyStore
from scrimbot.models.lobby import Lobby

START = datetime(2026, 3, 14, 18, 0, tzinfo=UTC)


class FakeClock:
    """Controllable clock: call it for the current time, advance it by hand."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeMessenger:
    """Records lobby renders instead of talking to Discord."""

    def __init__(self) -> None:
        self.posted: list[Lobby] = []
        self.edited: list[Lobby] = []
        self.deleted: list[str] = []
        self.fail_post: Exception | None = None
        self.fail_edit: Exception | None = None
        self._next_message_id = 900000

    async def post_lobby(self, lobby: Lobby) -> str:
        if self.fail_post is not None:
            raise self.fail_post
        self.posted.append(lobby)
        self._next_message_id += 1
        return str(self._next_message_id)

    async def edit_lobby(self, lobby: Lobby) -> None:
        if self.fail_edit is not None:
            raise self.fail_edit
        self.edited.append(lobby)

    async def delete_message(self, lobby: Lobby, message_id: str) -> None:
        self.deleted.append(message_id)


@pytest.fixture
def settings() -> Settings:
    """Test settings with defaults (memory store, Discord off)."""
    return Settings(scrimbot_env="test", redis_url="", discord_enabled=False)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> MemoryLobbyStore:
    return MemoryLobbyStore(ttl_seconds=3600, clock=clock)


@pytest.fixture
def event_bus() -> EventBus:
    """A fresh EventBus for testing."""
    return EventBus()


@pytest.fixture
def engine(store: MemoryLobbyStore, event_bus: EventBus, clock: FakeClock) -> LobbyEngine:
    return LobbyEngine(store, event_bus, clock=clock)


@pytest.fixture
def fake_redis() -> fakeredis.aioredis.FakeRedis:
    """In-process Redis; each test gets its own server."""
    return fakeredis.aioredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def messenger() -> FakeMessenger:
    return FakeMessenger()


async def make_lobby(engine: LobbyEngine, **overrides: object) -> Lobby:
    """Create a pending lobby with sensible defaults."""
    fields: dict[str, object] = {
        "guild_id": "guild-1",
        "channel_id": "chan-1",
        "creator_id": "creator",
        "title": "Friday Scrim",
    }
    fields.update(overrides)
    return await engine.create(**fields)  # type: ignore[arg-type]
