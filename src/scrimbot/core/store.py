"""Lobby persistence: expiring lobby records plus per-guild and per-message indexes.

Key layout (shared by both backends):

    lobby:{id}                   JSON record, TTL refreshed on every write
    guild_lobbies:{guild_id}     set of lobby ids, no TTL (dangling ids pruned on read)
    lobby_message:{message_id}   lobby id, same TTL as the lobby record

Writes are compare-and-swap on ``Lobby.version`` when ``expected_version`` is
given, so two racing read-modify-write cycles cannot both commit.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Protocol

from redis.asyncio import Redis
from redis.exceptions import RedisError, WatchError

from scrimbot.config import DEFAULT_LOBBY_TTL_SECONDS
from scrimbot.core.errors import StoreUnavailable, WriteConflict
from scrimbot.models.lobby import Lobby

if TYPE_CHECKING:
    from scrimbot.config import Settings

logger = logging.getLogger(__name__)

LOBBY_PREFIX = "lobby:"
GUILD_LOBBIES_PREFIX = "guild_lobbies:"
LOBBY_MESSAGE_PREFIX = "lobby_message:"


def lobby_key(lobby_id: str) -> str:
    return f"{LOBBY_PREFIX}{lobby_id}"


def guild_lobbies_key(guild_id: str) -> str:
    return f"{GUILD_LOBBIES_PREFIX}{guild_id}"


def lobby_message_key(message_id: str) -> str:
    return f"{LOBBY_MESSAGE_PREFIX}{message_id}"


def _newest_first(lobbies: list[Lobby]) -> list[Lobby]:
    return sorted(lobbies, key=lambda lobby: lobby.created_at, reverse=True)


class LobbyStore(Protocol):
    """Persistence contract the lobby engine depends on."""

    async def put(self, lobby: Lobby, *, expected_version: int | None = None) -> None:
        """Store ``lobby`` with a fresh TTL and index it.

        Raises WriteConflict when ``expected_version`` is given and the stored
        version differs (a missing record counts as version 0).
        """
        ...

    async def get(self, lobby_id: str) -> Lobby | None: ...

    async def get_by_message(self, message_id: str) -> Lobby | None: ...

    async def list_by_guild(self, guild_id: str) -> list[Lobby]: ...

    async def delete(self, lobby_id: str) -> bool: ...

    async def close(self) -> None: ...


class RedisLobbyStore:
    """Redis-backed store. Connectivity failures surface as StoreUnavailable."""

    def __init__(self, redis: Redis, ttl_seconds: int = DEFAULT_LOBBY_TTL_SECONDS) -> None:
        self._redis = redis
        self._ttl = ttl_seconds

    async def put(self, lobby: Lobby, *, expected_version: int | None = None) -> None:
        key = lobby_key(lobby.id)
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                if expected_version is not None:
                    await pipe.watch(key)
                    raw = await pipe.get(key)
                    stored_version = Lobby.from_record(raw).version if raw else 0
                    if stored_version != expected_version:
                        raise WriteConflict(
                            f"Lobby {lobby.id} changed (version {stored_version}, "
                            f"expected {expected_version})",
                            lobby_id=lobby.id,
                        )
                    pipe.multi()
                pipe.set(key, lobby.to_record(), ex=self._ttl)
                pipe.sadd(guild_lobbies_key(lobby.guild_id), lobby.id)
                if lobby.message_id:
                    pipe.set(lobby_message_key(lobby.message_id), lobby.id, ex=self._ttl)
                await pipe.execute()
        except WatchError as exc:
            raise WriteConflict(
                f"Lobby {lobby.id} changed during write", lobby_id=lobby.id
            ) from exc
        except RedisError as exc:
            raise StoreUnavailable(
                f"Could not write lobby {lobby.id}", lobby_id=lobby.id
            ) from exc

    async def get(self, lobby_id: str) -> Lobby | None:
        try:
            raw = await self._redis.get(lobby_key(lobby_id))
        except RedisError as exc:
            raise StoreUnavailable(f"Could not read lobby {lobby_id}", lobby_id=lobby_id) from exc
        if raw is None:
            return None
        return Lobby.from_record(raw)

    async def get_by_message(self, message_id: str) -> Lobby | None:
        try:
            lobby_id = await self._redis.get(lobby_message_key(message_id))
        except RedisError as exc:
            raise StoreUnavailable(f"Could not resolve message {message_id}") from exc
        if lobby_id is None:
            return None
        if isinstance(lobby_id, bytes):
            lobby_id = lobby_id.decode()
        return await self.get(lobby_id)

    async def list_by_guild(self, guild_id: str) -> list[Lobby]:
        index_key = guild_lobbies_key(guild_id)
        try:
            members = await self._redis.smembers(index_key)
            lobby_ids = sorted(m.decode() if isinstance(m, bytes) else m for m in members)
            if not lobby_ids:
                return []
            records = await self._redis.mget([lobby_key(i) for i in lobby_ids])
            dangling = [i for i, raw in zip(lobby_ids, records, strict=True) if raw is None]
            if dangling:
                await self._redis.srem(index_key, *dangling)
                logger.debug("guild_index_pruned guild=%s count=%d", guild_id, len(dangling))
        except RedisError as exc:
            raise StoreUnavailable(f"Could not list lobbies for guild {guild_id}") from exc
        return _newest_first([Lobby.from_record(raw) for raw in records if raw is not None])

    async def delete(self, lobby_id: str) -> bool:
        lobby = await self.get(lobby_id)
        if lobby is None:
            return False
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.delete(lobby_key(lobby_id))
                pipe.srem(guild_lobbies_key(lobby.guild_id), lobby_id)
                if lobby.message_id:
                    pipe.delete(lobby_message_key(lobby.message_id))
                await pipe.execute()
        except RedisError as exc:
            raise StoreUnavailable(f"Could not delete lobby {lobby_id}", lobby_id=lobby_id) from exc
        return True

    async def close(self) -> None:
        await self._redis.aclose()


class MemoryLobbyStore:
    """In-process store with the same semantics as RedisLobbyStore.

    Records are kept serialized so reads return fresh copies, and expiry is
    evaluated against ``clock`` so tests can advance time.
    """

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_LOBBY_TTL_SECONDS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock or (lambda: datetime.now(UTC))
        self._values: dict[str, str] = {}
        self._expires_at: dict[str, datetime] = {}
        self._sets: dict[str, set[str]] = {}

    def _read(self, key: str) -> str | None:
        expires_at = self._expires_at.get(key)
        if expires_at is not None and self._clock() >= expires_at:
            self._values.pop(key, None)
            self._expires_at.pop(key, None)
        return self._values.get(key)

    def _write(self, key: str, value: str) -> None:
        self._values[key] = value
        self._expires_at[key] = self._clock() + self._ttl

    def _drop(self, key: str) -> None:
        self._values.pop(key, None)
        self._expires_at.pop(key, None)

    async def put(self, lobby: Lobby, *, expected_version: int | None = None) -> None:
        if expected_version is not None:
            raw = self._read(lobby_key(lobby.id))
            stored_version = Lobby.from_record(raw).version if raw else 0
            if stored_version != expected_version:
                raise WriteConflict(
                    f"Lobby {lobby.id} changed (version {stored_version}, "
                    f"expected {expected_version})",
                    lobby_id=lobby.id,
                )
        self._write(lobby_key(lobby.id), lobby.to_record())
        self._sets.setdefault(guild_lobbies_key(lobby.guild_id), set()).add(lobby.id)
        if lobby.message_id:
            self._write(lobby_message_key(lobby.message_id), lobby.id)

    async def get(self, lobby_id: str) -> Lobby | None:
        raw = self._read(lobby_key(lobby_id))
        return Lobby.from_record(raw) if raw is not None else None

    async def get_by_message(self, message_id: str) -> Lobby | None:
        lobby_id = self._read(lobby_message_key(message_id))
        return await self.get(lobby_id) if lobby_id is not None else None

    async def list_by_guild(self, guild_id: str) -> list[Lobby]:
        index = self._sets.get(guild_lobbies_key(guild_id), set())
        lobbies: list[Lobby] = []
        for lobby_id in sorted(index):
            lobby = await self.get(lobby_id)
            if lobby is None:
                index.discard(lobby_id)
                continue
            lobbies.append(lobby)
        return _newest_first(lobbies)

    async def delete(self, lobby_id: str) -> bool:
        lobby = await self.get(lobby_id)
        if lobby is None:
            return False
        self._drop(lobby_key(lobby_id))
        self._sets.get(guild_lobbies_key(lobby.guild_id), set()).discard(lobby_id)
        if lobby.message_id:
            self._drop(lobby_message_key(lobby.message_id))
        return True

    async def close(self) -> None:
        self._values.clear()
        self._expires_at.clear()
        self._sets.clear()


def create_lobby_store(settings: Settings) -> LobbyStore:
    """Build the store selected by ``settings.redis_url``."""
    if settings.redis_url:
        redis = Redis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_timeout=5,
            socket_connect_timeout=5,
            retry_on_timeout=True,
        )
        logger.info("lobby_store backend=redis ttl=%ds", settings.lobby_ttl_seconds)
        return RedisLobbyStore(redis, ttl_seconds=settings.lobby_ttl_seconds)
    logger.info("lobby_store backend=memory ttl=%ds", settings.lobby_ttl_seconds)
    return MemoryLobbyStore(ttl_seconds=settings.lobby_ttl_seconds)
