"""Tests for lobby event feeds: routing by type and per-lobby coalescing."""

from __future__ import annotations

import asyncio

import pytest

from scrimbot.core.event_bus import (
    LOBBY_CREATED,
    LOBBY_DELETED,
    LOBBY_UPDATED,
    EventBus,
    LobbyEvent,
)


def _event(lobby_id: str = "lobby-1", version: int = 2, type: str = LOBBY_UPDATED) -> LobbyEvent:
    return LobbyEvent(
        type=type, lobby_id=lobby_id, guild_id="guild-1", status="pending", version=version
    )


async def _next(feed) -> LobbyEvent:
    return await asyncio.wait_for(anext(feed), timeout=1.0)


class TestRouting:
    async def test_unheard_event_is_dropped(self) -> None:
        bus = EventBus()
        assert await bus.publish(_event()) == 0

    async def test_feed_receives_only_its_types(self) -> None:
        bus = EventBus()
        async with bus.listen(LOBBY_UPDATED) as feed:
            assert await bus.publish(_event(type=LOBBY_CREATED, version=1)) == 0
            assert await bus.publish(_event("lobby-2")) == 1

            assert (await _next(feed)).lobby_id == "lobby-2"
            assert len(feed) == 0

    async def test_each_feed_gets_its_own_copy(self) -> None:
        bus = EventBus()
        async with bus.listen(LOBBY_UPDATED) as renders, bus.listen(
            LOBBY_UPDATED, LOBBY_DELETED
        ) as audit:
            assert await bus.publish(_event()) == 2
            assert await bus.publish(_event("lobby-2", type=LOBBY_DELETED)) == 1

            assert len(renders) == 1
            assert len(audit) == 2

    async def test_closed_feed_stops_receiving(self) -> None:
        bus = EventBus()
        async with bus.listen(LOBBY_UPDATED) as feed:
            await bus.publish(_event())
        assert len(feed) == 0
        assert await bus.publish(_event(version=3)) == 0

    def test_listen_requires_a_type(self) -> None:
        with pytest.raises(ValueError):
            EventBus().listen()


class TestCoalescing:
    async def test_burst_on_one_lobby_collapses_to_latest(self) -> None:
        bus = EventBus()
        async with bus.listen(LOBBY_UPDATED) as feed:
            for version in (2, 3, 4):
                await bus.publish(_event(version=version))

            assert len(feed) == 1
            assert (await _next(feed)).version == 4

    async def test_lobbies_keep_first_arrival_order(self) -> None:
        bus = EventBus()
        async with bus.listen(LOBBY_UPDATED) as feed:
            await bus.publish(_event("a", version=2))
            await bus.publish(_event("b", version=2))
            await bus.publish(_event("a", version=3))

            first, second = await _next(feed), await _next(feed)

        assert (first.lobby_id, first.version) == ("a", 3)
        assert (second.lobby_id, second.version) == ("b", 2)

    async def test_late_stale_event_does_not_replace_newer(self) -> None:
        bus = EventBus()
        async with bus.listen(LOBBY_UPDATED) as feed:
            await bus.publish(_event(version=5))
            await bus.publish(_event(version=4))

            assert (await _next(feed)).version == 5

    async def test_event_after_consumption_is_queued_again(self) -> None:
        bus = EventBus()
        async with bus.listen(LOBBY_UPDATED) as feed:
            await bus.publish(_event(version=2))
            await _next(feed)
            await bus.publish(_event(version=3))

            assert (await _next(feed)).version == 3


class TestIteration:
    async def test_waiting_listener_wakes_on_publish(self) -> None:
        bus = EventBus()
        seen: list[str] = []

        async def consume() -> None:
            async with bus.listen(LOBBY_UPDATED) as feed:
                async for event in feed:
                    seen.append(event.lobby_id)

        task = asyncio.create_task(consume())
        await asyncio.sleep(0)
        await bus.publish(_event("lobby-9"))
        await asyncio.sleep(0.01)
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

        assert seen == ["lobby-9"]
        assert await bus.publish(_event("lobby-9", version=3)) == 0
