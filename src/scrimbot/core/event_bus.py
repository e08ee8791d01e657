"""Lobby change notifications.

The lobby engine announces every committed write as a ``LobbyEvent``.
Listeners read them from a ``LobbyFeed`` that holds at most one pending
event per lobby: a newer event for a lobby still waiting in the feed
replaces the older one in place. A slow listener (the Discord reconciler
behind a rate limit) therefore sees each busy lobby once, at its latest
version, instead of replaying every intermediate write.

Delivery is in-process and fire-and-forget. With no listeners an event is
simply dropped; the store remains the source of truth.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections import OrderedDict

logger = logging.getLogger(__name__)

LOBBY_CREATED = "lobby.created"
LOBBY_UPDATED = "lobby.updated"
LOBBY_MESSAGE_BOUND = "lobby.message_bound"
LOBBY_DELETED = "lobby.deleted"


@dataclasses.dataclass(frozen=True)
class LobbyEvent:
    """A committed lobby write, described by the version it produced."""

    type: str
    lobby_id: str
    guild_id: str
    status: str
    version: int
    message_id: str = ""


class EventBus:
    """Routes lobby events to the feeds listening for their type."""

    def __init__(self) -> None:
        self._feeds: list[LobbyFeed] = []

    async def publish(self, event: LobbyEvent) -> int:
        """Offer ``event`` to every feed listening for its type.

        Returns the number of feeds it was offered to.
        """
        listeners = [feed for feed in self._feeds if event.type in feed.event_types]
        for feed in listeners:
            feed.offer(event)
        if not listeners:
            logger.debug("lobby_event_unheard type=%s id=%s", event.type, event.lobby_id)
        return len(listeners)

    def listen(self, *event_types: str) -> LobbyFeed:
        """Open a feed for the given event types; enter it with ``async with``."""
        if not event_types:
            raise ValueError("listen() needs at least one event type")
        return LobbyFeed(self, frozenset(event_types))


class LobbyFeed:
    """Pending lobby events, one per lobby, oldest lobby first.

    Async context manager (registers with the bus) and async iterator.
    Iteration waits for the next lobby with a pending event and runs until
    the consuming task is cancelled.
    """

    def __init__(self, bus: EventBus, event_types: frozenset[str]) -> None:
        self._bus = bus
        self.event_types = event_types
        self._pending: OrderedDict[str, LobbyEvent] = OrderedDict()
        self._ready = asyncio.Event()

    async def __aenter__(self) -> LobbyFeed:
        self._bus._feeds.append(self)
        return self

    async def __aexit__(self, *args: object) -> None:
        self._bus._feeds.remove(self)
        self._pending.clear()

    def __len__(self) -> int:
        return len(self._pending)

    def offer(self, event: LobbyEvent) -> None:
        """Queue ``event``, replacing an older pending event for the same lobby.

        Racing writers can publish out of order; a pending event never gives
        way to one with a lower version.
        """
        waiting = self._pending.get(event.lobby_id)
        if waiting is not None and waiting.version > event.version:
            return
        self._pending[event.lobby_id] = event
        self._ready.set()

    def __aiter__(self) -> LobbyFeed:
        return self

    async def __anext__(self) -> LobbyEvent:
        while not self._pending:
            self._ready.clear()
            await self._ready.wait()
        _, event = self._pending.popitem(last=False)
        return event
