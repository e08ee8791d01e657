"""Lobby lifecycle engine.

State machine:

    PENDING -> ACTIVE       start (creator, not before scheduled time)
    PENDING -> CANCELLED    cancel
    ACTIVE  -> CANCELLED    cancel
    COMPLETED               terminal, produced externally
    CANCELLED               terminal

Only PENDING lobbies accept participant and field edits. Every operation
re-reads the lobby from the store, validates against that snapshot, and
writes back with a compare-and-swap on ``version``. A lost race re-runs the
whole read-validate-write cycle, so each committed write was validated
against the state it replaced.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from scrimbot.core.errors import (
    AlreadyCancelled,
    AlreadyParticipant,
    CapacityExceeded,
    CreatorImmutable,
    InvalidState,
    LobbyNotFound,
    NotParticipant,
    TooEarly,
    WriteConflict,
)
from scrimbot.core.event_bus import (
    LOBBY_CREATED,
    LOBBY_DELETED,
    LOBBY_MESSAGE_BOUND,
    LOBBY_UPDATED,
    LobbyEvent,
)
from scrimbot.models.lobby import Lobby, LobbyStatus, LobbyUpdate

if TYPE_CHECKING:
    from scrimbot.core.event_bus import EventBus
    from scrimbot.core.store import LobbyStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

# Returned by a mutation to mean "nothing to write".
_NO_CHANGE = None


def utcnow() -> datetime:
    return datetime.now(UTC)


def _require_pending(lobby: Lobby, action: str) -> None:
    if lobby.status != LobbyStatus.PENDING:
        raise InvalidState(
            f"Cannot {action}: lobby is {lobby.status.value}", lobby_id=lobby.id
        )


class LobbyEngine:
    """State machine and invariant enforcement for lobbies.

    Holds no lobby state between calls; the store is the only source of truth.
    """

    def __init__(
        self,
        store: LobbyStore,
        event_bus: EventBus | None = None,
        *,
        clock: Clock = utcnow,
        write_retries: int = 3,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ) -> None:
        self.store = store
        self.event_bus = event_bus
        self._clock = clock
        self._write_retries = write_retries
        self._id_factory = id_factory

    # --- Reads ---

    async def get(self, lobby_id: str) -> Lobby | None:
        return await self.store.get(lobby_id)

    async def require(self, lobby_id: str) -> Lobby:
        lobby = await self.store.get(lobby_id)
        if lobby is None:
            raise LobbyNotFound(f"Lobby {lobby_id} not found", lobby_id=lobby_id)
        return lobby

    async def get_by_message(self, message_id: str) -> Lobby | None:
        return await self.store.get_by_message(message_id)

    async def list_by_guild(self, guild_id: str) -> list[Lobby]:
        return await self.store.list_by_guild(guild_id)

    # --- Creation / deletion ---

    async def create(
        self,
        *,
        guild_id: str,
        channel_id: str,
        creator_id: str,
        title: str,
        scheduled_start_time: datetime | None = None,
        max_participants: int | None = None,
    ) -> Lobby:
        now = self._clock()
        lobby = Lobby(
            id=self._id_factory(),
            guild_id=guild_id,
            channel_id=channel_id,
            creator_id=creator_id,
            title=title,
            scheduled_start_time=scheduled_start_time,
            status=LobbyStatus.PENDING,
            participants=[creator_id],
            max_participants=max_participants,
            created_at=now,
            updated_at=now,
            version=1,
        )
        await self.store.put(lobby, expected_version=0)
        logger.info("lobby_created id=%s guild=%s creator=%s", lobby.id, guild_id, creator_id)
        await self._publish(LOBBY_CREATED, lobby)
        return lobby

    async def delete(self, lobby_id: str) -> bool:
        """Delete a lobby. Returns False if it was already gone."""
        lobby = await self.store.get(lobby_id)
        if lobby is None:
            return False
        deleted = await self.store.delete(lobby_id)
        if deleted:
            logger.info("lobby_deleted id=%s", lobby_id)
            await self._publish(LOBBY_DELETED, lobby)
        return deleted

    # --- Transitions ---

    async def add_participant(self, lobby_id: str, user_id: str) -> Lobby:
        def apply(lobby: Lobby) -> dict[str, object]:
            _require_pending(lobby, "join")
            if lobby.is_full:
                raise CapacityExceeded(
                    f"Lobby is full ({lobby.participant_count}/{lobby.max_participants})",
                    lobby_id=lobby.id,
                )
            if user_id in lobby.participants:
                raise AlreadyParticipant("User is already a participant", lobby_id=lobby.id)
            return {"participants": [*lobby.participants, user_id]}

        lobby = await self._mutate(lobby_id, apply, action="add_participant")
        logger.info("lobby_participant_added id=%s user=%s", lobby_id, user_id)
        return lobby

    async def remove_participant(self, lobby_id: str, user_id: str) -> Lobby:
        def apply(lobby: Lobby) -> dict[str, object]:
            # Checked before status: the creator can never be removed, in any state.
            if user_id == lobby.creator_id:
                raise CreatorImmutable(
                    "The creator cannot leave their own lobby", lobby_id=lobby.id
                )
            _require_pending(lobby, "leave")
            if user_id not in lobby.participants:
                raise NotParticipant("User is not a participant", lobby_id=lobby.id)
            return {"participants": [p for p in lobby.participants if p != user_id]}

        lobby = await self._mutate(lobby_id, apply, action="remove_participant")
        logger.info("lobby_participant_removed id=%s user=%s", lobby_id, user_id)
        return lobby

    async def start(self, lobby_id: str) -> Lobby:
        def apply(lobby: Lobby) -> dict[str, object]:
            _require_pending(lobby, "start")
            scheduled = lobby.scheduled_start_time
            if scheduled is not None and self._clock() < scheduled:
                raise TooEarly(
                    f"Lobby is scheduled to start at {scheduled.isoformat()}",
                    lobby_id=lobby.id,
                )
            return {"status": LobbyStatus.ACTIVE}

        lobby = await self._mutate(lobby_id, apply, action="start")
        logger.info("lobby_started id=%s", lobby_id)
        return lobby

    async def cancel(self, lobby_id: str) -> Lobby:
        def apply(lobby: Lobby) -> dict[str, object]:
            if lobby.status == LobbyStatus.CANCELLED:
                raise AlreadyCancelled("Lobby is already cancelled", lobby_id=lobby.id)
            if lobby.status.is_terminal:
                raise InvalidState(
                    f"Cannot cancel: lobby is {lobby.status.value}", lobby_id=lobby.id
                )
            return {"status": LobbyStatus.CANCELLED}

        lobby = await self._mutate(lobby_id, apply, action="cancel")
        logger.info("lobby_cancelled id=%s", lobby_id)
        return lobby

    async def update(self, lobby_id: str, changes: LobbyUpdate) -> Lobby:
        """Edit title, schedule, or capacity of a pending lobby.

        An empty edit still refreshes ``updated_at``.
        """
        fields = changes.changes()

        def apply(lobby: Lobby) -> dict[str, object]:
            _require_pending(lobby, "edit")
            capacity = fields.get("max_participants")
            if isinstance(capacity, int) and capacity < lobby.participant_count:
                raise CapacityExceeded(
                    f"Lobby already has {lobby.participant_count} participants",
                    lobby_id=lobby.id,
                )
            return dict(fields)

        lobby = await self._mutate(lobby_id, apply, action="update")
        logger.info("lobby_updated id=%s fields=%s", lobby_id, ",".join(sorted(fields)) or "-")
        return lobby

    async def bind_message(self, lobby_id: str, message_id: str) -> Lobby:
        """Record the rendered message for a lobby. Allowed in any state, once."""
        if not message_id:
            raise ValueError("message_id must not be empty")

        def apply(lobby: Lobby) -> dict[str, object] | None:
            if lobby.message_id == message_id:
                return _NO_CHANGE
            if lobby.message_id:
                raise InvalidState(
                    f"Lobby is already bound to message {lobby.message_id}", lobby_id=lobby.id
                )
            return {"message_id": message_id}

        lobby = await self._mutate(
            lobby_id, apply, action="bind_message", event=LOBBY_MESSAGE_BOUND
        )
        logger.info("lobby_message_bound id=%s message=%s", lobby_id, message_id)
        return lobby

    # --- Internals ---

    async def _mutate(
        self,
        lobby_id: str,
        apply: Callable[[Lobby], dict[str, object] | None],
        *,
        action: str,
        event: str = LOBBY_UPDATED,
    ) -> Lobby:
        for attempt in range(1, self._write_retries + 1):
            current = await self.require(lobby_id)
            changes = apply(current)
            if changes is _NO_CHANGE:
                return current
            updated = current.revise(
                **changes, updated_at=self._clock(), version=current.version + 1
            )
            try:
                await self.store.put(updated, expected_version=current.version)
            except WriteConflict:
                logger.info(
                    "lobby_write_conflict id=%s action=%s attempt=%d", lobby_id, action, attempt
                )
                continue
            await self._publish(event, updated)
            return updated
        raise WriteConflict(
            f"Lobby {lobby_id} is being modified concurrently, try again", lobby_id=lobby_id
        )

    async def _publish(self, event_type: str, lobby: Lobby) -> None:
        if self.event_bus is None:
            return
        await self.event_bus.publish(
            LobbyEvent(
                type=event_type,
                lobby_id=lobby.id,
                guild_id=lobby.guild_id,
                status=lobby.status.value,
                version=lobby.version,
                message_id=lobby.message_id,
            )
        )
