"""Keeps each lobby's rendered chat message in sync with stored lobby state.

The first render happens once, right after creation, and its message id is
bound to the lobby. After that every committed change re-renders the bound
message from the latest stored snapshot. Render failures are logged and
swallowed; they never undo a committed state change.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import TYPE_CHECKING, Protocol

from scrimbot.core.errors import StoreUnavailable
from scrimbot.core.event_bus import LOBBY_UPDATED
from scrimbot.core.interactions import LobbyAction
from scrimbot.models.lobby import Lobby, LobbyStatus

if TYPE_CHECKING:
    from scrimbot.core.event_bus import EventBus
    from scrimbot.core.lobby_engine import LobbyEngine

logger = logging.getLogger(__name__)

STATUS_GLYPHS: dict[LobbyStatus, str] = {
    LobbyStatus.PENDING: "⏳",
    LobbyStatus.ACTIVE: "▶️",
    LobbyStatus.CANCELLED: "❌",
    LobbyStatus.COMPLETED: "✅",
}


@dataclasses.dataclass(frozen=True)
class LobbyControl:
    """One button of the fixed lobby control row."""

    action: LobbyAction
    label: str
    emoji: str
    style: str  # "success" | "secondary" | "primary" | "danger"
    disabled: bool


def lobby_controls(lobby: Lobby) -> list[LobbyControl]:
    """Join / Leave / Start / Cancel, enabled only where the transition is possible."""
    pending = lobby.status == LobbyStatus.PENDING
    return [
        LobbyControl(LobbyAction.JOIN, "Join", "✅", "success", not pending or lobby.is_full),
        LobbyControl(LobbyAction.LEAVE, "Leave", "❌", "secondary", not pending),
        LobbyControl(LobbyAction.START, "Start", "▶️", "primary", not pending),
        LobbyControl(
            LobbyAction.CANCEL, "Cancel", "⏹️", "danger", lobby.status.is_terminal
        ),
    ]


class LobbyMessenger(Protocol):
    """Renders lobbies into chat messages."""

    async def post_lobby(self, lobby: Lobby) -> str:
        """Post a new lobby message in the lobby's channel and return its id."""
        ...

    async def edit_lobby(self, lobby: Lobby) -> None:
        """Re-render the lobby's bound message in place."""
        ...

    async def delete_message(self, lobby: Lobby, message_id: str) -> None:
        """Remove a message posted for ``lobby`` that was never bound to it."""
        ...


class LobbyReconciler:
    def __init__(self, engine: LobbyEngine, messenger: LobbyMessenger) -> None:
        self.engine = engine
        self.messenger = messenger

    async def publish(self, lobby: Lobby) -> Lobby:
        """First render of a new lobby, then bind the message id.

        Errors propagate: the caller decides what to do with a lobby that
        could not be shown. A message that was posted but could not be bound
        is removed again so no live controls point at an unbound lobby.
        """
        message_id = await self.messenger.post_lobby(lobby)
        try:
            return await self.engine.bind_message(lobby.id, message_id)
        except Exception:
            logger.warning("lobby_bind_failed id=%s message=%s", lobby.id, message_id)
            try:
                await self.messenger.delete_message(lobby, message_id)
            except Exception:  # Gateway failure; the bind error is the one to report
                logger.warning(
                    "lobby_orphan_message_kept id=%s message=%s",
                    lobby.id,
                    message_id,
                    exc_info=True,
                )
            raise

    async def refresh(self, lobby_id: str) -> bool:
        """Re-render a lobby's message from its latest snapshot.

        Returns True if the message was edited. Unbound, deleted, or expired
        lobbies are skipped.
        """
        try:
            lobby = await self.engine.get(lobby_id)
        except StoreUnavailable:
            logger.warning("lobby_render_skipped id=%s reason=store_unavailable", lobby_id)
            return False
        if lobby is None or not lobby.message_id:
            return False
        try:
            await self.messenger.edit_lobby(lobby)
        except Exception:  # Any gateway failure; state is already committed
            logger.warning(
                "lobby_render_failed id=%s message=%s", lobby.id, lobby.message_id, exc_info=True
            )
            return False
        return True

    async def run(self, event_bus: EventBus) -> None:
        """Refresh lobby messages for every ``lobby.updated`` event until cancelled.

        Updates that land while a render is in flight collapse into one
        pending refresh per lobby.
        """
        async with event_bus.listen(LOBBY_UPDATED) as feed:
            async for event in feed:
                await self.refresh(event.lobby_id)
                if len(feed):
                    logger.debug("lobby_render_backlog lobbies=%d", len(feed))
