"""Maps inbound chat events (slash command, buttons, reactions) onto lobby operations.

Start and cancel are creator-only. Everything that can go wrong for a user
action (not the creator, lobby gone, precondition failed, store down) comes
back as a non-applied ``InteractionOutcome`` instead of an exception, so a
gateway event handler can never crash on a user's click.
"""

from __future__ import annotations

import dataclasses
import logging
import re
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING

from scrimbot.core.errors import (
    LobbyNotFound,
    LobbyValidationError,
    StoreUnavailable,
    WriteConflict,
)

if TYPE_CHECKING:
    from scrimbot.core.lobby_engine import LobbyEngine
    from scrimbot.core.reconciler import LobbyReconciler
    from scrimbot.models.lobby import Lobby

logger = logging.getLogger(__name__)


class LobbyAction(StrEnum):
    JOIN = "join"
    LEAVE = "leave"
    START = "start"
    CANCEL = "cancel"


CREATOR_ONLY_ACTIONS = frozenset({LobbyAction.START, LobbyAction.CANCEL})

# Keyed without the U+FE0F variation selector; clients send both forms.
REACTION_ACTIONS: dict[str, LobbyAction] = {
    "\u2705": LobbyAction.JOIN,  # ✅
    "\u274c": LobbyAction.LEAVE,  # ❌
    "\u25b6": LobbyAction.START,  # ▶️
    "\u23f9": LobbyAction.CANCEL,  # ⏹️
}

# Taking back a join reaction means leaving.
REACTION_REMOVE_ACTIONS: dict[str, LobbyAction] = {
    "\u2705": LobbyAction.LEAVE,
}

CUSTOM_ID_PREFIX = "lobby"
CUSTOM_ID_PATTERN = r"lobby:(?P<action>join|leave|start|cancel):(?P<lobby_id>[A-Za-z0-9-]+)"
_CUSTOM_ID_RE = re.compile(CUSTOM_ID_PATTERN)

GENERIC_FAILURE = "Something went wrong on our side. Please try again in a moment."
LOBBY_GONE = "This lobby no longer exists."
CREATOR_ONLY = "Only the lobby creator can start or cancel it."

_SUCCESS_MESSAGES: dict[LobbyAction, str] = {
    LobbyAction.JOIN: "You joined **{title}**.",
    LobbyAction.LEAVE: "You left **{title}**.",
    LobbyAction.START: "**{title}** has started.",
    LobbyAction.CANCEL: "**{title}** was cancelled.",
}


def normalize_emoji(emoji: str) -> str:
    return emoji.replace("\ufe0f", "")


def custom_id_for(action: LobbyAction, lobby_id: str) -> str:
    return f"{CUSTOM_ID_PREFIX}:{action.value}:{lobby_id}"


def parse_custom_id(custom_id: str) -> tuple[LobbyAction, str] | None:
    match = _CUSTOM_ID_RE.fullmatch(custom_id)
    if match is None:
        return None
    return LobbyAction(match["action"]), match["lobby_id"]


def parse_start_time(text: str) -> datetime:
    """Parse a user-supplied start time.

    Accepts ISO-8601 and ``YYYY-MM-DD HH:MM``. Times without an offset are UTC.
    Raises ValueError on anything else.
    """
    value = datetime.fromisoformat(text.strip())
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


@dataclasses.dataclass(frozen=True)
class InteractionOutcome:
    """Result of routing one user action.

    ``message`` is always safe to show to the acting user.
    """

    applied: bool
    message: str
    lobby: Lobby | None = None


class LobbyInteractionRouter:
    def __init__(self, engine: LobbyEngine, reconciler: LobbyReconciler) -> None:
        self.engine = engine
        self.reconciler = reconciler

    async def create_lobby(
        self,
        *,
        guild_id: str,
        channel_id: str,
        creator_id: str,
        title: str,
        scheduled_start_time: datetime | None = None,
        max_participants: int | None = None,
    ) -> Lobby:
        """Create a lobby, render it, and bind the rendered message.

        If the first render fails the lobby is deleted again so no lobby
        exists without a message, and the render error propagates.
        """
        lobby = await self.engine.create(
            guild_id=guild_id,
            channel_id=channel_id,
            creator_id=creator_id,
            title=title,
            scheduled_start_time=scheduled_start_time,
            max_participants=max_participants,
        )
        try:
            return await self.reconciler.publish(lobby)
        except Exception:
            logger.warning("lobby_first_render_failed id=%s, discarding lobby", lobby.id)
            await self.engine.delete(lobby.id)
            raise

    async def handle_button(
        self, lobby_id: str, action: LobbyAction, user_id: str
    ) -> InteractionOutcome:
        try:
            lobby = await self.engine.get(lobby_id)
        except StoreUnavailable:
            logger.exception("lobby_button_lookup_failed id=%s", lobby_id)
            return InteractionOutcome(applied=False, message=GENERIC_FAILURE)
        if lobby is None:
            return InteractionOutcome(applied=False, message=LOBBY_GONE)
        return await self._dispatch(lobby, action, user_id)

    async def handle_reaction_add(
        self, message_id: str, emoji: str, user_id: str
    ) -> InteractionOutcome | None:
        """Route a reaction on a lobby message. None when it is not a lobby control."""
        action = REACTION_ACTIONS.get(normalize_emoji(emoji))
        if action is None:
            return None
        return await self._dispatch_for_message(message_id, action, user_id)

    async def handle_reaction_remove(
        self, message_id: str, emoji: str, user_id: str
    ) -> InteractionOutcome | None:
        action = REACTION_REMOVE_ACTIONS.get(normalize_emoji(emoji))
        if action is None:
            return None
        return await self._dispatch_for_message(message_id, action, user_id)

    async def _dispatch_for_message(
        self, message_id: str, action: LobbyAction, user_id: str
    ) -> InteractionOutcome | None:
        try:
            lobby = await self.engine.get_by_message(message_id)
        except StoreUnavailable:
            logger.exception("lobby_message_lookup_failed message=%s", message_id)
            return InteractionOutcome(applied=False, message=GENERIC_FAILURE)
        if lobby is None:
            # Not a lobby message, or the lobby expired.
            return None
        return await self._dispatch(lobby, action, user_id)

    async def _dispatch(
        self, lobby: Lobby, action: LobbyAction, user_id: str
    ) -> InteractionOutcome:
        if action in CREATOR_ONLY_ACTIONS and user_id != lobby.creator_id:
            logger.info("lobby_action_denied id=%s action=%s user=%s", lobby.id, action, user_id)
            return InteractionOutcome(applied=False, message=CREATOR_ONLY, lobby=lobby)

        try:
            if action is LobbyAction.JOIN:
                updated = await self.engine.add_participant(lobby.id, user_id)
            elif action is LobbyAction.LEAVE:
                updated = await self.engine.remove_participant(lobby.id, user_id)
            elif action is LobbyAction.START:
                updated = await self.engine.start(lobby.id)
            else:
                updated = await self.engine.cancel(lobby.id)
        except LobbyNotFound:
            return InteractionOutcome(applied=False, message=LOBBY_GONE)
        except (LobbyValidationError, WriteConflict) as exc:
            logger.info(
                "lobby_action_rejected id=%s action=%s user=%s code=%s",
                lobby.id,
                action,
                user_id,
                exc.code,
            )
            return InteractionOutcome(applied=False, message=exc.message, lobby=lobby)
        except StoreUnavailable:
            logger.exception("lobby_action_failed id=%s action=%s", lobby.id, action)
            return InteractionOutcome(applied=False, message=GENERIC_FAILURE, lobby=lobby)

        message = _SUCCESS_MESSAGES[action].format(title=updated.title)
        return InteractionOutcome(applied=True, message=message, lobby=updated)
