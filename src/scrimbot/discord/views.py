"""Discord UI for lobby messages: the persistent Join / Leave / Start / Cancel row.

Buttons are dynamic items keyed by ``lobby:{action}:{lobby_id}`` custom ids,
so they keep working after a bot restart without re-registering a view per
lobby. The press itself is handled by the bot's LobbyInteractionRouter.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

import discord

from scrimbot.core.interactions import CUSTOM_ID_PATTERN, LobbyAction, custom_id_for
from scrimbot.core.reconciler import lobby_controls

if TYPE_CHECKING:
    from scrimbot.models.lobby import Lobby

logger = logging.getLogger(__name__)

BUTTON_STYLES: dict[str, discord.ButtonStyle] = {
    "success": discord.ButtonStyle.success,
    "secondary": discord.ButtonStyle.secondary,
    "primary": discord.ButtonStyle.primary,
    "danger": discord.ButtonStyle.danger,
}


class LobbyButton(discord.ui.DynamicItem[discord.ui.Button], template=CUSTOM_ID_PATTERN):
    """One lobby control button."""

    def __init__(
        self,
        lobby_id: str,
        action: LobbyAction,
        *,
        label: str | None = None,
        emoji: str | discord.PartialEmoji | None = None,
        style: discord.ButtonStyle = discord.ButtonStyle.secondary,
        disabled: bool = False,
    ) -> None:
        super().__init__(
            discord.ui.Button(
                label=label,
                emoji=emoji,
                style=style,
                disabled=disabled,
                custom_id=custom_id_for(action, lobby_id),
            )
        )
        self.lobby_id = lobby_id
        self.action = action

    @classmethod
    async def from_custom_id(
        cls,
        interaction: discord.Interaction,  # noqa: ARG003
        item: discord.ui.Button,
        match: re.Match[str],
    ) -> LobbyButton:
        return cls(
            match["lobby_id"],
            LobbyAction(match["action"]),
            label=item.label,
            emoji=item.emoji,
            style=item.style,
            disabled=item.disabled,
        )

    async def callback(self, interaction: discord.Interaction) -> None:
        router = getattr(interaction.client, "lobby_router", None)
        if router is None:
            await interaction.response.send_message(
                "Lobbies are not available right now.", ephemeral=True
            )
            return
        outcome = await router.handle_button(self.lobby_id, self.action, str(interaction.user.id))
        await interaction.response.send_message(outcome.message, ephemeral=True)


def build_lobby_view(lobby: Lobby) -> discord.ui.View:
    """The control row for a lobby, with buttons disabled where the action is impossible."""
    view = discord.ui.View(timeout=None)
    for control in lobby_controls(lobby):
        view.add_item(
            LobbyButton(
                lobby.id,
                control.action,
                label=control.label,
                emoji=control.emoji,
                style=BUTTON_STYLES[control.style],
                disabled=control.disabled,
            )
        )
    return view
