"""Discord bot helpers: the LobbyMessenger that posts and edits lobby messages."""

from __future__ import annotations

import logging

import discord

from scrimbot.discord.embeds import build_lobby_embed
from scrimbot.discord.views import build_lobby_view
from scrimbot.models.lobby import Lobby

logger = logging.getLogger(__name__)


class LobbyChannelUnavailable(Exception):
    """The lobby's channel is missing or cannot hold messages."""


class DiscordLobbyMessenger:
    """Renders lobbies as Discord messages with an embed and the control row."""

    def __init__(self, client: discord.Client) -> None:
        self.client = client

    async def _channel(self, channel_id: str) -> discord.abc.Messageable:
        channel = self.client.get_channel(int(channel_id))
        if channel is None:
            channel = await self.client.fetch_channel(int(channel_id))
        if not isinstance(channel, discord.abc.Messageable):
            raise LobbyChannelUnavailable(f"Channel {channel_id} cannot hold lobby messages")
        return channel

    async def post_lobby(self, lobby: Lobby) -> str:
        channel = await self._channel(lobby.channel_id)
        message = await channel.send(embed=build_lobby_embed(lobby), view=build_lobby_view(lobby))
        logger.info("lobby_message_posted id=%s message=%s", lobby.id, message.id)
        return str(message.id)

    async def edit_lobby(self, lobby: Lobby) -> None:
        channel = await self._channel(lobby.channel_id)
        message = await channel.fetch_message(int(lobby.message_id))
        await message.edit(embed=build_lobby_embed(lobby), view=build_lobby_view(lobby))
        logger.debug("lobby_message_edited id=%s version=%d", lobby.id, lobby.version)

    async def delete_message(self, lobby: Lobby, message_id: str) -> None:
        channel = await self._channel(lobby.channel_id)
        message = await channel.fetch_message(int(message_id))
        await message.delete()
        logger.info("lobby_message_deleted id=%s message=%s", lobby.id, message_id)
