"""Discord embed builder for scrim lobbies.

Pure function of a Lobby snapshot: the same snapshot always renders the same
embed, so re-rendering after every change keeps the message consistent.
"""

from __future__ import annotations

import discord

from scrimbot.core.reconciler import STATUS_GLYPHS
from scrimbot.models.lobby import Lobby, LobbyStatus

COLOR_OPEN = 0x00FF00
COLOR_CLOSED = 0xFF0000

# Discord rejects embed field values longer than this.
FIELD_VALUE_LIMIT = 1024


def format_participant_count(lobby: Lobby) -> str:
    """``3`` or ``3/10`` when the lobby has a capacity."""
    if lobby.max_participants is None:
        return str(lobby.participant_count)
    return f"{lobby.participant_count}/{lobby.max_participants}"


def format_mentions(user_ids: list[str], limit: int = FIELD_VALUE_LIMIT) -> str:
    """Comma-separated mentions, truncated with a count of the rest."""
    mentions = [f"<@{user_id}>" for user_id in user_ids]
    full = ", ".join(mentions)
    if len(full) <= limit:
        return full
    shown: list[str] = []
    for index, mention in enumerate(mentions):
        candidate = ", ".join([*shown, mention])
        tail = f", and {len(mentions) - index - 1} more"
        if len(candidate) + len(tail) > limit:
            break
        shown.append(mention)
    hidden = len(mentions) - len(shown)
    if not shown:
        return f"{hidden} players"
    return f"{', '.join(shown)}, and {hidden} more"


def build_lobby_embed(lobby: Lobby) -> discord.Embed:
    """Build the lobby message embed: status, headcount, schedule, players."""
    embed = discord.Embed(
        title=f"\U0001f3ae {lobby.title}",
        description=f"Created by <@{lobby.creator_id}>",
        color=COLOR_OPEN if lobby.status == LobbyStatus.PENDING else COLOR_CLOSED,
        timestamp=lobby.created_at,
    )
    embed.add_field(
        name="Status",
        value=f"{STATUS_GLYPHS[lobby.status]} {lobby.status.value.upper()}",
        inline=True,
    )
    embed.add_field(name="Participants", value=format_participant_count(lobby), inline=True)
    if lobby.scheduled_start_time is not None:
        embed.add_field(
            name="Scheduled Start",
            value=f"<t:{int(lobby.scheduled_start_time.timestamp())}:F>",
            inline=True,
        )
    if lobby.participants:
        embed.add_field(name="Players", value=format_mentions(lobby.participants), inline=False)
    embed.set_footer(text="Scrimbot")
    return embed
