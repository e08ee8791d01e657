"""Discord bot for Scrimbot.

Runs alongside FastAPI using the same event loop. Provides the ``/scrim``
slash command, routes lobby button presses and reactions to the lobby
engine, and listens on the EventBus so every committed lobby change
(including ones made over HTTP) re-renders the lobby message.

The bot is optional: if DISCORD_BOT_TOKEN is not set, nothing starts.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

import discord
from discord import Intents, app_commands
from discord.ext import commands

from scrimbot.core.errors import LobbyError
from scrimbot.core.interactions import LobbyInteractionRouter, parse_start_time
from scrimbot.core.reconciler import LobbyReconciler
from scrimbot.discord.helpers import DiscordLobbyMessenger, LobbyChannelUnavailable
from scrimbot.discord.views import LobbyButton
from scrimbot.models.lobby import TITLE_MAX_LENGTH

if TYPE_CHECKING:
    from scrimbot.config import Settings
    from scrimbot.core.event_bus import EventBus
    from scrimbot.core.lobby_engine import LobbyEngine

logger = logging.getLogger(__name__)

MIN_PLAYERS = 2


class ScrimBot(commands.Bot):
    """The Scrimbot Discord bot.

    Owns the Discord side of the lobby subsystem: the messenger that renders
    lobby messages, the reconciler that keeps them current, and the router
    that turns clicks and reactions into engine calls.
    """

    def __init__(
        self,
        settings: Settings,
        event_bus: EventBus,
        engine: LobbyEngine,
    ) -> None:
        intents = Intents.default()
        intents.reactions = True

        super().__init__(
            command_prefix="!",
            intents=intents,
            description="Scrimbot -- scrim lobbies with live join/leave controls.",
        )
        self.settings = settings
        self.event_bus = event_bus
        self.engine = engine
        self.messenger = DiscordLobbyMessenger(self)
        self.reconciler = LobbyReconciler(engine, self.messenger)
        self.lobby_router = LobbyInteractionRouter(engine, self.reconciler)
        self._reconciler_task: asyncio.Task[None] | None = None
        self._setup_commands()

    def _setup_commands(self) -> None:
        """Register slash commands on the bot's command tree."""

        @self.tree.command(name="scrim", description="Create a new scrim lobby")
        @app_commands.describe(
            title="The title of the scrim",
            time="When the scrim should start (optional, format: YYYY-MM-DD HH:MM, UTC)",
            max_players="Maximum number of players (optional)",
        )
        async def scrim_command(
            interaction: discord.Interaction,
            title: str,
            time: str | None = None,
            max_players: int | None = None,
        ) -> None:
            await self._handle_scrim(interaction, title, time, max_players)

    async def _handle_scrim(
        self,
        interaction: discord.Interaction,
        title: str,
        time: str | None,
        max_players: int | None,
    ) -> None:
        if interaction.guild_id is None or interaction.channel_id is None:
            await interaction.response.send_message(
                "Scrims can only be created in a server channel.", ephemeral=True
            )
            return

        title = title.strip()
        if not title or len(title) > TITLE_MAX_LENGTH:
            await interaction.response.send_message(
                f"❌ The title must be 1-{TITLE_MAX_LENGTH} characters.", ephemeral=True
            )
            return

        limit = self.settings.scrim_max_players_limit
        if max_players is not None and not MIN_PLAYERS <= max_players <= limit:
            await interaction.response.send_message(
                f"❌ Max players must be between {MIN_PLAYERS} and {limit}.", ephemeral=True
            )
            return

        scheduled_start_time = None
        if time:
            try:
                scheduled_start_time = parse_start_time(time)
            except ValueError:
                await interaction.response.send_message(
                    "❌ Invalid time format. Please use YYYY-MM-DD HH:MM format.",
                    ephemeral=True,
                )
                return

        await interaction.response.defer(ephemeral=True, thinking=True)
        try:
            lobby = await self.lobby_router.create_lobby(
                guild_id=str(interaction.guild_id),
                channel_id=str(interaction.channel_id),
                creator_id=str(interaction.user.id),
                title=title,
                scheduled_start_time=scheduled_start_time,
                max_participants=max_players,
            )
        except (LobbyChannelUnavailable, discord.Forbidden, discord.HTTPException):
            logger.warning("scrim_create_render_failed channel=%s", interaction.channel_id)
            await interaction.followup.send(
                "❌ Failed to create scrim: I can't post in this channel.", ephemeral=True
            )
            return
        except LobbyError:
            logger.exception("scrim_create_failed guild=%s", interaction.guild_id)
            await interaction.followup.send(
                "❌ Failed to create scrim. Please try again in a moment.", ephemeral=True
            )
            return

        logger.info("scrim_created id=%s user=%s", lobby.id, interaction.user.id)
        await interaction.followup.send(f"✅ Scrim **{lobby.title}** created.", ephemeral=True)

    async def setup_hook(self) -> None:
        """Register persistent lobby buttons and sync slash commands."""
        self.add_dynamic_items(LobbyButton)
        if self.settings.discord_guild_id:
            guild = discord.Object(id=int(self.settings.discord_guild_id))
            self.tree.copy_global_to(guild=guild)
            await self.tree.sync(guild=guild)
            logger.info("discord_commands_synced guild_id=%s", self.settings.discord_guild_id)
        else:
            await self.tree.sync()
            logger.info("discord_commands_synced globally")

    async def on_ready(self) -> None:
        """Start the reconciler once; on_ready fires again on every reconnect."""
        user = self.user
        logger.info("discord_bot_ready user=%s", user.name if user else "unknown")
        if self._reconciler_task is None or self._reconciler_task.done():
            self._reconciler_task = asyncio.create_task(
                self.reconciler.run(self.event_bus), name="lobby-reconciler"
            )

    async def _reactor_is_bot(self, payload: discord.RawReactionActionEvent) -> bool:
        """True for our own reactions and other bots'.

        Removal events carry no member, so the reacting user is resolved from
        the caches and, failing that, from the API.
        """
        if self.user is not None and payload.user_id == self.user.id:
            return True
        user: discord.abc.User | None = payload.member
        if user is None and payload.guild_id is not None:
            guild = self.get_guild(payload.guild_id)
            user = guild.get_member(payload.user_id) if guild is not None else None
        if user is None:
            user = self.get_user(payload.user_id)
        if user is None:
            try:
                user = await self.fetch_user(payload.user_id)
            except discord.HTTPException:
                logger.warning(
                    "lobby_reaction_skipped user=%s reason=unresolved_user", payload.user_id
                )
                return True
        return user.bot

    async def on_raw_reaction_add(self, payload: discord.RawReactionActionEvent) -> None:
        if payload.guild_id is None or payload.emoji.name is None:
            return
        if await self._reactor_is_bot(payload):
            return
        outcome = await self.lobby_router.handle_reaction_add(
            str(payload.message_id), payload.emoji.name, str(payload.user_id)
        )
        if outcome is not None and not outcome.applied:
            logger.debug(
                "lobby_reaction_ignored message=%s reason=%s", payload.message_id, outcome.message
            )

    async def on_raw_reaction_remove(self, payload: discord.RawReactionActionEvent) -> None:
        if payload.guild_id is None or payload.emoji.name is None:
            return
        if await self._reactor_is_bot(payload):
            return
        outcome = await self.lobby_router.handle_reaction_remove(
            str(payload.message_id), payload.emoji.name, str(payload.user_id)
        )
        if outcome is not None and not outcome.applied:
            logger.debug(
                "lobby_reaction_ignored message=%s reason=%s", payload.message_id, outcome.message
            )

    async def close(self) -> None:
        """Clean shutdown: stop the reconciler and close the bot."""
        if self._reconciler_task and not self._reconciler_task.done():
            self._reconciler_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reconciler_task
        await super().close()


def is_discord_enabled(settings: Settings) -> bool:
    """Check whether Discord integration should be started.

    Returns True only when discord_enabled is True, a token is set, AND the
    environment is not development, so a local server never connects to a
    real guild by accident.
    """
    if settings.scrimbot_env == "development":
        logger.info("discord_bot_skipped_in_development")
        return False
    return bool(settings.discord_enabled and settings.discord_bot_token)


async def start_discord_bot(
    settings: Settings,
    event_bus: EventBus,
    engine: LobbyEngine,
) -> ScrimBot:
    """Create and start the Discord bot in the current event loop.

    Returns the bot instance so the caller can stop it during shutdown.
    The bot runs as a background task; this function returns immediately.
    """
    bot = ScrimBot(settings=settings, event_bus=event_bus, engine=engine)

    async def _run_bot() -> None:
        try:
            await bot.start(settings.discord_bot_token)
        except asyncio.CancelledError:
            logger.info("discord_bot_cancelled")
        except Exception:  # Last-resort handler: bot.start raises connection and auth errors
            logger.exception("discord_bot_error")
        finally:
            if not bot.is_closed():
                await bot.close()

    asyncio.create_task(_run_bot(), name="discord-bot")
    logger.info("discord_bot_started")
    return bot
