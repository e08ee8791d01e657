"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from scrimbot.api.lobbies import router as lobbies_router
from scrimbot.config import Settings
from scrimbot.core.errors import LobbyError, StoreUnavailable
from scrimbot.core.event_bus import EventBus
from scrimbot.core.lobby_engine import LobbyEngine
from scrimbot.core.store import create_lobby_store

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: create store, event bus and engine; optionally start the Discord bot."""
    settings: Settings = app.state.settings
    store = create_lobby_store(settings)
    event_bus = EventBus()
    app.state.lobby_store = store
    app.state.event_bus = event_bus
    app.state.lobby_engine = LobbyEngine(
        store, event_bus, write_retries=settings.lobby_write_retries
    )

    discord_bot = None
    from scrimbot.discord.bot import is_discord_enabled

    if is_discord_enabled(settings):
        from scrimbot.discord.bot import start_discord_bot

        discord_bot = await start_discord_bot(settings, event_bus, app.state.lobby_engine)
        app.state.discord_bot = discord_bot
        logger.info("discord_bot_integration_started")
    else:
        logger.info("discord_bot_integration_disabled")

    yield

    if discord_bot is not None:
        await discord_bot.close()
        logger.info("discord_bot_integration_stopped")

    await store.close()


async def lobby_error_handler(request: Request, exc: LobbyError) -> JSONResponse:
    """Render LobbyError subclasses with their status code.

    Validation failures are expected outcomes and are not logged as errors.
    """
    if isinstance(exc, StoreUnavailable):
        logger.error(
            "lobby_store_unavailable method=%s path=%s",
            request.method,
            request.url.path,
            exc_info=exc,
        )
        message = "Lobby storage is temporarily unavailable"
    else:
        message = exc.message
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"code": exc.code, "message": message}},
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the Scrimbot FastAPI application."""
    settings = settings or Settings()

    logging.basicConfig(
        level=getattr(logging, settings.scrimbot_log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="Scrimbot",
        version="0.1.0",
        description="Scrim lobbies for Discord guilds",
        docs_url="/docs" if settings.scrimbot_env != "production" else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.add_exception_handler(LobbyError, lobby_error_handler)

    app.include_router(lobbies_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {
            "status": "ok",
            "env": settings.scrimbot_env,
            "store": settings.store_backend,
        }

    return app


app = create_app()
