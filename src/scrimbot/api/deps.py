"""FastAPI dependency injection for the lobby engine."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from scrimbot.core.lobby_engine import LobbyEngine


async def get_lobby_engine(request: Request) -> LobbyEngine:
    """Get the lobby engine from app state."""
    return request.app.state.lobby_engine


EngineDep = Annotated[LobbyEngine, Depends(get_lobby_engine)]
