"""Lobby CRUD endpoints.

Thin wrappers over LobbyEngine. Every lobby response is the full snapshot
under ``data`` with the same camelCase keys as the stored record. Engine
errors are rendered by the LobbyError handler installed in ``main``.
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Response
from pydantic import Field

from scrimbot.api.deps import EngineDep
from scrimbot.core.errors import LobbyNotFound
from scrimbot.models.lobby import TITLE_MAX_LENGTH, CamelModel, LobbyUpdate

router = APIRouter(prefix="/api/lobbies", tags=["lobbies"])


# --- Request Models ---


class CreateLobbyRequest(CamelModel):
    guild_id: str = Field(min_length=1)
    channel_id: str = Field(min_length=1)
    creator_id: str = Field(min_length=1)
    title: str = Field(min_length=1, max_length=TITLE_MAX_LENGTH)
    scheduled_start_time: datetime | None = None
    max_participants: int | None = Field(default=None, ge=1)


class ParticipantRequest(CamelModel):
    user_id: str = Field(min_length=1)


# --- Endpoints ---


@router.post("", status_code=201)
async def create_lobby(body: CreateLobbyRequest, engine: EngineDep) -> dict:
    """Create a pending lobby with the creator as its first participant."""
    lobby = await engine.create(
        guild_id=body.guild_id,
        channel_id=body.channel_id,
        creator_id=body.creator_id,
        title=body.title,
        scheduled_start_time=body.scheduled_start_time,
        max_participants=body.max_participants,
    )
    return {"data": lobby.to_api()}


@router.get("/guild/{guild_id}")
async def list_guild_lobbies(guild_id: str, engine: EngineDep) -> dict:
    """All live lobbies of a guild, newest first."""
    lobbies = await engine.list_by_guild(guild_id)
    return {"data": [lobby.to_api() for lobby in lobbies]}


@router.get("/{lobby_id}")
async def get_lobby(lobby_id: str, engine: EngineDep) -> dict:
    lobby = await engine.get(lobby_id)
    if lobby is None:
        raise LobbyNotFound("Lobby not found", lobby_id=lobby_id)
    return {"data": lobby.to_api()}


@router.put("/{lobby_id}")
async def update_lobby(lobby_id: str, body: LobbyUpdate, engine: EngineDep) -> dict:
    """Edit title, scheduled start, or capacity of a pending lobby."""
    lobby = await engine.update(lobby_id, body)
    return {"data": lobby.to_api()}


@router.delete("/{lobby_id}", status_code=204)
async def delete_lobby(lobby_id: str, engine: EngineDep) -> Response:
    """Delete a lobby. Deleting a lobby that is already gone also succeeds."""
    await engine.delete(lobby_id)
    return Response(status_code=204)


@router.post("/{lobby_id}/participants")
async def add_participant(lobby_id: str, body: ParticipantRequest, engine: EngineDep) -> dict:
    lobby = await engine.add_participant(lobby_id, body.user_id)
    return {"data": lobby.to_api()}


@router.delete("/{lobby_id}/participants")
async def remove_participant(
    lobby_id: str, body: ParticipantRequest, engine: EngineDep
) -> dict:
    lobby = await engine.remove_participant(lobby_id, body.user_id)
    return {"data": lobby.to_api()}


@router.post("/{lobby_id}/start")
async def start_lobby(lobby_id: str, engine: EngineDep) -> dict:
    lobby = await engine.start(lobby_id)
    return {"data": lobby.to_api()}


@router.post("/{lobby_id}/cancel")
async def cancel_lobby(lobby_id: str, engine: EngineDep) -> dict:
    lobby = await engine.cancel(lobby_id)
    return {"data": lobby.to_api()}
