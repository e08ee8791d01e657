"""Lobby (scrim) models.

A Lobby is an ephemeral multiplayer event tied to a Discord channel. The
persisted record uses camelCase keys; Python code uses snake_case attributes.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

TITLE_MAX_LENGTH = 100


class LobbyStatus(StrEnum):
    """Lobby lifecycle states.

    ``PENDING`` is the only mutable state. ``CANCELLED`` and ``COMPLETED`` are
    terminal; nothing in this service produces ``COMPLETED``.
    """

    PENDING = "pending"
    ACTIVE = "active"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

    @property
    def is_terminal(self) -> bool:
        return self in (LobbyStatus.CANCELLED, LobbyStatus.COMPLETED)


def _as_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes as UTC so comparisons never mix naive and aware values."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class CamelModel(BaseModel):
    """Base for models whose JSON form uses camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Lobby(CamelModel):
    """A scrim lobby snapshot.

    Invariants enforced on every validation: the creator is a participant,
    participants are unique, and capacity (when set) is never exceeded.
    """

    id: str
    guild_id: str
    channel_id: str
    message_id: str = ""
    creator_id: str
    title: str = Field(min_length=1, max_length=TITLE_MAX_LENGTH)
    scheduled_start_time: datetime | None = None
    status: LobbyStatus = LobbyStatus.PENDING
    participants: list[str]
    max_participants: int | None = Field(default=None, ge=1)
    created_at: datetime
    updated_at: datetime
    version: int = Field(default=0, ge=0)

    @field_validator("scheduled_start_time", "created_at", "updated_at")
    @classmethod
    def _normalize_tz(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    @model_validator(mode="after")
    def _check_invariants(self) -> Lobby:
        if self.creator_id not in self.participants:
            raise ValueError("creator must be a participant")
        if len(set(self.participants)) != len(self.participants):
            raise ValueError("participants must be unique")
        if self.max_participants is not None and len(self.participants) > self.max_participants:
            raise ValueError("participants exceed max_participants")
        return self

    @property
    def participant_count(self) -> int:
        return len(self.participants)

    @property
    def is_full(self) -> bool:
        if self.max_participants is None:
            return False
        return self.participant_count >= self.max_participants

    def revise(self, **changes: object) -> Lobby:
        """Return a validated copy with ``changes`` applied.

        Unlike ``model_copy(update=...)`` this re-runs validation, so a
        revision that would break an invariant raises instead of persisting.
        """
        data = self.model_dump()
        data.update(changes)
        return Lobby.model_validate(data)

    def to_record(self) -> str:
        """Serialize to the persisted JSON record (camelCase, ISO-8601 timestamps)."""
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_record(cls, raw: str | bytes) -> Lobby:
        return cls.model_validate_json(raw)

    def to_api(self) -> dict:
        """JSON-safe dict for HTTP responses, same shape as the persisted record."""
        return self.model_dump(mode="json", by_alias=True)


class LobbyUpdate(CamelModel):
    """Partial edit of a pending lobby.

    Only fields present in ``model_fields_set`` are applied, so an explicit
    ``null`` clears ``scheduled_start_time`` or ``max_participants`` while an
    omitted field is left alone.
    """

    title: str | None = Field(default=None, min_length=1, max_length=TITLE_MAX_LENGTH)
    scheduled_start_time: datetime | None = None
    max_participants: int | None = Field(default=None, ge=1)

    @field_validator("scheduled_start_time")
    @classmethod
    def _normalize_tz(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    @model_validator(mode="after")
    def _title_not_cleared(self) -> LobbyUpdate:
        if "title" in self.model_fields_set and self.title is None:
            raise ValueError("title cannot be cleared")
        return self

    def changes(self) -> dict[str, object]:
        """The explicitly provided fields, keyed by attribute name."""
        return {name: getattr(self, name) for name in self.model_fields_set}
