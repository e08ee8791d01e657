"""Typed lobby errors.

Validation errors are expected outcomes of user actions and are surfaced to
the caller as-is. ``StoreUnavailable`` is an infrastructure fault. Each class
carries a stable ``code`` and the HTTP status the API maps it to.
"""

from __future__ import annotations


class LobbyError(Exception):
    """Base class for every lobby operation failure."""

    code = "lobby_error"
    status_code = 500

    def __init__(self, message: str, *, lobby_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.lobby_id = lobby_id


class LobbyNotFound(LobbyError):
    """No such lobby: never created, deleted, or expired."""

    code = "not_found"
    status_code = 404


class StoreUnavailable(LobbyError):
    """The lobby store could not be reached. Nothing was written."""

    code = "store_unavailable"
    status_code = 503


class WriteConflict(LobbyError):
    """A concurrent write won the race for this lobby and retries ran out."""

    code = "write_conflict"
    status_code = 409


class LobbyValidationError(LobbyError):
    """A precondition of the requested transition does not hold."""

    code = "invalid"
    status_code = 400


class InvalidState(LobbyValidationError):
    code = "invalid_state"


class CapacityExceeded(LobbyValidationError):
    code = "capacity_exceeded"


class AlreadyParticipant(LobbyValidationError):
    code = "already_participant"


class NotParticipant(LobbyValidationError):
    code = "not_participant"


class CreatorImmutable(LobbyValidationError):
    code = "creator_immutable"


class TooEarly(LobbyValidationError):
    code = "too_early"


class AlreadyCancelled(LobbyValidationError):
    code = "already_cancelled"
