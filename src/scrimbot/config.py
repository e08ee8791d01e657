"""Application settings via pydantic-settings. Loads from environment and .env file."""

from __future__ import annotations

from pydantic import model_validator
from pydantic_settings import BaseSettings

# Seven days, refreshed on every write.
DEFAULT_LOBBY_TTL_SECONDS = 60 * 60 * 24 * 7

VALID_ENVS = frozenset({"development", "production", "test"})


class Settings(BaseSettings):
    """Scrimbot configuration.

    All values can be overridden via environment variables or .env file.
    An empty ``redis_url`` selects the in-process memory store, which is only
    suitable for a single process (development and tests).
    """

    # Discord
    discord_bot_token: str = ""
    discord_guild_id: str = ""
    discord_enabled: bool = False

    # Persistence
    redis_url: str = ""
    lobby_ttl_seconds: int = DEFAULT_LOBBY_TTL_SECONDS
    lobby_write_retries: int = 3  # CAS retries before surfacing a write conflict

    # Slash command bounds
    scrim_max_players_limit: int = 50

    # Environment
    scrimbot_env: str = "development"

    # Logging
    scrimbot_log_level: str = "INFO"

    model_config = {"env_prefix": "", "env_file": ".env", "extra": "ignore"}

    @model_validator(mode="after")
    def _check_env(self) -> Settings:
        if self.scrimbot_env not in VALID_ENVS:
            msg = f"SCRIMBOT_ENV must be one of {sorted(VALID_ENVS)}, got {self.scrimbot_env!r}"
            raise ValueError(msg)
        return self

    @model_validator(mode="after")
    def _require_redis_in_production(self) -> Settings:
        """A memory store is per-process; production must share state through Redis."""
        if self.scrimbot_env == "production" and not self.redis_url:
            raise ValueError("REDIS_URL must be set in production.")
        return self

    @model_validator(mode="after")
    def _check_lobby_limits(self) -> Settings:
        if self.lobby_ttl_seconds <= 0:
            raise ValueError("LOBBY_TTL_SECONDS must be positive.")
        if self.lobby_write_retries < 1:
            raise ValueError("LOBBY_WRITE_RETRIES must be at least 1.")
        return self

    @property
    def store_backend(self) -> str:
        """Name of the lobby store backend these settings select."""
        return "redis" if self.redis_url else "memory"
