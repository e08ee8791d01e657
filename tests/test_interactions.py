"""Tests for routing chat events (command, buttons, reactions) to the engine."""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest
from conftest import FakeClock, FakeMessenger

from scrimbot.core.errors import StoreUnavailable
from scrimbot.core.interactions import (
    CREATOR_ONLY,
    GENERIC_FAILURE,
    LOBBY_GONE,
    LobbyAction,
    LobbyInteractionRouter,
    custom_id_for,
    normalize_emoji,
    parse_custom_id,
    parse_start_time,
)
from scrimbot.core.lobby_engine import LobbyEngine
from scrimbot.core.reconciler import LobbyReconciler
from scrimbot.models.lobby import Lobby, LobbyStatus


@pytest.fixture
def router(engine: LobbyEngine, messenger: FakeMessenger) -> LobbyInteractionRouter:
    return LobbyInteractionRouter(engine, LobbyReconciler(engine, messenger))


async def _published(router: LobbyInteractionRouter, **overrides: object) -> Lobby:
    fields: dict[str, object] = {
        "guild_id": "guild-1",
        "channel_id": "chan-1",
        "creator_id": "creator",
        "title": "Friday Scrim",
    }
    fields.update(overrides)
    return await router.create_lobby(**fields)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------


class TestCustomIds:
    def test_format(self) -> None:
        assert custom_id_for(LobbyAction.JOIN, "abc-123") == "lobby:join:abc-123"

    def test_parse(self) -> None:
        assert parse_custom_id("lobby:cancel:abc-123") == (LobbyAction.CANCEL, "abc-123")

    @pytest.mark.parametrize(
        "custom_id",
        ["lobby:dance:abc", "lobby:join:", "other:join:abc", "lobby:join:abc:extra"],
    )
    def test_parse_rejects(self, custom_id: str) -> None:
        assert parse_custom_id(custom_id) is None


class TestParseStartTime:
    def test_naive_is_utc(self) -> None:
        assert parse_start_time("2026-03-15 20:00") == datetime(2026, 3, 15, 20, 0, tzinfo=UTC)

    def test_iso_with_offset(self) -> None:
        parsed = parse_start_time("2026-03-15T22:00:00+02:00")
        assert parsed == datetime(2026, 3, 15, 20, 0, tzinfo=UTC)

    def test_garbage(self) -> None:
        with pytest.raises(ValueError):
            parse_start_time("next friday")


class TestNormalizeEmoji:
    def test_strips_variation_selector(self) -> None:
        assert normalize_emoji("\u25b6\ufe0f") == "\u25b6"
        assert normalize_emoji("✅") == "✅"


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


class TestCreateLobby:
    async def test_create_renders_and_binds(
        self, router: LobbyInteractionRouter, messenger: FakeMessenger
    ) -> None:
        lobby = await _published(router, max_participants=4)
        assert lobby.message_id == "900001"
        assert len(messenger.posted) == 1
        assert lobby.status == LobbyStatus.PENDING

    async def test_failed_first_render_leaves_no_lobby(
        self, router: LobbyInteractionRouter, engine: LobbyEngine, messenger: FakeMessenger
    ) -> None:
        messenger.fail_post = RuntimeError("Missing Access")
        with pytest.raises(RuntimeError):
            await _published(router)
        assert await engine.list_by_guild("guild-1") == []

    async def test_failed_bind_leaves_no_lobby_and_no_message(
        self,
        router: LobbyInteractionRouter,
        engine: LobbyEngine,
        messenger: FakeMessenger,
        monkeypatch,
    ) -> None:
        monkeypatch.setattr(
            engine, "bind_message", AsyncMock(side_effect=StoreUnavailable("down"))
        )
        with pytest.raises(StoreUnavailable):
            await _published(router)

        assert len(messenger.posted) == 1
        assert messenger.deleted == ["900001"]
        assert await engine.list_by_guild("guild-1") == []


# ---------------------------------------------------------------------------
# Buttons
# ---------------------------------------------------------------------------


class TestButtons:
    async def test_join_and_leave(self, router: LobbyInteractionRouter) -> None:
        lobby = await _published(router)

        joined = await router.handle_button(lobby.id, LobbyAction.JOIN, "userA")
        assert joined.applied
        assert "joined" in joined.message
        assert joined.lobby is not None
        assert joined.lobby.participants == ["creator", "userA"]

        left = await router.handle_button(lobby.id, LobbyAction.LEAVE, "userA")
        assert left.applied
        assert left.lobby is not None
        assert left.lobby.participants == ["creator"]

    async def test_rejection_is_outcome_not_exception(
        self, router: LobbyInteractionRouter
    ) -> None:
        lobby = await _published(router)
        outcome = await router.handle_button(lobby.id, LobbyAction.JOIN, "creator")
        assert not outcome.applied
        assert outcome.message == "User is already a participant"

    async def test_creator_cannot_leave(self, router: LobbyInteractionRouter) -> None:
        lobby = await _published(router)
        outcome = await router.handle_button(lobby.id, LobbyAction.LEAVE, "creator")
        assert not outcome.applied
        assert "creator" in outcome.message

    @pytest.mark.parametrize("action", [LobbyAction.START, LobbyAction.CANCEL])
    async def test_creator_only(
        self, router: LobbyInteractionRouter, engine: LobbyEngine, action: LobbyAction
    ) -> None:
        lobby = await _published(router)
        await router.handle_button(lobby.id, LobbyAction.JOIN, "userA")

        outcome = await router.handle_button(lobby.id, action, "userA")

        assert not outcome.applied
        assert outcome.message == CREATOR_ONLY
        assert (await engine.require(lobby.id)).status == LobbyStatus.PENDING

    async def test_creator_starts_then_cancels(self, router: LobbyInteractionRouter) -> None:
        lobby = await _published(router)
        started = await router.handle_button(lobby.id, LobbyAction.START, "creator")
        assert started.applied
        assert started.lobby is not None
        assert started.lobby.status == LobbyStatus.ACTIVE

        cancelled = await router.handle_button(lobby.id, LobbyAction.CANCEL, "creator")
        assert cancelled.applied
        assert cancelled.lobby is not None
        assert cancelled.lobby.status == LobbyStatus.CANCELLED

    async def test_gone_lobby(self, router: LobbyInteractionRouter) -> None:
        outcome = await router.handle_button("ghost", LobbyAction.JOIN, "userA")
        assert not outcome.applied
        assert outcome.message == LOBBY_GONE

    async def test_store_down(self, messenger: FakeMessenger) -> None:
        engine = AsyncMock(spec=LobbyEngine)
        engine.get.side_effect = StoreUnavailable("down")
        router = LobbyInteractionRouter(engine, LobbyReconciler(engine, messenger))

        outcome = await router.handle_button("any", LobbyAction.JOIN, "userA")

        assert not outcome.applied
        assert outcome.message == GENERIC_FAILURE

    async def test_store_down_mid_action(
        self, router: LobbyInteractionRouter, engine: LobbyEngine, monkeypatch
    ) -> None:
        lobby = await _published(router)
        monkeypatch.setattr(
            engine, "add_participant", AsyncMock(side_effect=StoreUnavailable("down"))
        )
        outcome = await router.handle_button(lobby.id, LobbyAction.JOIN, "userA")
        assert not outcome.applied
        assert outcome.message == GENERIC_FAILURE


# ---------------------------------------------------------------------------
# Reactions
# ---------------------------------------------------------------------------


class TestReactions:
    async def test_check_joins_and_unreact_leaves(self, router: LobbyInteractionRouter) -> None:
        lobby = await _published(router)

        added = await router.handle_reaction_add(lobby.message_id, "✅", "userA")
        assert added is not None
        assert added.applied
        assert added.lobby is not None
        assert added.lobby.participants == ["creator", "userA"]

        removed = await router.handle_reaction_remove(lobby.message_id, "✅", "userA")
        assert removed is not None
        assert removed.applied
        assert removed.lobby is not None
        assert removed.lobby.participants == ["creator"]

    async def test_cross_leaves(self, router: LobbyInteractionRouter) -> None:
        lobby = await _published(router)
        await router.handle_reaction_add(lobby.message_id, "✅", "userA")
        outcome = await router.handle_reaction_add(lobby.message_id, "❌", "userA")
        assert outcome is not None
        assert outcome.applied

    async def test_play_with_variation_selector_starts(
        self, router: LobbyInteractionRouter
    ) -> None:
        lobby = await _published(router)
        outcome = await router.handle_reaction_add(lobby.message_id, "\u25b6\ufe0f", "creator")
        assert outcome is not None
        assert outcome.lobby is not None
        assert outcome.lobby.status == LobbyStatus.ACTIVE

    async def test_stop_by_non_creator_ignored(
        self, router: LobbyInteractionRouter, engine: LobbyEngine
    ) -> None:
        lobby = await _published(router)
        outcome = await router.handle_reaction_add(lobby.message_id, "\u23f9\ufe0f", "userA")
        assert outcome is not None
        assert not outcome.applied
        assert (await engine.require(lobby.id)).status == LobbyStatus.PENDING

    async def test_unrelated_emoji(self, router: LobbyInteractionRouter) -> None:
        lobby = await _published(router)
        assert await router.handle_reaction_add(lobby.message_id, "\U0001f525", "userA") is None

    async def test_removing_other_reactions_does_nothing(
        self, router: LobbyInteractionRouter
    ) -> None:
        lobby = await _published(router)
        assert await router.handle_reaction_remove(lobby.message_id, "❌", "userA") is None

    async def test_unknown_message(self, router: LobbyInteractionRouter) -> None:
        assert await router.handle_reaction_add("123", "✅", "userA") is None

    async def test_expired_lobby_message(
        self, router: LobbyInteractionRouter, clock: FakeClock
    ) -> None:
        lobby = await _published(router)
        clock.advance(hours=2)
        assert await router.handle_reaction_add(lobby.message_id, "✅", "userA") is None

    async def test_lookup_store_down(self, messenger: FakeMessenger) -> None:
        engine = AsyncMock(spec=LobbyEngine)
        engine.get_by_message.side_effect = StoreUnavailable("down")
        router = LobbyInteractionRouter(engine, LobbyReconciler(engine, messenger))

        outcome = await router.handle_reaction_add("123", "✅", "userA")

        assert outcome is not None
        assert outcome.message == GENERIC_FAILURE

    async def test_full_lobby_reaction(self, router: LobbyInteractionRouter) -> None:
        lobby = await _published(router, max_participants=2)
        await router.handle_reaction_add(lobby.message_id, "✅", "userA")
        outcome = await router.handle_reaction_add(lobby.message_id, "✅", "userB")
        assert outcome is not None
        assert not outcome.applied
        assert "full" in outcome.message

