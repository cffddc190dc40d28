"""Tests for bot wiring: channel routing, interaction guard and dispatch."""
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock, patch

import discord
import pytest

from blamebot.config import get_settings
from blamebot.discord_bot import ChannelRouter, admit_interaction, build_bot, route_component
from blamebot.idempotency import InteractionGuard


def make_interaction(interaction_id, custom_id, *, age=0.0):
    return SimpleNamespace(
        id=interaction_id,
        data={"custom_id": custom_id},
        created_at=datetime.now(timezone.utc) - timedelta(seconds=age),
    )


def test_channel_router_from_env(monkeypatch):
    monkeypatch.setenv("BLAMEBOT_CHANNEL_LOG", "12345")
    assert ChannelRouter.from_env().log == 12345

    monkeypatch.setenv("BLAMEBOT_CHANNEL_LOG", "not-a-number")
    assert ChannelRouter.from_env().log is None

    monkeypatch.delenv("BLAMEBOT_CHANNEL_LOG")
    assert ChannelRouter.from_env().log is None


def test_admit_interaction_rejects_redelivery():
    guard = InteractionGuard()
    interaction = make_interaction(1, "rank:next:1")
    assert admit_interaction(interaction, guard) is True
    assert admit_interaction(interaction, guard) is False


def test_admit_interaction_uses_an_empty_guard_it_is_given():
    guard = InteractionGuard()
    with patch("blamebot.discord_bot.get_interaction_guard") as shared:
        assert admit_interaction(make_interaction(7, "rank:next:1"), guard) is True
    shared.assert_not_called()
    assert "7" in guard
    assert len(guard) == 1


@pytest.mark.asyncio
async def test_route_component_dispatches_by_prefix():
    guard = InteractionGuard()
    rank = SimpleNamespace(handle_control=AsyncMock(return_value=True))
    managers = {"rank": rank}

    assert await route_component(managers, make_interaction(1, "rank:next:1"), guard) is True
    rank.handle_control.assert_awaited_once()

    assert await route_component(managers, make_interaction(2, "poll:vote:1"), guard) is False
    assert "2" not in guard


@pytest.mark.asyncio
async def test_route_component_suppresses_duplicates_and_stale_clicks():
    guard = InteractionGuard()
    rank = SimpleNamespace(handle_control=AsyncMock(return_value=True))
    managers = {"rank": rank}

    await route_component(managers, make_interaction(1, "rank:next:1"), guard)
    await route_component(managers, make_interaction(1, "rank:next:1"), guard)
    await route_component(managers, make_interaction(2, "rank:next:1", age=30), guard)

    assert rank.handle_control.await_count == 1


@pytest.mark.asyncio
async def test_build_bot_registers_commands(tmp_path, monkeypatch):
    monkeypatch.delenv("DISCORD_APP_ID", raising=False)
    bot = build_bot(tmp_path / "blame.db", intents=discord.Intents.none(), settings=get_settings())

    names = {command.name for command in bot.tree.get_commands()}
    assert names == {
        "blame", "unblame", "rank", "history", "archive", "insults", "detail", "revert"
    }
    assert set(bot.pagination_managers) == {"rank", "history", "archive", "insults", "detail"}
    assert bot.pagination_managers["rank"].page_size == 10
    assert bot.pagination_managers["detail"].page_size == 1


GUILD = "100000000000000001"
ALICE = "200000000000000001"
BOB = "200000000000000002"


def command_interaction(user_id, *, admin=False):
    return SimpleNamespace(
        id=4242,
        guild_id=int(GUILD),
        guild=None,
        created_at=datetime.now(timezone.utc),
        data={},
        user=SimpleNamespace(
            id=int(user_id),
            bot=False,
            guild_permissions=SimpleNamespace(administrator=admin),
        ),
        response=SimpleNamespace(
            is_done=Mock(return_value=False),
            send_message=AsyncMock(),
            edit_message=AsyncMock(),
        ),
    )


def _seed_archived(bot):
    state = bot.state_service.state
    kept = state.record_insult(guild_id=GUILD, user_id=ALICE, blamer_id=BOB, insult="idiot")
    removed = state.record_insult(guild_id=GUILD, user_id=BOB, blamer_id=ALICE, insult="clown")
    state.archive_insult(removed.id, unblamer_id=ALICE)
    return kept, removed


@pytest.fixture
def bot(tmp_path, monkeypatch):
    monkeypatch.delenv("DISCORD_APP_ID", raising=False)
    monkeypatch.delenv("BLAMEBOT_CHANNEL_LOG", raising=False)
    return build_bot(tmp_path / "blame.db", intents=discord.Intents.none(), settings=get_settings())


@pytest.mark.asyncio
async def test_detail_command_pages_requested_blames(bot):
    kept, removed = _seed_archived(bot)
    interaction = command_interaction(ALICE)

    await bot.tree.get_command("detail").callback(interaction, f"#{kept.id}, {removed.id} 77")

    kwargs = interaction.response.send_message.await_args.kwargs
    assert kwargs["embed"].title == f"Blame #{kept.id}"
    assert kwargs["embed"].footer.text == "Page 1/2"
    assert kwargs["view"].children[2].custom_id == f"detail:next:1:{kept.id}.{removed.id}.77"


@pytest.mark.asyncio
async def test_detail_command_rejects_input_without_ids(bot):
    interaction = command_interaction(ALICE)

    await bot.tree.get_command("detail").callback(interaction, "none here")

    kwargs = interaction.response.send_message.await_args.kwargs
    assert kwargs["embed"].title == "❌ Error"
    assert kwargs["ephemeral"] is True


@pytest.mark.asyncio
async def test_revert_command_restores_only_own_blames(bot):
    kept, removed = _seed_archived(bot)

    stranger = command_interaction(BOB)
    await bot.tree.get_command("revert").callback(stranger, str(removed.id))
    refused = stranger.response.send_message.await_args.kwargs["embed"]
    assert refused.description == "Nothing was restored."
    assert refused.fields[0].value == f"Not allowed: #{removed.id}"

    owner = command_interaction(ALICE)
    await bot.tree.get_command("revert").callback(owner, f"{removed.id} {kept.id}")
    embed = owner.response.send_message.await_args.kwargs["embed"]
    assert embed.title == "Revert Summary"
    assert embed.description == f"Restored: #{removed.id} (clown)"
    assert embed.fields[0].value == f"Not found: #{kept.id}"
    assert bot.state_service.state.get_insult(removed.id) is not None
