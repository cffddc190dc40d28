"""Tests for the Discord pagination manager."""
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import discord
import pytest

from blamebot.adapters.discord.paginator import PaginationManager
from blamebot.pagination import PageView, PaginationData
from blamebot.retry import DataAccessError, FailureCategory


class NumbersView(PageView):
    """Pages over ``range(total)``; the filter is a single label string."""

    command_key = "nums"

    def __init__(self, total, fail=None):
        self.total = total
        self.fail = fail
        self.fetched = []

    async def fetch(self, page, page_size, filter):
        self.fetched.append(page)
        if self.fail is not None:
            raise self.fail
        start = (page - 1) * page_size
        items = list(range(start, min(start + page_size, self.total)))
        return PaginationData.from_count(items, self.total, page, page_size)

    def render(self, data, filter):
        return discord.Embed(
            title=f"{filter} {data.current_page}/{data.total_pages}",
            description=",".join(str(i) for i in data.items),
        )

    def build_params(self, filter):
        return (filter,)

    def parse_params(self, params, context):
        return params[0] if len(params) == 1 else None


def make_interaction(custom_id=None, *, done=False):
    response = SimpleNamespace(
        is_done=Mock(return_value=done),
        send_message=AsyncMock(),
        edit_message=AsyncMock(),
    )
    return SimpleNamespace(
        id=987654321,
        guild_id=42,
        created_at=datetime.now(timezone.utc),
        response=response,
        data={"custom_id": custom_id} if custom_id is not None else {},
    )


def make_manager(view, **kwargs):
    kwargs.setdefault("page_size", 10)
    kwargs.setdefault("ephemeral", False)
    return PaginationManager(view, **kwargs)


def _sent(interaction):
    return interaction.response.send_message.await_args.kwargs


def _edited(interaction):
    return interaction.response.edit_message.await_args.kwargs


@pytest.mark.asyncio
async def test_initial_command_sends_first_page_with_controls():
    manager = make_manager(NumbersView(23))
    interaction = make_interaction()

    await manager.handle_initial_command(interaction, "f")

    kwargs = _sent(interaction)
    assert kwargs["embed"].title == "f 1/3"
    assert kwargs["ephemeral"] is False
    buttons = kwargs["view"].children
    assert [b.label for b in buttons] == ["⏮", "◀", "▶", "⏭", "↻"]
    assert [b.disabled for b in buttons] == [True, True, False, False, False]
    assert buttons[2].custom_id == "nums:next:1:f"
    assert buttons[4].custom_id == "nums:refresh:1:f"
    interaction.response.edit_message.assert_not_awaited()


@pytest.mark.asyncio
async def test_initial_command_skipped_when_already_acknowledged():
    view = NumbersView(23)
    interaction = make_interaction(done=True)
    await make_manager(view).handle_initial_command(interaction, "f")
    assert view.fetched == []
    interaction.response.send_message.assert_not_awaited()


@pytest.mark.asyncio
async def test_out_of_range_page_is_clamped():
    view = NumbersView(23)
    interaction = make_interaction()

    data = await make_manager(view).respond_with_page(interaction, 10, "f", initial=True)

    assert data.current_page == 3
    assert len(data.items) == 3
    assert view.fetched == [10, 3]
    buttons = _sent(interaction)["view"].children
    assert [b.disabled for b in buttons] == [False, False, True, True, False]


@pytest.mark.asyncio
async def test_last_button_jumps_to_final_page():
    view = NumbersView(23)
    interaction = make_interaction("nums:last:1:f")

    assert await make_manager(view).handle_control(interaction) is True

    assert _edited(interaction)["embed"].title == "f 3/3"
    assert view.fetched == [1, 3]
    interaction.response.send_message.assert_not_awaited()


@pytest.mark.asyncio
async def test_next_on_last_page_reuses_fetch():
    view = NumbersView(23)
    interaction = make_interaction("nums:next:3:f")

    await make_manager(view).handle_control(interaction)

    assert view.fetched == [3]
    assert _edited(interaction)["embed"].title == "f 3/3"


@pytest.mark.asyncio
async def test_next_prev_and_first():
    view = NumbersView(23)
    manager = make_manager(view)

    forward = make_interaction("nums:next:1:f")
    await manager.handle_control(forward)
    assert _edited(forward)["embed"].description == ",".join(str(i) for i in range(10, 20))

    back = make_interaction("nums:prev:2:f")
    await manager.handle_control(back)
    assert _edited(back)["embed"].title == "f 1/3"

    first = make_interaction("nums:first:3:f")
    await manager.handle_control(first)
    assert _edited(first)["embed"].title == "f 1/3"


@pytest.mark.asyncio
async def test_refresh_keeps_page():
    view = NumbersView(23)
    interaction = make_interaction("nums:refresh:3:f")

    await make_manager(view).handle_control(interaction)

    assert _edited(interaction)["embed"].description == "20,21,22"
    assert view.fetched == [3]


@pytest.mark.asyncio
async def test_refresh_after_data_shrinks():
    view = NumbersView(23)
    interaction = make_interaction("nums:refresh:5:f")

    await make_manager(view).handle_control(interaction)

    assert view.fetched == [5, 3]
    assert _edited(interaction)["embed"].title == "f 3/3"


@pytest.mark.asyncio
async def test_empty_result_disables_navigation():
    interaction = make_interaction()
    await make_manager(NumbersView(0)).handle_initial_command(interaction, "f")
    buttons = _sent(interaction)["view"].children
    assert [b.disabled for b in buttons] == [True, True, True, True, False]
    assert _sent(interaction)["embed"].title == "f 1/1"


@pytest.mark.parametrize(
    "custom_id",
    ["nums:next:abc:f", "nums:sideways:1:f", "rank:next:1", "nums:next:1", "", "nums"],
)
@pytest.mark.asyncio
async def test_foreign_or_malformed_controls_are_ignored(custom_id):
    view = NumbersView(23)
    interaction = make_interaction(custom_id)

    assert await make_manager(view).handle_control(interaction) is False

    assert view.fetched == []
    interaction.response.edit_message.assert_not_awaited()
    interaction.response.send_message.assert_not_awaited()


@pytest.mark.asyncio
async def test_acknowledged_control_is_consumed_without_reply():
    view = NumbersView(23)
    interaction = make_interaction("nums:next:1:f", done=True)
    assert await make_manager(view).handle_control(interaction) is True
    assert view.fetched == []


@pytest.mark.asyncio
async def test_data_error_on_initial_command_sends_error_embed():
    error = DataAccessError(FailureCategory.CONNECTION_REFUSED, "nums page", 3)
    interaction = make_interaction()

    await make_manager(NumbersView(23, fail=error)).handle_initial_command(interaction, "f")

    kwargs = _sent(interaction)
    assert kwargs["embed"].title == "❌ Error"
    assert kwargs["embed"].description == "Database connection refused. Please try again later."
    assert kwargs["ephemeral"] is True
    assert "view" not in kwargs


@pytest.mark.asyncio
async def test_data_error_during_navigation_edits_with_error():
    error = DataAccessError(FailureCategory.CONNECTION_TIMEOUT, "nums page", 3)
    interaction = make_interaction("nums:last:1:f")

    assert await make_manager(NumbersView(23, fail=error)).handle_control(interaction) is True

    kwargs = _edited(interaction)
    assert kwargs["embed"].description == "Database operation timed out. Please try again later."
    assert kwargs["view"] is None


@pytest.mark.asyncio
async def test_unexpected_fetch_errors_propagate():
    interaction = make_interaction()
    with pytest.raises(KeyError):
        await make_manager(NumbersView(23, fail=KeyError("boom"))).handle_initial_command(
            interaction, "f"
        )


@pytest.mark.asyncio
async def test_overlong_token_sends_page_without_controls():
    interaction = make_interaction()
    await make_manager(NumbersView(23)).handle_initial_command(interaction, "x" * 120)

    kwargs = _sent(interaction)
    assert kwargs["embed"].title.endswith("1/3")
    assert "view" not in kwargs


@pytest.mark.asyncio
async def test_expired_interaction_gets_no_reply():
    view = NumbersView(23)
    interaction = make_interaction("nums:next:1:f")
    interaction.created_at = datetime(2020, 1, 1, tzinfo=timezone.utc)

    manager = make_manager(view, response_deadline=4.0)
    assert await manager.handle_control(interaction) is True

    interaction.response.edit_message.assert_not_awaited()
