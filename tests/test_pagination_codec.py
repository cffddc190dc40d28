"""Tests for pagination session tokens and page arithmetic."""
import pytest

from blamebot.pagination import (
    Action,
    EncodingError,
    PageView,
    PaginationData,
    PaginationSession,
    clamp_page,
    decode_session,
    encode_session,
    page_offset,
    resolve_page,
    total_pages_for,
)


def test_encode_session_layout():
    assert encode_session("rank", Action.NEXT, 2) == "rank:next:2"
    assert encode_session("history", Action.FIRST, 3, ["123"]) == "history:first:3:123"
    assert encode_session("history", None, 1, ["all"]) == "history::1:all"


def test_session_round_trip_with_params():
    session = PaginationSession("archive", Action.PREV, 4, ("998877665544332211", "blamer"))
    decoded = decode_session(session.encode(), "archive")
    assert decoded == session


def test_decode_without_action():
    decoded = decode_session("history::1:all", "history")
    assert decoded is not None
    assert decoded.action is None
    assert decoded.page == 1
    assert decoded.filter_params == ("all",)


def test_encode_rejects_delimiter_in_param():
    with pytest.raises(EncodingError):
        encode_session("insults", Action.NEXT, 1, ["a:b"])


def test_encode_rejects_bad_command_key_and_page():
    with pytest.raises(EncodingError):
        encode_session("", Action.NEXT, 1)
    with pytest.raises(EncodingError):
        encode_session("ra:nk", Action.NEXT, 1)
    with pytest.raises(EncodingError):
        encode_session("rank", Action.NEXT, 0)


def test_encode_enforces_length_limit():
    prefix = "insults:next:1:"
    exact = "x" * (100 - len(prefix))
    assert len(encode_session("insults", Action.NEXT, 1, [exact])) == 100
    with pytest.raises(EncodingError):
        encode_session("insults", Action.NEXT, 1, [exact + "x"])


def test_encode_error_is_a_value_error():
    assert issubclass(EncodingError, ValueError)


@pytest.mark.parametrize(
    "token",
    [
        "",
        "rank",
        "rank:next",
        "history:next:1",
        "rank:sideways:1",
        "rank:next:abc",
        "rank:next:0",
        "rank:next:-1",
        "rank:next:1.5",
        "rank:next: 1",
        "rank:next:1\n",
        "rank:next:١",
    ],
)
def test_decode_rejects_malformed_tokens(token):
    assert decode_session(token, "rank") is None


@pytest.mark.parametrize(
    "action, page, expected",
    [
        (Action.FIRST, 3, 1),
        (None, 4, 1),
        (Action.PREV, 1, 1),
        (Action.PREV, 3, 2),
        (Action.NEXT, 4, 5),
        (Action.NEXT, 5, 5),
        (Action.LAST, 2, 5),
        (Action.REFRESH, 3, 3),
        (Action.REFRESH, 9, 5),
        (Action.PAGE, 2, 2),
    ],
)
def test_resolve_page_clamps_to_range(action, page, expected):
    assert resolve_page(action, page, 5) == expected


def test_page_counts():
    assert total_pages_for(0, 10) == 1
    assert total_pages_for(23, 10) == 3
    assert total_pages_for(30, 10) == 3
    assert page_offset(3, 10) == 20
    assert clamp_page(10, 3) == 3
    assert clamp_page(0, 3) == 1
    with pytest.raises(ValueError):
        total_pages_for(5, 0)


def test_pagination_data_from_count():
    data = PaginationData.from_count([21, 22, 23], 23, 3, 10, label="numbers")
    assert data.total_pages == 3
    assert data.current_page == 3
    assert data.extras == {"label": "numbers"}


def test_pagination_data_accepts_per_page_extra():
    data = PaginationData.from_count(["a"], 1, 1, 10, per_page=10)
    assert data.extras["per_page"] == 10


def test_page_view_requires_fetch_and_render():
    class HalfView(PageView):
        command_key = "half"

        async def fetch(self, page, page_size, filter):
            return PaginationData.from_count([], 0, page, page_size)

    with pytest.raises(TypeError):
        PageView()
    with pytest.raises(TypeError):
        HalfView()
