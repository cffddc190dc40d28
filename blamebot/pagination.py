"""Stateless pagination sessions.

A paginated view never keeps server-side session objects. Everything needed to
resume it (which view, what the user clicked, the page, and the view's filter
parameters) travels inside the ``custom_id`` of each navigation button::

    command:action:page[:param...]

Discord caps ``custom_id`` at 100 characters, so the layout is positional and
parameters may not contain the ``:`` delimiter. ``total_pages`` is never
encoded; it is recomputed from live data on every request.
"""
from __future__ import annotations

import math
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, Iterable, Optional, Sequence, Tuple, TypeVar

T = TypeVar("T")
F = TypeVar("F")
R = TypeVar("R")

DELIMITER = ":"
CUSTOM_ID_MAX_LENGTH = 100

_PAGE_PATTERN = re.compile(r"[0-9]+")


class Action(str, Enum):
    FIRST = "first"
    PREV = "prev"
    NEXT = "next"
    LAST = "last"
    REFRESH = "refresh"
    PAGE = "page"


class EncodingError(ValueError):
    """Raised when a session cannot be represented as a token."""


@dataclass(frozen=True)
class PaginationSession:
    command_key: str
    action: Optional[Action]
    page: int
    filter_params: Tuple[str, ...] = ()

    def encode(self, max_length: int = CUSTOM_ID_MAX_LENGTH) -> str:
        return encode_session(
            self.command_key, self.action, self.page, self.filter_params, max_length=max_length
        )


@dataclass(frozen=True)
class PaginationData(Generic[T]):
    """One fetched page plus the counts needed to navigate around it."""

    items: Sequence[T]
    total_count: int
    current_page: int
    total_pages: int
    extras: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_count(
        cls,
        items: Sequence[T],
        total_count: int,
        page: int,
        page_size: int,
        **extras: Any,
    ) -> "PaginationData[T]":
        return cls(
            items=list(items),
            total_count=total_count,
            current_page=page,
            total_pages=total_pages_for(total_count, page_size),
            extras=extras,
        )


def total_pages_for(total_count: int, page_size: int) -> int:
    if page_size <= 0:
        raise ValueError("page_size must be positive")
    return max(1, math.ceil(max(0, total_count) / page_size))


def page_offset(page: int, page_size: int) -> int:
    return (max(1, page) - 1) * page_size


def clamp_page(page: int, total_pages: int) -> int:
    return max(1, min(page, max(1, total_pages)))


def resolve_page(action: Optional[Action], page: int, total_pages: int) -> int:
    """Return the page a navigation action lands on, clamped to ``[1, total_pages]``."""

    if action is None or action is Action.FIRST:
        target = 1
    elif action is Action.PREV:
        target = page - 1
    elif action is Action.NEXT:
        target = page + 1
    elif action is Action.LAST:
        target = total_pages
    else:  # refresh and direct page jumps keep the page number
        target = page
    return clamp_page(target, total_pages)


def encode_session(
    command_key: str,
    action: Optional[Action],
    page: int,
    filter_params: Iterable[str] = (),
    *,
    max_length: int = CUSTOM_ID_MAX_LENGTH,
) -> str:
    """Serialize a session into a ``custom_id`` token."""

    if not command_key or DELIMITER in command_key:
        raise EncodingError(f"Invalid command key {command_key!r}")
    if page < 1:
        raise EncodingError(f"Page must be at least 1, got {page}")
    params = [str(param) for param in filter_params]
    for param in params:
        if DELIMITER in param:
            raise EncodingError(
                f"Filter parameter {param!r} contains reserved delimiter {DELIMITER!r}"
            )
    action_field = Action(action).value if action is not None else ""
    token = DELIMITER.join([command_key, action_field, str(page), *params])
    if len(token) > max_length:
        raise EncodingError(
            f"Encoded session for {command_key} is {len(token)} characters (limit {max_length})"
        )
    return token


def decode_session(token: str, expected_command_key: str) -> Optional[PaginationSession]:
    """Parse a token; ``None`` means the event is not ours or is malformed."""

    if not token:
        return None
    parts = token.split(DELIMITER)
    if len(parts) < 3 or parts[0] != expected_command_key:
        return None
    action_field, page_field = parts[1], parts[2]
    if action_field:
        try:
            action: Optional[Action] = Action(action_field)
        except ValueError:
            return None
    else:
        action = None
    if not _PAGE_PATTERN.fullmatch(page_field):
        return None
    page = int(page_field)
    if page < 1:
        return None
    return PaginationSession(
        command_key=expected_command_key,
        action=action,
        page=page,
        filter_params=tuple(parts[3:]),
    )


class PageView(ABC, Generic[T, F, R]):
    """A paginated feature: how to fetch a page and how to draw it.

    Subclasses must implement :meth:`fetch` and :meth:`render`. The parameter
    hooks default to "no filter parameters"; views with filters override both
    so that ``parse_params(build_params(f))`` restores ``f``.
    """

    command_key: str = ""
    # Fixed page size for views that ignore the configured default.
    page_size: Optional[int] = None

    @abstractmethod
    async def fetch(self, page: int, page_size: int, filter: F) -> PaginationData[T]:
        """Load one page of items for ``filter``."""

    @abstractmethod
    def render(self, data: PaginationData[T], filter: F) -> R:
        """Draw a fetched page."""

    def build_params(self, filter: F) -> Sequence[str]:
        return ()

    def parse_params(self, params: Sequence[str], context: Any) -> Optional[F]:
        return None


__all__ = [
    "Action",
    "CUSTOM_ID_MAX_LENGTH",
    "DELIMITER",
    "EncodingError",
    "PageView",
    "PaginationData",
    "PaginationSession",
    "clamp_page",
    "decode_session",
    "encode_session",
    "page_offset",
    "resolve_page",
    "total_pages_for",
]
