"""Paginated browsing views.

Each view pairs a fetch against :class:`~blamebot.service.BlameService` with an
embed builder, and knows how to flatten its filter into the positional token
parameters carried by the navigation buttons. The guild is never encoded; it is
taken from the interaction that carries the click.
"""
from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple, Union

import discord

from .adapters.discord.builders import (
    build_archive_embed,
    build_detail_embed,
    build_history_embed,
    build_insult_word_embed,
    build_insults_embed,
    build_leaderboard_embed,
)
from .models import ArchiveRecord, ArchiveRole, InsultRecord, LeaderboardEntry
from .pagination import PageView, PaginationData
from .service import MAX_BLAME_ID, BlameService

ALL = "all"
ANY_ROLE = "any"
ID_SEPARATOR = "."

_SNOWFLAKE = re.compile(r"^[0-9]{15,21}$")
_ID_PARAM = re.compile(r"[1-9][0-9]{0,18}")


def _context_guild_id(context: Any) -> Optional[str]:
    guild_id = getattr(context, "guild_id", None)
    return str(guild_id) if guild_id else None


def _user_param(value: str) -> Optional[str]:
    """Decode a user slot: ``all`` for no user, otherwise a snowflake."""

    if value == ALL:
        return None
    if not _SNOWFLAKE.match(value):
        raise ValueError(value)
    return value


def encode_word(word: str) -> str:
    return base64.urlsafe_b64encode(word.encode("utf-8")).decode("ascii").rstrip("=")


def decode_word(encoded: str) -> str:
    padding = "=" * (-len(encoded) % 4)
    return base64.urlsafe_b64decode((encoded + padding).encode("ascii")).decode("utf-8")


@dataclass(frozen=True)
class GuildScope:
    guild_id: str


@dataclass(frozen=True)
class HistoryFilter:
    guild_id: str
    user_id: Optional[str] = None


@dataclass(frozen=True)
class ArchiveFilter:
    guild_id: str
    user_id: Optional[str] = None
    role: Optional[ArchiveRole] = None


@dataclass(frozen=True)
class InsultsFilter:
    guild_id: str
    word: Optional[str] = None


class LeaderboardView(PageView[LeaderboardEntry, GuildScope, discord.Embed]):
    command_key = "rank"

    def __init__(self, service: BlameService) -> None:
        self.service = service

    async def fetch(self, page: int, page_size: int, filter: GuildScope) -> PaginationData[LeaderboardEntry]:
        return await self.service.leaderboard_page(filter.guild_id, page, page_size)

    def render(self, data: PaginationData[LeaderboardEntry], filter: GuildScope) -> discord.Embed:
        per_page = data.extras.get("per_page", self.service.settings.page_size)
        return build_leaderboard_embed(data, per_page)

    def parse_params(self, params: Sequence[str], context: Any) -> Optional[GuildScope]:
        guild_id = _context_guild_id(context)
        if params or guild_id is None:
            return None
        return GuildScope(guild_id)


class HistoryView(PageView[InsultRecord, HistoryFilter, discord.Embed]):
    command_key = "history"

    def __init__(self, service: BlameService) -> None:
        self.service = service

    async def fetch(self, page: int, page_size: int, filter: HistoryFilter) -> PaginationData[InsultRecord]:
        return await self.service.history_page(filter.guild_id, filter.user_id, page, page_size)

    def render(self, data: PaginationData[InsultRecord], filter: HistoryFilter) -> discord.Embed:
        return build_history_embed(data, filter.user_id)

    def build_params(self, filter: HistoryFilter) -> Sequence[str]:
        return (filter.user_id or ALL,)

    def parse_params(self, params: Sequence[str], context: Any) -> Optional[HistoryFilter]:
        guild_id = _context_guild_id(context)
        if guild_id is None or len(params) != 1:
            return None
        try:
            return HistoryFilter(guild_id, _user_param(params[0]))
        except ValueError:
            return None


class ArchiveView(PageView[ArchiveRecord, ArchiveFilter, discord.Embed]):
    command_key = "archive"

    def __init__(self, service: BlameService) -> None:
        self.service = service

    async def fetch(self, page: int, page_size: int, filter: ArchiveFilter) -> PaginationData[ArchiveRecord]:
        return await self.service.archive_page(
            filter.guild_id, filter.user_id, filter.role, page, page_size
        )

    def render(self, data: PaginationData[ArchiveRecord], filter: ArchiveFilter) -> discord.Embed:
        return build_archive_embed(data)

    def build_params(self, filter: ArchiveFilter) -> Sequence[str]:
        role = filter.role.value if filter.role is not None else ANY_ROLE
        return (filter.user_id or ALL, role)

    def parse_params(self, params: Sequence[str], context: Any) -> Optional[ArchiveFilter]:
        guild_id = _context_guild_id(context)
        if guild_id is None or len(params) != 2:
            return None
        try:
            user_id = _user_param(params[0])
            role = None if params[1] == ANY_ROLE else ArchiveRole(params[1])
        except ValueError:
            return None
        return ArchiveFilter(guild_id, user_id, role)


class InsultsView(PageView[Any, InsultsFilter, discord.Embed]):
    """Insult statistics: a server-wide overview, or one word's occurrences."""

    command_key = "insults"

    def __init__(self, service: BlameService) -> None:
        self.service = service

    async def fetch(self, page: int, page_size: int, filter: InsultsFilter) -> PaginationData[Any]:
        if filter.word:
            return await self.service.insult_word_page(filter.guild_id, filter.word, page, page_size)
        return await self.service.insults_page(filter.guild_id, page, page_size)

    def render(self, data: PaginationData[Any], filter: InsultsFilter) -> discord.Embed:
        if filter.word:
            return build_insult_word_embed(data, filter.word)
        return build_insults_embed(data)

    def build_params(self, filter: InsultsFilter) -> Sequence[str]:
        if filter.word:
            return ("word", encode_word(filter.word))
        return (ALL,)

    def parse_params(self, params: Sequence[str], context: Any) -> Optional[InsultsFilter]:
        guild_id = _context_guild_id(context)
        if guild_id is None:
            return None
        if list(params) == [ALL]:
            return InsultsFilter(guild_id)
        if len(params) == 2 and params[0] == "word":
            try:
                word = decode_word(params[1])
            except (binascii.Error, UnicodeDecodeError, ValueError):
                return None
            return InsultsFilter(guild_id, word) if word else None
        return None


@dataclass(frozen=True)
class DetailFilter:
    guild_id: str
    insult_ids: Tuple[int, ...]


class DetailView(PageView[Union[InsultRecord, ArchiveRecord], DetailFilter, discord.Embed]):
    """One requested blame per page; ids are carried dot-separated in the token."""

    command_key = "detail"
    page_size = 1

    def __init__(self, service: BlameService) -> None:
        self.service = service

    async def fetch(
        self, page: int, page_size: int, filter: DetailFilter
    ) -> PaginationData[Union[InsultRecord, ArchiveRecord]]:
        return await self.service.detail_page(filter.guild_id, filter.insult_ids, page, page_size)

    def render(
        self, data: PaginationData[Union[InsultRecord, ArchiveRecord]], filter: DetailFilter
    ) -> discord.Embed:
        return build_detail_embed(data)

    def build_params(self, filter: DetailFilter) -> Sequence[str]:
        return (ID_SEPARATOR.join(str(insult_id) for insult_id in filter.insult_ids),)

    def parse_params(self, params: Sequence[str], context: Any) -> Optional[DetailFilter]:
        guild_id = _context_guild_id(context)
        if guild_id is None or len(params) != 1:
            return None
        pieces = params[0].split(ID_SEPARATOR)
        if not all(_ID_PARAM.fullmatch(piece) for piece in pieces):
            return None
        insult_ids = tuple(int(piece) for piece in pieces)
        if max(insult_ids) > MAX_BLAME_ID:
            return None
        return DetailFilter(guild_id, insult_ids)


def build_views(service: BlameService) -> Dict[str, PageView]:
    views = [
        LeaderboardView(service),
        HistoryView(service),
        ArchiveView(service),
        InsultsView(service),
        DetailView(service),
    ]
    return {view.command_key: view for view in views}


__all__ = [
    "ArchiveFilter",
    "ArchiveView",
    "DetailFilter",
    "DetailView",
    "GuildScope",
    "HistoryFilter",
    "HistoryView",
    "InsultsFilter",
    "InsultsView",
    "LeaderboardView",
    "build_views",
    "decode_word",
    "encode_word",
]
