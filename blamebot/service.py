"""Service layer for recording blames and reading paginated history."""
from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple, TypeVar, Union

from .config import Settings, get_settings
from .models import ArchiveRecord, ArchiveRole, InsultRecord, InsultStat, LeaderboardEntry
from .pagination import PaginationData, page_offset
from .retry import with_retry
from .state import BlameState

logger = logging.getLogger(__name__)

T = TypeVar("T")

_WHITESPACE = re.compile(r"\s+")
_BLAME_ID = re.compile(r"[0-9]+")
# SQLite rowids are signed 64-bit.
MAX_BLAME_ID = 2**63 - 1


def parse_blame_ids(raw: Optional[str], limit: int) -> Tuple[List[int], List[int]]:
    """Pull unique positive ids out of free text such as ``"#12, 15 and 7"``.

    Returns the first ``limit`` ids and the ones skipped past it, in input order.
    """

    ids: List[int] = []
    for match in _BLAME_ID.findall(raw or ""):
        value = int(match)
        if 0 < value <= MAX_BLAME_ID and value not in ids:
            ids.append(value)
    return ids[:limit], ids[limit:]


@dataclass(frozen=True)
class BlameOutcome:
    record: InsultRecord
    total_blames: int
    insult_count: int
    frequencies: List[InsultStat]


@dataclass(frozen=True)
class RevertOutcome:
    restored: List[InsultRecord]
    not_found: List[int]
    forbidden: List[int]


class BlameService:
    """Async facade over :class:`BlameState`.

    Store calls run in a worker thread and are wrapped by :func:`with_retry`,
    so every callable handed to :meth:`_run` must be safe to repeat.
    """

    class ValidationError(ValueError):
        """Raised when user input cannot be recorded."""

    class PermissionDenied(PermissionError):
        """Raised when a user may not modify a record."""

    def __init__(self, db_path: Path, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self.state = BlameState(db_path)

    async def _run(self, operation_name: str, func: Callable[[], T]) -> T:
        return await with_retry(
            lambda: asyncio.to_thread(func),
            operation_name,
            max_retries=self.settings.db_max_retries,
            base_delay=self.settings.db_retry_delay,
            timeout=self.settings.db_query_timeout,
        )

    # Input -------------------------------------------------------------
    def canonicalize_insult(self, raw: str) -> str:
        cleaned = _WHITESPACE.sub(" ", (raw or "").strip())
        if not cleaned:
            raise BlameService.ValidationError("Insult cannot be empty.")
        cleaned = cleaned[: self.settings.max_insult_length].strip()
        if len(cleaned.split(" ")) > self.settings.max_insult_words:
            raise BlameService.ValidationError(
                f"Insults are limited to {self.settings.max_insult_words} words. "
                "Use the note for extra context."
            )
        return cleaned

    def canonicalize_note(self, raw: Optional[str]) -> Optional[str]:
        if raw is None:
            return None
        cleaned = raw.strip()
        if not cleaned:
            return None
        return cleaned[: self.settings.max_note_length]

    # Writes ------------------------------------------------------------
    async def blame(
        self,
        *,
        guild_id: str,
        target_id: str,
        target_name: str,
        blamer_id: str,
        blamer_name: str,
        insult: str,
        note: Optional[str] = None,
        event_id: Optional[str] = None,
        target_is_bot: bool = False,
        blamer_is_bot: bool = False,
    ) -> BlameOutcome:
        if target_is_bot or blamer_is_bot:
            raise BlameService.ValidationError("Bot users are not allowed for this command.")
        if target_id == blamer_id:
            raise BlameService.ValidationError("You cannot blame yourself.")
        insult_text = self.canonicalize_insult(insult)
        note_text = self.canonicalize_note(note)

        def _write() -> InsultRecord:
            self.state.upsert_user(target_id, target_name)
            self.state.upsert_user(blamer_id, blamer_name)
            return self.state.record_insult(
                guild_id=guild_id,
                user_id=target_id,
                blamer_id=blamer_id,
                insult=insult_text,
                note=note_text,
                event_id=event_id,
            )

        record = await self._run("record blame", _write)

        def _summary() -> BlameOutcome:
            return BlameOutcome(
                record=record,
                total_blames=self.state.count_insults(guild_id, user_id=target_id),
                insult_count=self.state.count_insults(guild_id, insult=insult_text),
                frequencies=self.state.insult_frequencies(guild_id, user_id=target_id),
            )

        return await self._run("blame summary", _summary)

    async def unblame(
        self,
        *,
        guild_id: str,
        insult_id: int,
        requester_id: str,
        is_admin: bool = False,
    ) -> ArchiveRecord:
        record = await self._run("load insult", lambda: self.state.get_insult(insult_id))
        if record is None or record.guild_id != guild_id:
            raise BlameService.ValidationError(f"Blame #{insult_id} was not found.")
        if record.blamer_id != requester_id and not is_admin:
            raise BlameService.PermissionDenied(
                f"Only the original blamer or an administrator can remove blame #{insult_id}."
            )
        archived = await self._run(
            "archive insult",
            lambda: self.state.archive_insult(insult_id, unblamer_id=requester_id),
        )
        if archived is None:
            raise BlameService.ValidationError(f"Blame #{insult_id} was not found.")
        logger.info("Blame %s archived by %s", insult_id, requester_id)
        return archived

    async def revert(
        self,
        *,
        guild_id: str,
        insult_ids: Sequence[int],
        requester_id: str,
        is_admin: bool = False,
    ) -> RevertOutcome:
        """Bring archived blames back; only their blamer or an admin may do so."""

        if not insult_ids:
            raise BlameService.ValidationError("Please provide a valid archived blame ID.")
        found = await self._run(
            "load archived blames", lambda: self.state.find_blames(guild_id, insult_ids)
        )
        restored: List[InsultRecord] = []
        not_found: List[int] = []
        forbidden: List[int] = []
        for insult_id in insult_ids:
            archived = found.get(insult_id)
            if not isinstance(archived, ArchiveRecord):
                not_found.append(insult_id)
                continue
            if archived.blamer_id != requester_id and not is_admin:
                forbidden.append(insult_id)
                continue
            record = await self._run(
                "restore blame",
                lambda insult_id=insult_id: self.state.restore_archive(insult_id, guild_id=guild_id),
            )
            if record is None:
                not_found.append(insult_id)
                continue
            logger.info("Blame %s restored by %s", insult_id, requester_id)
            restored.append(record)
        return RevertOutcome(restored=restored, not_found=not_found, forbidden=forbidden)

    # Paginated reads ---------------------------------------------------
    async def leaderboard_page(
        self, guild_id: str, page: int, page_size: int
    ) -> PaginationData[LeaderboardEntry]:
        def _read() -> PaginationData[LeaderboardEntry]:
            total = self.state.count_insulters(guild_id)
            entries = self.state.leaderboard(
                guild_id, offset=page_offset(page, page_size), limit=page_size
            )
            return PaginationData.from_count(entries, total, page, page_size, per_page=page_size)

        return await self._run("leaderboard page", _read)

    async def history_page(
        self, guild_id: str, user_id: Optional[str], page: int, page_size: int
    ) -> PaginationData[InsultRecord]:
        def _read() -> PaginationData[InsultRecord]:
            total = self.state.count_insults(guild_id, user_id=user_id)
            entries = self.state.list_insults(
                guild_id,
                user_id=user_id,
                offset=page_offset(page, page_size),
                limit=page_size,
            )
            ids = {entry.user_id for entry in entries} | {entry.blamer_id for entry in entries}
            if user_id:
                ids.add(user_id)
            usernames = self.state.usernames(ids)
            return PaginationData.from_count(
                entries,
                total,
                page,
                page_size,
                distinct_users=self.state.count_insulters(guild_id),
                frequencies=self.state.insult_frequencies(guild_id, user_id=user_id),
                usernames=usernames,
                target_username=usernames.get(user_id) if user_id else None,
            )

        return await self._run("history page", _read)

    async def archive_page(
        self,
        guild_id: str,
        user_id: Optional[str],
        role: Optional[ArchiveRole],
        page: int,
        page_size: int,
    ) -> PaginationData[ArchiveRecord]:
        def _read() -> PaginationData[ArchiveRecord]:
            total = self.state.count_archives(guild_id, user_id=user_id, role=role)
            entries = self.state.list_archives(
                guild_id,
                user_id=user_id,
                role=role,
                offset=page_offset(page, page_size),
                limit=page_size,
            )
            ids = set()
            for entry in entries:
                ids.update((entry.user_id, entry.blamer_id, entry.unblamer_id))
            return PaginationData.from_count(
                entries, total, page, page_size, usernames=self.state.usernames(ids)
            )

        return await self._run("archive page", _read)

    async def insults_page(
        self, guild_id: str, page: int, page_size: int
    ) -> PaginationData[InsultStat]:
        def _read() -> PaginationData[InsultStat]:
            distinct = self.state.count_distinct_insults(guild_id)
            stats = self.state.insult_frequencies(
                guild_id, offset=page_offset(page, page_size), limit=page_size
            )
            return PaginationData.from_count(
                stats,
                distinct,
                page,
                page_size,
                total_recorded=self.state.count_insults(guild_id),
            )

        return await self._run("insults page", _read)

    async def insult_word_page(
        self, guild_id: str, word: str, page: int, page_size: int
    ) -> PaginationData[InsultRecord]:
        def _read() -> PaginationData[InsultRecord]:
            total = self.state.count_insults(guild_id, insult=word)
            entries = self.state.list_insults(
                guild_id,
                insult=word,
                offset=page_offset(page, page_size),
                limit=page_size,
                oldest_first=True,
            )
            top_blamer = self.state.top_blamer(guild_id, word)
            ids = {entry.user_id for entry in entries} | {entry.blamer_id for entry in entries}
            if top_blamer:
                ids.add(top_blamer)
            return PaginationData.from_count(
                entries,
                total,
                page,
                page_size,
                distinct_users=self.state.count_insulters(guild_id, insult=word),
                top_blamer=top_blamer,
                usernames=self.state.usernames(ids),
            )

        return await self._run("insult word page", _read)

    async def detail_page(
        self, guild_id: str, insult_ids: Sequence[int], page: int, page_size: int
    ) -> PaginationData[Union[InsultRecord, ArchiveRecord]]:
        """Page through the requested blames that exist, active or archived."""

        def _read() -> PaginationData[Union[InsultRecord, ArchiveRecord]]:
            found = self.state.find_blames(guild_id, insult_ids)
            present = [insult_id for insult_id in insult_ids if insult_id in found]
            missing = [insult_id for insult_id in insult_ids if insult_id not in found]
            offset = page_offset(page, page_size)
            entries = [found[insult_id] for insult_id in present[offset : offset + page_size]]
            ids = set()
            for entry in entries:
                ids.update((entry.user_id, entry.blamer_id))
                if isinstance(entry, ArchiveRecord):
                    ids.add(entry.unblamer_id)
            return PaginationData.from_count(
                entries,
                len(present),
                page,
                page_size,
                found_ids=present,
                not_found_ids=missing,
                usernames=self.state.usernames(ids),
            )

        return await self._run("detail page", _read)


__all__ = ["MAX_BLAME_ID", "BlameOutcome", "BlameService", "RevertOutcome", "parse_blame_ids"]
