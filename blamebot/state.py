"""Blame history persistence."""
from __future__ import annotations

import logging
import sqlite3
from contextlib import closing
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

from .models import ArchiveRecord, ArchiveRole, InsultRecord, InsultStat, LeaderboardEntry

logger = logging.getLogger(__name__)

_DB_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    username TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS insults (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    guild_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    blamer_id TEXT NOT NULL,
    insult TEXT NOT NULL,
    note TEXT,
    created_at TEXT NOT NULL,
    event_id TEXT UNIQUE
);
CREATE INDEX IF NOT EXISTS idx_insults_guild_user
    ON insults (guild_id, user_id);
CREATE INDEX IF NOT EXISTS idx_insults_guild_blamer
    ON insults (guild_id, blamer_id);
CREATE TABLE IF NOT EXISTS archives (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    original_insult_id INTEGER NOT NULL UNIQUE,
    guild_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    blamer_id TEXT NOT NULL,
    insult TEXT NOT NULL,
    note TEXT,
    created_at TEXT NOT NULL,
    unblamer_id TEXT NOT NULL,
    unblamed_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_archives_guild
    ON archives (guild_id, created_at DESC);
"""

_INSULT_COLUMNS = "id, guild_id, user_id, blamer_id, insult, note, created_at"
_ARCHIVE_COLUMNS = (
    "id, original_insult_id, guild_id, user_id, blamer_id, insult, note, "
    "created_at, unblamer_id, unblamed_at"
)


def _insult_from_row(row) -> InsultRecord:
    return InsultRecord(
        id=row[0],
        guild_id=row[1],
        user_id=row[2],
        blamer_id=row[3],
        insult=row[4],
        note=row[5],
        created_at=datetime.fromisoformat(row[6]),
    )


def _archive_from_row(row) -> ArchiveRecord:
    return ArchiveRecord(
        id=row[0],
        original_insult_id=row[1],
        guild_id=row[2],
        user_id=row[3],
        blamer_id=row[4],
        insult=row[5],
        note=row[6],
        created_at=datetime.fromisoformat(row[7]),
        unblamer_id=row[8],
        unblamed_at=datetime.fromisoformat(row[9]),
    )


def _insult_filter(
    guild_id: str, user_id: Optional[str], insult: Optional[str]
) -> Tuple[str, List[object]]:
    clause = "WHERE guild_id = ?"
    params: List[object] = [guild_id]
    if user_id:
        clause += " AND user_id = ?"
        params.append(user_id)
    if insult:
        clause += " AND insult = ?"
        params.append(insult)
    return clause, params


def _archive_filter(
    guild_id: str, user_id: Optional[str], role: Optional[ArchiveRole]
) -> Tuple[str, List[object]]:
    clause = "WHERE guild_id = ?"
    params: List[object] = [guild_id]
    if user_id and role is not None:
        column = {
            ArchiveRole.INSULTED: "user_id",
            ArchiveRole.BLAMER: "blamer_id",
            ArchiveRole.UNBLAMER: "unblamer_id",
        }[ArchiveRole(role)]
        clause += f" AND {column} = ?"
        params.append(user_id)
    elif user_id:
        clause += " AND (user_id = ? OR blamer_id = ? OR unblamer_id = ?)"
        params.extend([user_id, user_id, user_id])
    return clause, params


class BlameState:
    """High level interface over the SQLite blame store.

    All methods are synchronous; the service layer runs them in a worker thread
    under the retry wrapper.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._ensure_schema()

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _ensure_schema(self) -> None:
        with closing(sqlite3.connect(self._db_path)) as conn:
            conn.executescript(_DB_SCHEMA)
            conn.commit()

    # Users -------------------------------------------------------------
    def upsert_user(self, user_id: str, username: str) -> None:
        with closing(sqlite3.connect(self._db_path)) as conn:
            conn.execute(
                "INSERT INTO users (id, username) VALUES (?, ?) "
                "ON CONFLICT(id) DO UPDATE SET username = excluded.username",
                (user_id, username),
            )
            conn.commit()

    def usernames(self, user_ids: Iterable[str]) -> Dict[str, str]:
        ids = sorted({user_id for user_id in user_ids if user_id})
        if not ids:
            return {}
        placeholders = ", ".join("?" for _ in ids)
        with closing(sqlite3.connect(self._db_path)) as conn:
            rows = conn.execute(
                f"SELECT id, username FROM users WHERE id IN ({placeholders})",
                ids,
            ).fetchall()
        return {row[0]: row[1] for row in rows}

    # Insults -----------------------------------------------------------
    def record_insult(
        self,
        *,
        guild_id: str,
        user_id: str,
        blamer_id: str,
        insult: str,
        note: Optional[str] = None,
        created_at: Optional[datetime] = None,
        event_id: Optional[str] = None,
    ) -> InsultRecord:
        """Insert an insult; a repeated ``event_id`` returns the existing row."""

        created_at = created_at or datetime.now(timezone.utc)
        with closing(sqlite3.connect(self._db_path)) as conn:
            cursor = conn.execute(
                "INSERT INTO insults (guild_id, user_id, blamer_id, insult, note, created_at, event_id) "
                "VALUES (?, ?, ?, ?, ?, ?, ?) ON CONFLICT(event_id) DO NOTHING",
                (guild_id, user_id, blamer_id, insult, note, created_at.isoformat(), event_id),
            )
            conn.commit()
            if cursor.rowcount == 0 and event_id is not None:
                row = conn.execute(
                    f"SELECT {_INSULT_COLUMNS} FROM insults WHERE event_id = ?",
                    (event_id,),
                ).fetchone()
                if row is None:
                    raise LookupError(f"Insult for event {event_id} was recorded and since removed")
                logger.debug("Insult for event %s already recorded", event_id)
                return _insult_from_row(row)
            insult_id = cursor.lastrowid
        logger.info("Recorded insult %s against %s in guild %s", insult_id, user_id, guild_id)
        return InsultRecord(
            id=insult_id,
            guild_id=guild_id,
            user_id=user_id,
            blamer_id=blamer_id,
            insult=insult,
            note=note,
            created_at=created_at,
        )

    def get_insult(self, insult_id: int) -> Optional[InsultRecord]:
        with closing(sqlite3.connect(self._db_path)) as conn:
            row = conn.execute(
                f"SELECT {_INSULT_COLUMNS} FROM insults WHERE id = ?",
                (insult_id,),
            ).fetchone()
        return _insult_from_row(row) if row else None

    def count_insults(
        self,
        guild_id: str,
        *,
        user_id: Optional[str] = None,
        insult: Optional[str] = None,
    ) -> int:
        clause, params = _insult_filter(guild_id, user_id, insult)
        with closing(sqlite3.connect(self._db_path)) as conn:
            row = conn.execute(f"SELECT COUNT(*) FROM insults {clause}", params).fetchone()
        return int(row[0]) if row else 0

    def list_insults(
        self,
        guild_id: str,
        *,
        offset: int,
        limit: int,
        user_id: Optional[str] = None,
        insult: Optional[str] = None,
        oldest_first: bool = False,
    ) -> List[InsultRecord]:
        clause, params = _insult_filter(guild_id, user_id, insult)
        order = "ASC" if oldest_first else "DESC"
        with closing(sqlite3.connect(self._db_path)) as conn:
            rows = conn.execute(
                f"SELECT {_INSULT_COLUMNS} FROM insults {clause} "
                f"ORDER BY created_at {order}, id {order} LIMIT ? OFFSET ?",
                [*params, limit, offset],
            ).fetchall()
        return [_insult_from_row(row) for row in rows]

    def count_insulters(self, guild_id: str, *, insult: Optional[str] = None) -> int:
        clause, params = _insult_filter(guild_id, None, insult)
        with closing(sqlite3.connect(self._db_path)) as conn:
            row = conn.execute(
                f"SELECT COUNT(DISTINCT user_id) FROM insults {clause}", params
            ).fetchone()
        return int(row[0]) if row else 0

    def leaderboard(self, guild_id: str, *, offset: int, limit: int) -> List[LeaderboardEntry]:
        with closing(sqlite3.connect(self._db_path)) as conn:
            rows = conn.execute(
                "SELECT i.user_id, COUNT(*) AS points, u.username FROM insults i "
                "LEFT JOIN users u ON u.id = i.user_id "
                "WHERE i.guild_id = ? GROUP BY i.user_id "
                "ORDER BY points DESC, i.user_id ASC LIMIT ? OFFSET ?",
                (guild_id, limit, offset),
            ).fetchall()
        return [LeaderboardEntry(user_id=row[0], points=int(row[1]), username=row[2]) for row in rows]

    def insult_frequencies(
        self,
        guild_id: str,
        *,
        user_id: Optional[str] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[InsultStat]:
        clause, params = _insult_filter(guild_id, user_id, None)
        query = (
            f"SELECT insult, COUNT(*) AS total FROM insults {clause} "
            "GROUP BY insult ORDER BY total DESC, insult ASC"
        )
        if limit is not None:
            query += " LIMIT ? OFFSET ?"
            params = [*params, limit, offset]
        with closing(sqlite3.connect(self._db_path)) as conn:
            rows = conn.execute(query, params).fetchall()
        return [InsultStat(insult=row[0], count=int(row[1])) for row in rows]

    def count_distinct_insults(self, guild_id: str, *, user_id: Optional[str] = None) -> int:
        clause, params = _insult_filter(guild_id, user_id, None)
        with closing(sqlite3.connect(self._db_path)) as conn:
            row = conn.execute(
                f"SELECT COUNT(DISTINCT insult) FROM insults {clause}", params
            ).fetchone()
        return int(row[0]) if row else 0

    def top_blamer(self, guild_id: str, insult: str) -> Optional[str]:
        with closing(sqlite3.connect(self._db_path)) as conn:
            row = conn.execute(
                "SELECT blamer_id, COUNT(*) AS total FROM insults "
                "WHERE guild_id = ? AND insult = ? GROUP BY blamer_id "
                "ORDER BY total DESC, blamer_id ASC LIMIT 1",
                (guild_id, insult),
            ).fetchone()
        return row[0] if row else None

    # Archives ----------------------------------------------------------
    def archive_insult(
        self,
        insult_id: int,
        *,
        unblamer_id: str,
        unblamed_at: Optional[datetime] = None,
    ) -> Optional[ArchiveRecord]:
        """Move an insult into the archive; repeating the call is harmless."""

        unblamed_at = unblamed_at or datetime.now(timezone.utc)
        with closing(sqlite3.connect(self._db_path)) as conn:
            row = conn.execute(
                f"SELECT {_INSULT_COLUMNS} FROM insults WHERE id = ?",
                (insult_id,),
            ).fetchone()
            if row is not None:
                conn.execute(
                    "INSERT OR IGNORE INTO archives (original_insult_id, guild_id, user_id, "
                    "blamer_id, insult, note, created_at, unblamer_id, unblamed_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (*row, unblamer_id, unblamed_at.isoformat()),
                )
                conn.execute("DELETE FROM insults WHERE id = ?", (insult_id,))
                conn.commit()
            archived = conn.execute(
                f"SELECT {_ARCHIVE_COLUMNS} FROM archives WHERE original_insult_id = ?",
                (insult_id,),
            ).fetchone()
        return _archive_from_row(archived) if archived else None

    def restore_archive(self, original_insult_id: int, *, guild_id: str) -> Optional[InsultRecord]:
        """Move an archived insult back under its original id; repeating the call is harmless."""

        with closing(sqlite3.connect(self._db_path)) as conn:
            row = conn.execute(
                "SELECT original_insult_id, guild_id, user_id, blamer_id, insult, note, created_at "
                "FROM archives WHERE original_insult_id = ? AND guild_id = ?",
                (original_insult_id, guild_id),
            ).fetchone()
            if row is not None:
                conn.execute(
                    "INSERT OR IGNORE INTO insults (id, guild_id, user_id, blamer_id, insult, note, created_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?)",
                    row,
                )
                conn.execute(
                    "DELETE FROM archives WHERE original_insult_id = ?", (original_insult_id,)
                )
                conn.commit()
                logger.info("Restored insult %s in guild %s", original_insult_id, guild_id)
            restored = conn.execute(
                f"SELECT {_INSULT_COLUMNS} FROM insults WHERE id = ? AND guild_id = ?",
                (original_insult_id, guild_id),
            ).fetchone()
        return _insult_from_row(restored) if restored else None

    def find_blames(
        self, guild_id: str, ids: Iterable[int]
    ) -> Dict[int, Union[InsultRecord, ArchiveRecord]]:
        """Look blame ids up among active insults and the archive, keyed by blame id.

        Archived entries are keyed by the id they had before removal.
        """

        wanted = sorted(set(ids))
        if not wanted:
            return {}
        placeholders = ", ".join("?" for _ in wanted)
        with closing(sqlite3.connect(self._db_path)) as conn:
            archived = conn.execute(
                f"SELECT {_ARCHIVE_COLUMNS} FROM archives "
                f"WHERE guild_id = ? AND original_insult_id IN ({placeholders})",
                [guild_id, *wanted],
            ).fetchall()
            active = conn.execute(
                f"SELECT {_INSULT_COLUMNS} FROM insults WHERE guild_id = ? AND id IN ({placeholders})",
                [guild_id, *wanted],
            ).fetchall()
        found: Dict[int, Union[InsultRecord, ArchiveRecord]] = {}
        for row in archived:
            record = _archive_from_row(row)
            found[record.original_insult_id] = record
        for row in active:
            insult = _insult_from_row(row)
            found[insult.id] = insult
        return found

    def count_archives(
        self,
        guild_id: str,
        *,
        user_id: Optional[str] = None,
        role: Optional[ArchiveRole] = None,
    ) -> int:
        clause, params = _archive_filter(guild_id, user_id, role)
        with closing(sqlite3.connect(self._db_path)) as conn:
            row = conn.execute(f"SELECT COUNT(*) FROM archives {clause}", params).fetchone()
        return int(row[0]) if row else 0

    def list_archives(
        self,
        guild_id: str,
        *,
        offset: int,
        limit: int,
        user_id: Optional[str] = None,
        role: Optional[ArchiveRole] = None,
    ) -> List[ArchiveRecord]:
        clause, params = _archive_filter(guild_id, user_id, role)
        with closing(sqlite3.connect(self._db_path)) as conn:
            rows = conn.execute(
                f"SELECT {_ARCHIVE_COLUMNS} FROM archives {clause} "
                "ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
                [*params, limit, offset],
            ).fetchall()
        return [_archive_from_row(row) for row in rows]


__all__ = ["BlameState"]
