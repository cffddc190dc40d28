"""Core data models for the blame bot."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class ArchiveRole(str, Enum):
    INSULTED = "insulted"
    BLAMER = "blamer"
    UNBLAMER = "unblamer"


@dataclass(frozen=True)
class InsultRecord:
    id: int
    guild_id: str
    user_id: str
    blamer_id: str
    insult: str
    note: Optional[str]
    created_at: datetime


@dataclass(frozen=True)
class ArchiveRecord:
    id: int
    original_insult_id: int
    guild_id: str
    user_id: str
    blamer_id: str
    insult: str
    note: Optional[str]
    created_at: datetime
    unblamer_id: str
    unblamed_at: datetime


@dataclass(frozen=True)
class LeaderboardEntry:
    user_id: str
    points: int
    username: Optional[str] = None


@dataclass(frozen=True)
class InsultStat:
    insult: str
    count: int


__all__ = [
    "ArchiveRecord",
    "ArchiveRole",
    "InsultRecord",
    "InsultStat",
    "LeaderboardEntry",
]
