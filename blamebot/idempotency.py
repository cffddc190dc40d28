"""Duplicate and stale interaction suppression.

Discord may deliver the same interaction more than once (gateway resumes,
reconnects, hot reloads), and an interaction older than the response deadline
can no longer be acknowledged. :class:`InteractionGuard` is consulted once per
inbound event before any handler runs and rejects both cases.

The record of processed ids lives for the lifetime of the process only. Once it
grows past ``capacity`` it is cut back to the ``retain`` most recently admitted
ids; suppression for anything older lapses, which is harmless because those
events are already past the deadline.
"""
from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Dict, Optional

from .config import get_settings

logger = logging.getLogger(__name__)


class InteractionGuard:
    """Process-local record of admitted interaction ids."""

    def __init__(
        self,
        *,
        response_deadline: float = 4.0,
        capacity: int = 1000,
        retain: int = 500,
    ) -> None:
        if not 0 < retain < capacity:
            raise ValueError("retain must be positive and smaller than capacity")
        self.response_deadline = response_deadline
        self.capacity = capacity
        self.retain = retain
        # dict preserves insertion order, so the tail is the most recent ids.
        self._seen: Dict[str, None] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)

    def __contains__(self, event_id: object) -> bool:
        with self._lock:
            return str(event_id) in self._seen

    def admit(self, event_id: str | int, event_age: float) -> bool:
        """Record ``event_id`` and return True unless it is a duplicate or expired."""

        key = str(event_id)
        if event_age > self.response_deadline:
            logger.debug("Rejecting expired interaction %s (age %.2fs)", key, event_age)
            return False
        with self._lock:
            if key in self._seen:
                logger.debug("Rejecting duplicate interaction %s", key)
                return False
            self._seen[key] = None
            if len(self._seen) > self.capacity:
                recent = list(self._seen)[-self.retain:]
                self._seen = dict.fromkeys(recent)
                logger.debug("Trimmed processed interaction ids to %d", self.retain)
        return True

    def clear(self) -> None:
        with self._lock:
            self._seen.clear()


def interaction_age(interaction, now: Optional[datetime] = None) -> float:
    """Seconds elapsed since Discord created ``interaction``."""

    created_at = getattr(interaction, "created_at", None)
    if created_at is None:
        return 0.0
    now = now or datetime.now(timezone.utc)
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return max(0.0, (now - created_at).total_seconds())


_guard: Optional[InteractionGuard] = None


def get_interaction_guard() -> InteractionGuard:
    """Get or create the process-wide interaction guard."""
    global _guard
    if _guard is None:
        settings = get_settings()
        _guard = InteractionGuard(
            response_deadline=settings.response_deadline,
            capacity=settings.processed_capacity,
            retain=settings.processed_retain,
        )
    return _guard


__all__ = ["InteractionGuard", "get_interaction_guard", "interaction_age"]
