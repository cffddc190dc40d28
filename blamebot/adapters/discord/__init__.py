"""Discord adapter: embeds, interaction replies and button pagination."""

from __future__ import annotations

from .paginator import PaginationManager

__all__ = ["PaginationManager"]
