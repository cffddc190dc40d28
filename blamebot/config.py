"""Configuration loading utilities for the blame bot."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

import yaml


DEFAULT_SETTINGS_PATH = Path(__file__).parent / "data" / "settings.yaml"


@dataclass(frozen=True)
class Settings:
    """Typed view over the settings YAML file."""

    page_size: int
    custom_id_max_length: int
    ephemeral_views: Dict[str, bool]
    db_max_retries: int
    db_retry_delay: float
    db_query_timeout: float
    response_deadline: float
    processed_capacity: int
    processed_retain: int
    max_insult_length: int
    max_insult_words: int
    max_note_length: int
    max_detail_ids: int = 10
    max_revert_ids: int = 50

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Settings":
        pagination = data.get("pagination", {})
        database = data.get("database", {})
        interactions = data.get("interactions", {})
        blame = data.get("blame", {})
        capacity = int(interactions.get("processed_capacity", 1000))
        retain = int(interactions.get("processed_retain", 500))
        if not 0 < retain < capacity:
            raise ValueError(
                f"processed_retain ({retain}) must be positive and below processed_capacity ({capacity})"
            )
        return Settings(
            page_size=max(1, int(pagination.get("page_size", 10))),
            custom_id_max_length=int(pagination.get("custom_id_max_length", 100)),
            ephemeral_views={k: bool(v) for k, v in (pagination.get("ephemeral") or {}).items()},
            db_max_retries=max(1, int(database.get("max_retries", 3))),
            db_retry_delay=float(database.get("retry_delay_seconds", 1.0)),
            db_query_timeout=float(database.get("query_timeout_seconds", 30)),
            response_deadline=float(interactions.get("response_deadline_seconds", 4.0)),
            processed_capacity=capacity,
            processed_retain=retain,
            max_insult_length=int(blame.get("max_insult_length", 100)),
            max_insult_words=int(blame.get("max_insult_words", 3)),
            max_note_length=int(blame.get("max_note_length", 500)),
            max_detail_ids=max(1, int(blame.get("max_detail_ids", 10))),
            max_revert_ids=max(1, int(blame.get("max_revert_ids", 50))),
        )

    def is_ephemeral(self, command_key: str) -> bool:
        return self.ephemeral_views.get(command_key, True)


class SettingsLoader:
    """Loads and caches settings from YAML configuration files."""

    def __init__(self, path: Path | None = None) -> None:
        env_path = os.environ.get("BLAMEBOT_SETTINGS")
        self._path = path or (Path(env_path) if env_path else DEFAULT_SETTINGS_PATH)
        self._cache: Settings | None = None

    @property
    def path(self) -> Path:
        return self._path

    def load(self, force: bool = False) -> Settings:
        if self._cache is not None and not force:
            return self._cache
        with self._path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
        self._cache = Settings.from_dict(data)
        return self._cache


def get_settings() -> Settings:
    """Convenience accessor for default settings."""

    return SettingsLoader().load()


__all__ = ["Settings", "SettingsLoader", "get_settings"]
