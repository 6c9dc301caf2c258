"""Persistence helpers for user-adjustable settings."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path

from ..allocation import InvalidStrategyError, parse_strategy
from ..config import AppConfig


LOGGER = logging.getLogger(__name__)


@dataclass
class LibrarySettings:
    """Container for customisable options."""

    default_strategy: str = "round_robin"


class SettingsStore:
    """Load and store :class:`LibrarySettings` next to the library data."""

    def __init__(self, config: AppConfig) -> None:
        self._config = config
        self._path = config.settings_file

    @property
    def path(self) -> Path:
        return self._path

    def _defaults(self) -> LibrarySettings:
        try:
            strategy = parse_strategy(self._config.default_strategy)
        except InvalidStrategyError:
            LOGGER.warning(
                "Configured default strategy '%s' is not supported; using round_robin",
                self._config.default_strategy,
            )
            strategy = parse_strategy(None)
        return LibrarySettings(default_strategy=strategy.value)

    def load(self) -> LibrarySettings:
        settings = self._defaults()
        if not self._path.exists():
            return settings

        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            LOGGER.warning("Ignoring unreadable settings file %s", self._path)
            return settings
        if not isinstance(payload, dict):
            return settings

        for field, value in payload.items():
            if hasattr(settings, field):
                setattr(settings, field, value)

        try:
            settings.default_strategy = parse_strategy(settings.default_strategy).value
        except InvalidStrategyError:
            LOGGER.warning(
                "Stored default strategy %r is not supported; using %s",
                settings.default_strategy,
                self._defaults().default_strategy,
            )
            settings.default_strategy = self._defaults().default_strategy
        return settings

    def save(self, settings: LibrarySettings) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        data = asdict(settings)
        self._path.write_text(json.dumps(data, indent=2), encoding="utf-8")


__all__ = ["LibrarySettings", "SettingsStore"]
