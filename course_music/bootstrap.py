"""Bootstrap logic that prepares the library directory and the data file."""

from __future__ import annotations

import json
import logging
import shutil
from pathlib import Path

from . import config as config_module
from .config import AppConfig, load_config

LOGGER = logging.getLogger(__name__)


class BootstrapError(RuntimeError):
    """Raised when initialization cannot be completed."""


class Bootstrapper:
    """High level object orchestrating initialization steps."""

    def __init__(self, config: AppConfig) -> None:
        self._config = config

    @property
    def config(self) -> AppConfig:
        return self._config

    def initialize(self, *, clear_staging: bool = True) -> None:
        """Run all bootstrap tasks.

        Only the server clears the staging directory; other commands may run
        while uploads are in flight.
        """

        LOGGER.debug("Starting bootstrap sequence")
        self._ensure_directories(clear_staging=clear_staging)
        self._ensure_data_file()
        LOGGER.info("Bootstrap completed successfully")

    def _ensure_directories(self, *, clear_staging: bool) -> None:
        library_root = self._config.library_root
        if not config_module._ensure_writable_directory(library_root):
            raise BootstrapError(f"Library storage directory '{library_root}' is not writable")
        LOGGER.debug("Ensured directory exists: %s", library_root)

        staging_root = self._config.staging_root
        staging_root.mkdir(parents=True, exist_ok=True)
        if not clear_staging:
            return
        for child in staging_root.iterdir():
            try:
                if child.is_dir():
                    shutil.rmtree(child)
                else:
                    child.unlink()
            except OSError as error:  # pragma: no cover - best effort cleanup
                LOGGER.warning("Could not remove staged upload %s: %s", child, error)
        LOGGER.debug("Cleared staging directory: %s", staging_root)

    def _ensure_data_file(self) -> None:
        data_file: Path = self._config.data_file
        if data_file.exists():
            LOGGER.debug("Using existing data file at %s", data_file)
            return
        data_file.parent.mkdir(parents=True, exist_ok=True)
        data_file.write_text(json.dumps({}, indent=2), encoding="utf-8")
        LOGGER.info("Created empty data file at %s", data_file)


def initialize_app(config_path: Path | None = None, *, clear_staging: bool = True) -> AppConfig:
    """Convenience helper that loads configuration and runs initialization."""

    config = load_config(config_path=config_path)
    bootstrapper = Bootstrapper(config)
    bootstrapper.initialize(clear_staging=clear_staging)
    return config


__all__ = ["BootstrapError", "Bootstrapper", "initialize_app"]
