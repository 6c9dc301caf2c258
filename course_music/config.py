"""Configuration loading utilities for the Course Music Manager."""

from __future__ import annotations

import contextlib
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Tuple


LOGGER = logging.getLogger(__name__)


_PERMISSION_SENTINEL = ".course_music_write_check"
_DEFAULT_DATA_FILE = "music-map.json"
_DEFAULT_MAX_BATCH_FILES = 20
_DEFAULT_EXTENSIONS: Tuple[str, ...] = (".mp3",)


def _ensure_writable_directory(path: Path) -> bool:
    """Return ``True`` if *path* can be created and written to."""

    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError:
        return False

    probe = path / _PERMISSION_SENTINEL
    try:
        probe.write_text("ok", encoding="utf-8")
    except OSError:
        return False
    finally:
        with contextlib.suppress(OSError):
            probe.unlink()

    return True


def _select_writable_directory(
    preferred: Path,
    *,
    label: str,
    fallbacks: Iterable[Path] = (),
) -> Tuple[Path, bool]:
    """Return ``preferred`` when writable, otherwise the first usable fallback.

    The boolean in the result tells whether a fallback was chosen. When no
    candidate works the preferred path is returned unchanged so that the
    bootstrapper can report the problem.
    """

    preferred = preferred.resolve()
    if _ensure_writable_directory(preferred):
        return preferred, False

    for fallback in fallbacks:
        candidate = fallback.resolve()
        if candidate == preferred:
            continue
        if _ensure_writable_directory(candidate):
            LOGGER.warning(
                "Preferred %s directory '%s' is not writable; using fallback '%s'.",
                label,
                preferred,
                candidate,
            )
            return candidate, True

    LOGGER.warning(
        "%s directory '%s' is not writable and no fallback is available.",
        label.capitalize(),
        preferred,
    )
    return preferred, False


def _normalize_extensions(values: Any) -> Tuple[str, ...]:
    if not values:
        return _DEFAULT_EXTENSIONS
    if isinstance(values, str):
        values = [values]
    normalized = []
    for value in values:
        text = str(value).strip().lower()
        if not text:
            continue
        normalized.append(text if text.startswith(".") else f".{text}")
    return tuple(normalized) or _DEFAULT_EXTENSIONS


@dataclass(frozen=True)
class AppConfig:
    """Runtime paths and limits for the application."""

    library_root: Path
    data_file: Path
    max_batch_files: int = _DEFAULT_MAX_BATCH_FILES
    allowed_extensions: Tuple[str, ...] = _DEFAULT_EXTENSIONS
    default_strategy: str = "round_robin"

    @property
    def staging_root(self) -> Path:
        """Directory holding uploads that have not been placed yet."""

        return (self.library_root / "_incoming").resolve()

    @property
    def settings_file(self) -> Path:
        return (self.library_root / "settings.json").resolve()

    @classmethod
    def from_mapping(cls, mapping: Dict[str, Any], *, base_path: Path) -> "AppConfig":
        preferred_library = (base_path / mapping["library_root"]).resolve()
        library_root, fallback_used = _select_writable_directory(
            preferred_library,
            label="library",
            fallbacks=(Path.home() / ".course_music" / "library",),
        )

        data_file = (base_path / mapping.get("data_file", _DEFAULT_DATA_FILE)).resolve()
        if fallback_used:
            try:
                relative_data = data_file.relative_to(preferred_library)
            except ValueError:
                relative_data = None
            if relative_data is not None:
                relocated = (library_root / relative_data).resolve()
                LOGGER.warning(
                    "Preferred data file location '%s' is not writable; using fallback '%s'.",
                    data_file,
                    relocated,
                )
                data_file = relocated

        if not _ensure_writable_directory(data_file.parent):
            relocated = (library_root / data_file.name).resolve()
            if relocated != data_file:
                LOGGER.warning(
                    "Data file directory '%s' is not writable; using '%s'.",
                    data_file.parent,
                    relocated,
                )
                data_file = relocated

        try:
            max_batch_files = int(mapping.get("max_batch_files", _DEFAULT_MAX_BATCH_FILES))
        except (TypeError, ValueError):
            max_batch_files = _DEFAULT_MAX_BATCH_FILES

        return cls(
            library_root=library_root,
            data_file=data_file,
            max_batch_files=max(1, max_batch_files),
            allowed_extensions=_normalize_extensions(mapping.get("allowed_extensions")),
            default_strategy=str(mapping.get("default_strategy") or "round_robin"),
        )


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load the application configuration from ``config/default.json`` by default."""

    base_path = Path(__file__).resolve().parent.parent
    if config_path is None:
        config_path = base_path / "config" / "default.json"

    with config_path.open("r", encoding="utf-8") as config_file:
        raw_config = json.load(config_file)

    return AppConfig.from_mapping(raw_config, base_path=base_path)


__all__ = ["AppConfig", "load_config"]
