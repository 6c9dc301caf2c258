"""Descriptive tag extraction for course and song recordings."""

from __future__ import annotations

import logging
from pathlib import Path, PurePath
from typing import Any, Dict, Optional

from mutagen import File as MutagenFile
from mutagen import MutagenError


LOGGER = logging.getLogger(__name__)

UNKNOWN_ARTIST = "Unknown Artist"
UNKNOWN_ALBUM = "Unknown Album"
UNKNOWN_YEAR = "Unknown Year"
UNKNOWN_GENRE = "Unknown Genre"


def _first_tag(tags: Any, key: str) -> Optional[str]:
    if tags is None:
        return None
    try:
        values = tags.get(key)
    except (KeyError, ValueError):
        return None
    if not values:
        return None
    if isinstance(values, (list, tuple)):
        text = str(values[0]).strip()
    else:
        text = str(values).strip()
    return text or None


def fallback_metadata(title: str) -> Dict[str, Any]:
    return {
        "title": title,
        "artist": UNKNOWN_ARTIST,
        "album": UNKNOWN_ALBUM,
        "year": UNKNOWN_YEAR,
        "genre": UNKNOWN_GENRE,
        "duration": 0,
    }


def read_audio_metadata(path: Path, *, original_name: Optional[str] = None) -> Dict[str, Any]:
    """Return title, artist, album, year, genre and duration for *path*.

    Missing tags are replaced by placeholder labels. The title falls back to
    the stem of *original_name* (or of *path*), so staged uploads keep the
    name the user gave them.
    """

    default_title = PurePath(original_name).stem if original_name else path.stem
    try:
        audio = MutagenFile(str(path), easy=True)
    except (MutagenError, OSError) as error:
        LOGGER.debug("mutagen could not read %s: %s", path, error)
        return fallback_metadata(default_title)
    if audio is None:
        LOGGER.debug("mutagen did not recognise %s", path)
        return fallback_metadata(default_title)

    tags = getattr(audio, "tags", None)
    genres = []
    if tags is not None:
        genres = [str(value).strip() for value in (tags.get("genre") or []) if str(value).strip()]
    date = _first_tag(tags, "date")
    info = getattr(audio, "info", None)
    length = getattr(info, "length", None) if info is not None else None

    return {
        "title": _first_tag(tags, "title") or default_title,
        "artist": _first_tag(tags, "artist") or UNKNOWN_ARTIST,
        "album": _first_tag(tags, "album") or UNKNOWN_ALBUM,
        "year": date[:4] if date else UNKNOWN_YEAR,
        "genre": ", ".join(genres) if genres else UNKNOWN_GENRE,
        "duration": int(round(float(length))) if length else 0,
    }


__all__ = ["fallback_metadata", "read_audio_metadata"]
