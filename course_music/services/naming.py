"""Utility helpers for consistent song and course file naming."""

from __future__ import annotations

from datetime import datetime
import re
import uuid
from pathlib import PurePath
from typing import Optional

__all__ = [
    "COURSE_FILE_PATTERN",
    "SLOT_SUFFIXES",
    "build_playlist_name",
    "build_staged_name",
    "course_date_label",
    "is_course_file",
]

COURSE_FILE_PATTERN = re.compile(r"^\d{8}(-\d+)?\.mp3$")
SLOT_SUFFIXES = ("A", "B")
_COURSE_DATE_PATTERN = re.compile(r"(\d{4})(\d{2})(\d{2})")
_DEFAULT_EXTENSION = ".mp3"


def is_course_file(name: str) -> bool:
    """Return ``True`` for date-coded course recordings such as ``20170221-2.mp3``."""

    return bool(COURSE_FILE_PATTERN.match(name))


def build_playlist_name(course: str, slot: int) -> str:
    """Return the player-friendly name for the song in *slot* of *course*.

    ``20170221.mp3`` yields ``20170221-A.mp3`` and ``20170221-B.mp3`` so that
    players sorting by name play the course before its songs.
    """

    if not 0 <= slot < len(SLOT_SUFFIXES):
        raise ValueError(f"Slot index out of range: {slot}")
    path = PurePath(course)
    extension = path.suffix.lower() or _DEFAULT_EXTENSION
    stem = path.stem if path.suffix else path.name
    return f"{stem}-{SLOT_SUFFIXES[slot]}{extension}"


def build_staged_name(original_name: Optional[str]) -> str:
    """Return a unique temporary name for an upload, keeping its extension."""

    suffix = PurePath(original_name or "").suffix.lower()
    stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    return f"upload-{stamp}-{uuid.uuid4().hex[:12]}{suffix}"


def course_date_label(course: str) -> str:
    """Return ``YYYY-MM-DD`` for date-coded course keys, else the key itself."""

    match = _COURSE_DATE_PATTERN.search(course)
    if not match:
        return course
    return "-".join(match.groups())
