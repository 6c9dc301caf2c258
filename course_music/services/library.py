"""Course and song management on top of the registry store."""

from __future__ import annotations

import logging
import os
import random
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Union

from ..allocation import (
    SLOTS_PER_COURSE,
    AllocationAnalysis,
    AllocationPlan,
    AssignedItem,
    CommittedSlot,
    CourseRegistry,
    InvalidSlotError,
    RegistryError,
    Strategy,
    analyze_allocation,
    plan_allocation,
)
from ..config import AppConfig
from ..ui.overview import collect_overview
from .events import emit_file_event
from .metadata import read_audio_metadata
from .naming import build_playlist_name
from .store import RegistryStore


LOGGER = logging.getLogger(__name__)


class EmptySlotError(RegistryError):
    """Raised when removing a song from a slot that holds none."""


class SongNotFoundError(LookupError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Song not found: {name}")
        self.name = name


@dataclass
class SongMatch:
    course: str
    item: AssignedItem

    def to_dict(self) -> Dict[str, Any]:
        return {"exists": True, "course": self.course, "info": self.item.to_mapping()}


class CourseLibrary:
    """High level operations used by the web layer and the CLI."""

    def __init__(
        self,
        config: AppConfig,
        store: RegistryStore,
        *,
        metadata_reader: Callable[..., Dict[str, Any]] = read_audio_metadata,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._config = config
        self._store = store
        self._metadata_reader = metadata_reader
        self._rng = rng

    @property
    def store(self) -> RegistryStore:
        return self._store

    def load(self) -> CourseRegistry:
        return self._store.load()

    # ------------------------------------------------------------------
    # Courses
    # ------------------------------------------------------------------
    def add_course(self, name: str) -> bool:
        """Register *name*; return ``False`` when it already exists.

        Keys whose song file names would collide with another course's files
        are rejected with :class:`RegistryError`.
        """

        registry = self._store.load()
        key = name.strip()
        if key and key not in registry:
            self._check_name_clash(registry, key)
        created = registry.add_course(name)
        if created:
            self._store.save(registry)
            LOGGER.info("Added course '%s'", key)
        return created

    def delete_course(self, course: str) -> List[str]:
        """Remove *course*, its recording and the song files of its slots.

        The recording has to go as well, otherwise the next load would
        discover it again and restore the course with empty slots.
        """

        registry = self._store.load()
        record = registry.remove_course(course)
        removed: List[str] = []
        for state in record.slots:
            if isinstance(state, CommittedSlot) and self._delete_library_file(state.item):
                removed.append(state.item)
        if self._delete_library_file(record.key):
            removed.append(record.key)
        self._store.save(registry)
        LOGGER.info("Deleted course '%s' (%s file(s) removed)", course, len(removed))
        return removed

    # ------------------------------------------------------------------
    # Songs
    # ------------------------------------------------------------------
    def remove_song(self, course: str, slot: int) -> str:
        """Empty *slot* of *course*, delete its file and return the file name."""

        if not 0 <= slot < SLOTS_PER_COURSE:
            raise InvalidSlotError(f"Slot must be between 0 and {SLOTS_PER_COURSE - 1}: {slot}")
        registry = self._store.load()
        state = registry.require(course).slots[slot]
        if not isinstance(state, CommittedSlot):
            raise EmptySlotError(f"Slot {slot} of course '{course}' is empty")
        self._delete_library_file(state.item)
        registry.release(course, slot)
        self._store.save(registry)
        return state.item

    def remove_song_by_name(self, friendly_name: str) -> SongMatch:
        """Remove the first song whose friendly name equals *friendly_name*."""

        registry = self._store.load()
        for course in registry:
            for item in course.assigned_items:
                if item.friendly_name != friendly_name:
                    continue
                self._delete_library_file(item.playlist_name)
                registry.release(course.key, item.slot)
                self._store.save(registry)
                return SongMatch(course=course.key, item=item)
        raise SongNotFoundError(friendly_name)

    def find_song(self, name: str) -> Optional[SongMatch]:
        """Case-insensitive substring search over friendly and original names."""

        needle = name.strip().lower()
        if not needle:
            return None
        for course in self._store.load():
            for item in course.assigned_items:
                if needle in item.friendly_name.lower() or needle in item.original_name.lower():
                    return SongMatch(course=course.key, item=item)
        return None

    def list_songs(self) -> List[Dict[str, Any]]:
        songs: List[Dict[str, Any]] = []
        for course in self._store.load():
            for item in course.assigned_items:
                songs.append({**item.to_mapping(), "course": course.key})
        return songs

    def list_courses(self, *, include_metadata: bool = True) -> Dict[str, Dict[str, Any]]:
        """Return every course with its slots, records and audio tags."""

        registry = self._store.load()
        library_root = self._config.library_root
        result: Dict[str, Dict[str, Any]] = {}
        for course in registry:
            entry: Dict[str, Any] = {
                "songs": course.song_names(),
                "metadata": course.metadata,
                "renamed_files": [item.to_mapping() for item in course.assigned_items],
                "course_metadata": None,
                "songs_metadata": [None] * SLOTS_PER_COURSE,
            }
            if include_metadata:
                course_path = library_root / course.key
                if course_path.is_file():
                    entry["course_metadata"] = self._metadata_reader(course_path)
                for index, name in enumerate(entry["songs"]):
                    if name and (library_root / name).is_file():
                        entry["songs_metadata"][index] = self._metadata_reader(library_root / name)
            result[course.key] = entry
        return result

    def stats(self) -> Dict[str, Any]:
        snapshot = collect_overview(self._store.load(), self._config.library_root)
        return {
            "total_courses": snapshot.course_count,
            "courses_with_songs": snapshot.courses_with_songs,
            "total_songs": snapshot.song_count,
            "empty_slots": snapshot.empty_slots,
            "missing_files": list(snapshot.missing_files),
            "full_courses": snapshot.status_totals["full"],
            "partial_courses": snapshot.status_totals["partial"],
            "empty_courses": snapshot.status_totals["empty"],
        }

    def batch_rename(self) -> List[Dict[str, str]]:
        """Rename committed song files that drifted from their playlist names."""

        registry = self._store.load()
        library_root = self._config.library_root
        renamed: List[Dict[str, str]] = []
        for course in registry:
            for index, state in enumerate(course.slots):
                if not isinstance(state, CommittedSlot):
                    continue
                target = build_playlist_name(course.key, index)
                if target == state.item:
                    continue
                source_path = library_root / state.item
                if not source_path.is_file():
                    LOGGER.warning("Cannot rename missing song file %s", source_path)
                    continue
                os.replace(source_path, library_root / target)
                registry.rename_item(course.key, index, target)
                renamed.append({"from": state.item, "to": target})
                emit_file_event("Renamed song file", payload={"from": state.item, "to": target})
        if renamed:
            self._store.save(registry)
        return renamed

    # ------------------------------------------------------------------
    # Allocation previews
    # ------------------------------------------------------------------
    def preview(self, count: int, strategy: Union[str, Strategy, None] = None) -> AllocationPlan:
        return plan_allocation(self._store.load(), count, strategy, rng=self._rng)

    def analyze(self, count: int) -> AllocationAnalysis:
        return analyze_allocation(self._store.load(), count, rng=self._rng)

    @staticmethod
    def _check_name_clash(registry: CourseRegistry, key: str) -> None:
        names = {key, *(build_playlist_name(key, slot) for slot in range(SLOTS_PER_COURSE))}
        for course in registry:
            taken = {course.key, *(build_playlist_name(course.key, slot) for slot in range(SLOTS_PER_COURSE))}
            clash = names & taken
            if clash:
                raise RegistryError(
                    f"Course '{key}' would share the file name {sorted(clash)[0]} with course '{course.key}'"
                )

    def _delete_library_file(self, name: str) -> bool:
        library_root = self._config.library_root
        path = library_root / name
        if path.resolve().parent != library_root.resolve():
            LOGGER.warning("Refusing to delete %s outside the library root", path)
            return False
        if not path.is_file():
            LOGGER.debug("Library file %s was already missing", path)
            return False
        path.unlink()
        emit_file_event("Deleted library file", payload={"file": name})
        return True


__all__ = ["CourseLibrary", "EmptySlotError", "SongMatch", "SongNotFoundError"]
