"""In-memory model of courses and their song slots."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Union


LOGGER = logging.getLogger(__name__)

SLOTS_PER_COURSE = 2


class RegistryError(RuntimeError):
    """Raised when the registry would enter an invalid state."""


class CourseNotFoundError(RegistryError):
    """Raised when a course key is not present in the registry."""

    def __init__(self, course: str) -> None:
        super().__init__(f"Course not found: {course}")
        self.course = course


class InvalidSlotError(RegistryError):
    """Raised for slot indices outside ``range(SLOTS_PER_COURSE)``."""


class SlotOccupiedError(RegistryError):
    """Raised when committing into a slot that already holds a song."""


@dataclass(frozen=True)
class EmptySlot:
    def __repr__(self) -> str:
        return "EMPTY"


@dataclass(frozen=True)
class ProvisionalSlot:
    """Slot reserved by a simulated plan; never persisted."""

    def __repr__(self) -> str:
        return "PROVISIONAL"


@dataclass(frozen=True)
class CommittedSlot:
    item: str


SlotState = Union[EmptySlot, ProvisionalSlot, CommittedSlot]

EMPTY = EmptySlot()
PROVISIONAL = ProvisionalSlot()


@dataclass
class AssignedItem:
    """Record describing a song that occupies one slot of a course."""

    original_name: str
    slot: int
    playlist_name: str
    friendly_name: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)
    added_time: str = ""

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "AssignedItem":
        raw_metadata = mapping.get("metadata")
        return cls(
            original_name=str(mapping.get("original_name") or ""),
            slot=int(mapping.get("slot", -1)),
            playlist_name=str(mapping.get("playlist_name") or ""),
            friendly_name=str(mapping.get("friendly_name") or ""),
            metadata=dict(raw_metadata) if isinstance(raw_metadata, Mapping) else {},
            added_time=str(mapping.get("added_time") or ""),
        )

    def to_mapping(self) -> Dict[str, Any]:
        return {
            "original_name": self.original_name,
            "friendly_name": self.friendly_name,
            "playlist_name": self.playlist_name,
            "slot": self.slot,
            "metadata": dict(self.metadata),
            "added_time": self.added_time,
        }


def _validate_slot(slot: int) -> int:
    if not isinstance(slot, int) or isinstance(slot, bool) or not 0 <= slot < SLOTS_PER_COURSE:
        raise InvalidSlotError(f"Slot must be between 0 and {SLOTS_PER_COURSE - 1}: {slot!r}")
    return slot


@dataclass
class Course:
    key: str
    slots: List[SlotState] = field(default_factory=lambda: [EMPTY] * SLOTS_PER_COURSE)
    assigned_items: List[AssignedItem] = field(default_factory=list)
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self) -> None:
        if len(self.slots) != SLOTS_PER_COURSE:
            raise RegistryError(
                f"Course '{self.key}' must have exactly {SLOTS_PER_COURSE} slots, got {len(self.slots)}"
            )

    @property
    def occupied_count(self) -> int:
        """Committed and provisional slots both count as occupied."""

        return sum(1 for slot in self.slots if not isinstance(slot, EmptySlot))

    @property
    def committed_count(self) -> int:
        return sum(1 for slot in self.slots if isinstance(slot, CommittedSlot))

    @property
    def has_capacity(self) -> bool:
        return self.first_empty_slot() is not None

    def empty_slots(self) -> List[int]:
        return [index for index, slot in enumerate(self.slots) if isinstance(slot, EmptySlot)]

    def first_empty_slot(self) -> Optional[int]:
        for index, slot in enumerate(self.slots):
            if isinstance(slot, EmptySlot):
                return index
        return None

    def item_for_slot(self, slot: int) -> Optional[AssignedItem]:
        for item in self.assigned_items:
            if item.slot == slot:
                return item
        return None

    def song_names(self) -> List[Optional[str]]:
        names: List[Optional[str]] = []
        for slot in self.slots:
            if isinstance(slot, ProvisionalSlot):
                raise RegistryError(f"Course '{self.key}' holds a provisional slot")
            names.append(slot.item if isinstance(slot, CommittedSlot) else None)
        return names


class CourseRegistry:
    """Collection of courses keyed by their identifier.

    Iteration always follows the lexicographic order of course keys, which is
    the order every allocation strategy relies on for tie-breaking.
    """

    def __init__(self, courses: Optional[Iterable[Course]] = None) -> None:
        self._courses: Dict[str, Course] = {}
        for course in courses or ():
            if course.key in self._courses:
                raise RegistryError(f"Duplicate course key: {course.key}")
            self._courses[course.key] = course

    def __contains__(self, key: object) -> bool:
        return key in self._courses

    def __len__(self) -> int:
        return len(self._courses)

    def __iter__(self) -> Iterator[Course]:
        for key in self.keys():
            yield self._courses[key]

    def keys(self) -> List[str]:
        return sorted(self._courses)

    def get(self, key: str) -> Optional[Course]:
        return self._courses.get(key)

    def require(self, key: str) -> Course:
        course = self._courses.get(key)
        if course is None:
            raise CourseNotFoundError(key)
        return course

    def courses_with_capacity(self) -> List[Course]:
        return [course for course in self if course.has_capacity]

    def total_empty_slots(self) -> int:
        return sum(len(course.empty_slots()) for course in self._courses.values())

    def total_committed(self) -> int:
        return sum(course.committed_count for course in self._courses.values())

    # ------------------------------------------------------------------
    # Mutation helpers
    # ------------------------------------------------------------------
    def add_course(self, key: str) -> bool:
        """Register *key* with two empty slots; return ``False`` if it exists."""

        key = key.strip()
        if not key:
            raise RegistryError("Course key must not be empty")
        if key in self._courses:
            return False
        self._courses[key] = Course(key=key)
        LOGGER.debug("Registered course '%s'", key)
        return True

    def remove_course(self, key: str) -> Course:
        course = self.require(key)
        del self._courses[key]
        LOGGER.debug("Removed course '%s'", key)
        return course

    def reserve(self, key: str, slot: int) -> None:
        """Mark an empty slot as provisionally filled."""

        course = self.require(key)
        _validate_slot(slot)
        if not isinstance(course.slots[slot], EmptySlot):
            raise SlotOccupiedError(f"Slot {slot} of course '{key}' is not empty")
        course.slots[slot] = PROVISIONAL

    def commit(self, key: str, slot: int, item: AssignedItem) -> None:
        course = self.require(key)
        _validate_slot(slot)
        if isinstance(course.slots[slot], CommittedSlot):
            raise SlotOccupiedError(f"Slot {slot} of course '{key}' already holds a song")
        if item.slot != slot:
            raise RegistryError(f"Assignment record targets slot {item.slot}, expected {slot}")
        course.slots[slot] = CommittedSlot(item.playlist_name)
        course.assigned_items.append(item)

    def release(self, key: str, slot: int) -> Optional[AssignedItem]:
        """Empty *slot* and return the record that occupied it, if any."""

        course = self.require(key)
        _validate_slot(slot)
        course.slots[slot] = EMPTY
        record = course.item_for_slot(slot)
        course.assigned_items = [item for item in course.assigned_items if item.slot != slot]
        return record

    def rename_item(self, key: str, slot: int, playlist_name: str) -> None:
        course = self.require(key)
        _validate_slot(slot)
        if not isinstance(course.slots[slot], CommittedSlot):
            raise RegistryError(f"Slot {slot} of course '{key}' holds no song")
        course.slots[slot] = CommittedSlot(playlist_name)
        record = course.item_for_slot(slot)
        if record is not None:
            record.playlist_name = playlist_name

    def copy(self) -> "CourseRegistry":
        return CourseRegistry(copy.deepcopy(list(self._courses.values())))

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------
    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "CourseRegistry":
        """Build a registry from the persisted JSON structure.

        Two layouts are understood: the current object form
        ``{"songs": [...], "metadata": ..., "renamed_files": [...]}`` (also
        accepted with ``slots``/``assignedItems`` keys) and the legacy bare
        list ``[song, song]``.

        Entries that cannot be interpreted are logged and skipped so a single
        damaged course never hides the rest of the library.
        """

        courses: List[Course] = []
        for key, value in mapping.items():
            try:
                courses.append(_course_from_value(str(key), value))
            except RegistryError as error:
                LOGGER.error("Skipping course entry '%s': %s", key, error)
        return cls(courses)

    def to_mapping(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        for course in self:
            payload[course.key] = {
                "songs": course.song_names(),
                "metadata": course.metadata,
                "renamed_files": [item.to_mapping() for item in course.assigned_items],
            }
        return payload


def _course_from_value(key: str, value: Any) -> Course:
    if isinstance(value, list):
        raw_songs: Any = value
        raw_items: Any = []
        metadata = None
    elif isinstance(value, Mapping):
        raw_songs = value.get("songs", value.get("slots"))
        raw_items = value.get("renamed_files", value.get("assignedItems")) or []
        metadata = value.get("metadata")
    else:
        LOGGER.warning(
            "Course '%s' holds an unsupported %s entry; treating its slots as empty",
            key,
            type(value).__name__,
        )
        raw_songs, raw_items, metadata = [], [], None

    if not isinstance(raw_songs, list):
        LOGGER.warning("Course '%s' lists songs as %s; treating its slots as empty", key, type(raw_songs).__name__)
        raw_songs = []
    if not isinstance(raw_items, list):
        raw_items = []

    songs = list(raw_songs)
    overflow = songs[SLOTS_PER_COURSE:]
    if any(overflow):
        raise RegistryError(f"Course '{key}' lists more than {SLOTS_PER_COURSE} songs")
    songs = songs[:SLOTS_PER_COURSE]
    songs.extend([None] * (SLOTS_PER_COURSE - len(songs)))

    slots: List[SlotState] = [CommittedSlot(str(song)) if song else EMPTY for song in songs]

    items: List[AssignedItem] = []
    seen_slots = set()
    for raw_item in raw_items:
        if not isinstance(raw_item, Mapping):
            continue
        try:
            item = AssignedItem.from_mapping(raw_item)
        except (TypeError, ValueError):
            LOGGER.warning(
                "Dropping assignment record for course '%s' with slot %r", key, raw_item.get("slot")
            )
            continue
        if not 0 <= item.slot < SLOTS_PER_COURSE or not isinstance(slots[item.slot], CommittedSlot):
            LOGGER.warning(
                "Dropping assignment record for course '%s' pointing at empty slot %s",
                key,
                item.slot,
            )
            continue
        if item.slot in seen_slots:
            LOGGER.warning(
                "Dropping duplicate assignment record for course '%s' slot %s", key, item.slot
            )
            continue
        seen_slots.add(item.slot)
        items.append(item)

    return Course(
        key=key,
        slots=slots,
        assigned_items=items,
        metadata=dict(metadata) if isinstance(metadata, Mapping) else None,
    )


__all__ = [
    "AssignedItem",
    "CommittedSlot",
    "Course",
    "CourseNotFoundError",
    "CourseRegistry",
    "EMPTY",
    "EmptySlot",
    "InvalidSlotError",
    "PROVISIONAL",
    "ProvisionalSlot",
    "RegistryError",
    "SLOTS_PER_COURSE",
    "SlotOccupiedError",
    "SlotState",
]
