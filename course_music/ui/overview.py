"""Shared helpers for building overview snapshots of the course registry."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from ..allocation import CommittedSlot, Course, CourseRegistry
from ..services.naming import SLOT_SUFFIXES, course_date_label


@dataclass
class SlotOverview:
    index: int
    label: str
    playlist_name: Optional[str] = None
    friendly_name: Optional[str] = None
    present: bool = False

    @property
    def is_empty(self) -> bool:
        return self.playlist_name is None


@dataclass
class CourseOverview:
    key: str
    date_label: str
    slots: List[SlotOverview]

    @property
    def song_count(self) -> int:
        return sum(1 for slot in self.slots if not slot.is_empty)

    @property
    def status(self) -> str:
        if self.song_count == 0:
            return "empty"
        if self.song_count == len(self.slots):
            return "full"
        return "partial"


@dataclass
class OverviewSnapshot:
    courses: List[CourseOverview]
    course_count: int
    song_count: int
    empty_slots: int
    status_totals: Dict[str, int]
    missing_files: List[str] = field(default_factory=list)

    @property
    def courses_with_songs(self) -> int:
        return self.status_totals["full"] + self.status_totals["partial"]


def collect_overview(registry: CourseRegistry, library_root: Path) -> OverviewSnapshot:
    """Aggregate registry data into a convenient snapshot for UIs and stats."""

    courses: List[CourseOverview] = []
    song_count = 0
    empty_slots = 0
    missing_files: List[str] = []
    status_totals = {"full": 0, "partial": 0, "empty": 0}

    for course in registry:
        slots = _extract_slots(course, library_root)
        for slot in slots:
            if slot.is_empty:
                empty_slots += 1
                continue
            song_count += 1
            if not slot.present:
                missing_files.append(slot.playlist_name or "")
        overview = CourseOverview(key=course.key, date_label=course_date_label(course.key), slots=slots)
        status_totals[overview.status] += 1
        courses.append(overview)

    return OverviewSnapshot(
        courses=courses,
        course_count=len(courses),
        song_count=song_count,
        empty_slots=empty_slots,
        status_totals=status_totals,
        missing_files=missing_files,
    )


def _extract_slots(course: Course, library_root: Path) -> List[SlotOverview]:
    slots: List[SlotOverview] = []
    for index, state in enumerate(course.slots):
        label = SLOT_SUFFIXES[index]
        if not isinstance(state, CommittedSlot):
            slots.append(SlotOverview(index=index, label=label))
            continue
        record = course.item_for_slot(index)
        slots.append(
            SlotOverview(
                index=index,
                label=label,
                playlist_name=state.item,
                friendly_name=record.friendly_name if record is not None else None,
                present=(library_root / state.item).is_file(),
            )
        )
    return slots


__all__ = [
    "CourseOverview",
    "OverviewSnapshot",
    "SlotOverview",
    "collect_overview",
]
