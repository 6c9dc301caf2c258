"""Plain text overview of courses and their song slots."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from ..services.library import CourseLibrary
from .overview import CourseOverview, OverviewSnapshot, SlotOverview, collect_overview


@dataclass
class ConsoleSection:
    title: str
    entries: Iterable[str]


class ConsoleUI:
    """Minimal console UI that prints every course and slot."""

    def __init__(self, library: CourseLibrary, *, writer: Optional[Callable[[str], None]] = None) -> None:
        self._library = library
        self._write = writer or print

    def run(self) -> None:
        snapshot = collect_overview(self._library.load(), self._library.store.library_root)

        self._write("Course Music – Console Overview")
        self._write("=" * 40)
        if snapshot.course_count == 0:
            self._write("(no courses registered)")
            return
        for section in self._build_sections(snapshot):
            self._write(section.title)
            self._write("-" * len(section.title))
            for entry in section.entries:
                self._write(entry)
            self._write("")
        self._write(
            f"{snapshot.course_count} course(s), {snapshot.song_count} song(s), "
            f"{snapshot.empty_slots} empty slot(s)"
        )

    def _build_sections(self, snapshot: OverviewSnapshot) -> Iterable[ConsoleSection]:
        for course in snapshot.courses:
            yield ConsoleSection(
                title=f"Course: {course.key} ({course.status})",
                entries=self._format_slots(course),
            )

    def _format_slots(self, course: CourseOverview) -> Iterable[str]:
        for slot in course.slots:
            yield f"  {slot.label}: " + self._format_slot(slot)

    @staticmethod
    def _format_slot(slot: SlotOverview) -> str:
        if slot.is_empty:
            return "(empty)"
        text = slot.playlist_name or ""
        if slot.friendly_name:
            text += f" [{slot.friendly_name}]"
        if not slot.present:
            text += " (missing file)"
        return text


__all__ = ["ConsoleUI"]
