"""A Rich-powered overview of courses, slots and allocation health."""

from __future__ import annotations

from typing import Optional

from rich import box
from rich.columns import Columns
from rich.console import Console, Group
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from ..services.library import CourseLibrary
from .overview import CourseOverview, OverviewSnapshot, SlotOverview, collect_overview


STATUS_STYLES = {
    "full": "green",
    "partial": "yellow",
    "empty": "dim",
}


class ModernUI:
    """Render the registry using Rich widgets."""

    def __init__(self, library: CourseLibrary, *, console: Optional[Console] = None) -> None:
        self._library = library
        self._console = console or Console()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def run(self) -> None:
        snapshot = collect_overview(self._library.load(), self._library.store.library_root)
        console = self._console

        console.rule("[bold magenta]Course Music Overview")

        if snapshot.course_count == 0:
            console.print(
                Panel(
                    "No courses have been registered yet.\n"
                    "Copy date-coded recordings into the library or use "
                    "[bold]python run.py add-course NAME[/bold].",
                    border_style="yellow",
                    box=box.ROUNDED,
                )
            )
            return

        tree_panel = Panel(
            self._build_tree(snapshot),
            title="Courses",
            border_style="cyan",
            box=box.ROUNDED,
        )
        console.print(Columns([tree_panel, self._build_stats_panel(snapshot)], expand=True, equal=True))
        console.print()
        console.print(
            Text("Tip: pass --style console for the plain layout.", style="dim"),
            justify="center",
        )

    # ------------------------------------------------------------------
    # Rendering helpers
    # ------------------------------------------------------------------
    def _build_tree(self, snapshot: OverviewSnapshot) -> Tree:
        tree = Tree("[bold cyan]Library", guide_style="cyan")
        for course in snapshot.courses:
            node = tree.add(self._build_course_label(course))
            for slot in course.slots:
                node.add(self._build_slot_label(slot))
        return tree

    @staticmethod
    def _build_course_label(course: CourseOverview) -> Text:
        label = Text(course.key, style="bold")
        label.append("  ")
        label.append(f"{course.song_count}/{len(course.slots)}", style=STATUS_STYLES[course.status])
        if course.date_label != course.key:
            label.append("\n")
            label.append(course.date_label, style="dim")
        return label

    @staticmethod
    def _build_slot_label(slot: SlotOverview) -> Text:
        label = Text(f"{slot.label} ", style="bright_cyan")
        if slot.is_empty:
            label.append("empty", style="dim")
            return label
        label.append(slot.playlist_name or "", style="white")
        if slot.friendly_name:
            label.append("  ")
            label.append(slot.friendly_name, style="green")
        if not slot.present:
            label.append("  missing file", style="red")
        return label

    def _build_stats_panel(self, snapshot: OverviewSnapshot) -> Panel:
        metrics = Table.grid(expand=True, padding=(0, 1))
        metrics.add_column(style="dim")
        metrics.add_column(justify="right", style="bold")
        metrics.add_row("Courses", str(snapshot.course_count))
        metrics.add_row("Songs", str(snapshot.song_count))
        metrics.add_row("Empty slots", str(snapshot.empty_slots))
        metrics.add_row("Missing files", str(len(snapshot.missing_files)))

        status_table = Table.grid(expand=True, padding=(0, 1))
        status_table.add_column(style="dim")
        status_table.add_column(justify="right", style="bold")
        for status, style in STATUS_STYLES.items():
            status_table.add_row(Text(status.capitalize(), style=style), str(snapshot.status_totals[status]))

        body = Group(metrics, Rule(style="magenta"), status_table)
        return Panel(body, title="At a glance", border_style="magenta", box=box.ROUNDED)


__all__ = ["ModernUI"]
