from __future__ import annotations

from rich.console import Console

from course_music.services.library import CourseLibrary
from course_music.services.store import RegistryStore
from course_music.services.uploads import StagedUpload, UploadCoordinator
from course_music.ui.console import ConsoleUI
from course_music.ui.modern import ModernUI
from course_music.ui.overview import collect_overview


def _seed(config, fake_metadata) -> CourseLibrary:
    for name in ("20170221.mp3", "20170316.mp3"):
        (config.library_root / name).write_bytes(b"course")
    store = RegistryStore(config)
    coordinator = UploadCoordinator(config, store, metadata_reader=fake_metadata)
    path = coordinator.staging_path("tune.mp3")
    path.write_bytes(b"audio")
    coordinator.place_song(StagedUpload(path=path, original_name="tune.mp3", friendly_name="Tune"))
    return CourseLibrary(config, store, metadata_reader=fake_metadata)


def test_collect_overview_counts_slots(temp_config, fake_metadata) -> None:
    library = _seed(temp_config, fake_metadata)
    (temp_config.library_root / "20170221-A.mp3").unlink()

    snapshot = collect_overview(library.load(), temp_config.library_root)

    assert snapshot.course_count == 2
    assert snapshot.song_count == 1
    assert snapshot.empty_slots == 3
    assert snapshot.status_totals == {"full": 0, "partial": 1, "empty": 1}
    assert snapshot.missing_files == ["20170221-A.mp3"]
    first = snapshot.courses[0]
    assert first.date_label == "2017-02-21"
    assert first.slots[0].friendly_name == "Tune"
    assert first.slots[0].present is False


def test_console_ui_prints_courses(temp_config, fake_metadata) -> None:
    library = _seed(temp_config, fake_metadata)
    lines = []

    ConsoleUI(library, writer=lines.append).run()

    assert "Course: 20170221.mp3 (partial)" in lines
    assert "  A: 20170221-A.mp3 [Tune]" in lines
    assert "  B: (empty)" in lines
    assert lines[-1] == "2 course(s), 1 song(s), 3 empty slot(s)"


def test_console_ui_handles_empty_registry(temp_config) -> None:
    lines = []

    ConsoleUI(CourseLibrary(temp_config, RegistryStore(temp_config)), writer=lines.append).run()

    assert lines[-1] == "(no courses registered)"


def test_modern_ui_renders_tree(temp_config, fake_metadata) -> None:
    library = _seed(temp_config, fake_metadata)
    console = Console(record=True, width=120)

    ModernUI(library, console=console).run()

    output = console.export_text()
    assert "Course Music Overview" in output
    assert "20170221.mp3" in output
    assert "Tune" in output
