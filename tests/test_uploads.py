from __future__ import annotations

import json
import random
from pathlib import Path

import pytest

from course_music.allocation import (
    CourseNotFoundError,
    InvalidSlotError,
    InvalidStrategyError,
    NoCapacityError,
    SlotOccupiedError,
)
from course_music.services.settings import LibrarySettings, SettingsStore
from course_music.services.store import RegistryStore
from course_music.services.uploads import StagedUpload, UploadCoordinator, UploadError


@pytest.fixture()
def coordinator(temp_config, fake_metadata) -> UploadCoordinator:
    return UploadCoordinator(
        temp_config,
        RegistryStore(temp_config),
        metadata_reader=fake_metadata,
        rng=random.Random(0),
    )


def _add_courses(config, *names: str) -> None:
    for name in names:
        (config.library_root / name).write_bytes(b"course")


def _stage(coordinator: UploadCoordinator, name: str, friendly: str = "") -> StagedUpload:
    path = coordinator.staging_path(name)
    path.write_bytes(b"ID3 fake audio")
    return StagedUpload(path=path, original_name=name, friendly_name=friendly)


def _songs(config):
    data = json.loads(config.data_file.read_text(encoding="utf-8"))
    return {course: entry["songs"] for course, entry in data.items()}


def test_place_song_uses_default_strategy_and_renames_file(temp_config, coordinator) -> None:
    _add_courses(temp_config, "20170221.mp3", "20170316.mp3")
    upload = _stage(coordinator, "My Song.mp3")

    result = coordinator.place_song(upload)

    assert (result.course, result.slot) == ("20170221.mp3", 0)
    assert result.playlist_name == "20170221-A.mp3"
    assert result.friendly_name == "My Song"
    assert result.auto_assigned is True
    assert (temp_config.library_root / "20170221-A.mp3").read_bytes() == b"ID3 fake audio"
    assert not upload.path.exists()
    assert _songs(temp_config)["20170221.mp3"] == ["20170221-A.mp3", None]


def test_second_song_goes_to_least_loaded_course(temp_config, coordinator) -> None:
    _add_courses(temp_config, "20170221.mp3", "20170316.mp3")
    coordinator.place_song(_stage(coordinator, "one.mp3"))

    result = coordinator.place_song(_stage(coordinator, "two.mp3"))

    assert (result.course, result.slot) == ("20170316.mp3", 0)


def test_original_strategy_fills_first_course(temp_config, coordinator) -> None:
    _add_courses(temp_config, "20170221.mp3", "20170316.mp3")
    coordinator.place_song(_stage(coordinator, "one.mp3"), strategy="original")

    result = coordinator.place_song(_stage(coordinator, "two.mp3"), strategy="original")

    assert (result.course, result.slot) == ("20170221.mp3", 1)
    assert result.playlist_name == "20170221-B.mp3"


def test_target_course_is_used_until_full(temp_config, coordinator) -> None:
    _add_courses(temp_config, "20170221.mp3", "20170316.mp3")

    first = coordinator.place_song(_stage(coordinator, "a.mp3", "Alpha"), target_course="20170316.mp3")
    second = coordinator.place_song(_stage(coordinator, "b.mp3"), target_course="20170316.mp3")
    third = coordinator.place_song(_stage(coordinator, "c.mp3"), target_course="20170316.mp3")

    assert (first.course, first.slot, first.auto_assigned) == ("20170316.mp3", 0, False)
    assert first.friendly_name == "Alpha"
    assert (second.course, second.slot) == ("20170316.mp3", 1)
    assert (third.course, third.auto_assigned) == ("20170221.mp3", True)


def test_no_capacity_discards_staged_file(temp_config, coordinator) -> None:
    upload = _stage(coordinator, "lonely.mp3")

    with pytest.raises(NoCapacityError):
        coordinator.place_song(upload)

    assert not upload.path.exists()


def test_unknown_target_course_and_bad_input(temp_config, coordinator) -> None:
    _add_courses(temp_config, "20170221.mp3")

    missing = _stage(coordinator, "x.mp3")
    with pytest.raises(CourseNotFoundError):
        coordinator.place_song(missing, target_course="19990101.mp3")
    assert not missing.path.exists()

    with pytest.raises(InvalidStrategyError):
        coordinator.place_song(_stage(coordinator, "y.mp3"), strategy="fastest")

    wrong_type = _stage(coordinator, "notes.txt")
    with pytest.raises(UploadError):
        coordinator.place_song(wrong_type)
    assert not wrong_type.path.exists()


def test_saved_default_strategy_is_honoured(temp_config, coordinator) -> None:
    _add_courses(temp_config, "20170221.mp3", "20170316.mp3")
    SettingsStore(temp_config).save(LibrarySettings(default_strategy="original"))
    coordinator.place_song(_stage(coordinator, "one.mp3"))

    result = coordinator.place_song(_stage(coordinator, "two.mp3"))

    assert (result.course, result.slot) == ("20170221.mp3", 1)


def test_batch_spreads_songs_fairly(temp_config, coordinator) -> None:
    _add_courses(temp_config, "20170221.mp3", "20170316.mp3", "20170411.mp3")
    uploads = [_stage(coordinator, f"song{index}.mp3") for index in range(4)]

    result = coordinator.place_batch(uploads, strategy="round_robin")

    placed = [(item.course, item.slot) for item in result.placed]
    assert placed == [
        ("20170221.mp3", 0),
        ("20170316.mp3", 0),
        ("20170411.mp3", 0),
        ("20170221.mp3", 1),
    ]
    assert result.errors == []
    assert result.to_dict()["total"] == 4
    assert _songs(temp_config)["20170411.mp3"] == ["20170411-A.mp3", None]


def test_batch_rejects_excess_files(temp_config, coordinator) -> None:
    _add_courses(temp_config, "20170221.mp3")
    uploads = [_stage(coordinator, f"song{index}.mp3") for index in range(3)]

    result = coordinator.place_batch(uploads, strategy="least_songs_first")

    assert len(result.placed) == 2
    assert result.errors == [{"file": "song2.mp3", "error": "No free slot available"}]
    assert not uploads[2].path.exists()
    payload = result.to_dict()
    assert payload["strategy"] == "least_songs_first"
    assert payload["message"] == "Batch upload finished: 2 placed, 1 failed"


def test_batch_fills_target_course_first(temp_config, coordinator) -> None:
    _add_courses(temp_config, "20170221.mp3", "20170316.mp3")
    uploads = [_stage(coordinator, f"song{index}.mp3", f"Song {index}") for index in range(3)]

    result = coordinator.place_batch(uploads, target_course="20170316.mp3")

    placed = [(item.course, item.slot, item.auto_assigned) for item in result.placed]
    assert placed == [
        ("20170316.mp3", 0, False),
        ("20170316.mp3", 1, False),
        ("20170221.mp3", 0, True),
    ]
    assert [item.friendly_name for item in result.placed] == ["Song 0", "Song 1", "Song 2"]


def test_batch_reports_unsupported_files(temp_config, coordinator) -> None:
    _add_courses(temp_config, "20170221.mp3")
    uploads = [_stage(coordinator, "cover.jpg"), _stage(coordinator, "tune.mp3")]

    result = coordinator.place_batch(uploads)

    assert [item.original_name for item in result.placed] == ["tune.mp3"]
    assert result.errors[0]["file"] == "cover.jpg"
    assert not uploads[0].path.exists()


def test_batch_limits(temp_config, coordinator) -> None:
    with pytest.raises(UploadError):
        coordinator.place_batch([])

    uploads = [_stage(coordinator, f"song{index}.mp3") for index in range(temp_config.max_batch_files + 1)]
    with pytest.raises(UploadError):
        coordinator.place_batch(uploads)
    assert all(not upload.path.exists() for upload in uploads)


def test_place_into_slot(temp_config, coordinator) -> None:
    _add_courses(temp_config, "20170221.mp3")

    result = coordinator.place_into_slot(_stage(coordinator, "b.mp3"), "20170221.mp3", 1)

    assert result.playlist_name == "20170221-B.mp3"
    assert _songs(temp_config)["20170221.mp3"] == [None, "20170221-B.mp3"]

    occupied = _stage(coordinator, "again.mp3")
    with pytest.raises(SlotOccupiedError):
        coordinator.place_into_slot(occupied, "20170221.mp3", 1)
    assert not occupied.path.exists()

    with pytest.raises(InvalidSlotError):
        coordinator.place_into_slot(_stage(coordinator, "c.mp3"), "20170221.mp3", 2)


def test_staging_paths_are_unique(coordinator, temp_config) -> None:
    first = coordinator.staging_path("Song.MP3")
    second = coordinator.staging_path("Song.MP3")

    assert first != second
    assert first.parent == temp_config.staging_root
    assert first.suffix == ".mp3"
    assert isinstance(first, Path)


def test_batch_with_unknown_target_rejects_each_file(temp_config, coordinator) -> None:
    _add_courses(temp_config, "20170221.mp3")
    uploads = [_stage(coordinator, "one.mp3"), _stage(coordinator, "two.mp3")]

    result = coordinator.place_batch(uploads, target_course="19990101.mp3")

    assert result.placed == []
    assert result.errors == [
        {"file": "one.mp3", "error": "Course not found: 19990101.mp3"},
        {"file": "two.mp3", "error": "Course not found: 19990101.mp3"},
    ]
    assert all(not upload.path.exists() for upload in uploads)
    assert _songs(temp_config)["20170221.mp3"] == [None, None]


def test_existing_song_file_is_never_overwritten(temp_config, coordinator) -> None:
    _add_courses(temp_config, "20170221.mp3")
    (temp_config.library_root / "20170221-A.mp3").write_bytes(b"keep me")

    upload = _stage(coordinator, "new.mp3")
    with pytest.raises(SlotOccupiedError):
        coordinator.place_song(upload, strategy="original")

    assert (temp_config.library_root / "20170221-A.mp3").read_bytes() == b"keep me"
    assert not upload.path.exists()
    assert _songs(temp_config)["20170221.mp3"] == [None, None]

    batch = coordinator.place_batch([_stage(coordinator, "other.mp3")], strategy="original")
    assert batch.placed == []
    assert batch.errors[0]["file"] == "other.mp3"
    assert (temp_config.library_root / "20170221-A.mp3").read_bytes() == b"keep me"
