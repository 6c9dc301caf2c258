from __future__ import annotations

import pytest

from course_music.services.naming import (
    build_playlist_name,
    build_staged_name,
    course_date_label,
    is_course_file,
)


@pytest.mark.parametrize(
    "name, expected",
    [
        ("20170221.mp3", True),
        ("20170221-2.mp3", True),
        ("20170221-A.mp3", False),
        ("2017022.mp3", False),
        ("20170221.MP3", False),
        ("notes.mp3", False),
    ],
)
def test_is_course_file(name, expected) -> None:
    assert is_course_file(name) is expected


def test_build_playlist_name_keeps_course_stem() -> None:
    assert build_playlist_name("20170221.mp3", 0) == "20170221-A.mp3"
    assert build_playlist_name("20170221-2.mp3", 1) == "20170221-2-B.mp3"
    assert build_playlist_name("intro", 0) == "intro-A.mp3"
    with pytest.raises(ValueError):
        build_playlist_name("20170221.mp3", 2)


def test_build_staged_name_is_unique_and_keeps_extension() -> None:
    first = build_staged_name("My Song.MP3")
    second = build_staged_name("My Song.MP3")

    assert first != second
    assert first.startswith("upload-")
    assert first.endswith(".mp3")
    assert not build_staged_name(None).endswith(".")


def test_course_date_label() -> None:
    assert course_date_label("20170221-2.mp3") == "2017-02-21"
    assert course_date_label("intro.mp3") == "intro.mp3"
