from __future__ import annotations

from course_music.services.metadata import fallback_metadata, read_audio_metadata


def test_unreadable_file_falls_back_to_placeholders(tmp_path) -> None:
    path = tmp_path / "upload-20240101-000000-abc.mp3"
    path.write_bytes(b"not really audio")

    metadata = read_audio_metadata(path, original_name="Morning Tune.mp3")

    assert metadata == fallback_metadata("Morning Tune")
    assert metadata["artist"] == "Unknown Artist"
    assert metadata["duration"] == 0


def test_missing_file_uses_path_stem(tmp_path) -> None:
    metadata = read_audio_metadata(tmp_path / "20170221.mp3")

    assert metadata["title"] == "20170221"
    assert metadata["genre"] == "Unknown Genre"
