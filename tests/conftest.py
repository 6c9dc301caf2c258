from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from course_music.allocation import CourseRegistry
from course_music.bootstrap import Bootstrapper
from course_music.config import AppConfig


@pytest.fixture()
def temp_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> AppConfig:
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    config_file = config_dir / "default.json"
    config_file.write_text(
        """
        {
            \"library_root\": \"library\",
            \"data_file\": \"library/music-map.json\",
            \"max_batch_files\": 5
        }
        """,
        encoding="utf-8",
    )
    monkeypatch.chdir(tmp_path)

    config = AppConfig.from_mapping(
        {
            "library_root": "library",
            "data_file": "library/music-map.json",
            "max_batch_files": 5,
        },
        base_path=tmp_path,
    )

    Bootstrapper(config).initialize()
    return config


@pytest.fixture()
def fake_metadata() -> Callable[..., Dict[str, Any]]:
    """Metadata reader that never touches mutagen."""

    def reader(path: Path, *, original_name: Optional[str] = None) -> Dict[str, Any]:
        title = Path(original_name).stem if original_name else Path(path).stem
        return {
            "title": title,
            "artist": "Tester",
            "album": "Fixtures",
            "year": "2024",
            "genre": "Test",
            "duration": 180,
        }

    return reader


def build_registry(layout: Dict[str, List[Optional[str]]]) -> CourseRegistry:
    """Return a registry from ``{course: [song_or_None, song_or_None]}``."""

    return CourseRegistry.from_mapping({key: {"songs": songs} for key, songs in layout.items()})


@pytest.fixture()
def registry_factory() -> Callable[[Dict[str, List[Optional[str]]]], CourseRegistry]:
    return build_registry
