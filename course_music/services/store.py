"""JSON persistence for the course registry."""

from __future__ import annotations

import contextlib
import json
import logging
import os
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from ..allocation import CourseRegistry
from ..config import AppConfig
from .naming import is_course_file


LOGGER = logging.getLogger(__name__)


class RegistryStore:
    """Load and save the registry stored in the library's data file.

    Every load rescans the library root so that newly copied course
    recordings appear with two empty slots.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        event_emitter: Optional[Callable[..., None]] = None,
    ) -> None:
        self._path = config.data_file
        self._library_root = config.library_root
        self._event_emitter: Optional[Callable[..., None]] = event_emitter

    @property
    def path(self) -> Path:
        return self._path

    @property
    def library_root(self) -> Path:
        return self._library_root

    def configure_event_emitter(self, emitter: Optional[Callable[..., None]]) -> None:
        """Register the callable responsible for emitting store events."""

        self._event_emitter = emitter

    @contextlib.contextmanager
    def _track_store_event(self, action: str, **payload: Any):
        if self._event_emitter is None:
            yield payload
            return

        start = time.perf_counter()
        event_payload: Dict[str, Any] = dict(payload)
        error: BaseException | None = None
        try:
            yield event_payload
        except Exception as exc:
            error = exc
            event_payload.setdefault("status", "error")
            event_payload.setdefault("error", f"{exc.__class__.__name__}: {exc}")
            raise
        finally:
            duration_ms = (time.perf_counter() - start) * 1000.0
            if error is None:
                event_payload.setdefault("status", "ok")
            filtered = {key: value for key, value in event_payload.items() if value is not None}
            self._event_emitter("STORE_OP", action, payload=filtered, duration_ms=duration_ms)

    def discover_courses(self) -> List[str]:
        """Return the course recordings present in the library root, sorted."""

        if not self._library_root.is_dir():
            return []
        return sorted(
            entry.name
            for entry in self._library_root.iterdir()
            if entry.is_file() and is_course_file(entry.name)
        )

    def _read_raw(self) -> Dict[str, Any]:
        if not self._path.exists():
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps({}, indent=2), encoding="utf-8")
            LOGGER.info("Created empty data file at %s", self._path)
            return {}

        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as error:
            LOGGER.error("Data file %s is not valid JSON (%s); starting with an empty registry", self._path, error)
            return {}
        if not isinstance(payload, dict):
            LOGGER.error("Data file %s does not hold a JSON object; starting with an empty registry", self._path)
            return {}
        return payload

    def load(self) -> CourseRegistry:
        """Return the persisted registry, merged with discovered course files.

        The file is rewritten when discovery added courses or when entries
        in the legacy list layout were migrated.
        """

        with self._track_store_event("load", path=self._path) as event:
            raw = self._read_raw()
            migrated = sum(1 for value in raw.values() if isinstance(value, list))
            registry = CourseRegistry.from_mapping(raw)

            discovered = [key for key in self.discover_courses() if registry.add_course(key)]
            if discovered:
                LOGGER.info("Discovered %s new course file(s): %s", len(discovered), ", ".join(discovered))
            if migrated:
                LOGGER.info("Migrated %s legacy course entr%s", migrated, "y" if migrated == 1 else "ies")

            event["courses"] = len(registry)
            event["discovered"] = len(discovered) or None
            event["migrated"] = migrated or None

        if discovered or migrated:
            self.save(registry)
        return registry

    def save(self, registry: CourseRegistry) -> None:
        """Write *registry* atomically to the data file."""

        payload = registry.to_mapping()
        with self._track_store_event("save", path=self._path, courses=len(payload)):
            self._path.parent.mkdir(parents=True, exist_ok=True)
            temporary = self._path.with_name(f".{self._path.name}.tmp")
            temporary.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
            os.replace(temporary, self._path)
        LOGGER.debug("Saved %s course(s) to %s", len(payload), self._path)


__all__ = ["RegistryStore"]
