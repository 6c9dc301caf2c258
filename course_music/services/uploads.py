"""Place staged uploads into course slots and persist the result."""

from __future__ import annotations

import logging
import os
import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path, PurePath
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from ..allocation import (
    SLOTS_PER_COURSE,
    AllocationPlan,
    AssignedItem,
    CourseNotFoundError,
    CourseRegistry,
    InvalidSlotError,
    NoCapacityError,
    Placement,
    SlotOccupiedError,
    Strategy,
    find_slot,
    parse_strategy,
    plan_allocation,
)
from ..config import AppConfig
from .events import emit_file_event, emit_placement_event, emit_plan_event
from .metadata import read_audio_metadata
from .naming import build_playlist_name, build_staged_name
from .settings import SettingsStore
from .store import RegistryStore


LOGGER = logging.getLogger(__name__)

MetadataReader = Callable[..., Dict[str, Any]]


class UploadError(RuntimeError):
    """Raised when an upload cannot be accepted."""


@dataclass
class StagedUpload:
    """An uploaded file waiting in the staging directory."""

    path: Path
    original_name: str
    friendly_name: str = ""


@dataclass
class PlacementResult:
    course: str
    slot: int
    playlist_name: str
    original_name: str
    friendly_name: str
    metadata: Dict[str, Any]
    auto_assigned: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "original": self.original_name,
            "friendly_name": self.friendly_name,
            "course": self.course,
            "slot": self.slot,
            "playlist_name": self.playlist_name,
            "metadata": dict(self.metadata),
            "auto_assigned": self.auto_assigned,
        }


@dataclass
class BatchResult:
    strategy: Strategy
    total: int
    placed: List[PlacementResult] = field(default_factory=list)
    errors: List[Dict[str, str]] = field(default_factory=list)

    @property
    def message(self) -> str:
        return f"Batch upload finished: {len(self.placed)} placed, {len(self.errors)} failed"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "strategy": self.strategy.value,
            "success": [result.to_dict() for result in self.placed],
            "errors": list(self.errors),
            "total": self.total,
        }


class UploadCoordinator:
    """Turn staged files into committed slot assignments.

    Each operation loads the registry, decides placements through the
    allocation engine, moves the staged file to its playlist name inside the
    library root and saves the registry. Staged files that cannot be placed
    are deleted.
    """

    def __init__(
        self,
        config: AppConfig,
        store: RegistryStore,
        settings_store: Optional[SettingsStore] = None,
        *,
        metadata_reader: MetadataReader = read_audio_metadata,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._config = config
        self._store = store
        self._settings_store = settings_store or SettingsStore(config)
        self._metadata_reader = metadata_reader
        self._rng = rng

    # ------------------------------------------------------------------
    # Staging helpers
    # ------------------------------------------------------------------
    def staging_path(self, original_name: Optional[str]) -> Path:
        """Return a fresh path inside the staging directory for an upload."""

        staging_root = self._config.staging_root
        staging_root.mkdir(parents=True, exist_ok=True)
        return staging_root / build_staged_name(original_name)

    def is_allowed(self, original_name: str) -> bool:
        return PurePath(original_name).suffix.lower() in self._config.allowed_extensions

    def discard(self, upload: StagedUpload, *, reason: str = "") -> None:
        try:
            upload.path.unlink()
        except FileNotFoundError:
            return
        except OSError as error:
            LOGGER.warning("Could not delete staged upload %s: %s", upload.path, error)
            return
        emit_file_event(
            "Discarded staged upload",
            payload={"file": upload.original_name, "reason": reason},
            level=logging.DEBUG,
        )

    def resolve_strategy(self, value: Union[str, Strategy, None]) -> Strategy:
        """Validate *value*, falling back to the saved default when it is blank."""

        default = self._settings_store.load().default_strategy
        return parse_strategy(value, default=default)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    def place_song(
        self,
        upload: StagedUpload,
        *,
        target_course: Optional[str] = None,
        strategy: Union[str, Strategy, None] = None,
    ) -> PlacementResult:
        """Place one upload into *target_course* or wherever *strategy* decides.

        A full target course falls back to the strategy. Raises
        :class:`NoCapacityError` when no slot is free anywhere.
        """

        try:
            self._require_allowed(upload)
            resolved = self.resolve_strategy(strategy)
            registry = self._store.load()
            target = (target_course or "").strip() or None
            placement = self._choose_single(registry, target, resolved)
            result = self._commit(registry, upload, placement, target_course=target)
        except Exception as error:
            self.discard(upload, reason=str(error))
            raise

        self._store.save(registry)
        emit_placement_event(
            "Placed song",
            placement,
            strategy=resolved,
            auto_assigned=result.auto_assigned,
            playlist_name=result.playlist_name,
        )
        return result

    def place_batch(
        self,
        uploads: Sequence[StagedUpload],
        *,
        target_course: Optional[str] = None,
        strategy: Union[str, Strategy, None] = None,
    ) -> BatchResult:
        """Place several uploads in one pass through the batch planner.

        Free slots of *target_course* are used first; the rest of the batch is
        planned across all courses with *strategy*. Files that exceed the
        remaining capacity, or that fail to be placed, are reported in
        ``errors`` and their staged copies removed.
        """

        if not uploads:
            raise UploadError("No files uploaded")
        if len(uploads) > self._config.max_batch_files:
            for upload in uploads:
                self.discard(upload, reason="batch too large")
            raise UploadError(
                f"At most {self._config.max_batch_files} files can be uploaded at once"
            )

        try:
            resolved = self.resolve_strategy(strategy)
            registry = self._store.load()
        except Exception as error:
            for upload in uploads:
                self.discard(upload, reason=str(error))
            raise
        target = (target_course or "").strip() or None

        result = BatchResult(strategy=resolved, total=len(uploads))
        if target is not None and target not in registry:
            message = str(CourseNotFoundError(target))
            LOGGER.warning("Rejecting batch of %s file(s): %s", len(uploads), message)
            for upload in uploads:
                result.errors.append({"file": upload.original_name, "error": message})
                self.discard(upload, reason=message)
            return result

        accepted: List[StagedUpload] = []
        for upload in uploads:
            if self.is_allowed(upload.original_name):
                accepted.append(upload)
                continue
            message = self._unsupported_message(upload)
            result.errors.append({"file": upload.original_name, "error": message})
            self.discard(upload, reason=message)

        plan = AllocationPlan(
            strategy=resolved,
            requested=len(accepted),
            placements=self._plan_batch(registry, len(accepted), target, resolved),
        )
        for index, upload in enumerate(accepted):
            if index >= len(plan):
                message = str(NoCapacityError())
                result.errors.append({"file": upload.original_name, "error": message})
                self.discard(upload, reason=message)
                continue
            try:
                placed = self._commit(registry, upload, plan[index], target_course=target)
            except (OSError, SlotOccupiedError) as error:
                LOGGER.warning("Could not place %s: %s", upload.original_name, error)
                result.errors.append({"file": upload.original_name, "error": str(error)})
                self.discard(upload, reason=str(error))
                continue
            result.placed.append(placed)

        if result.placed:
            self._store.save(registry)
        emit_plan_event(
            "Placed batch",
            plan,
            extra_details={"placed": len(result.placed), "failed": len(result.errors), "target": target},
        )
        return result

    def place_into_slot(self, upload: StagedUpload, course: str, slot: int) -> PlacementResult:
        """Place *upload* into an explicit, currently empty slot."""

        try:
            self._require_allowed(upload)
            if not 0 <= slot < SLOTS_PER_COURSE:
                raise InvalidSlotError(f"Slot must be between 0 and {SLOTS_PER_COURSE - 1}: {slot}")
            registry = self._store.load()
            record = registry.require(course)
            if slot not in record.empty_slots():
                raise SlotOccupiedError(f"Slot {slot} of course '{course}' already holds a song")
            placement = Placement(course, slot)
            result = self._commit(registry, upload, placement, target_course=course)
        except Exception as error:
            self.discard(upload, reason=str(error))
            raise

        self._store.save(registry)
        emit_placement_event("Placed song into explicit slot", placement, playlist_name=result.playlist_name)
        return result

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _unsupported_message(self, upload: StagedUpload) -> str:
        allowed = ", ".join(self._config.allowed_extensions)
        return f"Unsupported file type for '{upload.original_name}' (allowed: {allowed})"

    def _require_allowed(self, upload: StagedUpload) -> None:
        if not self.is_allowed(upload.original_name):
            raise UploadError(self._unsupported_message(upload))
        if not upload.path.is_file():
            raise UploadError(f"Uploaded file is missing: {upload.original_name}")

    def _choose_single(
        self, registry: CourseRegistry, target: Optional[str], strategy: Strategy
    ) -> Placement:
        if target is not None:
            slot = registry.require(target).first_empty_slot()
            if slot is not None:
                return Placement(target, slot)
            LOGGER.info("Course '%s' is full; falling back to strategy %s", target, strategy.value)
        return find_slot(registry, strategy, rng=self._rng)

    def _plan_batch(
        self,
        registry: CourseRegistry,
        count: int,
        target: Optional[str],
        strategy: Strategy,
    ) -> List[Placement]:
        placements: List[Placement] = []
        simulation = registry
        if target is not None:
            simulation = registry.copy()
            for slot in simulation.require(target).empty_slots():
                if len(placements) >= count:
                    break
                simulation.reserve(target, slot)
                placements.append(Placement(target, slot))
        remaining = count - len(placements)
        if remaining > 0:
            plan = plan_allocation(simulation, remaining, strategy, rng=self._rng)
            placements.extend(plan)
        return placements

    def _commit(
        self,
        registry: CourseRegistry,
        upload: StagedUpload,
        placement: Placement,
        *,
        target_course: Optional[str],
    ) -> PlacementResult:
        playlist_name = build_playlist_name(placement.course, placement.slot)
        destination = self._config.library_root / playlist_name
        if destination.exists():
            raise SlotOccupiedError(f"Song file {playlist_name} already exists in the library")
        metadata = self._metadata_reader(upload.path, original_name=upload.original_name)
        os.replace(upload.path, destination)
        emit_file_event(
            "Moved upload into library",
            payload={"from": upload.original_name, "to": playlist_name},
        )

        friendly_name = upload.friendly_name.strip() or str(metadata.get("title") or "")
        item = AssignedItem(
            original_name=upload.original_name,
            slot=placement.slot,
            playlist_name=playlist_name,
            friendly_name=friendly_name,
            metadata=dict(metadata),
            added_time=datetime.now(timezone.utc).isoformat(),
        )
        registry.commit(placement.course, placement.slot, item)
        return PlacementResult(
            course=placement.course,
            slot=placement.slot,
            playlist_name=playlist_name,
            original_name=upload.original_name,
            friendly_name=friendly_name,
            metadata=dict(metadata),
            auto_assigned=placement.course != target_course,
        )


__all__ = [
    "BatchResult",
    "PlacementResult",
    "StagedUpload",
    "UploadCoordinator",
    "UploadError",
]
