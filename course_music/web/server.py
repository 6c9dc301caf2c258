"""FastAPI application exposing the course music library."""

from __future__ import annotations

import asyncio
import contextlib
import contextvars
import functools
import html
import json
import logging
import os
import random
import shutil
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from fastapi import FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, HTMLResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.types import ASGIApp, Receive, Scope, Send

from ..allocation import (
    STRATEGY_NAMES,
    CourseNotFoundError,
    InvalidStrategyError,
    NoCapacityError,
    RegistryError,
    SlotOccupiedError,
    parse_strategy,
)
from ..allocation.strategies import FAIR_STRATEGIES
from ..config import AppConfig
from ..services.events import emit_event, emit_file_event, emit_plan_event, emit_store_event
from ..services.library import CourseLibrary, SongNotFoundError
from ..services.metadata import read_audio_metadata
from ..services.settings import SettingsStore
from ..services.store import RegistryStore
from ..services.uploads import StagedUpload, UploadCoordinator, UploadError
from ..ui.overview import OverviewSnapshot, collect_overview


_TEMPLATE_PATH = Path(__file__).parent / "templates" / "index.html"

_DEFAULT_MAX_UPLOAD_BYTES = 200 * 1024 * 1024
try:
    _MAX_UPLOAD_BYTES = int(
        (os.environ.get("COURSE_MUSIC_MAX_UPLOAD_BYTES") or "").strip() or _DEFAULT_MAX_UPLOAD_BYTES
    )
except ValueError:
    _MAX_UPLOAD_BYTES = _DEFAULT_MAX_UPLOAD_BYTES

_DEFAULT_UPLOAD_CHUNK_SIZE = 1024 * 1024


def get_max_upload_bytes() -> int:
    """Return the configured maximum upload size in bytes."""

    return int(_MAX_UPLOAD_BYTES)


_REQUEST_ID_VAR: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "course_music_request_id",
    default=None,
)
_ACTOR_VAR: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "course_music_actor",
    default=None,
)


def _collect_correlation_context() -> Dict[str, str]:
    context: Dict[str, str] = {}
    request_id = _REQUEST_ID_VAR.get()
    if request_id:
        context["request_id"] = str(request_id)
    actor = _ACTOR_VAR.get()
    if actor:
        context["actor"] = str(actor)
    return context


class RequestContextMiddleware:
    """Assign a correlation identifier to each request and expose it via contextvars."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        request_id = uuid.uuid4().hex
        scope_state = scope.get("state")
        if scope_state is None:
            scope_state = {}
            scope["state"] = scope_state
        if isinstance(scope_state, dict):
            scope_state["request_id"] = request_id
        else:
            setattr(scope_state, "request_id", request_id)

        method = scope.get("method")
        actor = f"request:{method.upper()}" if isinstance(method, str) else "request"
        request_token = _REQUEST_ID_VAR.set(request_id)
        actor_token = _ACTOR_VAR.set(actor)
        try:
            await self.app(scope, receive, send)
        finally:
            _ACTOR_VAR.reset(actor_token)
            _REQUEST_ID_VAR.reset(request_token)


class ContextualLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that injects correlation context into records."""

    def process(self, msg: Any, kwargs: Dict[str, Any]) -> tuple[Any, Dict[str, Any]]:  # type: ignore[override]
        extra: Dict[str, Any] = dict(self.extra or {})
        provided = kwargs.get("extra")
        if isinstance(provided, dict):
            extra.update(provided)
        for key, value in _collect_correlation_context().items():
            extra.setdefault(key, value)
        kwargs["extra"] = extra
        return msg, kwargs


LOGGER = ContextualLoggerAdapter(logging.getLogger(__name__), {})
EVENT_LOGGER = ContextualLoggerAdapter(logging.getLogger("course_music.web.events"), {})


def _emit_request_event(category: str, message: str, **kwargs: Any) -> None:
    emit_event(category, message, correlation=_collect_correlation_context(), logger=EVENT_LOGGER, **kwargs)


def _log_event(message: str, **details: Any) -> None:
    _emit_request_event("APP_EVENT", message, payload=details)


def _copy_upload_stream(
    upload: UploadFile,
    target: Path,
    *,
    chunk_size: int = _DEFAULT_UPLOAD_CHUNK_SIZE,
) -> None:
    source = upload.file
    if hasattr(source, "seek"):
        with contextlib.suppress(OSError, ValueError):
            source.seek(0)
    with target.open("wb") as buffer:
        shutil.copyfileobj(source, buffer, length=chunk_size)


async def _persist_upload_file(
    upload: UploadFile,
    target: Path,
    *,
    chunk_size: int = _DEFAULT_UPLOAD_CHUNK_SIZE,
) -> None:
    """Persist an uploaded file to disk without blocking the event loop."""

    loop = asyncio.get_running_loop()
    copy_operation = functools.partial(_copy_upload_stream, upload, target, chunk_size=chunk_size)
    await loop.run_in_executor(None, copy_operation)


def _normalize_root_path(value: Optional[str]) -> str:
    if value is None:
        return ""
    normalized = value.strip()
    if not normalized:
        return ""
    if not normalized.startswith("/"):
        normalized = f"/{normalized}"
    return normalized.rstrip("/")


def _resolve_library_path(library_root: Path, relative_path: str) -> Path:
    root_path = library_root.resolve()
    candidate = (root_path / relative_path).resolve()
    candidate.relative_to(root_path)
    return candidate


def _http_error(error: Exception) -> HTTPException:
    """Translate a service exception into the matching HTTP error."""

    if isinstance(error, (CourseNotFoundError, SongNotFoundError)):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, (NoCapacityError, SlotOccupiedError)):
        return HTTPException(status_code=409, detail=str(error))
    return HTTPException(status_code=400, detail=str(error))


_SERVICE_ERRORS = (RegistryError, NoCapacityError, UploadError, SongNotFoundError, ValueError)


class CoursePayload(BaseModel):
    course: str = Field(..., min_length=1)


class RemoveSongPayload(BaseModel):
    course: str = Field(..., min_length=1)
    slot: int


class RemoveSongByNamePayload(BaseModel):
    friendly_name: str = Field(..., min_length=1)


class AllocationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    song_count: int = Field(..., alias="songCount")
    strategy: Optional[str] = None


class AnalysisRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    song_count: int = Field(..., alias="songCount")


class SettingsPayload(BaseModel):
    default_strategy: str = Field(..., min_length=1)


def _render_course_rows(snapshot: OverviewSnapshot) -> str:
    if not snapshot.courses:
        return '<tr><td colspan="4" class="empty">No courses registered yet.</td></tr>'
    rows: List[str] = []
    for course in snapshot.courses:
        cells = [
            f'<td><strong>{html.escape(course.key)}</strong>'
            f'<div class="muted">{html.escape(course.date_label)}</div></td>'
        ]
        for slot in course.slots:
            if slot.is_empty:
                cells.append(f'<td class="slot empty">{slot.label}: empty</td>')
                continue
            name = html.escape(slot.friendly_name or slot.playlist_name or "")
            missing = ' <span class="warn">missing file</span>' if not slot.present else ""
            cells.append(
                f'<td class="slot">{slot.label}: {name}{missing}'
                f' <button data-course="{html.escape(course.key, quote=True)}"'
                f' data-slot="{slot.index}" class="remove">Remove</button></td>'
            )
        cells.append(f'<td class="status {course.status}">{course.status}</td>')
        rows.append("<tr>" + "".join(cells) + "</tr>")
    return "\n".join(rows)


def _render_strategy_options(default_strategy: str) -> str:
    options: List[str] = []
    for name in STRATEGY_NAMES:
        selected = " selected" if name == default_strategy else ""
        options.append(f'<option value="{name}"{selected}>{name}</option>')
    return "".join(options)


def create_app(
    store: RegistryStore,
    *,
    config: AppConfig,
    root_path: str | None = None,
    metadata_reader: Callable[..., Dict[str, Any]] = read_audio_metadata,
    rng: Optional[random.Random] = None,
) -> FastAPI:
    """Return a configured FastAPI application."""

    normalized_root = _normalize_root_path(root_path)
    app = FastAPI(
        title="Course Music Manager",
        description="Pair course recordings with songs",
        root_path=normalized_root,
    )
    app.state.server = None

    def _store_event_emitter(event_type: str, message: str, **kwargs: Any) -> None:
        correlation = _collect_correlation_context()
        if event_type == "STORE_OP":
            emit_store_event(message, correlation=correlation, logger=EVENT_LOGGER, **kwargs)
        else:
            _emit_request_event(event_type, message, **kwargs)

    store.configure_event_emitter(_store_event_emitter)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    settings_store = SettingsStore(config)
    library = CourseLibrary(config, store, metadata_reader=metadata_reader, rng=rng)
    coordinator = UploadCoordinator(
        config,
        store,
        settings_store,
        metadata_reader=metadata_reader,
        rng=rng,
    )
    app.state.library = library
    app.state.coordinator = coordinator
    app.state.settings_store = settings_store

    index_html = _TEMPLATE_PATH.read_text(encoding="utf-8")

    def _render_index_html(request: Request) -> str:
        scope_root = request.scope.get("root_path")
        resolved = _normalize_root_path(scope_root if isinstance(scope_root, str) else None) or normalized_root
        snapshot = collect_overview(library.load(), config.library_root)
        settings = settings_store.load()
        return (
            index_html.replace("__COURSE_MUSIC_ROOT_PATH__", json.dumps(resolved)[1:-1])
            .replace("__COURSE_MUSIC_ROWS__", _render_course_rows(snapshot))
            .replace("__COURSE_MUSIC_STRATEGIES__", _render_strategy_options(settings.default_strategy))
            .replace("__COURSE_MUSIC_COURSE_COUNT__", str(snapshot.course_count))
            .replace("__COURSE_MUSIC_SONG_COUNT__", str(snapshot.song_count))
            .replace("__COURSE_MUSIC_EMPTY_SLOTS__", str(snapshot.empty_slots))
            .replace("__COURSE_MUSIC_MAX_BATCH__", str(config.max_batch_files))
        )

    async def _stage_upload(upload: UploadFile, friendly_name: Optional[str] = None) -> StagedUpload:
        original_name = Path(upload.filename or "").name
        if not original_name:
            raise HTTPException(status_code=400, detail="No file uploaded")
        target = coordinator.staging_path(original_name)
        await _persist_upload_file(upload, target)
        emit_file_event(
            "Staged upload",
            payload={"file": original_name, "staged_as": target.name},
            correlation=_collect_correlation_context(),
            level=logging.DEBUG,
            logger=EVENT_LOGGER,
        )
        return StagedUpload(path=target, original_name=original_name, friendly_name=(friendly_name or "").strip())

    def _require_allowed(upload: UploadFile) -> None:
        name = Path(upload.filename or "").name
        if not name:
            raise HTTPException(status_code=400, detail="No file uploaded")
        if not coordinator.is_allowed(name):
            allowed = ", ".join(config.allowed_extensions)
            raise HTTPException(status_code=400, detail=f"Unsupported file type (allowed: {allowed})")

    @app.get("/", response_class=HTMLResponse)
    async def index(request: Request) -> HTMLResponse:
        return HTMLResponse(_render_index_html(request))

    @app.get("/songs/{path:path}")
    async def serve_song_file(path: str) -> FileResponse:
        try:
            target = _resolve_library_path(config.library_root, path)
        except ValueError as error:
            raise HTTPException(status_code=404, detail="File not found") from error
        if not target.is_file():
            raise HTTPException(status_code=404, detail="File not found")
        return FileResponse(target)

    @app.get("/api/list")
    async def list_courses() -> Dict[str, Any]:
        _log_event("Listing courses")
        return library.list_courses()

    @app.get("/api/stats")
    async def get_stats() -> Dict[str, Any]:
        stats = library.stats()
        _log_event("Computed stats", courses=stats["total_courses"], songs=stats["total_songs"])
        return stats

    @app.get("/api/songs")
    async def list_songs() -> List[Dict[str, Any]]:
        return library.list_songs()

    @app.get("/api/song-exists")
    async def song_exists(name: str = Query("")) -> Dict[str, Any]:
        match = library.find_song(name)
        if match is None:
            return {"exists": False}
        return match.to_dict()

    @app.post("/api/add-course")
    async def add_course(payload: CoursePayload) -> Dict[str, Any]:
        name = payload.course.strip()
        if not name:
            raise HTTPException(status_code=400, detail="Course name is required")
        try:
            created = library.add_course(name)
        except _SERVICE_ERRORS as error:
            raise _http_error(error) from error
        _log_event("Add course request handled", course=name, created=created)
        message = f"Course added: {name}" if created else f"Course already exists: {name}"
        return {"message": message, "course": name, "created": created}

    @app.delete("/api/courses/{course}")
    async def delete_course(course: str) -> Dict[str, Any]:
        try:
            removed = library.delete_course(course)
        except _SERVICE_ERRORS as error:
            raise _http_error(error) from error
        _log_event("Deleted course", course=course, removed_files=len(removed))
        return {"message": f"Course deleted: {course}", "removed_files": removed}

    @app.post("/api/add-song")
    async def add_song(
        song: Optional[UploadFile] = File(None),
        course: Optional[str] = Form(None),
        friendly_name: Optional[str] = Form(None),
        strategy: Optional[str] = Form(None),
    ) -> Dict[str, Any]:
        if song is None:
            raise HTTPException(status_code=400, detail="No file uploaded")
        _require_allowed(song)
        try:
            coordinator.resolve_strategy(strategy)
        except InvalidStrategyError as error:
            raise _http_error(error) from error

        staged = await _stage_upload(song, friendly_name)
        try:
            result = coordinator.place_song(staged, target_course=course, strategy=strategy)
        except _SERVICE_ERRORS as error:
            raise _http_error(error) from error
        _log_event("Uploaded song", course=result.course, slot=result.slot, file=result.playlist_name)
        return {
            "message": f"Song added to course {result.course}",
            "file": result.playlist_name,
            "course": result.course,
            "slot": result.slot,
            "metadata": result.metadata,
            "friendly_name": result.friendly_name,
            "auto_assigned": result.auto_assigned,
        }

    @app.post("/api/add-songs-batch")
    async def add_songs_batch(
        songs: Optional[List[UploadFile]] = File(None),
        course: Optional[str] = Form(None),
        friendly_names: Optional[str] = Form(None),
        strategy: Optional[str] = Form(None),
    ) -> Dict[str, Any]:
        if not songs:
            raise HTTPException(status_code=400, detail="No files uploaded")
        if len(songs) > config.max_batch_files:
            raise HTTPException(
                status_code=400,
                detail=f"At most {config.max_batch_files} files can be uploaded at once",
            )
        try:
            coordinator.resolve_strategy(strategy)
        except InvalidStrategyError as error:
            raise _http_error(error) from error

        names = [name.strip() for name in friendly_names.split(",")] if friendly_names else []
        staged: List[StagedUpload] = []
        for index, upload in enumerate(songs):
            friendly = names[index] if index < len(names) else ""
            staged.append(await _stage_upload(upload, friendly))

        try:
            result = coordinator.place_batch(staged, target_course=course, strategy=strategy)
        except _SERVICE_ERRORS as error:
            raise _http_error(error) from error
        _log_event(
            "Uploaded batch",
            strategy=result.strategy,
            placed=len(result.placed),
            failed=len(result.errors),
        )
        return result.to_dict()

    @app.post("/api/add-song-to-slot")
    async def add_song_to_slot(
        song: Optional[UploadFile] = File(None),
        course: Optional[str] = Form(None),
        slot: Optional[str] = Form(None),
        friendly_name: Optional[str] = Form(None),
    ) -> Dict[str, Any]:
        if song is None:
            raise HTTPException(status_code=400, detail="No file uploaded")
        if not course or slot is None or not slot.strip():
            raise HTTPException(status_code=400, detail="Course and slot are required")
        try:
            slot_index = int(slot)
        except ValueError as error:
            raise HTTPException(status_code=400, detail=f"Invalid slot: {slot}") from error
        _require_allowed(song)

        staged = await _stage_upload(song, friendly_name)
        try:
            result = coordinator.place_into_slot(staged, course, slot_index)
        except _SERVICE_ERRORS as error:
            raise _http_error(error) from error
        _log_event("Uploaded song into slot", course=course, slot=slot_index)
        return {
            "message": f"Song added to course {course} slot {slot_index + 1}",
            "file": result.playlist_name,
            "metadata": result.metadata,
            "friendly_name": result.friendly_name,
        }

    @app.post("/api/remove-song")
    async def remove_song(payload: RemoveSongPayload) -> Dict[str, Any]:
        try:
            removed = library.remove_song(payload.course, payload.slot)
        except _SERVICE_ERRORS as error:
            raise _http_error(error) from error
        _log_event("Removed song", course=payload.course, slot=payload.slot)
        return {"message": f"Removed {removed}", "file": removed}

    @app.post("/api/remove-song-by-name")
    async def remove_song_by_name(payload: RemoveSongByNamePayload) -> Dict[str, Any]:
        try:
            match = library.remove_song_by_name(payload.friendly_name)
        except _SERVICE_ERRORS as error:
            raise _http_error(error) from error
        _log_event("Removed song by name", course=match.course, friendly_name=payload.friendly_name)
        return {"message": f"Removed song: {payload.friendly_name}", "course": match.course}

    @app.post("/api/batch-rename")
    async def batch_rename() -> Dict[str, Any]:
        renamed = library.batch_rename()
        _log_event("Batch rename finished", renamed=len(renamed))
        return {"message": "Batch rename finished", "renamed": renamed}

    @app.get("/api/allocation/strategies")
    async def list_strategies() -> Dict[str, Any]:
        settings = settings_store.load()
        return {
            "strategies": list(STRATEGY_NAMES),
            "fair": [strategy.value for strategy in FAIR_STRATEGIES],
            "default": settings.default_strategy,
        }

    @app.post("/api/allocation/preview")
    async def preview_allocation(payload: AllocationRequest) -> Dict[str, Any]:
        try:
            strategy = coordinator.resolve_strategy(payload.strategy)
            plan = library.preview(payload.song_count, strategy)
        except _SERVICE_ERRORS as error:
            raise _http_error(error) from error
        emit_plan_event(
            "Previewed allocation",
            plan,
            correlation=_collect_correlation_context(),
            logger=EVENT_LOGGER,
        )
        return plan.to_dict()

    @app.post("/api/allocation/analyze")
    async def analyze_allocation(payload: AnalysisRequest) -> Dict[str, Any]:
        try:
            analysis = library.analyze(payload.song_count)
        except _SERVICE_ERRORS as error:
            raise _http_error(error) from error
        _log_event("Analyzed allocation", requested=payload.song_count, recommended=analysis.recommended)
        return analysis.to_dict()

    @app.get("/api/settings")
    async def get_settings() -> Dict[str, Any]:
        settings = settings_store.load()
        return {"settings": {"default_strategy": settings.default_strategy}}

    @app.put("/api/settings")
    async def update_settings(payload: SettingsPayload) -> Dict[str, Any]:
        try:
            strategy = parse_strategy(payload.default_strategy)
        except InvalidStrategyError as error:
            raise _http_error(error) from error
        settings = settings_store.load()
        settings.default_strategy = strategy.value
        settings_store.save(settings)
        _log_event("Persisted settings", default_strategy=settings.default_strategy)
        return {"settings": {"default_strategy": settings.default_strategy}}

    LOGGER.info("Web application ready for library %s", config.library_root)
    return app


__all__ = ["create_app", "get_max_upload_bytes"]
