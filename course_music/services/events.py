"""Event log lines for placements, plans and library file operations.

Every event is written as ``[CATEGORY] message (key=value, ...)`` on the
``course_music.events`` logger. The cleaned details are attached to the
record as ``event_details`` so structured handlers can pick them up.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ..allocation import AllocationPlan, Placement, Strategy


EVENT_LOGGER = logging.getLogger("course_music.events")

EventLogger = Union[logging.Logger, logging.LoggerAdapter]

_VALUE_LIMIT = 200
_SLOT_LABELS = "AB"


def format_detail(value: Any) -> Any:
    """Return *value* as a short loggable scalar, or ``None`` to drop it."""

    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, Enum):
        return format_detail(value.value)
    if isinstance(value, Path):
        value = value.as_posix()
    elif isinstance(value, (list, tuple, set)):
        value = ", ".join(str(item) for item in value)
    text = str(value).strip()
    if not text:
        return None
    if len(text) > _VALUE_LIMIT:
        return text[:_VALUE_LIMIT] + "…"
    return text


def emit_event(
    category: str,
    message: str,
    *,
    payload: Optional[Dict[str, Any]] = None,
    correlation: Optional[Dict[str, Any]] = None,
    duration_ms: Optional[float] = None,
    level: int = logging.INFO,
    logger: EventLogger = EVENT_LOGGER,
) -> None:
    details: Dict[str, Any] = {}
    for source in (correlation, payload):
        for key, raw_value in (source or {}).items():
            value = format_detail(raw_value)
            if key and value is not None:
                details[str(key)] = value
    if duration_ms is not None:
        details["duration_ms"] = round(float(duration_ms), 2)

    text = f"[{category}] {str(message).strip()}"
    if details:
        text += " (" + ", ".join(f"{key}={value}" for key, value in details.items()) + ")"
    logger.log(level, text, extra={"event_category": category, "event_details": details})


def emit_file_event(operation: str, **kwargs: Any) -> None:
    """Log a rename, move or delete inside the library or staging area."""

    emit_event("FILE_OP", operation, **kwargs)


def emit_store_event(action: str, **kwargs: Any) -> None:
    """Log a load or save of the registry data file."""

    emit_event("STORE_OP", action, **kwargs)


def placement_details(
    placement: Placement,
    *,
    strategy: Union[Strategy, str, None] = None,
    auto_assigned: Optional[bool] = None,
    playlist_name: Optional[str] = None,
) -> Dict[str, Any]:
    return {
        "course": placement.course,
        "slot": _SLOT_LABELS[placement.slot],
        "strategy": strategy,
        "auto_assigned": auto_assigned,
        "file": playlist_name,
    }


def plan_details(plan: AllocationPlan) -> Dict[str, Any]:
    """Summarise *plan* as strategy, counts and the courses it touches."""

    histogram = plan.histogram()
    return {
        "strategy": plan.strategy,
        "requested": plan.requested,
        "planned": len(plan),
        "shortfall": plan.shortfall or None,
        "courses": len(histogram) or None,
    }


def emit_placement_event(
    message: str,
    placement: Placement,
    *,
    strategy: Union[Strategy, str, None] = None,
    auto_assigned: Optional[bool] = None,
    playlist_name: Optional[str] = None,
    **kwargs: Any,
) -> None:
    """Log one committed slot assignment."""

    payload = placement_details(
        placement,
        strategy=strategy,
        auto_assigned=auto_assigned,
        playlist_name=playlist_name,
    )
    emit_event("ALLOCATION", message, payload=payload, **kwargs)


def emit_plan_event(
    message: str,
    plan: AllocationPlan,
    *,
    extra_details: Optional[Dict[str, Any]] = None,
    **kwargs: Any,
) -> None:
    """Log a batch plan, previewed or committed.

    A plan that cannot place every requested song is logged as a warning.
    """

    payload = {**plan_details(plan), **(extra_details or {})}
    kwargs.setdefault("level", logging.WARNING if plan.is_partial else logging.INFO)
    emit_event("ALLOCATION", message, payload=payload, **kwargs)


__all__ = [
    "EVENT_LOGGER",
    "emit_event",
    "emit_file_event",
    "emit_placement_event",
    "emit_plan_event",
    "emit_store_event",
    "format_detail",
    "placement_details",
    "plan_details",
]
