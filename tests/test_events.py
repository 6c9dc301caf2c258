from __future__ import annotations

import logging
from pathlib import Path

from course_music.allocation import AllocationPlan, Placement, Strategy
from course_music.services.events import (
    emit_event,
    emit_file_event,
    emit_placement_event,
    emit_plan_event,
    format_detail,
)


def test_format_detail_flattens_and_trims_values() -> None:
    assert format_detail(Strategy.ROUND_ROBIN) == "round_robin"
    assert format_detail(Path("library") / "20170221.mp3") == "library/20170221.mp3"
    assert format_detail(["a.mp3", "b.mp3"]) == "a.mp3, b.mp3"
    assert format_detail("   ") is None
    assert format_detail(False) is False
    assert format_detail("x" * 250) == "x" * 200 + "…"


def test_event_line_lists_details_after_correlation(caplog) -> None:
    with caplog.at_level(logging.INFO, logger="course_music.events"):
        emit_event(
            "APP_EVENT",
            " Listing courses ",
            payload={"courses": 2, "skipped": None, "": "ignored"},
            correlation={"request_id": "abc"},
            duration_ms=1.23456,
        )

    record = caplog.records[-1]
    assert record.getMessage() == "[APP_EVENT] Listing courses (request_id=abc, courses=2, duration_ms=1.23)"
    assert record.event_category == "APP_EVENT"
    assert record.event_details == {"request_id": "abc", "courses": 2, "duration_ms": 1.23}


def test_file_event_without_details(caplog) -> None:
    with caplog.at_level(logging.DEBUG, logger="course_music.events"):
        emit_file_event("Deleted library file", level=logging.DEBUG)

    assert caplog.records[-1].getMessage() == "[FILE_OP] Deleted library file"
    assert caplog.records[-1].levelno == logging.DEBUG


def test_placement_event_names_course_and_slot_letter(caplog) -> None:
    with caplog.at_level(logging.INFO, logger="course_music.events"):
        emit_placement_event(
            "Placed song",
            Placement("20170221.mp3", 1),
            strategy=Strategy.LEAST_SONGS_FIRST,
            auto_assigned=True,
            playlist_name="20170221-B.mp3",
        )

    assert caplog.records[-1].getMessage() == (
        "[ALLOCATION] Placed song (course=20170221.mp3, slot=B, strategy=least_songs_first, "
        "auto_assigned=True, file=20170221-B.mp3)"
    )


def test_partial_plan_is_logged_as_warning(caplog) -> None:
    plan = AllocationPlan(
        strategy=Strategy.ORIGINAL,
        requested=3,
        placements=[Placement("20170221.mp3", 0), Placement("20170316.mp3", 0)],
    )

    with caplog.at_level(logging.INFO, logger="course_music.events"):
        emit_plan_event("Placed batch", plan, extra_details={"placed": 2, "target": None})

    record = caplog.records[-1]
    assert record.levelno == logging.WARNING
    assert record.event_details == {
        "strategy": "original",
        "requested": 3,
        "planned": 2,
        "shortfall": 1,
        "courses": 2,
        "placed": 2,
    }


def test_complete_plan_is_logged_as_info(caplog) -> None:
    plan = AllocationPlan(strategy=Strategy.ROUND_ROBIN, requested=1, placements=[Placement("a.mp3", 0)])

    with caplog.at_level(logging.INFO, logger="course_music.events"):
        emit_plan_event("Previewed allocation", plan)

    record = caplog.records[-1]
    assert record.levelno == logging.INFO
    assert "shortfall" not in record.event_details
