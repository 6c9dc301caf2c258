from __future__ import annotations

import pytest

from course_music.allocation import (
    EMPTY,
    PROVISIONAL,
    AssignedItem,
    CommittedSlot,
    CourseNotFoundError,
    CourseRegistry,
    InvalidSlotError,
    RegistryError,
    SlotOccupiedError,
)


def _item(slot: int, name: str = "song.mp3") -> AssignedItem:
    return AssignedItem(original_name=name, slot=slot, playlist_name=f"20170221-{'AB'[slot]}.mp3")


def test_legacy_list_entries_are_migrated() -> None:
    registry = CourseRegistry.from_mapping({"20170221.mp3": ["20170221-A.mp3", None]})

    course = registry.require("20170221.mp3")
    assert course.slots == [CommittedSlot("20170221-A.mp3"), EMPTY]
    assert course.assigned_items == []
    assert registry.to_mapping() == {
        "20170221.mp3": {"songs": ["20170221-A.mp3", None], "metadata": None, "renamed_files": []}
    }


def test_alternate_keys_and_short_slot_lists_are_accepted() -> None:
    registry = CourseRegistry.from_mapping(
        {
            "b.mp3": {
                "slots": [None, "b-B.mp3"],
                "assignedItems": [{"original_name": "x.mp3", "slot": 1, "playlist_name": "b-B.mp3"}],
            },
            "a.mp3": {"songs": []},
        }
    )

    assert registry.keys() == ["a.mp3", "b.mp3"]
    assert registry.require("a.mp3").slots == [EMPTY, EMPTY]
    record = registry.require("b.mp3").item_for_slot(1)
    assert record is not None and record.original_name == "x.mp3"


def test_records_pointing_at_empty_slots_are_dropped() -> None:
    registry = CourseRegistry.from_mapping(
        {
            "c.mp3": {
                "songs": ["c-A.mp3", None],
                "renamed_files": [
                    {"original_name": "kept.mp3", "slot": 0, "playlist_name": "c-A.mp3"},
                    {"original_name": "stale.mp3", "slot": 1, "playlist_name": "c-B.mp3"},
                    {"original_name": "dupe.mp3", "slot": 0, "playlist_name": "c-A.mp3"},
                ],
            }
        }
    )

    items = registry.require("c.mp3").assigned_items
    assert [item.original_name for item in items] == ["kept.mp3"]


def test_overflowing_slot_list_is_skipped() -> None:
    registry = CourseRegistry.from_mapping(
        {"d.mp3": {"songs": ["1.mp3", "2.mp3", "3.mp3"]}, "e.mp3": {"songs": ["e.mp3", None]}}
    )

    assert registry.keys() == ["e.mp3"]


def test_malformed_entries_are_tolerated() -> None:
    registry = CourseRegistry.from_mapping(
        {
            "a.mp3": "oops",
            "b.mp3": {"songs": "b-A.mp3"},
            "c.mp3": {
                "songs": ["c-A.mp3", "c-B.mp3"],
                "renamed_files": [
                    {"original_name": "bad.mp3", "slot": "x", "playlist_name": "c-A.mp3"},
                    {"original_name": "good.mp3", "slot": 1, "playlist_name": "c-B.mp3"},
                ],
            },
        }
    )

    assert registry.require("a.mp3").slots == [EMPTY, EMPTY]
    assert registry.require("b.mp3").slots == [EMPTY, EMPTY]
    items = registry.require("c.mp3").assigned_items
    assert [item.original_name for item in items] == ["good.mp3"]


def test_trailing_empty_slots_beyond_capacity_are_ignored() -> None:
    registry = CourseRegistry.from_mapping({"d.mp3": {"songs": ["1.mp3", None, None]}})

    assert len(registry.require("d.mp3").slots) == 2


def test_add_course_is_idempotent_and_rejects_blank_keys() -> None:
    registry = CourseRegistry()

    assert registry.add_course(" 20170316.mp3 ") is True
    assert registry.add_course("20170316.mp3") is False
    assert registry.keys() == ["20170316.mp3"]
    with pytest.raises(RegistryError):
        registry.add_course("   ")


def test_commit_release_and_occupancy_counts() -> None:
    registry = CourseRegistry()
    registry.add_course("20170221.mp3")

    registry.commit("20170221.mp3", 0, _item(0))
    course = registry.require("20170221.mp3")
    assert course.committed_count == 1
    assert course.first_empty_slot() == 1
    assert registry.total_empty_slots() == 1

    with pytest.raises(SlotOccupiedError):
        registry.commit("20170221.mp3", 0, _item(0, "other.mp3"))

    released = registry.release("20170221.mp3", 0)
    assert released is not None and released.original_name == "song.mp3"
    assert course.slots == [EMPTY, EMPTY]
    assert course.assigned_items == []


def test_commit_requires_matching_record_slot() -> None:
    registry = CourseRegistry()
    registry.add_course("20170221.mp3")

    with pytest.raises(RegistryError):
        registry.commit("20170221.mp3", 1, _item(0))


def test_invalid_slots_and_unknown_courses() -> None:
    registry = CourseRegistry()
    registry.add_course("a.mp3")

    with pytest.raises(InvalidSlotError):
        registry.reserve("a.mp3", 2)
    with pytest.raises(InvalidSlotError):
        registry.release("a.mp3", -1)
    with pytest.raises(CourseNotFoundError):
        registry.reserve("missing.mp3", 0)


def test_provisional_slots_count_as_occupied_but_never_serialise() -> None:
    registry = CourseRegistry()
    registry.add_course("a.mp3")
    registry.reserve("a.mp3", 0)

    course = registry.require("a.mp3")
    assert course.slots[0] is PROVISIONAL
    assert course.occupied_count == 1
    assert course.committed_count == 0
    with pytest.raises(SlotOccupiedError):
        registry.reserve("a.mp3", 0)
    with pytest.raises(RegistryError):
        registry.to_mapping()


def test_copy_is_independent() -> None:
    registry = CourseRegistry()
    registry.add_course("a.mp3")

    clone = registry.copy()
    clone.reserve("a.mp3", 0)

    assert registry.require("a.mp3").slots == [EMPTY, EMPTY]


def test_rename_item_updates_slot_and_record() -> None:
    registry = CourseRegistry()
    registry.add_course("20170221.mp3")
    registry.commit(
        "20170221.mp3",
        1,
        AssignedItem(original_name="x.mp3", slot=1, playlist_name="old.mp3"),
    )

    registry.rename_item("20170221.mp3", 1, "20170221-B.mp3")

    course = registry.require("20170221.mp3")
    assert course.slots[1] == CommittedSlot("20170221-B.mp3")
    assert course.item_for_slot(1).playlist_name == "20170221-B.mp3"
    with pytest.raises(RegistryError):
        registry.rename_item("20170221.mp3", 0, "anything.mp3")
