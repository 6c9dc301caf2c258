"""Slot allocation engine: registry model, strategies, planner and analyzer."""

from .analysis import (
    ANALYZED_STRATEGIES,
    AllocationAnalysis,
    StrategyReport,
    analyze_allocation,
    build_report,
    recommend,
    summarize_histogram,
)
from .planner import AllocationPlan, plan_allocation
from .registry import (
    AssignedItem,
    CommittedSlot,
    Course,
    CourseNotFoundError,
    CourseRegistry,
    EMPTY,
    InvalidSlotError,
    PROVISIONAL,
    RegistryError,
    SLOTS_PER_COURSE,
    SlotOccupiedError,
)
from .strategies import (
    DEFAULT_STRATEGY,
    STRATEGY_NAMES,
    InvalidStrategyError,
    NoCapacityError,
    Placement,
    Strategy,
    find_slot,
    get_strategy,
    parse_strategy,
)

__all__ = [
    "ANALYZED_STRATEGIES",
    "AllocationAnalysis",
    "AllocationPlan",
    "AssignedItem",
    "CommittedSlot",
    "Course",
    "CourseNotFoundError",
    "CourseRegistry",
    "DEFAULT_STRATEGY",
    "EMPTY",
    "InvalidSlotError",
    "InvalidStrategyError",
    "NoCapacityError",
    "PROVISIONAL",
    "Placement",
    "RegistryError",
    "SLOTS_PER_COURSE",
    "STRATEGY_NAMES",
    "SlotOccupiedError",
    "Strategy",
    "StrategyReport",
    "analyze_allocation",
    "build_report",
    "find_slot",
    "get_strategy",
    "parse_strategy",
    "plan_allocation",
    "recommend",
    "summarize_histogram",
]
