"""Slot selection strategies.

Every strategy answers one question: given a registry snapshot, which
``(course, slot)`` pair should receive the next song? Strategies never mutate
the registry they inspect.
"""

from __future__ import annotations

import logging
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple, Type, Union

from .registry import CourseRegistry


LOGGER = logging.getLogger(__name__)


class Strategy(str, Enum):
    ROUND_ROBIN = "round_robin"
    LEAST_SONGS_FIRST = "least_songs_first"
    RANDOM = "random"
    ORIGINAL = "original"


DEFAULT_STRATEGY = Strategy.ROUND_ROBIN
FAIR_STRATEGIES: Tuple[Strategy, ...] = (Strategy.ROUND_ROBIN, Strategy.LEAST_SONGS_FIRST)
STRATEGY_NAMES: Tuple[str, ...] = tuple(member.value for member in Strategy)


class NoCapacityError(RuntimeError):
    """Raised when no course has an empty slot left."""

    def __init__(self, message: str = "No free slot available") -> None:
        super().__init__(message)


class InvalidStrategyError(ValueError):
    """Raised for strategy identifiers outside the supported set."""

    def __init__(self, value: object) -> None:
        available = ", ".join(STRATEGY_NAMES)
        super().__init__(f"Unknown strategy: {value!r}. Available: {available}")
        self.value = value


@dataclass(frozen=True)
class Placement:
    course: str
    slot: int

    def as_dict(self) -> Dict[str, object]:
        return {"course": self.course, "slot": self.slot}


class AllocationStrategy(ABC):
    """Base class for placement strategies.

    ``seeds_first`` marks strategies for which the batch planner runs a seed
    round (one song per under-filled course) before repeated selection.
    """

    name: Strategy
    seeds_first: bool = False

    @abstractmethod
    def select_next(self, registry: CourseRegistry) -> Placement:
        """Return the next placement or raise :class:`NoCapacityError`."""


class RoundRobinStrategy(AllocationStrategy):
    """Least-loaded course first, ties broken by course key."""

    name = Strategy.ROUND_ROBIN
    seeds_first = True

    def select_next(self, registry: CourseRegistry) -> Placement:
        candidates = registry.courses_with_capacity()
        if not candidates:
            raise NoCapacityError()
        candidates.sort(key=lambda course: (course.occupied_count, course.key))
        chosen = candidates[0]
        return Placement(chosen.key, chosen.empty_slots()[0])


class LeastSongsFirstStrategy(AllocationStrategy):
    name = Strategy.LEAST_SONGS_FIRST
    seeds_first = True

    def select_next(self, registry: CourseRegistry) -> Placement:
        best: Optional[Placement] = None
        lowest: Optional[int] = None
        for course in registry:
            slot = course.first_empty_slot()
            if slot is None:
                continue
            count = course.occupied_count
            if lowest is None or count < lowest:
                lowest = count
                best = Placement(course.key, slot)
        if best is None:
            raise NoCapacityError()
        return best


class RandomStrategy(AllocationStrategy):
    """Uniform choice among courses that still have an empty slot."""

    name = Strategy.RANDOM

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random()

    def select_next(self, registry: CourseRegistry) -> Placement:
        candidates = [
            Placement(course.key, course.empty_slots()[0])
            for course in registry.courses_with_capacity()
        ]
        if not candidates:
            raise NoCapacityError()
        return self._rng.choice(candidates)


class OriginalStrategy(AllocationStrategy):
    """Legacy first-fit: first course in key order with an empty slot."""

    name = Strategy.ORIGINAL

    def select_next(self, registry: CourseRegistry) -> Placement:
        for course in registry:
            slot = course.first_empty_slot()
            if slot is not None:
                return Placement(course.key, slot)
        raise NoCapacityError()


_REGISTRY: Dict[Strategy, Type[AllocationStrategy]] = {
    Strategy.ROUND_ROBIN: RoundRobinStrategy,
    Strategy.LEAST_SONGS_FIRST: LeastSongsFirstStrategy,
    Strategy.RANDOM: RandomStrategy,
    Strategy.ORIGINAL: OriginalStrategy,
}


def parse_strategy(
    value: Union[str, Strategy, None],
    *,
    default: Union[str, Strategy] = DEFAULT_STRATEGY,
) -> Strategy:
    """Validate *value* against the supported strategies.

    Missing or blank values resolve to *default*; anything else that is not a
    known strategy name raises :class:`InvalidStrategyError`.
    """

    if isinstance(value, Strategy):
        return value
    if value is None or not str(value).strip():
        return default if isinstance(default, Strategy) else parse_strategy(default)
    normalized = str(value).strip().lower()
    try:
        return Strategy(normalized)
    except ValueError as error:
        raise InvalidStrategyError(value) from error


def get_strategy(
    name: Union[str, Strategy, None] = None,
    *,
    rng: Optional[random.Random] = None,
) -> AllocationStrategy:
    strategy = parse_strategy(name)
    factory = _REGISTRY[strategy]
    if factory is RandomStrategy:
        return RandomStrategy(rng)
    return factory()


def find_slot(
    registry: CourseRegistry,
    strategy: Union[str, Strategy, AllocationStrategy, None] = None,
    *,
    rng: Optional[random.Random] = None,
) -> Placement:
    """Return the single best placement for *strategy* on *registry*."""

    selector = strategy if isinstance(strategy, AllocationStrategy) else get_strategy(strategy, rng=rng)
    placement = selector.select_next(registry)
    LOGGER.debug(
        "Strategy %s selected course '%s' slot %s",
        selector.name.value,
        placement.course,
        placement.slot,
    )
    return placement


__all__ = [
    "AllocationStrategy",
    "DEFAULT_STRATEGY",
    "FAIR_STRATEGIES",
    "InvalidStrategyError",
    "LeastSongsFirstStrategy",
    "NoCapacityError",
    "OriginalStrategy",
    "Placement",
    "RandomStrategy",
    "RoundRobinStrategy",
    "STRATEGY_NAMES",
    "Strategy",
    "find_slot",
    "get_strategy",
    "parse_strategy",
]
