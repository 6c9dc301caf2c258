"""Batch planning of song placements on a simulated registry."""

from __future__ import annotations

import logging
import random
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Union

from .registry import CourseRegistry
from .strategies import (
    AllocationStrategy,
    NoCapacityError,
    Placement,
    Strategy,
    get_strategy,
)


LOGGER = logging.getLogger(__name__)


@dataclass
class AllocationPlan:
    """Ordered placements for a batch of incoming songs, not yet committed."""

    strategy: Strategy
    requested: int
    placements: List[Placement] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.placements)

    def __iter__(self) -> Iterator[Placement]:
        return iter(self.placements)

    def __getitem__(self, index: int) -> Placement:
        return self.placements[index]

    @property
    def shortfall(self) -> int:
        return max(0, self.requested - len(self.placements))

    @property
    def is_partial(self) -> bool:
        return self.shortfall > 0

    def histogram(self) -> Dict[str, int]:
        counts = Counter(placement.course for placement in self.placements)
        return {course: counts[course] for course in sorted(counts)}

    def to_list(self) -> List[Dict[str, object]]:
        return [placement.as_dict() for placement in self.placements]

    def to_dict(self) -> Dict[str, object]:
        return {
            "strategy": self.strategy.value,
            "requested": self.requested,
            "planned": len(self.placements),
            "shortfall": self.shortfall,
            "plan": self.to_list(),
        }


def _seed_round(
    simulation: CourseRegistry, plan: AllocationPlan, limit: int
) -> None:
    candidates = simulation.courses_with_capacity()
    candidates.sort(key=lambda course: (course.occupied_count, course.key))
    for course in candidates:
        if len(plan) >= limit:
            return
        slot = course.empty_slots()[0]
        simulation.reserve(course.key, slot)
        plan.placements.append(Placement(course.key, slot))


def plan_allocation(
    registry: CourseRegistry,
    count: int,
    strategy: Union[str, Strategy, AllocationStrategy, None] = None,
    *,
    rng: Optional[random.Random] = None,
) -> AllocationPlan:
    """Plan placements for *count* songs without touching *registry*.

    The plan holds ``min(count, registry.total_empty_slots())`` entries. Each
    produced entry reserves its slot on a private copy of the registry so the
    following selections observe it. Fair strategies start with a seed round
    that hands one slot to every course with capacity, least loaded first,
    before any course receives a second song.
    """

    if count < 0:
        raise ValueError(f"Song count must not be negative: {count}")

    selector = strategy if isinstance(strategy, AllocationStrategy) else get_strategy(strategy, rng=rng)
    simulation = registry.copy()
    plan = AllocationPlan(strategy=selector.name, requested=count)

    if selector.seeds_first:
        _seed_round(simulation, plan, count)

    while len(plan) < count:
        try:
            placement = selector.select_next(simulation)
        except NoCapacityError:
            break
        simulation.reserve(placement.course, placement.slot)
        plan.placements.append(placement)

    if plan.is_partial:
        LOGGER.info(
            "Planned %s of %s song(s) with strategy %s; %s exceed remaining capacity",
            len(plan),
            count,
            selector.name.value,
            plan.shortfall,
        )
    else:
        LOGGER.debug("Planned %s song(s) with strategy %s", len(plan), selector.name.value)
    return plan


__all__ = ["AllocationPlan", "plan_allocation"]
