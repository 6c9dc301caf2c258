"""Fairness comparison of allocation strategies."""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .planner import AllocationPlan, plan_allocation
from .registry import CourseRegistry
from .strategies import Strategy, parse_strategy


ANALYZED_STRATEGIES: Tuple[Strategy, ...] = (
    Strategy.ROUND_ROBIN,
    Strategy.LEAST_SONGS_FIRST,
    Strategy.RANDOM,
)


@dataclass(frozen=True)
class DistributionSummary:
    courses_used: int
    avg_per_course: float
    std_dev: float
    fairness_score: float


def summarize_histogram(histogram: Mapping[str, int], requested: Optional[int] = None) -> DistributionSummary:
    """Return spread statistics for per-course assignment counts.

    ``avg_per_course`` is *requested* songs (the placed total when omitted)
    over the courses that received at least one song; the standard deviation
    is the population deviation of those courses' counts around that average.
    An empty histogram is perfectly even by definition.
    """

    counts = [count for count in histogram.values() if count > 0]
    if not counts:
        return DistributionSummary(0, 0.0, 0.0, 1.0)
    total = sum(counts) if requested is None else requested
    average = total / len(counts)
    variance = sum((count - average) ** 2 for count in counts) / len(counts)
    std_dev = math.sqrt(variance)
    return DistributionSummary(
        courses_used=len(counts),
        avg_per_course=average,
        std_dev=std_dev,
        fairness_score=1.0 / (1.0 + std_dev),
    )


@dataclass
class StrategyReport:
    strategy: Strategy
    histogram: Dict[str, int]
    summary: DistributionSummary
    plan: Optional[AllocationPlan] = None

    @property
    def fairness_score(self) -> float:
        return self.summary.fairness_score

    def to_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "strategy": self.strategy.value,
            "distribution": dict(self.histogram),
            "coursesUsed": self.summary.courses_used,
            "avgPerCourse": round(self.summary.avg_per_course, 4),
            "stdDev": round(self.summary.std_dev, 4),
            "fairnessScore": round(self.summary.fairness_score, 4),
        }
        if self.plan is not None:
            payload["planned"] = len(self.plan)
            payload["plan"] = self.plan.to_list()
        return payload


@dataclass
class AllocationAnalysis:
    requested: int
    reports: List[StrategyReport]
    recommended: Optional[Strategy]

    def report_for(self, strategy: Union[str, Strategy]) -> StrategyReport:
        wanted = parse_strategy(strategy)
        for report in self.reports:
            if report.strategy is wanted:
                return report
        raise KeyError(wanted.value)

    def to_dict(self) -> Dict[str, object]:
        return {
            "songCount": self.requested,
            "recommended": self.recommended.value if self.recommended else None,
            "strategies": [report.to_dict() for report in self.reports],
        }


def build_report(
    strategy: Union[str, Strategy],
    histogram: Mapping[str, int],
    *,
    plan: Optional[AllocationPlan] = None,
    requested: Optional[int] = None,
) -> StrategyReport:
    if requested is None and plan is not None:
        requested = plan.requested
    return StrategyReport(
        strategy=parse_strategy(strategy),
        histogram=dict(histogram),
        summary=summarize_histogram(histogram, requested),
        plan=plan,
    )


def recommend(reports: Sequence[StrategyReport]) -> Optional[Strategy]:
    """Pick the highest fairness score; earlier reports win ties."""

    best: Optional[StrategyReport] = None
    for report in reports:
        if best is None or report.fairness_score > best.fairness_score:
            best = report
    return best.strategy if best is not None else None


def analyze_allocation(
    registry: CourseRegistry,
    count: int,
    *,
    strategies: Iterable[Union[str, Strategy]] = ANALYZED_STRATEGIES,
    rng: Optional[random.Random] = None,
) -> AllocationAnalysis:
    reports: List[StrategyReport] = []
    for name in strategies:
        plan = plan_allocation(registry, count, name, rng=rng)
        reports.append(build_report(plan.strategy, plan.histogram(), plan=plan))
    return AllocationAnalysis(requested=count, reports=reports, recommended=recommend(reports))


__all__ = [
    "ANALYZED_STRATEGIES",
    "AllocationAnalysis",
    "DistributionSummary",
    "StrategyReport",
    "analyze_allocation",
    "build_report",
    "recommend",
    "summarize_histogram",
]
