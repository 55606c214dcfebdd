"""Performance breakdowns by driver and by arbitrary grouping key.

Pure functions over classified stops and tour profiles.  Every row is
finalised after the fold; unavailable figures are None.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable

from tour_insight.analysis.grouping import GroupAccumulator, fold_by, mean
from tour_insight.analysis.lookups import carrier_for
from tour_insight.analysis.punctuality import Outcome
from tour_insight.analysis.tours import TourProfile


@dataclass(frozen=True)
class DriverPerformance:
    """Punctuality, load and satisfaction figures for one driver."""

    driver: str
    carrier: str | None
    total_tours: int
    total_tasks: int
    punctuality_rate: float | None
    avg_delay: float | None  # minutes, sign-preserving
    avg_late_delay: float | None
    late_count: int
    early_count: int
    overweight_tours_count: int
    avg_rating: float | None


@dataclass(frozen=True)
class GroupPerformance:
    """Planned vs realized performance for one group (city, depot, ...)."""

    key: str
    total_tasks: int
    total_tours: int
    punctuality_rate_planned: float | None
    punctuality_rate_realized: float | None
    avg_delay: float | None
    avg_late_delay: float | None
    late_count: int
    early_count: int
    avg_rating: float | None
    avg_duration_discrepancy: float | None  # minutes per tour
    avg_weight_discrepancy: float | None    # kg per tour
    late_with_bad_review_pct: float | None
    overloaded_tours_count: int


def _group_tours(acc: GroupAccumulator, profiles: dict[str, TourProfile]) -> list[TourProfile]:
    return [profiles[t] for t in acc.tour_ids if t in profiles]


def performance_by_driver(
    outcomes: Iterable[Outcome],
    profiles: dict[str, TourProfile],
) -> list[DriverPerformance]:
    """One row per driver, busiest drivers first."""
    groups = fold_by(outcomes, lambda o: o.record.driver)
    rows = []
    for driver, acc in groups.items():
        tours = _group_tours(acc, profiles)
        rows.append(DriverPerformance(
            driver=driver,
            carrier=carrier_for(driver),
            total_tours=acc.tour_count,
            total_tasks=acc.total,
            punctuality_rate=acc.punctuality_rate,
            avg_delay=acc.avg_delay,
            avg_late_delay=acc.avg_late_delay,
            late_count=acc.late,
            early_count=acc.early,
            overweight_tours_count=sum(1 for p in tours if p.overloaded),
            avg_rating=acc.avg_rating,
        ))
    rows.sort(key=lambda r: (-r.total_tours, -r.total_tasks, r.driver))
    return rows


def _planning_gap(row: GroupPerformance) -> float:
    planned = row.punctuality_rate_planned
    realized = row.punctuality_rate_realized
    if planned is None or realized is None:
        return 0.0
    return planned - realized


def performance_by_group(
    outcomes: Iterable[Outcome],
    profiles: dict[str, TourProfile],
    key_fn: Callable[[Outcome], str | None],
) -> list[GroupPerformance]:
    """One row per group, largest planned-vs-realized punctuality gap first."""
    rows = []
    for key, acc in fold_by(outcomes, key_fn).items():
        tours = _group_tours(acc, profiles)
        durations = [p.duration_discrepancy for p in tours if p.duration_discrepancy is not None]
        rows.append(GroupPerformance(
            key=key,
            total_tasks=acc.total,
            total_tours=acc.tour_count,
            punctuality_rate_planned=acc.planned_punctuality_rate,
            punctuality_rate_realized=acc.punctuality_rate,
            avg_delay=acc.avg_delay,
            avg_late_delay=acc.avg_late_delay,
            late_count=acc.late,
            early_count=acc.early,
            avg_rating=acc.avg_rating,
            avg_duration_discrepancy=mean(sum(durations), len(durations)),
            avg_weight_discrepancy=mean(sum(p.weight_discrepancy for p in tours), len(tours)),
            late_with_bad_review_pct=acc.late_with_bad_review_pct,
            overloaded_tours_count=sum(1 for p in tours if p.overloaded),
        ))
    rows.sort(key=lambda r: (-_planning_gap(r), r.key))
    return rows
