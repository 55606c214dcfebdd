"""Per-tour profiles derived from the classified stops of each tour.

Every tour-level figure (realized load, overload verdict, durations, first
and last stop) is computed once here and shared by the group breakdowns and
the anomaly lists, so a tour is judged the same way everywhere.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from tour_insight.analysis.punctuality import Outcome
from tour_insight.analysis.records import Tour


@dataclass(frozen=True)
class TourProfile:
    tour: Tour
    outcomes: tuple[Outcome, ...]
    realized_weight: float
    realized_volume: float
    weight_limit: float | None
    overweight: bool
    overvolume: bool
    estimated_duration: float | None  # minutes, first to last planned stop
    realized_duration: float | None   # minutes, first arrival to last closure

    @property
    def unique_id(self) -> str:
        return self.tour.unique_id

    @property
    def overloaded(self) -> bool:
        return self.overweight or self.overvolume

    @property
    def weight_overrun(self) -> float | None:
        """Kilograms above the weight limit, None when the tour has no limit."""
        if self.weight_limit is None:
            return None
        return self.realized_weight - self.weight_limit

    @property
    def weight_overrun_pct(self) -> float | None:
        if not self.weight_limit:
            return None
        return self.weight_overrun / self.weight_limit * 100

    @property
    def volume_overrun(self) -> float:
        return self.realized_volume - self.tour.capacity_volume

    @property
    def volume_overrun_pct(self) -> float | None:
        if self.tour.capacity_volume <= 0:
            return None
        return self.volume_overrun / self.tour.capacity_volume * 100

    @property
    def weight_discrepancy(self) -> float:
        return self.realized_weight - self.tour.planned_weight

    @property
    def duration_discrepancy(self) -> float | None:
        if self.estimated_duration is None or self.realized_duration is None:
            return None
        return self.realized_duration - self.estimated_duration

    @property
    def first_outcome(self) -> Outcome:
        return self.outcomes[0]

    @property
    def last_outcome(self) -> Outcome:
        return self.outcomes[-1]

    @property
    def late_count(self) -> int:
        return sum(1 for o in self.outcomes if o.is_late)

    @property
    def departed_on_time(self) -> bool:
        start, planned = self.tour.realized_start, self.tour.planned_start
        return start is not None and planned is not None and start <= planned

    @property
    def late_start_anomaly(self) -> bool:
        """Left on time, yet the last stop was late: lateness built up en route."""
        return self.departed_on_time and self.last_outcome.is_late


def _stop_order(outcome: Outcome) -> tuple[int, int]:
    seq = outcome.record.task.sequence
    return (seq if seq is not None else outcome.record.ordre, outcome.record.ordre)


def _span(values: list) -> float | None:
    if not values:
        return None
    return (max(values) - min(values)).total_seconds() / 60.0


def build_tour_profiles(
    outcomes: Iterable[Outcome],
    max_weight_threshold: float | None = None,
) -> dict[str, TourProfile]:
    """Group classified stops by tour and profile each tour.

    Stops without a parent tour are skipped.  Tours keep first-seen order.
    """
    grouped: dict[str, list[Outcome]] = {}
    tours: dict[str, Tour] = {}
    for outcome in outcomes:
        tour = outcome.record.tour
        if tour is None:
            continue
        tours.setdefault(tour.unique_id, tour)
        grouped.setdefault(tour.unique_id, []).append(outcome)

    profiles: dict[str, TourProfile] = {}
    for tour_id, stops in grouped.items():
        tour = tours[tour_id]
        stops = sorted(stops, key=_stop_order)
        tasks = [o.record.task for o in stops]

        weight = tour.realized_weight
        if weight is None:
            weight = sum(t.weight or 0.0 for t in tasks)
        volume = tour.realized_volume
        if volume is None:
            volume = sum(t.items or 0.0 for t in tasks)

        # Declared capacity wins over the global threshold
        limit = tour.capacity_weight if tour.capacity_weight > 0 else max_weight_threshold

        planned = [t.planned_arrival for t in tasks if t.planned_arrival is not None]
        arrivals = [t.realized_arrival for t in tasks if t.realized_arrival is not None]
        closures = [t.closure or t.realized_arrival for t in tasks if (t.closure or t.realized_arrival)]
        realized_duration = None
        if arrivals and closures:
            realized_duration = (max(closures) - min(arrivals)).total_seconds() / 60.0

        profiles[tour_id] = TourProfile(
            tour=tour,
            outcomes=tuple(stops),
            realized_weight=weight,
            realized_volume=volume,
            weight_limit=limit,
            overweight=limit is not None and weight > limit,
            overvolume=tour.capacity_volume > 0 and volume > tour.capacity_volume,
            estimated_duration=_span(planned),
            realized_duration=realized_duration,
        )
    return profiles
