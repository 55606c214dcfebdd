"""Workload over the day: hourly load, per-slot load per tour, saturation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from tour_insight.analysis.grouping import hour_label, mean, slot_label
from tour_insight.analysis.punctuality import Outcome


@dataclass(frozen=True)
class HourlyWorkload:
    hour: str
    planned: int   # stops planned to arrive in the hour
    real: int      # stops closed in the hour
    delays: int
    advances: int


@dataclass(frozen=True)
class SlotWorkload:
    slot: str
    avg_planned: float | None  # stops per tour in the slot
    avg_real: float | None


@dataclass(frozen=True)
class AverageWorkload:
    avg_planned: float | None
    avg_real: float | None


@dataclass(frozen=True)
class SaturationPoint:
    hour: str
    demand: int
    capacity: int
    gap: int


def _hour(moment: datetime | None) -> int | None:
    return None if moment is None else moment.hour


def _planned_moment(o: Outcome) -> datetime | None:
    task = o.record.task
    return task.planned_arrival or task.window_end


def _closed_moment(o: Outcome) -> datetime | None:
    task = o.record.task
    return task.closure or task.realized_arrival


def workload_by_hour(outcomes: Iterable[Outcome]) -> list[HourlyWorkload]:
    """24 rows, one per hour of the day."""
    planned = [0] * 24
    real = [0] * 24
    delays = [0] * 24
    advances = [0] * 24
    for o in outcomes:
        task = o.record.task
        h = _hour(task.planned_arrival)
        if h is not None:
            planned[h] += 1
        h = _hour(task.closure)
        if h is not None:
            real[h] += 1
        h = _hour(task.realized_arrival)
        if h is not None:
            if o.is_late:
                delays[h] += 1
            elif o.is_early:
                advances[h] += 1
    return [
        HourlyWorkload(
            hour=hour_label(h),
            planned=planned[h],
            real=real[h],
            delays=delays[h],
            advances=advances[h],
        )
        for h in range(24)
    ]


def average_workload_by_slot(
    outcomes: Iterable[Outcome],
) -> tuple[list[SlotWorkload], AverageWorkload]:
    """Stops per tour in each 2-hour slot, planned vs realized.

    Returns the 12 slot rows and the averages over the slots that carry
    any load.
    """
    planned_count = [0] * 12
    real_count = [0] * 12
    planned_tours: list[set[str]] = [set() for _ in range(12)]
    real_tours: list[set[str]] = [set() for _ in range(12)]
    for o in outcomes:
        task = o.record.task
        h = _hour(task.planned_arrival)
        if h is not None:
            planned_count[h // 2] += 1
            planned_tours[h // 2].add(o.record.tour_id)
        h = _hour(task.realized_arrival)
        if h is not None:
            real_count[h // 2] += 1
            real_tours[h // 2].add(o.record.tour_id)

    rows = [
        SlotWorkload(
            slot=slot_label(i * 2),
            avg_planned=mean(planned_count[i], len(planned_tours[i])),
            avg_real=mean(real_count[i], len(real_tours[i])),
        )
        for i in range(12)
    ]
    planned_avgs = [r.avg_planned for r in rows if r.avg_planned]
    real_avgs = [r.avg_real for r in rows if r.avg_real]
    overall = AverageWorkload(
        avg_planned=mean(sum(planned_avgs), len(planned_avgs)),
        avg_real=mean(sum(real_avgs), len(real_avgs)),
    )
    return rows, overall


def saturation_series(outcomes: Iterable[Outcome]) -> list[SaturationPoint]:
    """Cumulative planned demand against cumulative completions, hour by hour.

    Covers every hour between the earliest and the latest observed hour.
    """
    demand_at: dict[int, int] = {}
    done_at: dict[int, int] = {}
    for o in outcomes:
        h = _hour(_planned_moment(o))
        if h is not None:
            demand_at[h] = demand_at.get(h, 0) + 1
        h = _hour(_closed_moment(o))
        if h is not None:
            done_at[h] = done_at.get(h, 0) + 1

    hours = set(demand_at) | set(done_at)
    if not hours:
        return []

    series: list[SaturationPoint] = []
    demand = capacity = 0
    for h in range(min(hours), max(hours) + 1):
        demand += demand_at.get(h, 0)
        capacity += done_at.get(h, 0)
        series.append(SaturationPoint(
            hour=hour_label(h), demand=demand, capacity=capacity, gap=demand - capacity,
        ))
    return series
