"""Delay/advance classification of delivery stops.

A stop is measured against its planned arrival window: arriving after the
window is a positive deviation, before it a negative one, inside it zero.
The deviation (in minutes) is then classified against the punctuality
threshold:

    delta >  threshold  -> "late"
    delta < -threshold  -> "early"
    otherwise           -> "on_time"

The same classification is applied to the planner's ETA ("planned") and to
the real arrival ("realized").
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable

from tour_insight.analysis.records import MergedRecord, Task

LATE = "late"
EARLY = "early"
ON_TIME = "on_time"

DEFAULT_THRESHOLD_MINUTES = 15.0


def _minutes(delta) -> float:
    return delta.total_seconds() / 60.0


def window_deviation(
    task: Task, arrival: datetime | None, point_fallback: bool = True
) -> float | None:
    """Minutes between *arrival* and the task's planned window, or None.

    A missing window edge falls back to the other edge; with
    *point_fallback*, a task without any window is measured against its
    planned arrival as a point window.
    """
    if arrival is None:
        return None
    start = task.window_start or task.window_end
    end = task.window_end or task.window_start
    if start is None or end is None:
        if not point_fallback or task.planned_arrival is None:
            return None
        start = end = task.planned_arrival
    if arrival > end:
        return _minutes(arrival - end)
    if arrival < start:
        return _minutes(arrival - start)
    return 0.0


def classify(delta: float | None, threshold: float) -> str | None:
    if delta is None:
        return None
    if delta > threshold:
        return LATE
    if delta < -threshold:
        return EARLY
    return ON_TIME


def realized_delay(task: Task) -> float | None:
    return window_deviation(task, task.realized_arrival)


def planned_delay(task: Task) -> float | None:
    return window_deviation(task, task.planned_arrival, point_fallback=False)


@dataclass(frozen=True)
class Outcome:
    """Per-record classification shared by every aggregate.

    ``status`` is None when the record is unmeasured (missing timestamps,
    stop not completed) or MAD-excused; such records still count in totals.
    """

    record: MergedRecord
    delay: float | None
    status: str | None
    planned_delay: float | None
    planned_status: str | None
    excused: bool = False

    @property
    def rating(self) -> float | None:
        """Customer rating, only kept for completed stops."""
        task = self.record.task
        return task.rating if task.completed else None

    @property
    def measured(self) -> bool:
        return self.status is not None

    @property
    def is_late(self) -> bool:
        return self.status == LATE

    @property
    def is_early(self) -> bool:
        return self.status == EARLY

    @property
    def is_on_time(self) -> bool:
        return self.status == ON_TIME


def build_outcomes(
    records: Iterable[MergedRecord],
    threshold: float,
    excused: Callable[[MergedRecord], bool] | None = None,
) -> list[Outcome]:
    """Classify every record once, in input order.

    Stops that were not completed (cancelled, failed, ...) are kept
    unmeasured.
    """
    outcomes: list[Outcome] = []
    for rec in records:
        if rec.task.completed:
            delay = realized_delay(rec.task)
            p_delay = planned_delay(rec.task)
        else:
            delay = p_delay = None
        status = classify(delay, threshold)
        is_excused = bool(excused is not None and status == LATE and excused(rec))
        outcomes.append(Outcome(
            record=rec,
            delay=None if is_excused else delay,
            status=None if is_excused else status,
            planned_delay=p_delay,
            planned_status=classify(p_delay, threshold),
            excused=is_excused,
        ))
    return outcomes
