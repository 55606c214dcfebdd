"""Tests for the tour-level anomaly lists."""

from datetime import datetime

from tour_insight.analysis.anomalies import (
    duration_discrepancies,
    late_start_anomalies,
    overloaded_tours,
)
from tour_insight.analysis.punctuality import build_outcomes
from tour_insight.analysis.records import MergedRecord, Task, Tour
from tour_insight.analysis.tours import build_tour_profiles


def at(h, m=0):
    return datetime(2024, 3, 4, h, m)


def _profiles(*tours_with_tasks, max_weight=None):
    """tours_with_tasks: (Tour, [task kwargs, ...])."""
    records = []
    for tour, tasks in tours_with_tasks:
        for kw in tasks:
            fields = {"window_start": at(10), "window_end": at(11)}
            fields.update(kw)
            task = Task(tour_unique_id=tour.unique_id, **fields)
            records.append(MergedRecord(task=task, tour=tour, ordre=len(records) + 1))
    profiles = build_tour_profiles(build_outcomes(records, 15.0), max_weight)
    return list(profiles.values())


class TestOverloadedTours:
    def test_sorted_by_weight_overrun_pct(self):
        profiles = _profiles(
            (Tour(unique_id="A", capacity_weight=500), [{"weight": 520}]),
            (Tour(unique_id="B", capacity_weight=100), [{"weight": 150}]),
            (Tour(unique_id="C", capacity_weight=500), [{"weight": 400}]),
            (Tour(unique_id="D", capacity_volume=10), [{"items": 12, "weight": 400}]),
        )
        rows = overloaded_tours(profiles)
        assert [r.unique_id for r in rows] == ["B", "A", "D"]
        assert rows[0].weight_overrun == 50
        assert rows[0].weight_overrun_pct == 50.0
        assert rows[1].weight_overrun_pct == 4.0
        assert rows[2].weight_overrun is None
        assert rows[2].weight_overrun_pct is None
        assert rows[2].volume_overrun_pct == 20.0

    def test_global_threshold(self):
        profiles = _profiles((Tour(unique_id="A"), [{"weight": 450}]), max_weight=400)
        rows = overloaded_tours(profiles)
        assert rows[0].weight_limit == 400
        assert rows[0].weight_overrun_pct == 12.5


class TestLateStartAnomalies:
    def test_most_late_stops_first(self):
        on_time = {"planned_start": at(8), "realized_start": at(8)}
        profiles = _profiles(
            (Tour(unique_id="A", **on_time), [
                {"sequence": 1, "realized_arrival": at(10, 30)},
                {"sequence": 2, "realized_arrival": at(12)},
            ]),
            (Tour(unique_id="B", **on_time), [
                {"sequence": 1, "realized_arrival": at(11, 30)},
                {"sequence": 2, "realized_arrival": at(12)},
            ]),
            (Tour(unique_id="C", planned_start=at(8), realized_start=at(9)), [
                {"sequence": 1, "realized_arrival": at(12)},
            ]),
        )
        rows = late_start_anomalies(profiles)
        assert [(r.unique_id, r.late_tasks) for r in rows] == [("B", 2), ("A", 1)]


class TestDurationDiscrepancies:
    def test_only_overruns_largest_first(self):
        profiles = _profiles(
            (Tour(unique_id="A"), [
                {"planned_arrival": at(10), "realized_arrival": at(10), "closure": at(10, 5)},
                {"planned_arrival": at(11), "realized_arrival": at(11, 30), "closure": at(11, 40)},
            ]),
            (Tour(unique_id="B"), [
                {"planned_arrival": at(10), "realized_arrival": at(10), "closure": at(10, 5)},
                {"planned_arrival": at(11), "realized_arrival": at(12), "closure": at(12, 20)},
            ]),
            (Tour(unique_id="C"), [
                {"planned_arrival": at(10), "realized_arrival": at(10), "closure": at(10, 5)},
                {"planned_arrival": at(12), "realized_arrival": at(11), "closure": at(11, 5)},
            ]),
        )
        rows = duration_discrepancies(profiles)
        assert [r.unique_id for r in rows] == ["B", "A"]
        assert rows[0].estimated_duration == 60
        assert rows[0].realized_duration == 140
        assert rows[0].gap == 80
        assert rows[1].gap == 40
