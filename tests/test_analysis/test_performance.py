"""Tests for the per-driver and per-group performance breakdowns."""

from datetime import datetime

from tour_insight.analysis.performance import performance_by_driver, performance_by_group
from tour_insight.analysis.punctuality import build_outcomes
from tour_insight.analysis.records import MergedRecord, Task, Tour
from tour_insight.analysis.tours import build_tour_profiles


def at(h, m=0):
    return datetime(2024, 3, 4, h, m)


def _build(*tours_with_tasks):
    records = []
    for tour, tasks in tours_with_tasks:
        for kw in tasks:
            fields = {"window_start": at(10), "window_end": at(11)}
            fields.update(kw)
            task = Task(tour_unique_id=tour.unique_id if tour else "ghost", **fields)
            records.append(MergedRecord(task=task, tour=tour, ordre=len(records) + 1))
    outcomes = build_outcomes(records, 15.0)
    return outcomes, build_tour_profiles(outcomes)


class TestPerformanceByDriver:
    def test_rows_and_order(self):
        outcomes, profiles = _build(
            (Tour(unique_id="T1", driver="Alice 3", capacity_weight=100), [
                {"weight": 120, "realized_arrival": at(11, 30), "rating": 4},
                {"realized_arrival": at(9, 30), "rating": 2},
            ]),
            (Tour(unique_id="T2", driver="Alice 3"), [{"realized_arrival": at(10, 30)}]),
            (Tour(unique_id="T3", driver="STT Rapid Bob"), [
                {"realized_arrival": at(10, 30)},
                {"realized_arrival": at(10, 45)},
            ]),
            (Tour(unique_id="T4", driver="Zoe ID LOG"), [{"realized_arrival": at(10, 30)}]),
        )
        rows = performance_by_driver(outcomes, profiles)
        assert [r.driver for r in rows] == ["Alice 3", "STT Rapid Bob", "Zoe ID LOG"]
        alice = rows[0]
        assert alice.carrier == "BC one"
        assert (alice.total_tours, alice.total_tasks) == (2, 3)
        assert (alice.late_count, alice.early_count) == (1, 1)
        assert alice.punctuality_rate == 33.33
        assert alice.avg_delay == 0.0
        assert alice.avg_late_delay == 30.0
        assert alice.overweight_tours_count == 1
        assert alice.avg_rating == 3.0
        assert rows[1].carrier == "Rapid"
        assert rows[2].carrier == "ID LOG"

    def test_task_driver_used_for_orphans(self):
        outcomes, profiles = _build((None, [{"driver": "Sam", "realized_arrival": at(10, 30)}]))
        row = performance_by_driver(outcomes, profiles)[0]
        assert row.driver == "Sam"
        assert row.total_tours == 0
        assert row.carrier is None


class TestPerformanceByGroup:
    def test_largest_planning_gap_first(self):
        outcomes, profiles = _build(
            (Tour(unique_id="T1"), [
                {"city": "Paris", "planned_arrival": at(10, 30), "realized_arrival": at(12)},
                {"city": "Paris", "planned_arrival": at(10, 30), "realized_arrival": at(10, 30)},
            ]),
            (Tour(unique_id="T2"), [
                {"city": "Lyon", "planned_arrival": at(10, 30), "realized_arrival": at(10, 30)},
            ]),
            (Tour(unique_id="T3"), [{"city": "", "realized_arrival": at(12)}]),
        )
        rows = performance_by_group(outcomes, profiles, lambda o: o.record.task.city)
        assert [r.key for r in rows] == ["Paris", "Inconnu", "Lyon"]
        paris = rows[0]
        assert paris.punctuality_rate_planned == 100.0
        assert paris.punctuality_rate_realized == 50.0
        assert paris.total_tours == 1
        assert rows[1].punctuality_rate_planned is None
        assert sum(r.total_tasks for r in rows) == 4

    def test_tour_level_averages(self):
        outcomes, profiles = _build(
            (Tour(unique_id="T1", planned_weight=100, capacity_weight=50), [
                {"city": "Paris", "weight": 80, "planned_arrival": at(10),
                 "realized_arrival": at(10), "closure": at(10, 5)},
                {"city": "Paris", "weight": 40, "planned_arrival": at(11),
                 "realized_arrival": at(11, 30), "closure": at(11, 40)},
            ]),
        )
        paris = performance_by_group(outcomes, profiles, lambda o: o.record.task.city)[0]
        assert paris.avg_weight_discrepancy == 20.0
        assert paris.avg_duration_discrepancy == 40.0
        assert paris.overloaded_tours_count == 1
