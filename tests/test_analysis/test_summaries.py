"""Tests for depot / warehouse / postal-code summary tables."""

from datetime import datetime

from tour_insight.analysis.lookups import DEFAULT_DEPOT_LOOKUP
from tour_insight.analysis.punctuality import build_outcomes
from tour_insight.analysis.records import MergedRecord, Task, Tour
from tour_insight.analysis.summaries import depot_summaries, postal_code_summaries
from tour_insight.analysis.tours import build_tour_profiles


def at(h, m=0):
    return datetime(2024, 3, 4, h, m)


def _build(*tours_with_tasks):
    records = []
    for tour, tasks in tours_with_tasks:
        for kw in tasks:
            fields = {"window_start": at(10), "window_end": at(11)}
            fields.update(kw)
            task = Task(tour_unique_id=tour.unique_id, **fields)
            records.append(MergedRecord(task=task, tour=tour, ordre=len(records) + 1))
    outcomes = build_outcomes(records, 15.0)
    return outcomes, build_tour_profiles(outcomes)


def _depot(o):
    return DEFAULT_DEPOT_LOOKUP.depot_for(o.record.warehouse)


class TestDepotSummaries:
    def _data(self):
        on_time = {"planned_start": at(8), "realized_start": at(8)}
        return _build(
            (Tour(unique_id="R1", warehouse="Rungis 1", capacity_weight=100, **on_time), [
                {"sequence": 1, "weight": 70, "realized_arrival": at(11, 30), "rating": 2,
                 "planned_arrival": at(10, 30), "closure": at(11, 35)},
                {"sequence": 2, "weight": 70, "realized_arrival": at(10, 20), "rating": 5,
                 "planned_arrival": at(10, 40), "closure": at(10, 25)},
            ]),
            (Tour(unique_id="R2", warehouse="Rungis 2", planned_start=at(8),
                  realized_start=at(8, 30)), [
                {"sequence": 1, "window_start": at(14), "window_end": at(16),
                 "realized_arrival": at(15), "planned_arrival": at(15), "closure": at(15, 5)},
            ]),
            (Tour(unique_id="A1", warehouse="Aix 1"), [
                {"sequence": 1, "realized_arrival": at(10, 30)},
            ]),
        )

    def test_one_row_per_depot_in_key_order(self):
        outcomes, profiles = self._data()
        rows = depot_summaries(outcomes, profiles, _depot)
        assert [r.key for r in rows] == ["Aix", "Rungis"]
        rungis = rows[1]
        assert rungis.total_deliveries == 3
        assert rungis.total_tours == 2
        assert rungis.punctuality_rate_realized == 66.67
        assert rungis.punctuality_rate_planned == 100.0

    def test_departure_and_review_shares(self):
        outcomes, profiles = self._data()
        rungis = depot_summaries(outcomes, profiles, _depot)[1]
        # R1 left on time and its first stop was late; R2 left late
        assert rungis.on_time_departure_first_late_pct == 50.0
        assert rungis.on_time_departure_any_late_pct == 50.0
        assert rungis.negative_ratings_late_pct == 100.0
        assert rungis.overweight_tours_pct == 50.0

    def test_windows(self):
        outcomes, profiles = self._data()
        rungis = depot_summaries(outcomes, profiles, _depot)[1]
        assert rungis.most_chosen_window == "10:00-11:00"
        assert rungis.most_chosen_window_pct == 66.67
        assert rungis.most_late_window == "10:00-11:00"
        assert rungis.most_late_window_rate == 50.0

    def test_intensity(self):
        outcomes, profiles = self._data()
        rungis = depot_summaries(outcomes, profiles, _depot)[1]
        # 10h-12h: R1 plans 2 stops, closes 2; 14h-16h: R2 plans 1, closes 1
        assert rungis.planned_intensity == 1.5
        assert rungis.realized_intensity == 1.5
        assert rungis.most_intense_slot == "10h-12h"
        assert rungis.most_intense_value == 2.0
        assert rungis.least_intense_slot == "14h-16h"
        assert rungis.least_intense_value == 1.0

    def test_no_timestamps_gives_none(self):
        outcomes, profiles = self._data()
        aix = depot_summaries(outcomes, profiles, _depot)[0]
        assert aix.planned_intensity is None
        assert aix.most_intense_slot is None
        assert aix.most_late_window is None
        assert aix.on_time_departure_first_late_pct == 0.0

    def test_by_warehouse(self):
        outcomes, profiles = self._data()
        rows = depot_summaries(outcomes, profiles, lambda o: o.record.warehouse)
        assert [r.key for r in rows] == ["Aix 1", "Rungis 1", "Rungis 2"]


class TestPostalCodeSummaries:
    def test_worst_first(self):
        outcomes, _ = _build(
            (Tour(unique_id="T1", warehouse="Rungis 1"), [
                {"postal_code": "75001", "realized_arrival": at(11, 30)},
                {"postal_code": "75001", "realized_arrival": at(10, 30)},
                {"postal_code": "94150", "realized_arrival": at(12)},
                {"postal_code": "", "realized_arrival": at(12)},
                {"postal_code": "75002", "realized_arrival": at(10, 30)},
            ]),
        )
        rows = postal_code_summaries(outcomes)
        assert [(r.postal_code, r.late_pct) for r in rows] == [
            ("94150", 100.0),
            ("75001", 50.0),
            ("75002", 0.0),
        ]
        assert rows[1].warehouse == "Rungis 1"
        assert rows[1].total_deliveries == 2
        assert rows[1].late_count == 1
