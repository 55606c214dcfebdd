"""Tests for window deviation and delay classification."""

from datetime import date, datetime

from tour_insight.analysis.punctuality import (
    EARLY,
    LATE,
    ON_TIME,
    build_outcomes,
    classify,
    planned_delay,
    realized_delay,
    window_deviation,
)
from tour_insight.analysis.records import MergedRecord, Task


def at(h, m=0):
    return datetime(2024, 3, 4, h, m)


def _task(**kw):
    fields = {"tour_unique_id": "T1", "sequence": 1, "date": date(2024, 3, 4),
              "window_start": at(10), "window_end": at(11)}
    fields.update(kw)
    return Task(**fields)


class TestWindowDeviation:
    def test_inside_window_is_zero(self):
        assert window_deviation(_task(), at(10, 30)) == 0.0

    def test_after_window_measures_from_end(self):
        assert window_deviation(_task(), at(11, 20)) == 20.0

    def test_before_window_measures_from_start(self):
        assert window_deviation(_task(), at(9, 30)) == -30.0

    def test_missing_edge_uses_other_edge(self):
        task = _task(window_start=None)
        assert window_deviation(task, at(10, 50)) == -10.0
        assert window_deviation(task, at(11, 5)) == 5.0

    def test_no_window_falls_back_to_planned_arrival(self):
        task = _task(window_start=None, window_end=None, planned_arrival=at(10))
        assert window_deviation(task, at(10, 25)) == 25.0
        assert window_deviation(task, at(10, 25), point_fallback=False) is None

    def test_missing_arrival(self):
        assert window_deviation(_task(), None) is None


class TestClassify:
    def test_threshold_is_inclusive_on_time(self):
        assert classify(15.0, 15.0) == ON_TIME
        assert classify(-15.0, 15.0) == ON_TIME

    def test_late_and_early(self):
        assert classify(15.5, 15.0) == LATE
        assert classify(-16.0, 15.0) == EARLY

    def test_unmeasured(self):
        assert classify(None, 15.0) is None


class TestDelays:
    def test_realized_uses_real_arrival(self):
        task = _task(realized_arrival=at(11, 30), planned_arrival=at(10, 30))
        assert realized_delay(task) == 30.0
        assert planned_delay(task) == 0.0

    def test_planned_needs_a_window(self):
        task = _task(window_start=None, window_end=None, planned_arrival=at(10, 30))
        assert planned_delay(task) is None


class TestBuildOutcomes:
    def _records(self):
        return [
            MergedRecord(task=_task(sequence=1, realized_arrival=at(11, 30)), tour=None, ordre=1),
            MergedRecord(task=_task(sequence=2, realized_arrival=at(9, 0)), tour=None, ordre=2),
            MergedRecord(task=_task(sequence=3), tour=None, ordre=3),
        ]

    def test_classifies_in_input_order(self):
        outcomes = build_outcomes(self._records(), 15.0)
        assert [o.status for o in outcomes] == [LATE, EARLY, None]
        assert [o.record.ordre for o in outcomes] == [1, 2, 3]
        assert not outcomes[2].measured

    def test_only_late_records_are_excused(self):
        outcomes = build_outcomes(self._records(), 15.0, excused=lambda rec: True)
        late, early, unmeasured = outcomes
        assert late.excused and late.status is None and late.delay is None
        assert not late.is_late
        assert not early.excused and early.is_early
        assert not unmeasured.excused


class TestUnfinishedStops:
    def test_progress_values(self):
        assert _task().completed
        assert _task(progress="Complétée").completed
        assert _task(progress="  ").completed
        assert not _task(progress="Annulée").completed
        assert not _task(progress="Échouée").completed

    def test_unfinished_stop_is_unmeasured(self):
        records = [
            MergedRecord(task=_task(progress="Complétée", realized_arrival=at(11, 30), rating=2),
                         tour=None, ordre=1),
            MergedRecord(task=_task(progress="Annulée", realized_arrival=at(11, 30),
                                    planned_arrival=at(11, 30), rating=1),
                         tour=None, ordre=2),
        ]
        done, cancelled = build_outcomes(records, 15.0, excused=lambda rec: True)
        assert done.excused and done.rating == 2
        assert cancelled.status is None and cancelled.delay is None
        assert cancelled.planned_status is None and cancelled.planned_delay is None
        assert not cancelled.excused
        assert cancelled.rating is None
