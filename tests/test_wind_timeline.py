"""
Unit tests for WindTimeline context selection, loading and blending.
"""

import logging
from concurrent.futures import Executor, Future

import pytest

from racesim.geo import LngLat
from racesim.wind.field import WindFieldDescriptor
from racesim.wind.loader import load_field
from racesim.wind.timeline import WindTimeline, prepare_descriptors, select_wind_context

from conftest import HOUR_MS, FakeLoader, descriptors_for, oversized_png


POSITION = LngLat(lng=-4.0, lat=47.0)


class DeferredExecutor(Executor):
    """Queues work until run_all() is called."""

    def __init__(self):
        self._pending = []

    def submit(self, fn, *args, **kwargs):
        future = Future()
        self._pending.append((future, fn, args, kwargs))
        return future

    def run_all(self):
        pending, self._pending = self._pending, []
        for future, fn, args, kwargs in pending:
            if future.set_running_or_notify_cancel():
                future.set_result(fn(*args, **kwargs))


class TestSelectWindContext:
    """Tests for the pure context selection policy."""

    def test_no_upcoming_keeps_current(self):
        [current] = descriptors_for([0])
        assert select_wind_context(10 * HOUR_MS, current, []) == (current, [])

    def test_before_all_adopts_first_when_no_current(self):
        d0, d1 = descriptors_for([HOUR_MS, 2 * HOUR_MS])
        assert select_wind_context(0, None, [d0, d1]) == (d0, [d1])

    def test_before_all_keeps_existing_current(self):
        [current] = descriptors_for([0])
        upcoming = descriptors_for([HOUR_MS, 2 * HOUR_MS])
        assert select_wind_context(HOUR_MS // 2, current, upcoming) == (current, upcoming)

    def test_advances_to_last_descriptor_not_after_time(self):
        d0, d1, d2, d3 = descriptors_for([0, HOUR_MS, 2 * HOUR_MS, 3 * HOUR_MS])
        current, upcoming = select_wind_context(2 * HOUR_MS + 1, d0, [d1, d2, d3])
        assert current == d2
        assert upcoming == [d3]

    def test_exact_time_becomes_current(self):
        d0, d1 = descriptors_for([0, HOUR_MS])
        assert select_wind_context(HOUR_MS, d0, [d1]) == (d1, [])

    def test_after_all_takes_last(self):
        descriptors = descriptors_for([0, HOUR_MS, 2 * HOUR_MS])
        assert select_wind_context(99 * HOUR_MS, None, descriptors) == (descriptors[-1], [])


class TestPrepareDescriptors:
    def test_sorted_and_deduplicated(self):
        a, b, c = descriptors_for([2, 1, 2])
        assert [d.time for d in prepare_descriptors([a, b, c])] == [1, 2]
        assert prepare_descriptors([a, b, c])[1] is a


class TestWindTimeline:
    """Tests for WindTimeline."""

    @pytest.fixture
    def loader(self):
        return FakeLoader({0: (0.0, -10.0), HOUR_MS: (0.0, -20.0), 2 * HOUR_MS: (10.0, 0.0)})

    @pytest.fixture
    def timeline(self, loader, executor):
        return WindTimeline(descriptors_for([0, HOUR_MS, 2 * HOUR_MS]), loader=loader, executor=executor)

    def test_no_wind_before_first_advance(self, timeline):
        assert timeline.sample_at(POSITION, 0) is None
        assert not timeline.is_ready

    def test_loads_current_and_next(self, timeline):
        timeline.advance(0)

        assert timeline.current_field.time == 0
        assert timeline.next_field.time == HOUR_MS

    def test_blends_between_fields(self, timeline):
        timeline.advance(HOUR_MS // 4)

        wind = timeline.sample_at(POSITION, HOUR_MS // 4)

        assert timeline.interpolation_factor(HOUR_MS // 4) == pytest.approx(0.25)
        assert wind.v == pytest.approx(-12.5)

    def test_unblended_without_next(self, loader, executor):
        timeline = WindTimeline(descriptors_for([0]), loader=loader, executor=executor)
        timeline.advance(HOUR_MS)

        assert timeline.next_field is None
        assert timeline.sample_at(POSITION, HOUR_MS).v == pytest.approx(-10.0)

    def test_promotes_next_field(self, timeline, loader):
        timeline.advance(0)
        timeline.advance(HOUR_MS)

        assert timeline.current_field.time == HOUR_MS
        assert timeline.next_field.time == 2 * HOUR_MS
        # The promoted field is not fetched twice
        assert loader.calls.count(HOUR_MS) == 1

    def test_at_most_two_descriptors_loaded_ahead(self, timeline, loader):
        timeline.advance(0)
        assert sorted(loader.calls) == [0, HOUR_MS]

    def test_current_time_never_regresses(self, timeline):
        seen = []
        for t in range(0, 3 * HOUR_MS, HOUR_MS // 7):
            timeline.advance(t)
            seen.append(timeline.current_field.time)
        assert seen == sorted(seen)
        assert seen[-1] == 2 * HOUR_MS

    def test_rewind_rejected(self, timeline):
        timeline.advance(HOUR_MS)
        with pytest.raises(ValueError):
            timeline.advance(HOUR_MS - 1)

    def test_replacing_descriptors(self, timeline, loader):
        timeline.advance(0)
        loader.winds[5 * HOUR_MS] = (0.0, 5.0)

        timeline.advance(HOUR_MS // 2, descriptors=descriptors_for([5 * HOUR_MS]))

        assert timeline.current_field.time == 0
        assert timeline.next_field.time == 5 * HOUR_MS

    def test_failed_current_keeps_previous_field(self, executor, caplog):
        loader = FakeLoader({0: (0.0, -10.0)}, failing=[HOUR_MS])
        timeline = WindTimeline(descriptors_for([0, HOUR_MS]), loader=loader, executor=executor)

        with caplog.at_level(logging.WARNING):
            timeline.advance(0)
            timeline.advance(HOUR_MS)

        assert timeline.current_field.time == 0
        assert timeline.sample_at(POSITION, HOUR_MS).v == pytest.approx(-10.0)
        assert 'unavailable' in caplog.text

    def test_failed_field_not_refetched(self, executor):
        loader = FakeLoader({0: (0.0, -10.0)}, failing=[HOUR_MS])
        timeline = WindTimeline(descriptors_for([0, HOUR_MS]), loader=loader, executor=executor)

        for t in range(0, HOUR_MS, HOUR_MS // 10):
            timeline.advance(t)

        assert loader.calls.count(HOUR_MS) == 1

    def test_wait_blocks_for_initial_load(self, loader):
        timeline = WindTimeline(descriptors_for([0, HOUR_MS]), loader=loader)
        try:
            timeline.advance(0, wait=True)
            assert timeline.current_field.time == 0
            assert timeline.next_field.time == HOUR_MS
        finally:
            timeline.close()

    def test_cancel_drops_in_flight_loads(self, loader):
        executor = DeferredExecutor()
        timeline = WindTimeline(descriptors_for([0, HOUR_MS]), loader=loader, executor=executor)
        timeline.advance(0)

        timeline.cancel()
        executor.run_all()
        timeline.poll()

        assert timeline.current_field is None
        assert timeline.next_field is None

    def test_late_completion_applied_on_later_tick(self, loader):
        """A load finishing between ticks is picked up without blocking."""
        executor = DeferredExecutor()
        timeline = WindTimeline(descriptors_for([0, HOUR_MS]), loader=loader, executor=executor)
        timeline.advance(0)
        assert timeline.sample_at(POSITION, 0) is None

        executor.run_all()
        timeline.advance(1)

        assert timeline.sample_at(POSITION, 1) is not None

    def test_oversized_raster_marks_field_failed(self, tmp_path, executor, raster_png, caplog):
        """An undecodable raster leaves the timeline without wind instead of raising."""
        (tmp_path / 'huge.png').write_bytes(oversized_png())
        (tmp_path / 'ok.png').write_bytes(raster_png)
        descriptors = [
            WindFieldDescriptor(time=0, source_url=str(tmp_path / 'huge.png')),
            WindFieldDescriptor(time=HOUR_MS, source_url=str(tmp_path / 'ok.png')),
        ]
        timeline = WindTimeline(descriptors, loader=load_field, executor=executor)

        with caplog.at_level(logging.WARNING):
            timeline.advance(0)
            timeline.advance(1)

        assert timeline.current_field is None
        assert timeline.sample_at(POSITION, 1) is None
        assert timeline.next_field.time == HOUR_MS
        assert 'unavailable' in caplog.text
        # Submitted once, never retried
        assert sum(1 for args in executor.submitted if args[0].time == 0) == 1

    def test_in_flight_preload_handed_to_current(self, loader):
        """A field that becomes current while preloading is not fetched again."""
        executor = DeferredExecutor()
        timeline = WindTimeline(descriptors_for([0, HOUR_MS, 2 * HOUR_MS]), loader=loader, executor=executor)
        timeline.advance(0)

        timeline.advance(HOUR_MS)
        executor.run_all()
        timeline.poll()

        assert loader.calls.count(HOUR_MS) == 1
        assert timeline.current_field.time == HOUR_MS
        assert timeline.next_field.time == 2 * HOUR_MS
