"""Tests for the rolling sample history and its trend analysis."""

import threading
import time

import pytest

from cityweather.services.sample_history import (
    MAX_SAMPLES,
    SampleHistory,
    TrendResult,
    WeatherSample,
    fit_temperature_trend,
)


def _sample(i: int, temp: float = 0.0, precip: float = 0.0) -> WeatherSample:
    return WeatherSample(date=f"day-{i}", temperature_c=temp, precipitation=precip)


def _history(temps: list[float], precips: list[float] | None = None) -> SampleHistory:
    precips = precips if precips is not None else [0.0] * len(temps)
    h = SampleHistory()
    for i, (t, p) in enumerate(zip(temps, precips)):
        h.append(_sample(i, t, p))
    return h


class TestCapacity:
    def test_never_exceeds_capacity(self):
        h = SampleHistory()
        for i in range(MAX_SAMPLES + 50):
            h.append(_sample(i, float(i)))
            assert len(h) <= MAX_SAMPLES

    def test_keeps_most_recent_in_order(self):
        h = SampleHistory()
        total = MAX_SAMPLES + 10
        for i in range(total):
            h.append(_sample(i, float(i)))
        dates = [s.date for s in h.history()]
        assert dates == [f"day-{i}" for i in range(10, total)]

    def test_seed_truncates_to_newest(self):
        seed = [_sample(i) for i in range(MAX_SAMPLES + 5)]
        h = SampleHistory(seed)
        assert len(h) == MAX_SAMPLES
        assert h.history()[0].date == "day-5"

    def test_clear_empties(self):
        h = _history([1.0, 2.0, 3.0])
        h.clear()
        assert h.history() == []
        assert h.latest() is None

    def test_restore_older_goes_in_front(self):
        saved = []
        h = SampleHistory(on_change=saved.append)
        h.append(_sample(100))
        h.restore_older([_sample(i) for i in range(MAX_SAMPLES)])
        dates = [s.date for s in h.history()]
        assert len(dates) == MAX_SAMPLES
        assert dates[0] == "day-1"
        assert dates[-2:] == [f"day-{MAX_SAMPLES - 1}", "day-100"]
        # Only the append notified
        assert len(saved) == 1


class TestChangeCallback:
    def test_append_and_clear_notify_with_snapshot(self):
        seen: list[list[WeatherSample]] = []
        h = SampleHistory(on_change=seen.append)
        h.append(_sample(0, 1.0))
        h.append(_sample(1, 2.0))
        h.clear()
        assert [len(s) for s in seen] == [1, 2, 0]

    def test_seed_does_not_notify(self):
        seen = []
        h = SampleHistory(on_change=seen.append)
        h.seed([_sample(0), _sample(1)])
        assert seen == []
        assert len(h) == 2

    def test_snapshot_is_a_copy(self):
        seen = []
        h = SampleHistory(on_change=seen.append)
        h.append(_sample(0))
        h.append(_sample(1))
        assert len(seen[0]) == 1


class TestWindowed:
    def test_non_positive_returns_all(self):
        h = _history([1.0, 2.0, 3.0])
        assert h.windowed(0) == h.history()
        assert h.windowed(-4) == h.history()

    def test_window_at_or_beyond_length_returns_all(self):
        h = _history([1.0, 2.0, 3.0])
        assert len(h.windowed(3)) == 3
        assert len(h.windowed(100)) == 3

    def test_returns_last_entries_in_order(self):
        h = _history([1.0, 2.0, 3.0, 4.0, 5.0])
        assert [s.temperature_c for s in h.windowed(2)] == [4.0, 5.0]

    def test_result_not_affected_by_later_mutation(self):
        h = _history([1.0, 2.0, 3.0])
        view = h.windowed(0)
        h.append(_sample(9, 9.0))
        h.clear()
        assert [s.temperature_c for s in view] == [1.0, 2.0, 3.0]

    def test_empty_history(self):
        assert SampleHistory().windowed(5) == []


class TestTemperatureTrend:
    def test_empty_history_is_zero(self):
        assert SampleHistory().compute_temperature_trend(30) == TrendResult(0.0, 0.0, 0.0)

    def test_constant_series(self):
        h = _history([7.5] * 12)
        trend = h.compute_temperature_trend(30)
        assert trend.slope == pytest.approx(0.0, abs=1e-12)
        assert trend.intercept == pytest.approx(7.5)
        assert trend.mean == pytest.approx(7.5)

    def test_single_sample_falls_back_to_mean(self):
        trend = _history([4.0]).compute_temperature_trend()
        assert trend == TrendResult(slope=0.0, intercept=4.0, mean=4.0)

    def test_known_linear_series(self):
        h = _history([10.0, 12.0, 14.0, 16.0, 18.0])
        trend = h.compute_temperature_trend(5)
        assert trend.slope == pytest.approx(2.0)
        assert trend.intercept == pytest.approx(10.0)
        assert trend.mean == pytest.approx(14.0)

    def test_uses_only_the_window(self):
        # Flat for a long time, then rising over the last four samples
        h = _history([0.0] * 10 + [1.0, 2.0, 3.0, 4.0])
        trend = h.compute_temperature_trend(4)
        assert trend.slope == pytest.approx(1.0)
        assert trend.intercept == pytest.approx(1.0)

    def test_downward_trend(self):
        trend = fit_temperature_trend([_sample(i, 20.0 - 3.0 * i) for i in range(6)])
        assert trend.slope == pytest.approx(-3.0)
        assert trend.intercept == pytest.approx(20.0)


class TestStabilityIndex:
    def test_empty_and_single_sample_are_zero(self):
        assert SampleHistory().compute_stability_index() == 0
        assert _history([25.0], [40.0]).compute_stability_index() == 0

    def test_calm_weather_is_zero(self):
        h = _history([10.0, 10.2, 10.1, 10.0], [0.0, 0.0, 0.05, 0.0])
        assert h.compute_stability_index() == 0.0

    def test_temperature_weight(self):
        # stddev of [0, 10] is ~7.07, above the 5.0 upper bound
        assert _history([0.0, 10.0]).compute_stability_index() == pytest.approx(0.6)

    def test_precipitation_weight(self):
        # stddev of [0, 20] is ~14.1, above the 10.0 upper bound
        h = _history([5.0, 5.0], [0.0, 20.0])
        assert h.compute_stability_index() == pytest.approx(0.4)

    def test_both_volatile_saturates(self):
        assert _history([0.0, 10.0], [0.0, 20.0]).compute_stability_index() == pytest.approx(1.0)

    def test_partial_normalization(self):
        # Unbiased variance of [10, 12] is 2, stddev sqrt(2)
        expected = 0.6 * (2 ** 0.5 - 0.5) / 4.5
        assert _history([10.0, 12.0]).compute_stability_index() == pytest.approx(expected)

    def test_always_within_bounds(self):
        temps = [(-1) ** i * i * 3.7 for i in range(40)]
        precs = [abs(i * 5.3 - 60) for i in range(40)]
        h = _history(temps, precs)
        for days in (0, 2, 5, 17, 40, 100):
            assert 0.0 <= h.compute_stability_index(days) <= 1.0


class TestAdaptiveInterval:
    def test_stable_history_shrinks_interval(self):
        # stability 0 -> 0.2x base
        h = _history([10.0, 10.0, 10.0])
        assert h.get_adaptive_update_interval_seconds(30, 600.0) == pytest.approx(120.0)

    def test_volatile_history_widens_interval(self):
        h = _history([0.0, 10.0], [0.0, 20.0])
        assert h.get_adaptive_update_interval_seconds(30, 600.0) == pytest.approx(1200.0)

    def test_partial_stability(self):
        h = _history([0.0, 10.0])  # stability 0.6
        assert h.get_adaptive_update_interval_seconds(30, 600.0) == pytest.approx(600.0 * 1.28)

    def test_lower_bound(self):
        assert SampleHistory().get_adaptive_update_interval_seconds(30, 100.0) == 30.0

    def test_upper_bound(self):
        h = _history([0.0, 10.0], [0.0, 20.0])
        assert h.get_adaptive_update_interval_seconds(30, 20000.0) == 6 * 3600.0

    def test_monotonic_in_stability(self):
        histories = [
            _history([10.0, 10.0]),
            _history([10.0, 12.0]),
            _history([10.0, 14.0], [0.0, 3.0]),
            _history([0.0, 10.0]),
            _history([0.0, 10.0], [0.0, 20.0]),
        ]
        stabilities = [h.compute_stability_index() for h in histories]
        assert stabilities == sorted(stabilities)
        for base in (1.0, 60.0, 600.0, 3600.0, 50000.0):
            intervals = [h.get_adaptive_update_interval_seconds(30, base) for h in histories]
            assert intervals == sorted(intervals)
            assert all(30.0 <= v <= 21600.0 for v in intervals)


class TestForecast:
    def test_known_linear_series(self):
        h = _history([10.0, 12.0, 14.0, 16.0, 18.0])
        assert h.forecast_temperature_days(2, 5) == pytest.approx([20.0, 22.0])

    def test_length_matches_days_ahead(self):
        h = _history([3.0, 1.0, 4.0, 1.0, 5.0])
        for k in (1, 3, 10):
            assert len(h.forecast_temperature_days(k, 30)) == k

    def test_non_positive_days_ahead_is_empty(self):
        h = _history([3.0, 4.0])
        assert h.forecast_temperature_days(0) == []
        assert h.forecast_temperature_days(-2) == []

    def test_empty_history_repeats_intercept(self):
        assert SampleHistory().forecast_temperature_days(3) == [0.0, 0.0, 0.0]

    def test_single_sample_is_flat(self):
        assert _history([6.0]).forecast_temperature_days(2) == [6.0, 6.0]

    def test_continues_window_index_axis(self):
        # Window of the last three samples: x = 0..2, forecast from x = 3
        h = _history([100.0, 100.0, 1.0, 2.0, 3.0])
        assert h.forecast_temperature_days(2, 3) == pytest.approx([4.0, 5.0])


class TestConcurrency:
    def test_concurrent_appends_respect_capacity(self):
        h = SampleHistory()

        def writer(offset: int) -> None:
            for i in range(200):
                h.append(_sample(offset + i, float(i)))

        threads = [threading.Thread(target=writer, args=(n * 1000,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(h) == MAX_SAMPLES

    def test_callback_receives_snapshots_in_mutation_order(self):
        saved = []
        entered = threading.Event()

        def slow_save(snapshot):
            if not saved and not entered.is_set():
                entered.set()
                time.sleep(0.3)
            saved.append([s.date for s in snapshot])

        h = SampleHistory(on_change=slow_save)
        first = threading.Thread(target=h.append, args=(_sample(1),))
        first.start()
        assert entered.wait(timeout=5)
        second = threading.Thread(target=h.append, args=(_sample(2),))
        second.start()
        first.join()
        second.join()

        assert saved == [["day-1"], ["day-1", "day-2"]]
        assert saved[-1] == [s.date for s in h.history()]

    def test_windowed_snapshots_stay_contiguous_during_appends(self):
        h = SampleHistory()
        done = threading.Event()
        errors = []

        def writer() -> None:
            for i in range(1500):
                h.append(_sample(i, float(i)))
            done.set()

        def reader() -> None:
            while not done.is_set():
                for days, limit in ((0, MAX_SAMPLES), (10, 10)):
                    temps = [s.temperature_c for s in h.windowed(days)]
                    if len(temps) > limit:
                        errors.append(f"window {days} too long: {len(temps)}")
                    if any(b - a != 1.0 for a, b in zip(temps, temps[1:])):
                        errors.append(f"window {days} not contiguous")

        readers = [threading.Thread(target=reader) for _ in range(3)]
        for t in readers:
            t.start()
        writer()
        for t in readers:
            t.join()

        assert errors == []
        assert [s.temperature_c for s in h.windowed(3)] == [1497.0, 1498.0, 1499.0]
