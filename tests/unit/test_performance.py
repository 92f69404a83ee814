"""
Unit tests for latency windows and percentile statistics.
"""

import pytest

from opsmonitor.monitoring.performance import (
    PerformanceWindowTracker,
    compute_stats,
    percentile_index,
)


class TestPercentiles:

    @pytest.mark.unit
    def test_empty_samples_have_no_stats(self):
        assert compute_stats([]) is None

    @pytest.mark.unit
    def test_single_sample(self):
        stats = compute_stats([42.0])
        assert stats.count == 1
        assert stats.avg == 42
        assert stats.min == stats.max == stats.p50 == stats.p95 == stats.p99 == 42.0

    @pytest.mark.unit
    def test_index_is_clamped_to_last_element(self):
        assert percentile_index(10, 0.99) == 9
        assert percentile_index(100, 0.99) == 99
        assert percentile_index(1, 0.5) == 0

    @pytest.mark.unit
    def test_hundred_samples(self):
        stats = compute_stats([float(value) for value in range(1, 101)])
        assert stats.count == 100
        assert stats.avg == 51
        assert stats.min == 1.0
        assert stats.max == 100.0
        assert stats.p50 == 51.0
        assert stats.p95 == 96.0
        assert stats.p99 == 100.0

    @pytest.mark.unit
    @pytest.mark.parametrize('samples', [
        [5.0, 1.0, 3.0],
        [250.0, 12.5, 12.5, 980.0, 3.0, 77.0],
        [float(value % 17) for value in range(63)],
        [1000.0 - value for value in range(100)],
    ])
    def test_statistics_are_ordered(self, samples):
        stats = compute_stats(samples)
        assert stats.min <= stats.p50 <= stats.p95 <= stats.p99 <= stats.max
        assert stats.min <= stats.avg <= stats.max + 1

    @pytest.mark.unit
    def test_half_average_rounds_up(self):
        assert compute_stats([2.0, 3.0]).avg == 3
        assert compute_stats([0.5]).avg == 1

    @pytest.mark.unit
    def test_to_dict_contains_all_fields(self):
        stats = compute_stats([10.0, 20.0])
        assert set(stats.to_dict()) == {'count', 'avg', 'min', 'max', 'p50', 'p95', 'p99'}


class TestPerformanceWindowTracker:

    @pytest.mark.unit
    def test_record_uses_normalized_response_time_key(self):
        tracker = PerformanceWindowTracker()
        key = tracker.record('/users/123', 12.0)
        assert key == 'response_time./users/:id'
        assert tracker.samples(key) == [12.0]

    @pytest.mark.unit
    def test_window_never_exceeds_capacity(self):
        tracker = PerformanceWindowTracker(max_samples=100, drop_on_overflow=50)
        for value in range(250):
            tracker.add_sample('response_time./foo', float(value))
            assert len(tracker.samples('response_time./foo')) <= 100

    @pytest.mark.unit
    def test_overflow_keeps_most_recent_fifty(self):
        tracker = PerformanceWindowTracker(max_samples=100, drop_on_overflow=50)
        for value in range(101):
            tracker.record('/foo', float(value))

        window = tracker.samples('response_time./foo')
        assert window == [float(value) for value in range(51, 101)]

    @pytest.mark.unit
    def test_window_at_capacity_is_not_cut(self):
        tracker = PerformanceWindowTracker(max_samples=100, drop_on_overflow=50)
        for value in range(100):
            tracker.record('/foo', float(value))
        assert len(tracker.samples('response_time./foo')) == 100

    @pytest.mark.unit
    def test_threshold_check_receives_each_sample(self, mocker):
        check = mocker.Mock()
        tracker = PerformanceWindowTracker(threshold_check=check)

        tracker.record('/orders/99', 250.0)

        check.assert_called_once_with('/orders/:id', 250.0)

    @pytest.mark.unit
    def test_add_sample_skips_threshold_check(self, mocker):
        check = mocker.Mock()
        tracker = PerformanceWindowTracker(threshold_check=check)

        tracker.add_sample('query.users', 9000.0)

        check.assert_not_called()
        assert tracker.samples('query.users') == [9000.0]

    @pytest.mark.unit
    def test_stats_cover_every_non_empty_window(self):
        tracker = PerformanceWindowTracker()
        tracker.record('/foo', 10.0)
        tracker.record('/foo', 30.0)
        tracker.add_sample('file_processing.pdf', 500.0)

        stats = tracker.stats()

        assert set(stats) == {'response_time./foo', 'file_processing.pdf'}
        assert stats['response_time./foo'].count == 2
        assert stats['response_time./foo'].avg == 20

    @pytest.mark.unit
    def test_trimmed_empty_windows_are_omitted(self):
        tracker = PerformanceWindowTracker()
        tracker.record('/foo', 10.0)
        tracker.trim(keep=0)
        assert tracker.stats() == {}

    @pytest.mark.unit
    def test_trim_keeps_most_recent_samples(self):
        tracker = PerformanceWindowTracker()
        for value in range(80):
            tracker.record('/foo', float(value))
        for value in range(10):
            tracker.record('/bar', float(value))

        removed = tracker.trim(keep=50)

        assert removed == 30
        assert tracker.samples('response_time./foo') == [float(value) for value in range(30, 80)]
        assert len(tracker.samples('response_time./bar')) == 10

    @pytest.mark.unit
    def test_unknown_window_has_no_percentiles(self):
        tracker = PerformanceWindowTracker()
        assert tracker.percentiles('response_time./missing') is None

    @pytest.mark.unit
    def test_percentiles_resolve_endpoint_paths(self):
        tracker = PerformanceWindowTracker()
        tracker.record('/users/7', 10.0)
        tracker.record('/users/8', 30.0)

        stats = tracker.percentiles('/users/9')

        assert stats.count == 2
        assert stats.avg == 20
        assert tracker.percentiles('response_time./users/:id') == stats

    @pytest.mark.unit
    def test_percentiles_for_prefixed_windows(self):
        tracker = PerformanceWindowTracker()
        tracker.add_sample('query.users', 12.0)
        tracker.add_sample('file_processing.pdf', 500.0)

        assert tracker.percentiles('query.users').max == 12.0
        assert tracker.percentiles('file_processing.pdf').count == 1
