"""Tests for risk_metrics.py - VaR, ES and the loss histogram."""

import pytest
import numpy as np

from credit_loss import (
    InvalidArgumentError,
    build_histogram,
    create_summary_report,
    expected_shortfall,
    find_suitable_max_bound,
    stable_mean,
    summarize_losses,
    value_at_risk,
)
from credit_loss.risk_metrics import quantile_index


class TestStableMean:
    """Tests for the incremental mean."""

    def test_matches_numpy(self):
        values = np.random.default_rng(0).lognormal(10, 2, size=5_000)
        assert stable_mean(values) == pytest.approx(np.mean(values), rel=1e-10)

    def test_list_input(self):
        assert stable_mean([1.0, 2.0, 3.0, 4.0]) == pytest.approx(2.5)

    def test_large_magnitudes(self):
        values = np.full(100_000, 1e300)
        assert stable_mean(values) == pytest.approx(1e300)

    def test_empty(self):
        assert stable_mean([]) == 0.0


class TestQuantiles:
    """Tests for VaR and ES on sorted samples."""

    def test_var_index(self):
        """VaR at 95% of 100 sorted losses is the value at index 95."""
        losses = np.arange(100, dtype=float)
        assert quantile_index(100, 0.95) == 95
        assert value_at_risk(losses, 0.95) == 95.0
        assert value_at_risk(losses, 0.99) == 99.0

    def test_index_clamped(self):
        assert quantile_index(1, 0.99) == 0
        assert quantile_index(10, 0.99) == 9

    def test_expected_shortfall(self):
        losses = np.arange(100, dtype=float)
        assert expected_shortfall(losses, 0.95) == pytest.approx(np.mean([95, 96, 97, 98, 99]))

    def test_es_at_least_var(self):
        rng = np.random.default_rng(1)
        for _ in range(20):
            losses = np.sort(rng.exponential(1e6, size=rng.integers(1, 500)))
            for confidence in (0.95, 0.99):
                assert expected_shortfall(losses, confidence) >= value_at_risk(losses, confidence)

    def test_empty_sample(self):
        with pytest.raises(InvalidArgumentError, match="Empty"):
            value_at_risk(np.array([]), 0.95)

    @pytest.mark.parametrize("confidence", [-0.1, 1.0, 1.5])
    def test_invalid_confidence(self, confidence):
        with pytest.raises(InvalidArgumentError, match="Confidence"):
            quantile_index(10, confidence)


class TestMaxBound:
    """Tests for find_suitable_max_bound."""

    @pytest.mark.parametrize("n, expected", [
        (0, 10),
        (10, 10),
        (11, 15),
        (15, 15),
        (16, 20),
        (36, 45),
        (81, 100),
        (100, 100),
        (101, 150),
        (9_999, 10_000),
    ])
    def test_ladder(self, n, expected):
        assert find_suitable_max_bound(n) == expected

    def test_monotonic_and_not_below_input(self):
        bounds = [find_suitable_max_bound(n) for n in range(5_000)]
        assert all(b >= n for n, b in enumerate(bounds))
        assert all(a <= b for a, b in zip(bounds, bounds[1:]))


class TestHistogram:
    """Tests for build_histogram."""

    def test_counts_and_overflow(self):
        losses = np.array([0, 5e6, 1e7, 2.99e8, 3e8, 5e8])
        histogram = build_histogram(losses)
        assert histogram.num_bins == 30
        assert histogram.counts[0] == 2
        assert histogram.counts[1] == 1
        assert histogram.counts[29] == 1
        assert histogram.overflow == 2
        assert histogram.counts.sum() + histogram.overflow == len(losses)

    def test_edges(self):
        histogram = build_histogram(np.zeros(3), bin_width=2.0, num_bins=4)
        np.testing.assert_allclose(histogram.edges, [0, 2, 4, 6, 8])
        assert histogram.upper_edge == 8.0
        assert histogram.max_bound == 10

    def test_max_bound_from_largest_bin(self):
        histogram = build_histogram(np.zeros(37), bin_width=1.0, num_bins=2)
        assert histogram.max_bound == 45

    def test_negative_losses(self):
        with pytest.raises(InvalidArgumentError, match="non-negative"):
            build_histogram(np.array([1.0, -1.0]))

    def test_invalid_bins(self):
        with pytest.raises(InvalidArgumentError):
            build_histogram(np.zeros(3), bin_width=0)


class TestSummarize:
    """Tests for summarize_losses and the report."""

    def test_summary(self):
        losses = np.arange(100, dtype=float)[::-1].copy()
        summary, histogram = summarize_losses(losses, bin_width=10.0, num_bins=10)

        assert summary.num_trials == 100
        assert summary.expected_loss == pytest.approx(49.5)
        assert summary.var_95 == 95.0
        assert summary.var_99 == 99.0
        assert summary.es_95 == pytest.approx(97.0)
        assert summary.es_99 == 99.0
        assert list(histogram.counts) == [10] * 10

    def test_sorts_in_place(self):
        losses = np.array([3.0, 1.0, 2.0])
        summarize_losses(losses)
        np.testing.assert_array_equal(losses, [1.0, 2.0, 3.0])

    def test_empty(self):
        with pytest.raises(InvalidArgumentError, match="empty"):
            summarize_losses(np.array([]))

    def test_nan(self):
        with pytest.raises(InvalidArgumentError, match="NaN"):
            summarize_losses(np.array([1.0, np.nan]))

    def test_report(self):
        summary, histogram = summarize_losses(np.linspace(0, 2e7, 1_000))
        report = create_summary_report(summary, histogram)

        assert list(report["Metric"]) == ["Expected loss", "VaR 95%", "VaR 99%", "ES 95%", "ES 99%"]
        assert report["Value_m"].iloc[0] == pytest.approx(10.0)
        assert report.attrs["num_trials"] == 1_000
        assert report.attrs["overflow"] == 0
