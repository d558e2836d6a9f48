"""
Unit tests for CostTracker.

Counters are monotonic until reset; cache hits add volume, never cost.
"""

import pytest

from core.enums import OptimizationLevel
from optimization.cost_tracker import CostTracker


class TestCostTracker:
    """Test cost accounting and derived statistics."""

    def test_empty_tracker_reports_zero_hit_rate(self):
        stats = CostTracker().get_stats()

        assert stats.total_requests == 0
        assert stats.cache_hit_rate == 0.0
        assert stats.optimization_level == OptimizationLevel.LOW

    def test_record_uses_flat_rates(self):
        tracker = CostTracker(input_cost_per_1k=0.005, output_cost_per_1k=0.015)

        cost = tracker.record(1000, 2000)

        assert cost == pytest.approx(0.005 + 0.030)
        stats = tracker.get_stats()
        assert stats.total_input_tokens == 1000
        assert stats.total_output_tokens == 2000
        assert stats.total_tokens == 3000

    def test_cache_hit_adds_volume_not_cost(self):
        tracker = CostTracker()
        tracker.record(100, 100)
        before = tracker.get_stats().estimated_cost

        tracker.record_cache_hit()

        stats = tracker.get_stats()
        assert stats.total_requests == 2
        assert stats.cached_requests == 1
        assert stats.estimated_cost == before
        assert stats.estimated_savings == pytest.approx(0.05)

    def test_cost_is_monotonic_over_mixed_calls(self):
        """After N calls with M hits, totals match and cost never decreases."""
        tracker = CostTracker()
        previous = 0.0
        pattern = [False, True, False, False, True, True, False]

        for is_hit in pattern:
            if is_hit:
                tracker.record_cache_hit()
            else:
                tracker.record(250, 500)
            current = tracker.get_stats().estimated_cost
            assert current >= previous
            previous = current

        stats = tracker.get_stats()
        assert stats.total_requests == len(pattern)
        assert stats.cached_requests == sum(pattern)

    @pytest.mark.parametrize(
        "hits,misses,level",
        [
            (4, 6, OptimizationLevel.HIGH),  # 40%
            (2, 8, OptimizationLevel.MEDIUM),  # 20%
            (1, 9, OptimizationLevel.LOW),  # 10%
        ],
    )
    def test_optimization_level_thresholds(self, hits, misses, level):
        tracker = CostTracker()
        for _ in range(hits):
            tracker.record_cache_hit()
        for _ in range(misses):
            tracker.record(10, 10)

        assert tracker.get_stats().optimization_level == level

    def test_estimate_tokens_is_four_chars_per_token(self):
        assert CostTracker.estimate_tokens("") == 0
        assert CostTracker.estimate_tokens("abcd") == 1
        assert CostTracker.estimate_tokens("abcde") == 2

    def test_negative_tokens_rejected(self):
        with pytest.raises(ValueError):
            CostTracker().record(-1, 10)

    def test_reset_is_the_only_way_down(self):
        tracker = CostTracker(cache_size_provider=lambda: 7)
        tracker.record(100, 100)
        tracker.record_cache_hit()

        assert tracker.get_stats().cache_size == 7

        tracker.reset()
        stats = tracker.get_stats()
        assert stats.total_requests == 0
        assert stats.estimated_cost == 0.0
