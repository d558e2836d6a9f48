"""
Cost Tracker - Generation Spend Accounting
==========================================

Accumulates request volume, token usage and a running cost estimate at
flat per-1K-token rates, together with the cache-hit ratio that drives the
optimization level reported to operators.

Mathematical Properties:
- Monotonicity: counters only grow until an explicit reset()
- Cache-served requests add volume but never cost
"""

import math
from typing import Callable, Optional

from loguru import logger

from config.constants import TOKEN_BUDGETS
from core.models import CostStats


class CostTracker:
    """
    Running cost and cache-effectiveness counters.

    Args:
        input_cost_per_1k: USD per 1000 prompt tokens
        output_cost_per_1k: USD per 1000 completion tokens
        savings_per_cache_hit: USD credited to each cache-served request
        cache_size_provider: Callable returning the current response-cache size
    """

    def __init__(
        self,
        input_cost_per_1k: float = 0.005,
        output_cost_per_1k: float = 0.015,
        savings_per_cache_hit: float = 0.05,
        cache_size_provider: Optional[Callable[[], int]] = None,
    ):
        if input_cost_per_1k < 0 or output_cost_per_1k < 0:
            raise ValueError("Token rates must be non-negative")

        self.input_cost_per_1k = input_cost_per_1k
        self.output_cost_per_1k = output_cost_per_1k
        self.savings_per_cache_hit = savings_per_cache_hit
        self._cache_size_provider = cache_size_provider

        self._total_requests = 0
        self._cached_requests = 0
        self._input_tokens = 0
        self._output_tokens = 0
        self._estimated_cost = 0.0

    @staticmethod
    def estimate_tokens(text: Optional[str]) -> int:
        """Rough token count when the provider does not report usage."""
        if not text:
            return 0
        return math.ceil(len(text) / TOKEN_BUDGETS.CHARS_PER_TOKEN)

    def calculate_cost(self, input_tokens: int, output_tokens: int) -> float:
        return (
            input_tokens * self.input_cost_per_1k / 1000
            + output_tokens * self.output_cost_per_1k / 1000
        )

    def record(self, input_tokens: int, output_tokens: int) -> float:
        """
        Account for one backend call.

        Returns:
            Cost attributed to this call (USD)
        """
        if input_tokens < 0 or output_tokens < 0:
            raise ValueError("Token counts must be non-negative")

        cost = self.calculate_cost(input_tokens, output_tokens)

        self._total_requests += 1
        self._input_tokens += input_tokens
        self._output_tokens += output_tokens
        self._estimated_cost += cost

        return cost

    def record_cache_hit(self) -> None:
        """Account for a request served from cache (no cost)."""
        self._total_requests += 1
        self._cached_requests += 1

    def get_stats(self) -> CostStats:
        """Snapshot of the counters with derived ratios."""
        cache_size = self._cache_size_provider() if self._cache_size_provider else 0
        return CostStats(
            total_requests=self._total_requests,
            cached_requests=self._cached_requests,
            total_input_tokens=self._input_tokens,
            total_output_tokens=self._output_tokens,
            estimated_cost=round(self._estimated_cost, 6),
            estimated_savings=round(self._cached_requests * self.savings_per_cache_hit, 6),
            cache_size=cache_size,
        )

    def reset(self) -> None:
        """The only way counters decrease."""
        self._total_requests = 0
        self._cached_requests = 0
        self._input_tokens = 0
        self._output_tokens = 0
        self._estimated_cost = 0.0
        logger.info("Cost tracker counters reset")


__all__ = ["CostTracker"]
