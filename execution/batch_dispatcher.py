"""
Grouped Dispatcher: Cache-Aware Sequential Batch Processing

Processes a flushed batch against the generation backend:
1. Partition requests by similarity key (kind, tone, audience)
2. Walk groups in first-seen order, requests in input order
3. Per request: response cache -> prompt -> backend -> analysis -> cache
4. Account every call (or cache hit) in the cost tracker

No parallel fan-out: cost accounting stays simple and the backend is never
flooded. A failing request yields a fallback result and never aborts the
batch.
"""

import time
from typing import Dict, List, Optional, Tuple

from loguru import logger

from core.models import Batch, BatchResult, GeneratedResult, GenerationRequest
from execution.prompt_builder import PromptBuilder, fallback_text
from infrastructure.llm_client import AbstractLLMClient
from intelligence.content_analyzer import ContentAnalyzer
from optimization.cache_manager import ResponseCache, fingerprint
from optimization.cost_tracker import CostTracker

GroupKey = Tuple[str, str, str]


def group_requests(requests: List[GenerationRequest]) -> Dict[GroupKey, List[GenerationRequest]]:
    """Partition by similarity key, preserving first-seen key order."""
    groups: Dict[GroupKey, List[GenerationRequest]] = {}
    for request in requests:
        groups.setdefault(request.group_key, []).append(request)
    return groups


class GroupedDispatcher:
    """
    Sequential batch processor with response caching and cost tracking.

    Args:
        llm_client: Generation backend
        response_cache: Fingerprint-keyed result cache
        cost_tracker: Spend and cache-hit accounting
        kind_ttls: Cache lifetime per request kind value (seconds)
        savings_per_cache_hit: USD credited per cache-served request
    """

    def __init__(
        self,
        llm_client: AbstractLLMClient,
        response_cache: ResponseCache,
        cost_tracker: CostTracker,
        prompt_builder: Optional[PromptBuilder] = None,
        content_analyzer: Optional[ContentAnalyzer] = None,
        kind_ttls: Optional[Dict[str, int]] = None,
        savings_per_cache_hit: float = 0.05,
        model: Optional[str] = None,
    ):
        self.llm = llm_client
        self.cache = response_cache
        self.cost_tracker = cost_tracker
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.analyzer = content_analyzer or ContentAnalyzer()
        self.kind_ttls = dict(kind_ttls or {})
        self.savings_per_cache_hit = savings_per_cache_hit
        self.model = model

    async def process(self, batch: Batch) -> BatchResult:
        """
        Generate results for every request in the batch.

        Returns:
            BatchResult with one result per request
        """
        if not batch.requests:
            return BatchResult.empty(batch.reason)

        start_time = time.perf_counter()
        groups = group_requests(batch.requests)

        results: List[GeneratedResult] = []
        total_cost = 0.0
        cache_hits = 0

        for key, group in groups.items():
            logger.debug(f"Processing group {key} ({len(group)} requests)")
            for request in group:
                result = await self._process_request(request)
                results.append(result)
                total_cost += result.estimated_cost
                if result.cached:
                    cache_hits += 1

        total_time = time.perf_counter() - start_time
        savings = cache_hits * self.savings_per_cache_hit

        logger.info(
            f"Batch processed: {len(results)} items in {len(groups)} groups, "
            f"{cache_hits} cache hits, ${total_cost:.4f} spent, ${savings:.4f} saved"
        )

        return BatchResult(
            batch_id=batch.id,
            results=results,
            total_cost=total_cost,
            total_time=total_time,
            cache_hits=cache_hits,
            optimization_savings=savings,
            flush_reason=batch.reason,
        )

    async def _process_request(self, request: GenerationRequest) -> GeneratedResult:
        key = fingerprint(request)

        cached = await self.cache.get(key)
        if isinstance(cached, GeneratedResult):
            self.cost_tracker.record_cache_hit()
            logger.debug(f"Cache hit for request {request.id} ({request.kind})")
            return cached.as_cache_hit(request.id)

        try:
            result = await self._generate(request)
        except Exception as e:
            logger.error(f"Generation failed for request {request.id} ({request.kind}): {e}")
            return self._fallback(request, e)

        await self.cache.put(key, result, ttl=self.kind_ttls.get(request.kind.value))
        return result

    async def _generate(self, request: GenerationRequest) -> GeneratedResult:
        spec = self.prompt_builder.build(request)
        start_time = time.perf_counter()

        response = await self.llm.complete(
            prompt=spec.prompt,
            model=self.model,
            temperature=spec.temperature,
            max_tokens=spec.max_tokens,
            system_prompt=spec.system_prompt,
        )

        text = response.content.strip()
        metadata = self.analyzer.analyze(request, text)

        usage = getattr(response, "usage", None)
        if usage is not None and usage.total_tokens > 0:
            input_tokens, output_tokens = usage.prompt_tokens, usage.completion_tokens
        else:
            input_tokens = self.cost_tracker.estimate_tokens(spec.prompt)
            output_tokens = self.cost_tracker.estimate_tokens(text)

        cost = self.cost_tracker.record(input_tokens, output_tokens)

        return GeneratedResult(
            request_id=request.id,
            kind=request.kind,
            text=text,
            metadata=metadata,
            estimated_cost=cost,
            generation_time=time.perf_counter() - start_time,
        )

    def _fallback(self, request: GenerationRequest, error: Exception) -> GeneratedResult:
        text = fallback_text(request)
        return GeneratedResult(
            request_id=request.id,
            kind=request.kind,
            text=text,
            metadata=self.analyzer.analyze(request, text),
            is_fallback=True,
            error=f"{type(error).__name__}: {error}",
        )


__all__ = ["GroupKey", "group_requests", "GroupedDispatcher"]
