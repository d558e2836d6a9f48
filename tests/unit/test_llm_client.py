"""
Unit Tests for the Generation Client
====================================

Covers:
- Provider selection in the get_llm_client factory
- Token usage and pricing arithmetic
- Circuit breaker state transitions
- Shared completion path (validation, error mapping, accounting)
"""

from types import SimpleNamespace
from unittest.mock import Mock

import pytest

from config.settings import LLMSettings
from core.exceptions import CircuitOpenError, LLMException, LLMInvalidResponseError, LLMProviderError
from infrastructure.llm_client import (
    AbstractLLMClient,
    AnthropicClient,
    CircuitBreaker,
    CircuitState,
    ModelPricing,
    ModelProvider,
    OpenAIClient,
    TokenUsage,
    get_llm_client,
)


def _settings(**overrides):
    values = {"LLM_OPENAI_API_KEY": "test-openai-key", "LLM_ANTHROPIC_API_KEY": "test-anthropic-key"}
    values.update(overrides)
    return SimpleNamespace(llm=LLMSettings(**values))


class StubClient(AbstractLLMClient):
    """Client whose provider call is scripted by the test."""

    provider = ModelProvider.OPENAI

    def __init__(self, replies, **kwargs):
        kwargs.setdefault("max_retries", 1)
        super().__init__(api_key="stub", **kwargs)
        self.replies = list(replies)

    async def _call_provider(self, request):
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    def _map_error(self, error):
        return LLMProviderError(f"Unexpected error: {error}", cause=error)

    async def close(self):
        return None


class TestGetLLMClientFactory:
    """Test the get_llm_client factory function."""

    def test_factory_returns_openai_client_when_specified(self):
        client = get_llm_client(provider="openai", settings=_settings())

        assert isinstance(client, OpenAIClient)
        assert isinstance(client, AbstractLLMClient)
        assert client.api_key == "test-openai-key"

    def test_factory_returns_anthropic_client_when_specified(self):
        client = get_llm_client(provider="anthropic", settings=_settings())

        assert isinstance(client, AnthropicClient)
        assert client.api_key == "test-anthropic-key"
        assert client.default_model.startswith("claude")

    def test_factory_reads_provider_from_settings_when_not_specified(self):
        client = get_llm_client(settings=_settings(LLM_PROVIDER="anthropic"))
        assert isinstance(client, AnthropicClient)

    def test_factory_is_case_insensitive(self):
        assert isinstance(get_llm_client(provider="OpenAI", settings=_settings()), OpenAIClient)

    def test_factory_rejects_unknown_provider(self):
        with pytest.raises(LLMProviderError) as exc_info:
            get_llm_client(provider="mystery", settings=_settings())
        assert "mystery" in exc_info.value.message

    def test_factory_wires_pricing_and_breaker(self):
        settings = _settings(
            LLM_INPUT_COST_PER_1K=0.01,
            LLM_OUTPUT_COST_PER_1K=0.02,
            LLM_CIRCUIT_FAILURES=3,
        )
        client = get_llm_client(provider="openai", settings=settings)

        assert client.pricing == ModelPricing(input_cost_per_1k=0.01, output_cost_per_1k=0.02)
        assert client.circuit_breaker.failure_threshold == 3
        assert client.circuit_breaker.name == "openai"


class TestTokenAccounting:
    """Test usage records and pricing."""

    def test_usage_totals_must_add_up(self):
        assert TokenUsage.of(10, 5).total_tokens == 15
        with pytest.raises(ValueError):
            TokenUsage(10, 5, 20)
        with pytest.raises(ValueError):
            TokenUsage.of(-1, 5)

    def test_pricing_is_exact(self):
        pricing = ModelPricing(input_cost_per_1k=0.005, output_cost_per_1k=0.015)
        assert pricing.calculate_cost(TokenUsage.of(1000, 2000)) == pytest.approx(0.035)
        assert pricing.calculate_cost(TokenUsage.of(0, 0)) == 0.0


class TestCircuitBreaker:
    """Test breaker transitions with a controllable clock."""

    @staticmethod
    async def _fail():
        raise RuntimeError("down")

    @staticmethod
    async def _ok():
        return "ok"

    @pytest.mark.asyncio
    async def test_opens_after_threshold_and_short_circuits(self, clock):
        breaker = CircuitBreaker("test", failure_threshold=2, recovery_timeout=30, clock=clock)

        for _ in range(2):
            with pytest.raises(RuntimeError):
                await breaker.call(self._fail)

        assert breaker.state == CircuitState.OPEN
        with pytest.raises(CircuitOpenError):
            await breaker.call(self._ok)

    @pytest.mark.asyncio
    async def test_recovers_through_half_open(self, clock):
        breaker = CircuitBreaker(
            "test", failure_threshold=1, recovery_timeout=30, success_threshold=2, clock=clock
        )
        with pytest.raises(RuntimeError):
            await breaker.call(self._fail)

        clock.advance(30)
        assert await breaker.call(self._ok) == "ok"
        assert breaker.state == CircuitState.HALF_OPEN

        await breaker.call(self._ok)
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_failure_in_half_open_reopens(self, clock):
        breaker = CircuitBreaker("test", failure_threshold=1, recovery_timeout=30, clock=clock)
        with pytest.raises(RuntimeError):
            await breaker.call(self._fail)

        clock.advance(31)
        with pytest.raises(RuntimeError):
            await breaker.call(self._fail)

        assert breaker.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self, clock):
        breaker = CircuitBreaker("test", failure_threshold=2, clock=clock)
        with pytest.raises(RuntimeError):
            await breaker.call(self._fail)
        await breaker.call(self._ok)

        assert breaker.failure_count == 0
        assert breaker.state == CircuitState.CLOSED


class TestCompletion:
    """Test the shared completion path."""

    @pytest.mark.asyncio
    async def test_successful_completion_is_priced_and_recorded(self):
        metrics = Mock()
        client = StubClient([("Hello world", TokenUsage.of(1000, 1000), "stop")], metrics_collector=metrics)

        response = await client.complete("Say hello", max_tokens=50)

        assert response.content == "Hello world"
        assert response.cost == pytest.approx(0.02)
        assert response.provider == ModelProvider.OPENAI
        assert client.total_requests == 1
        assert client.total_tokens == 2000
        metrics.record_llm_call.assert_called_once()
        assert metrics.record_llm_call.call_args.kwargs["status"] == "success"

    @pytest.mark.asyncio
    async def test_empty_content_is_rejected(self):
        client = StubClient([("   ", TokenUsage.of(5, 0), "stop")])

        with pytest.raises(LLMInvalidResponseError):
            await client.complete("Say hello")
        assert client.total_failures == 1

    @pytest.mark.asyncio
    async def test_vendor_errors_are_mapped(self):
        client = StubClient([ValueError("bad payload")])

        with pytest.raises(LLMException) as exc_info:
            await client.complete("Say hello")

        assert isinstance(exc_info.value, LLMProviderError)
        assert isinstance(exc_info.value.__cause__, ValueError)

    @pytest.mark.asyncio
    async def test_invalid_request_parameters_fail_validation(self):
        client = StubClient([])
        with pytest.raises(ValueError):
            await client.complete("", max_tokens=10)

    @pytest.mark.asyncio
    async def test_metrics_summary(self):
        client = StubClient([("Hi", TokenUsage.of(10, 10), "stop")])
        await client.complete("Say hi")

        metrics = await client.get_metrics()

        assert metrics["provider"] == "openai"
        assert metrics["total_tokens"] == 20
        assert metrics["circuit_state"] == "closed"
