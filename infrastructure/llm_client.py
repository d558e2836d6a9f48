"""
LLM Client: Unified Generation Backend with Fault Tolerance

Abstraction over the OpenAI and Anthropic SDKs implementing:
- Circuit breaker pattern for fault isolation (in-process state)
- Retry with exponential backoff for transient failures
- Token usage and flat-rate cost calculation
- Request validation with Pydantic
- Mapping of vendor errors onto the LLMException hierarchy

The dispatcher treats every LLMException as a per-item failure and
synthesizes a fallback result, so nothing here needs to be fatal.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Callable, Dict, Optional

import httpx
from anthropic import APITimeoutError as AnthropicTimeoutError
from anthropic import AnthropicError, AsyncAnthropic
from anthropic import AuthenticationError as AnthropicAuthenticationError
from anthropic import RateLimitError as AnthropicRateLimitError
from loguru import logger
from openai import APITimeoutError, AsyncOpenAI, AuthenticationError, OpenAIError, RateLimitError
from pydantic import BaseModel, ConfigDict, Field
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from core.exceptions import (
    CircuitOpenError,
    LLMAuthenticationError,
    LLMException,
    LLMInvalidResponseError,
    LLMProviderError,
    LLMRateLimitError,
    LLMTimeoutError,
)

# ============================================================================
# TYPE SYSTEM
# ============================================================================


class ModelProvider(str, Enum):
    """Enumeration of supported LLM providers."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"


@dataclass(frozen=True)
class TokenUsage:
    """Immutable token usage record."""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int

    def __post_init__(self):
        if self.prompt_tokens < 0 or self.completion_tokens < 0:
            raise ValueError("Token counts must be non-negative")
        if self.total_tokens != self.prompt_tokens + self.completion_tokens:
            raise ValueError("Total tokens must equal sum of prompt and completion")

    @classmethod
    def of(cls, prompt_tokens: int, completion_tokens: int) -> "TokenUsage":
        return cls(prompt_tokens, completion_tokens, prompt_tokens + completion_tokens)


@dataclass(frozen=True)
class ModelPricing:
    """Token pricing configuration with exact monetary arithmetic."""

    input_cost_per_1k: float  # USD per 1000 input tokens
    output_cost_per_1k: float  # USD per 1000 output tokens

    def calculate_cost(self, usage: TokenUsage) -> float:
        input_cost = (
            Decimal(str(usage.prompt_tokens))
            * Decimal(str(self.input_cost_per_1k))
            / Decimal("1000")
        )
        output_cost = (
            Decimal(str(usage.completion_tokens))
            * Decimal(str(self.output_cost_per_1k))
            / Decimal("1000")
        )
        total = (input_cost + output_cost).quantize(Decimal("0.000001"), rounding=ROUND_HALF_UP)

        return float(total)


DEFAULT_PRICING = ModelPricing(input_cost_per_1k=0.005, output_cost_per_1k=0.015)


@dataclass(frozen=True)
class LLMResponse:
    """Immutable LLM response with usage metadata."""

    content: str
    model: str
    usage: TokenUsage
    cost: float
    latency_ms: float
    provider: ModelProvider
    timestamp: datetime = field(default_factory=datetime.utcnow)
    finish_reason: Optional[str] = None


class LLMRequest(BaseModel):
    """Validated LLM request."""

    prompt: str = Field(..., min_length=1, max_length=100000)
    model: str = Field(..., min_length=1)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(..., ge=1, le=32000)
    system_prompt: Optional[str] = Field(default=None)

    model_config = ConfigDict(frozen=True, protected_namespaces=())


# ============================================================================
# CIRCUIT BREAKER: Fault Isolation Pattern
# ============================================================================


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failure threshold exceeded
    HALF_OPEN = "half_open"  # Testing recovery


class CircuitBreaker:
    """
    Circuit breaker for calls to the generation backend.

    State Transitions:
    CLOSED -> OPEN: After failure_threshold consecutive failures
    OPEN -> HALF_OPEN: After recovery_timeout duration
    HALF_OPEN -> CLOSED: After success_threshold consecutive successes
    HALF_OPEN -> OPEN: On any failure

    State lives in process memory; the engine runs on a single event loop.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        success_threshold: int = 2,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.success_threshold = success_threshold
        self._clock = clock

        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: Optional[float] = None

    async def call(self, func: Callable, *args, **kwargs):
        """
        Execute coroutine function through the breaker.

        Raises:
            CircuitOpenError: If circuit is open and recovery timeout not elapsed
        """
        if self.state == CircuitState.OPEN:
            elapsed = self._clock() - (self.last_failure_time or 0.0)
            if elapsed >= self.recovery_timeout:
                logger.info(f"Circuit breaker '{self.name}' transitioning to HALF_OPEN")
                self.state = CircuitState.HALF_OPEN
                self.success_count = 0
            else:
                raise CircuitOpenError(context={"breaker": self.name})

        try:
            result = await func(*args, **kwargs)
        except Exception:
            self._on_failure()
            raise

        self._on_success()
        return result

    def _on_success(self) -> None:
        if self.state == CircuitState.HALF_OPEN:
            self.success_count += 1
            if self.success_count >= self.success_threshold:
                logger.info(f"Circuit breaker '{self.name}' transitioning to CLOSED")
                self.state = CircuitState.CLOSED
                self.failure_count = 0
        else:
            self.failure_count = 0

    def _on_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = self._clock()

        if self.state == CircuitState.HALF_OPEN:
            logger.warning(f"Circuit breaker '{self.name}' transitioning to OPEN (failure in HALF_OPEN)")
            self.state = CircuitState.OPEN
            self.success_count = 0
        elif self.failure_count >= self.failure_threshold:
            logger.error(
                f"Circuit breaker '{self.name}' transitioning to OPEN (failures: {self.failure_count})"
            )
            self.state = CircuitState.OPEN

    def reset(self) -> None:
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time = None


# ============================================================================
# LLM CLIENTS
# ============================================================================


class AbstractLLMClient(ABC):
    """
    Provider-independent generation client.

    Subclasses implement `_call_provider` and `_map_error`; everything else
    (validation, breaker, retry, cost, metrics) is shared.

    Usage:
        client = get_llm_client()
        response = await client.complete(
            prompt="Write a post about staking",
            max_tokens=500,
        )
    """

    provider: ModelProvider
    transient_errors: tuple = (httpx.TimeoutException,)

    def __init__(
        self,
        api_key: Optional[str] = None,
        default_model: str = "gpt-4o",
        pricing: ModelPricing = DEFAULT_PRICING,
        timeout: float = 120.0,
        max_retries: int = 3,
        retry_wait_min: float = 2.0,
        retry_wait_max: float = 30.0,
        circuit_breaker: Optional[CircuitBreaker] = None,
        metrics_collector: Optional[Any] = None,
    ):
        self.api_key = api_key
        self.default_model = default_model
        self.pricing = pricing
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_wait_min = retry_wait_min
        self.retry_wait_max = retry_wait_max
        self.circuit_breaker = circuit_breaker or CircuitBreaker(name=self.provider.value)
        self.metrics = metrics_collector

        # Metrics
        self.total_requests = 0
        self.total_failures = 0
        self.total_tokens = 0
        self.total_cost = 0.0

        logger.info(
            f"{self.__class__.__name__} initialized | model={default_model} | "
            f"timeout={timeout}s | max_retries={max_retries}"
        )

    async def complete(
        self,
        prompt: str,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
        system_prompt: Optional[str] = None,
    ) -> LLMResponse:
        """
        Generate a completion.

        Args:
            prompt: Input prompt
            model: Model identifier, defaults to the configured model
            temperature: Sampling temperature [0.0, 2.0]
            max_tokens: Maximum tokens to generate
            system_prompt: Optional system instruction

        Returns:
            LLMResponse with content, usage, and cost

        Raises:
            LLMException: Any backend failure, already mapped
        """
        request = LLMRequest(
            prompt=prompt,
            model=model or self.default_model,
            temperature=temperature,
            max_tokens=max_tokens,
            system_prompt=system_prompt,
        )

        try:
            response = await self.circuit_breaker.call(self._execute_with_retry, request)
        except LLMException as e:
            self.total_failures += 1
            self._record_metrics(request.model, "error", None)
            logger.error(f"LLM completion failed | model={request.model} | error={e.message}")
            raise

        self.total_requests += 1
        self.total_tokens += response.usage.total_tokens
        self.total_cost += response.cost
        self._record_metrics(request.model, "success", response)

        return response

    async def _execute_with_retry(self, request: LLMRequest) -> LLMResponse:
        """Run the provider call, retrying transient failures."""

        @retry(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=1, min=self.retry_wait_min, max=self.retry_wait_max),
            retry=retry_if_exception_type(self.transient_errors),
            before_sleep=before_sleep_log(logger, "WARNING"),
            reraise=True,
        )
        async def _execute() -> LLMResponse:
            start_time = time.perf_counter()
            content, usage, finish_reason = await self._call_provider(request)
            latency_ms = (time.perf_counter() - start_time) * 1000

            if not content or not content.strip():
                raise LLMInvalidResponseError(
                    "LLM returned empty content", response_text=content, expected_format="text"
                )

            return LLMResponse(
                content=content,
                model=request.model,
                usage=usage,
                cost=self.pricing.calculate_cost(usage),
                latency_ms=latency_ms,
                provider=self.provider,
                finish_reason=finish_reason,
            )

        try:
            return await _execute()
        except LLMException:
            raise
        except Exception as e:
            raise self._map_error(e) from e

    def _record_metrics(self, model: str, status: str, response: Optional[LLMResponse]) -> None:
        if not self.metrics:
            return
        self.metrics.record_llm_call(
            provider=self.provider.value,
            model=model,
            status=status,
            duration_seconds=(response.latency_ms / 1000) if response else 0.0,
            prompt_tokens=response.usage.prompt_tokens if response else 0,
            completion_tokens=response.usage.completion_tokens if response else 0,
        )

    @abstractmethod
    async def _call_provider(self, request: LLMRequest) -> tuple:
        """Return (content, TokenUsage, finish_reason)."""

    @abstractmethod
    def _map_error(self, error: Exception) -> LLMException:
        """Translate a vendor exception into the LLMException hierarchy."""

    @abstractmethod
    async def close(self) -> None:
        """Release HTTP resources."""

    async def get_metrics(self) -> Dict[str, Any]:
        return {
            "provider": self.provider.value,
            "total_requests": self.total_requests,
            "total_failures": self.total_failures,
            "total_tokens": self.total_tokens,
            "total_cost": self.total_cost,
            "avg_tokens_per_request": self.total_tokens / max(self.total_requests, 1),
            "circuit_state": self.circuit_breaker.state.value,
        }

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


class OpenAIClient(AbstractLLMClient):
    """Chat completions over the OpenAI SDK."""

    provider = ModelProvider.OPENAI
    transient_errors = (APITimeoutError, RateLimitError, httpx.TimeoutException)

    def __init__(self, api_key: Optional[str] = None, **kwargs):
        super().__init__(api_key=api_key, **kwargs)
        self._client: Optional[AsyncOpenAI] = None

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.api_key:
                raise LLMAuthenticationError("OpenAI API key not configured")
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                timeout=httpx.Timeout(self.timeout),
                max_retries=0,  # Retries are handled here
            )
        return self._client

    async def _call_provider(self, request: LLMRequest) -> tuple:
        messages = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.append({"role": "user", "content": request.prompt})

        response = await self.client.chat.completions.create(
            model=request.model,
            messages=messages,
            temperature=request.temperature,
            max_tokens=request.max_tokens,
        )

        content = response.choices[0].message.content or ""
        usage = TokenUsage.of(response.usage.prompt_tokens, response.usage.completion_tokens)
        return content, usage, response.choices[0].finish_reason

    def _map_error(self, error: Exception) -> LLMException:
        if isinstance(error, RateLimitError):
            return LLMRateLimitError(f"Rate limit exceeded: {error}")
        if isinstance(error, (APITimeoutError, httpx.TimeoutException)):
            return LLMTimeoutError(f"Request timeout: {error}", timeout_seconds=self.timeout)
        if isinstance(error, AuthenticationError):
            return LLMAuthenticationError(f"Authentication failed: {error}")
        if isinstance(error, OpenAIError):
            return LLMProviderError(f"Provider error: {error}", cause=error)
        return LLMProviderError(f"Unexpected error: {type(error).__name__}: {error}", cause=error)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()


class AnthropicClient(AbstractLLMClient):
    """Messages API over the Anthropic SDK."""

    provider = ModelProvider.ANTHROPIC
    transient_errors = (AnthropicTimeoutError, AnthropicRateLimitError, httpx.TimeoutException)

    def __init__(self, api_key: Optional[str] = None, **kwargs):
        kwargs.setdefault("default_model", "claude-sonnet-4-20250514")
        super().__init__(api_key=api_key, **kwargs)
        self._client: Optional[AsyncAnthropic] = None

    @property
    def client(self) -> AsyncAnthropic:
        if self._client is None:
            if not self.api_key:
                raise LLMAuthenticationError("Anthropic API key not configured")
            self._client = AsyncAnthropic(
                api_key=self.api_key,
                timeout=httpx.Timeout(self.timeout),
                max_retries=0,
            )
        return self._client

    async def _call_provider(self, request: LLMRequest) -> tuple:
        params: Dict[str, Any] = {
            "model": request.model,
            "messages": [{"role": "user", "content": request.prompt}],
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
        }
        if request.system_prompt:
            params["system"] = request.system_prompt

        response = await self.client.messages.create(**params)

        content = "".join(
            block.text for block in response.content if getattr(block, "type", "text") == "text"
        )
        usage = TokenUsage.of(response.usage.input_tokens, response.usage.output_tokens)
        return content, usage, response.stop_reason

    def _map_error(self, error: Exception) -> LLMException:
        if isinstance(error, AnthropicRateLimitError):
            return LLMRateLimitError(f"Rate limit exceeded: {error}")
        if isinstance(error, (AnthropicTimeoutError, httpx.TimeoutException)):
            return LLMTimeoutError(f"Request timeout: {error}", timeout_seconds=self.timeout)
        if isinstance(error, AnthropicAuthenticationError):
            return LLMAuthenticationError(f"Authentication failed: {error}")
        if isinstance(error, AnthropicError):
            return LLMProviderError(f"Provider error: {error}", cause=error)
        return LLMProviderError(f"Unexpected error: {type(error).__name__}: {error}", cause=error)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()


# ============================================================================
# FACTORY
# ============================================================================


def get_llm_client(
    provider: Optional[str] = None,
    settings: Optional[Any] = None,
    metrics_collector: Optional[Any] = None,
) -> AbstractLLMClient:
    """
    Build the configured generation client.

    Args:
        provider: "openai" or "anthropic"; read from settings when omitted
        settings: Settings instance; loaded via get_settings() when omitted
        metrics_collector: Optional MetricsCollector

    Raises:
        LLMProviderError: Unsupported provider name
    """
    if settings is None:
        from config.settings import get_settings

        settings = get_settings()

    llm = settings.llm
    provider = (provider or llm.provider).lower()

    common: Dict[str, Any] = {
        "pricing": ModelPricing(
            input_cost_per_1k=llm.input_cost_per_1k,
            output_cost_per_1k=llm.output_cost_per_1k,
        ),
        "timeout": llm.timeout,
        "max_retries": llm.max_retries,
        "circuit_breaker": CircuitBreaker(
            name=provider,
            failure_threshold=llm.circuit_failure_threshold,
            recovery_timeout=llm.circuit_recovery_timeout,
        ),
        "metrics_collector": metrics_collector,
    }

    if provider == ModelProvider.OPENAI.value:
        key = llm.openai_api_key.get_secret_value() if llm.openai_api_key else None
        return OpenAIClient(api_key=key, default_model=llm.model, **common)

    if provider == ModelProvider.ANTHROPIC.value:
        key = llm.anthropic_api_key.get_secret_value() if llm.anthropic_api_key else None
        model = llm.model if llm.model.startswith("claude") else "claude-sonnet-4-20250514"
        return AnthropicClient(api_key=key, default_model=model, **common)

    raise LLMProviderError(f"Unsupported LLM provider: {provider}")


__all__ = [
    "ModelProvider",
    "TokenUsage",
    "ModelPricing",
    "DEFAULT_PRICING",
    "LLMResponse",
    "LLMRequest",
    "CircuitState",
    "CircuitBreaker",
    "AbstractLLMClient",
    "OpenAIClient",
    "AnthropicClient",
    "get_llm_client",
]
