"""
Pytest Configuration and Fixture Library

Shared test infrastructure:
- Controllable clocks for TTL and recurrence tests
- Mock generation backend returning real LLMResponse objects
- Engine component fixtures wired the way the container wires them
- Request and schedule factories

Design Pattern: Test Data Builder + Fixture Factory
"""

import os
import random
from datetime import datetime
from typing import List, Optional
from unittest.mock import AsyncMock, Mock

import pytest
import pytest_asyncio

# Set test environment variables before importing any modules
os.environ.update(
    {
        "ENVIRONMENT": "development",
        "LLM_OPENAI_API_KEY": "test-key",
        "LLM_ANTHROPIC_API_KEY": "test-key",
    }
)

from core.enums import RequestKind
from core.models import GenerationRequest, ScheduleDefinition
from execution.batch_dispatcher import GroupedDispatcher
from infrastructure.database import DatabaseManager
from infrastructure.llm_client import AbstractLLMClient, LLMResponse, ModelProvider, TokenUsage
from knowledge.content_repository import ContentRepository
from knowledge.schedule_repository import ScheduleRepository
from optimization.cache_manager import ResponseCache
from optimization.cost_tracker import CostTracker
from optimization.query_cache import QueryCache
from orchestration.request_batcher import RequestBatcher
from orchestration.task_scheduler import TaskScheduler

# ============================================================================
# PYTEST CONFIGURATION
# ============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "integration: end-to-end scenarios over mocked collaborators")
    config.addinivalue_line("markers", "unit: mark test as unit test (no external dependencies)")


# ============================================================================
# CLOCKS
# ============================================================================


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ============================================================================
# GENERATION BACKEND
# ============================================================================

SAMPLE_ARTICLE = """# Understanding Staking Rewards

Staking lets token holders earn rewards by helping secure a network. Rewards depend on the amount staked and the network rules.

## How Staking Works

Validators lock tokens and propose blocks. Delegators assign tokens to validators and share the rewards.

## Risks to Consider

Slashing can reduce a stake when a validator misbehaves. Lock-up periods also limit access to funds."""


def make_llm_response(
    content: str = SAMPLE_ARTICLE,
    prompt_tokens: int = 120,
    completion_tokens: int = 380,
) -> LLMResponse:
    return LLMResponse(
        content=content,
        model="gpt-4o",
        usage=TokenUsage.of(prompt_tokens, completion_tokens),
        cost=0.0,
        latency_ms=12.5,
        provider=ModelProvider.OPENAI,
    )


@pytest.fixture
def mock_llm_client():
    """
    Mock LLM client with configurable responses.

    Returns a real LLMResponse so token usage flows into cost accounting.
    """
    mock = AsyncMock(spec=AbstractLLMClient)
    mock.complete.return_value = make_llm_response()
    return mock


# ============================================================================
# ENGINE COMPONENTS
# ============================================================================


@pytest.fixture
def response_cache(clock) -> ResponseCache:
    return ResponseCache(name="response", max_entries=100, default_ttl=1800, clock=clock)


@pytest.fixture
def cost_tracker(response_cache) -> CostTracker:
    return CostTracker(cache_size_provider=lambda: response_cache.size)


@pytest.fixture
def dispatcher(mock_llm_client, response_cache, cost_tracker) -> GroupedDispatcher:
    return GroupedDispatcher(
        llm_client=mock_llm_client,
        response_cache=response_cache,
        cost_tracker=cost_tracker,
        kind_ttls={"long_form": 1800, "optimization": 7200},
    )


@pytest_asyncio.fixture
async def task_scheduler():
    scheduler = TaskScheduler()
    yield scheduler
    await scheduler.shutdown()


@pytest_asyncio.fixture
async def batcher(dispatcher, task_scheduler):
    """Batcher without a running timer; tests flush or submit explicitly."""
    yield RequestBatcher(
        dispatcher=dispatcher,
        task_scheduler=task_scheduler,
        max_batch_size=10,
        flush_interval=5.0,
    )


@pytest.fixture
def query_cache(clock) -> QueryCache:
    store = ResponseCache(name="query", max_entries=100, default_ttl=300, clock=clock)
    return QueryCache(
        cache=store,
        ttls={"content_stats": 3600, "schedule_overview": 600, "recent_content": 60},
        default_ttl=300,
    )


# ============================================================================
# DATABASE FIXTURES
# ============================================================================


@pytest.fixture
def db():
    """
    Database fixture with mocked database manager.

    Uses a mock database manager to avoid requiring actual database connection.
    """
    mock_db = Mock(spec=DatabaseManager)
    mock_db.execute = AsyncMock()
    mock_db.fetch_one = AsyncMock(return_value=None)
    mock_db.fetch_all = AsyncMock(return_value=[])
    mock_db.initialize = AsyncMock()
    mock_db.close = AsyncMock()
    return mock_db


@pytest.fixture
def content_repository(db, query_cache) -> ContentRepository:
    return ContentRepository(db_manager=db, query_cache=query_cache)


@pytest.fixture
def schedule_repository(db, query_cache) -> ScheduleRepository:
    return ScheduleRepository(db_manager=db, query_cache=query_cache)


# ============================================================================
# TEST DATA FACTORIES
# ============================================================================


class RequestFactory:
    """Factory for creating test GenerationRequest instances."""

    @staticmethod
    def create(
        topic: Optional[str] = None,
        kind: RequestKind = RequestKind.LONG_FORM,
        **kwargs,
    ) -> GenerationRequest:
        return GenerationRequest(
            kind=kind,
            topic=topic or f"Test Topic {random.randint(1000, 9999)}",
            **kwargs,
        )

    @staticmethod
    def create_batch(count: int, **kwargs) -> List[GenerationRequest]:
        return [RequestFactory.create(topic=f"Topic {i}", **kwargs) for i in range(count)]


class ScheduleFactory:
    """Factory for creating test ScheduleDefinition instances."""

    @staticmethod
    def create(name: Optional[str] = None, **kwargs) -> ScheduleDefinition:
        return ScheduleDefinition(
            name=name or f"Schedule {random.randint(1000, 9999)}",
            **kwargs,
        )


@pytest.fixture
def request_factory():
    return RequestFactory


@pytest.fixture
def schedule_factory():
    return ScheduleFactory


@pytest.fixture
def fixed_now():
    return datetime(2024, 3, 4, 12, 0, 0)


@pytest.fixture
def llm_response():
    """Builder for LLMResponse objects (content, prompt_tokens, completion_tokens)."""
    return make_llm_response
