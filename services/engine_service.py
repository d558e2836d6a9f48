"""
Content Engine: Caller-Facing Service Layer

The only surface the rest of the application depends on:
- Request intake (enqueue / submit) and manual batch processing
- Cost and cache statistics
- Schedule management
- Cached content aggregates

Design Pattern: Facade over the batcher, dispatcher, caches and schedule runner
"""

from typing import Any, Dict, Optional

from loguru import logger

from core.enums import FlushReason
from core.models import BatchResult, CostStats, GeneratedResult, GenerationRequest, ScheduleDefinition
from knowledge.content_repository import ContentRepository
from optimization.cache_manager import ResponseCache
from optimization.cost_tracker import CostTracker
from optimization.query_cache import QueryCache
from orchestration.request_batcher import RequestBatcher
from orchestration.schedule_runner import ScheduleRunner
from orchestration.task_scheduler import TaskScheduler

CACHE_SWEEP_TASK_NAME = "cache:sweep"


class ContentEngine:
    """
    Facade for the batched-generation engine.

    Lifecycle: start() once the event loop is running, shutdown() on exit.
    """

    def __init__(
        self,
        batcher: RequestBatcher,
        cost_tracker: CostTracker,
        response_cache: ResponseCache,
        query_cache: QueryCache,
        schedule_runner: ScheduleRunner,
        content_repository: ContentRepository,
        task_scheduler: TaskScheduler,
        cache_sweep_interval: float = 600.0,
    ):
        self.batcher = batcher
        self.cost_tracker = cost_tracker
        self.response_cache = response_cache
        self.query_cache = query_cache
        self.schedule_runner = schedule_runner
        self.content_repository = content_repository
        self.task_scheduler = task_scheduler
        self.cache_sweep_interval = cache_sweep_interval
        self._started = False
        logger.debug("ContentEngine initialized")

    async def start(self, load_schedules: bool = True) -> None:
        """Install recurring flows and load active schedules."""
        if self._started:
            return

        self.batcher.start()
        self.task_scheduler.schedule_interval(
            CACHE_SWEEP_TASK_NAME, self.cache_sweep_interval, self._sweep_caches
        )
        if load_schedules:
            await self.schedule_runner.initialize()

        self._started = True
        logger.info("ContentEngine started")

    async def shutdown(self) -> None:
        """Stop timers, drain the queue and wait for in-flight work."""
        if not self._started:
            return

        self.schedule_runner.shutdown()
        await self.batcher.stop()
        await self.task_scheduler.shutdown()
        self._started = False
        logger.info("ContentEngine shut down")

    async def _sweep_caches(self) -> int:
        removed = await self.response_cache.sweep()
        removed_queries = await self.query_cache.sweep()
        if removed or removed_queries:
            logger.debug(
                f"Cache sweep removed {removed} expired responses and {removed_queries} expired query results"
            )
        return removed + removed_queries

    # =========================================================================
    # GENERATION
    # =========================================================================

    async def enqueue(self, request: GenerationRequest) -> str:
        """Queue a request; returns its id."""
        return await self.batcher.enqueue(request)

    async def submit(self, request: GenerationRequest) -> GeneratedResult:
        """Queue a request and wait for its result."""
        return await self.batcher.submit(request)

    async def process_batch(self) -> BatchResult:
        """Flush the pending queue now (no-op while a flush is running)."""
        return await self.batcher.flush(FlushReason.MANUAL)

    def get_stats(self) -> CostStats:
        return self.cost_tracker.get_stats()

    # =========================================================================
    # SCHEDULES
    # =========================================================================

    async def update_schedule(self, definition: ScheduleDefinition) -> ScheduleDefinition:
        return await self.schedule_runner.update_schedule(definition)

    async def remove_schedule(self, schedule_id: str) -> bool:
        return await self.schedule_runner.remove_schedule(schedule_id)

    async def run_schedule_now(self, schedule_id: str):
        return await self.schedule_runner.run_now(schedule_id)

    async def get_schedule_overview(self) -> Dict[str, Any]:
        """Schedule counts and run totals, served from the query cache when fresh."""
        return await self.schedule_runner.schedule_repository.get_overview()

    # =========================================================================
    # READS
    # =========================================================================

    async def get_content_stats(self, days: int = 30) -> Dict[str, Any]:
        """Aggregate content counts, served from the query cache when fresh."""
        return await self.content_repository.get_content_stats(days=days)

    async def get_recent_content(self, limit: int = 20, schedule_id: Optional[str] = None):
        return await self.content_repository.list_recent(limit=limit, schedule_id=schedule_id)

    def get_status(self) -> Dict[str, Any]:
        return {
            "started": self._started,
            "batcher": self.batcher.get_status(),
            "cost": self.cost_tracker.get_stats().model_dump(),
            "response_cache": self.response_cache.get_statistics(),
            "query_cache": self.query_cache.get_statistics(),
            "schedules": self.schedule_runner.get_status(),
            "tasks": self.task_scheduler.get_status(),
        }


__all__ = ["CACHE_SWEEP_TASK_NAME", "ContentEngine"]
