"""
Dependency Injection Container: Centralized Object Lifecycle Management

Builds the engine's object graph with dependency-injector. Every stateful
component (caches, cost counters, pending queue, timers) is a singleton of
the container rather than a module-level global, so tests can build fresh
graphs and override any provider.

Architecture: Container Pattern + Dependency Injection + Singleton Registry
Dependency Graph (DAG):
Settings -> Infrastructure -> Optimization -> Execution -> Orchestration -> Services
"""

from typing import Callable, Optional

from dependency_injector import containers, providers
from loguru import logger

from config.settings import Settings, get_settings
from execution.batch_dispatcher import GroupedDispatcher
from execution.prompt_builder import PromptBuilder
from execution.topic_selector import TopicSelector
from infrastructure.database import DatabaseManager
from infrastructure.llm_client import AbstractLLMClient, get_llm_client
from infrastructure.monitoring import MetricsCollector
from intelligence.content_analyzer import ContentAnalyzer
from knowledge.content_repository import ContentRepository
from knowledge.schedule_repository import ScheduleRepository
from optimization.cache_manager import ResponseCache
from optimization.cost_tracker import CostTracker
from optimization.query_cache import QueryCache
from orchestration.recurrence import RecurrenceResolver
from orchestration.request_batcher import RequestBatcher
from orchestration.schedule_runner import ScheduleRunner
from orchestration.task_scheduler import TaskScheduler
from services.engine_service import ContentEngine


def _size_reader(cache: ResponseCache) -> Callable[[], int]:
    return lambda: cache.size


class Container(containers.DeclarativeContainer):
    """
    Central dependency injection container.

    All engine components are singletons: one pending queue, one response
    cache and one set of cost counters per process.
    """

    # Configuration
    config: providers.Singleton[Settings] = providers.Singleton(get_settings)

    # Infrastructure layer
    database: providers.Singleton[DatabaseManager] = providers.Singleton(
        DatabaseManager,
        settings=config,
    )

    metrics: providers.Singleton[MetricsCollector] = providers.Singleton(MetricsCollector)

    llm: providers.Singleton[AbstractLLMClient] = providers.Singleton(
        get_llm_client,
        settings=config,
        metrics_collector=metrics,
    )

    # Optimization layer
    response_cache: providers.Singleton[ResponseCache] = providers.Singleton(
        ResponseCache,
        name="response",
        max_entries=config.provided.cache.max_entries,
        metrics_collector=metrics,
    )

    query_store: providers.Singleton[ResponseCache] = providers.Singleton(
        ResponseCache,
        name="query",
        max_entries=config.provided.cache.max_entries,
        default_ttl=config.provided.cache.default_query_ttl,
        metrics_collector=metrics,
    )

    query_cache: providers.Singleton[QueryCache] = providers.Singleton(
        QueryCache,
        cache=query_store,
        ttls=config.provided.cache.query_ttls,
        default_ttl=config.provided.cache.default_query_ttl,
    )

    cost_tracker: providers.Singleton[CostTracker] = providers.Singleton(
        CostTracker,
        input_cost_per_1k=config.provided.llm.input_cost_per_1k,
        output_cost_per_1k=config.provided.llm.output_cost_per_1k,
        savings_per_cache_hit=config.provided.batch.savings_per_cache_hit,
        cache_size_provider=providers.Callable(_size_reader, response_cache),
    )

    # Knowledge layer
    content_repository: providers.Singleton[ContentRepository] = providers.Singleton(
        ContentRepository,
        db_manager=database,
        query_cache=query_cache,
    )

    schedule_repository: providers.Singleton[ScheduleRepository] = providers.Singleton(
        ScheduleRepository,
        db_manager=database,
        query_cache=query_cache,
    )

    # Execution layer
    prompt_builder: providers.Singleton[PromptBuilder] = providers.Singleton(PromptBuilder)

    content_analyzer: providers.Singleton[ContentAnalyzer] = providers.Singleton(ContentAnalyzer)

    dispatcher: providers.Singleton[GroupedDispatcher] = providers.Singleton(
        GroupedDispatcher,
        llm_client=llm,
        response_cache=response_cache,
        cost_tracker=cost_tracker,
        prompt_builder=prompt_builder,
        content_analyzer=content_analyzer,
        kind_ttls=config.provided.cache.kind_ttls,
        savings_per_cache_hit=config.provided.batch.savings_per_cache_hit,
    )

    topic_selector: providers.Singleton[TopicSelector] = providers.Singleton(
        TopicSelector,
        llm_client=llm,
    )

    # Orchestration layer
    task_scheduler: providers.Singleton[TaskScheduler] = providers.Singleton(TaskScheduler)

    batcher: providers.Singleton[RequestBatcher] = providers.Singleton(
        RequestBatcher,
        dispatcher=dispatcher,
        task_scheduler=task_scheduler,
        max_batch_size=config.provided.batch.max_batch_size,
        flush_interval=config.provided.batch.flush_interval,
        metrics_collector=metrics,
    )

    recurrence: providers.Singleton[RecurrenceResolver] = providers.Singleton(
        RecurrenceResolver,
        timezone_name=config.provided.scheduler.timezone,
        default_cron=config.provided.scheduler.default_cron,
    )

    schedule_runner: providers.Singleton[ScheduleRunner] = providers.Singleton(
        ScheduleRunner,
        batcher=batcher,
        topic_selector=topic_selector,
        content_repository=content_repository,
        schedule_repository=schedule_repository,
        task_scheduler=task_scheduler,
        recurrence=recurrence,
        content_analyzer=content_analyzer,
        default_word_count=config.provided.scheduler.default_word_count,
        default_topic_category=config.provided.scheduler.default_topic_category,
        metrics_collector=metrics,
    )

    # Service layer
    engine: providers.Singleton[ContentEngine] = providers.Singleton(
        ContentEngine,
        batcher=batcher,
        cost_tracker=cost_tracker,
        response_cache=response_cache,
        query_cache=query_cache,
        schedule_runner=schedule_runner,
        content_repository=content_repository,
        task_scheduler=task_scheduler,
        cache_sweep_interval=config.provided.cache.sweep_interval,
    )


container = Container()


class ContainerManager:
    """
    Container lifecycle manager.

    Initializes infrastructure that needs async setup, starts the engine
    and tears everything down in reverse order.
    """

    def __init__(self, target: Optional[Container] = None) -> None:
        self._container: Container = target or container
        self._initialized: bool = False

    async def initialize(self, create_tables: bool = False, start_engine: bool = True) -> None:
        """
        Initialize the database and start the engine.

        Raises:
            RuntimeError: If the database cannot be initialized
        """
        if self._initialized:
            logger.warning("Container already initialized - skipping re-initialization")
            return

        logger.info("Initializing dependency injection container")

        try:
            await self._container.database().initialize(create_tables=create_tables)
            logger.info("✓ Database initialized successfully")
        except Exception as db_error:
            error_msg = f"Database initialization failed: {db_error}"
            logger.error(error_msg)
            raise RuntimeError(error_msg) from db_error

        self._initialized = True

        if start_engine:
            try:
                await self._container.engine().start()
                logger.info("✓ Content engine started")
            except Exception as e:
                logger.error(f"❌ Engine start failed: {e}")
                await self.cleanup()
                raise RuntimeError(f"Failed to start content engine: {e}") from e

    async def cleanup(self) -> None:
        """
        Stop the engine and close connections.

        Idempotent; errors in one step are logged and do not prevent the next.
        """
        if not self._initialized:
            logger.debug("Container not initialized - skipping cleanup")
            return

        logger.info("Cleaning up dependency injection container")
        cleanup_errors = []

        try:
            await self._container.engine().shutdown()
            logger.info("✓ Content engine stopped")
        except Exception as engine_error:
            logger.error(f"Engine shutdown failed: {engine_error}")
            cleanup_errors.append(("engine", str(engine_error)))

        try:
            await self._container.llm().close()
            logger.info("✓ LLM client closed")
        except Exception as llm_error:
            logger.error(f"LLM client cleanup failed: {llm_error}")
            cleanup_errors.append(("llm", str(llm_error)))

        try:
            await self._container.database().close()
            logger.info("✓ Database connections closed")
        except Exception as db_error:
            logger.error(f"Database cleanup failed: {db_error}")
            cleanup_errors.append(("database", str(db_error)))

        if cleanup_errors:
            logger.warning(
                f"Container cleanup completed with {len(cleanup_errors)} error(s): "
                f"{', '.join(comp for comp, _ in cleanup_errors)}"
            )
        else:
            logger.info("✓ Container cleanup completed successfully")

        self._initialized = False

    def get_container(self) -> Container:
        if not self._initialized:
            raise RuntimeError("Container not initialized. Call initialize() first.")
        return self._container


# Global container manager instance
container_manager = ContainerManager()


__all__ = [
    "Container",
    "ContainerManager",
    "container",
    "container_manager",
]
