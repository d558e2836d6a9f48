"""
Unit tests for the dependency injection container and its lifecycle manager.

The generation client and database are overridden with mocks; everything
else is built from the real providers and settings defaults.
"""

import pytest
from dependency_injector import providers

from container import Container, ContainerManager
from orchestration.request_batcher import FLUSH_TASK_NAME


@pytest.fixture
def wired(mock_llm_client, db):
    target = Container()
    target.llm.override(providers.Object(mock_llm_client))
    target.database.override(providers.Object(db))
    yield target
    target.llm.reset_override()
    target.database.reset_override()


class TestContainerGraph:
    """Test that components share one instance per process."""

    def test_engine_components_are_shared_singletons(self, wired):
        engine = wired.engine()

        assert engine.batcher is wired.batcher()
        assert engine.batcher.dispatcher is wired.dispatcher()
        assert engine.batcher.dispatcher.cache is wired.response_cache()
        assert engine.schedule_runner.batcher is engine.batcher
        assert engine.schedule_runner.task_scheduler is engine.task_scheduler
        assert wired.response_cache() is not wired.query_store()

    def test_settings_flow_into_components(self, wired):
        settings = wired.config()

        assert wired.batcher().max_batch_size == settings.batch.max_batch_size
        assert wired.batcher().flush_interval == settings.batch.flush_interval
        assert wired.query_cache().ttl_for("content_stats") == settings.cache.query_ttls["content_stats"]
        assert wired.recurrence().timezone_name == settings.scheduler.timezone

    @pytest.mark.asyncio
    async def test_cost_tracker_reports_response_cache_size(self, wired):
        await wired.response_cache().put("key", "value")
        assert wired.cost_tracker().get_stats().cache_size == 1


class TestContainerManager:
    """Test async initialization and cleanup ordering."""

    @pytest.mark.asyncio
    async def test_initialize_starts_engine_and_cleanup_stops_it(self, wired, db, mock_llm_client):
        manager = ContainerManager(target=wired)

        await manager.initialize()

        db.initialize.assert_awaited_once_with(create_tables=False)
        assert wired.task_scheduler().is_scheduled(FLUSH_TASK_NAME)
        assert manager.get_container() is wired

        await manager.cleanup()

        assert not wired.task_scheduler().is_scheduled(FLUSH_TASK_NAME)
        mock_llm_client.close.assert_awaited_once()
        db.close.assert_awaited_once()
        with pytest.raises(RuntimeError):
            manager.get_container()

    @pytest.mark.asyncio
    async def test_database_failure_is_raised_as_runtime_error(self, wired, db):
        db.initialize.side_effect = ConnectionError("refused")
        manager = ContainerManager(target=wired)

        with pytest.raises(RuntimeError, match="Database initialization failed"):
            await manager.initialize()

    @pytest.mark.asyncio
    async def test_cleanup_without_initialize_is_noop(self, wired, db):
        await ContainerManager(target=wired).cleanup()
        db.close.assert_not_awaited()
