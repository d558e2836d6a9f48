"""
Unit tests for ScheduleRunner.

Collaborators are mocked except the task scheduler and recurrence
resolver, so timer installation and next-run times are real.
"""

import random
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, Mock

import pytest
import pytest_asyncio

from core.enums import ContentStatus, ScheduleState
from core.exceptions import EntityNotFoundError, GenerationError, ScheduleExecutionError
from core.models import GeneratedResult, WordCountRange
from intelligence.content_analyzer import ContentAnalyzer
from orchestration.recurrence import RecurrenceResolver
from orchestration.schedule_runner import ScheduleRunner, task_name

ARTICLE = """# Validator Economics

Validators earn fees and rewards for proposing blocks.

## Costs

Hardware and slashing risk reduce net returns."""

analyzer = ContentAnalyzer()


def _result_for(request, is_fallback: bool = False) -> GeneratedResult:
    return GeneratedResult(
        request_id=request.id,
        kind=request.kind,
        text=ARTICLE,
        metadata=analyzer.analyze(request, ARTICLE),
        estimated_cost=0.0 if is_fallback else 0.012,
        is_fallback=is_fallback,
    )


@pytest.fixture
def submitted():
    return []


@pytest.fixture
def mock_batcher(submitted):
    async def submit(request):
        submitted.append(request)
        return _result_for(request)

    batcher = Mock()
    batcher.submit = AsyncMock(side_effect=submit)
    return batcher


@pytest.fixture
def mock_topic_selector():
    selector = Mock()
    selector.select_topic = AsyncMock(return_value="Validator Economics")
    return selector


@pytest.fixture
def mock_content_repository():
    repository = Mock()
    repository.insert = AsyncMock(side_effect=lambda record: record)
    return repository


@pytest.fixture
def mock_schedule_repository():
    repository = Mock()
    repository.save = AsyncMock(side_effect=lambda definition: definition)
    repository.list_active = AsyncMock(return_value=[])
    return repository


@pytest_asyncio.fixture
async def runner(
    mock_batcher,
    mock_topic_selector,
    mock_content_repository,
    mock_schedule_repository,
    task_scheduler,
    fixed_now,
):
    runner = ScheduleRunner(
        batcher=mock_batcher,
        topic_selector=mock_topic_selector,
        content_repository=mock_content_repository,
        schedule_repository=mock_schedule_repository,
        task_scheduler=task_scheduler,
        recurrence=RecurrenceResolver(timezone_name="UTC"),
        rng=random.Random(7),
        now_fn=lambda: fixed_now,
    )
    yield runner
    runner.shutdown()


class TestRegistration:
    """Test timer installation and state on update/remove."""

    @pytest.mark.asyncio
    async def test_active_schedule_gets_one_timer(self, runner, task_scheduler, schedule_factory):
        definition = schedule_factory.create()

        await runner.update_schedule(definition)
        await runner.update_schedule(definition)

        assert task_scheduler.task_names == [task_name(definition.id)]
        assert runner.get_state(definition.id) == ScheduleState.IDLE
        assert definition.next_run_at == datetime(2024, 3, 5, 9, 0)

    @pytest.mark.asyncio
    async def test_inactive_schedule_is_disabled(
        self, runner, task_scheduler, schedule_factory, mock_schedule_repository
    ):
        definition = schedule_factory.create()
        await runner.update_schedule(definition)

        definition.is_active = False
        await runner.update_schedule(definition)

        assert runner.get_state(definition.id) == ScheduleState.DISABLED
        assert not task_scheduler.is_scheduled(task_name(definition.id))
        assert definition.next_run_at is None
        assert mock_schedule_repository.save.await_count == 2

    @pytest.mark.asyncio
    async def test_reactivated_schedule_returns_to_idle(self, runner, task_scheduler, schedule_factory):
        definition = schedule_factory.create(is_active=False)
        await runner.update_schedule(definition)

        definition.is_active = True
        await runner.update_schedule(definition)

        assert runner.get_state(definition.id) == ScheduleState.IDLE
        assert task_scheduler.is_scheduled(task_name(definition.id))

    @pytest.mark.asyncio
    async def test_initialize_loads_active_schedules_without_saving(
        self, runner, task_scheduler, schedule_factory, mock_schedule_repository
    ):
        definitions = [schedule_factory.create(), schedule_factory.create()]
        mock_schedule_repository.list_active.return_value = definitions

        assert await runner.initialize() == 2
        assert len(task_scheduler.task_names) == 2
        mock_schedule_repository.save.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_remove_schedule_deactivates_in_store(
        self, runner, task_scheduler, schedule_factory, mock_schedule_repository
    ):
        definition = schedule_factory.create()
        await runner.update_schedule(definition)

        assert await runner.remove_schedule(definition.id) is True

        saved = mock_schedule_repository.save.await_args.args[0]
        assert saved.is_active is False
        assert task_scheduler.task_names == []
        assert runner.get_state(definition.id) is None
        assert await runner.remove_schedule("missing") is False

    @pytest.mark.asyncio
    async def test_early_wakeup_does_not_repeat_cron_instant(
        self, runner, task_scheduler, schedule_factory
    ):
        definition = schedule_factory.create()
        await runner.update_schedule(definition)
        # Drive the delay computation by hand instead of through the timer
        task_scheduler.cancel(task_name(definition.id))
        instant = datetime(2024, 3, 5, 9, 0)

        runner.now_fn = lambda: instant - timedelta(milliseconds=50)
        assert runner._delay_until_next_run(definition.id) == pytest.approx(0.05, abs=0.01)

        # The loop clock wakes the timer a moment before the wall clock reaches the instant
        runner.now_fn = lambda: instant - timedelta(milliseconds=1)
        delay = runner._delay_until_next_run(definition.id)

        assert definition.next_run_at == datetime(2024, 3, 6, 9, 0)
        assert delay == pytest.approx(24 * 3600, abs=1)

    @pytest.mark.asyncio
    async def test_update_schedule_resets_timer_anchor(self, runner, task_scheduler, schedule_factory):
        definition = schedule_factory.create()
        await runner.update_schedule(definition)
        task_scheduler.cancel(task_name(definition.id))
        runner._delay_until_next_run(definition.id)

        await runner.update_schedule(definition)
        task_scheduler.cancel(task_name(definition.id))
        runner._delay_until_next_run(definition.id)

        assert definition.next_run_at == datetime(2024, 3, 5, 9, 0)


class TestExecution:
    """Test run_now outcomes and run statistics."""

    @pytest.mark.asyncio
    async def test_approval_required_produces_draft(
        self, runner, schedule_factory, mock_content_repository, fixed_now
    ):
        definition = schedule_factory.create(auto_publish=False, requires_approval=True)
        await runner.update_schedule(definition)

        record = await runner.run_now(definition.id)

        assert record.status == ContentStatus.DRAFT
        assert record.published_at is None
        assert record.schedule_id == definition.id
        assert record.title == "Validator Economics"
        assert record.slug.startswith("validator-economics-")
        mock_content_repository.insert.assert_awaited_once_with(record)

        assert definition.runs_attempted == 1
        assert definition.posts_generated == 1
        assert definition.posts_published == 0
        assert definition.last_run_at == fixed_now
        assert runner.get_state(definition.id) == ScheduleState.IDLE

    @pytest.mark.asyncio
    async def test_auto_publish_produces_published_post(self, runner, schedule_factory, fixed_now):
        definition = schedule_factory.create(auto_publish=True, requires_approval=False)
        await runner.update_schedule(definition)

        record = await runner.run_now(definition.id)

        assert record.status == ContentStatus.PUBLISHED
        assert record.published_at == fixed_now
        assert definition.posts_published == 1

    @pytest.mark.asyncio
    async def test_fallback_result_is_never_published(self, runner, schedule_factory, mock_batcher):
        async def submit_fallback(request):
            return _result_for(request, is_fallback=True)

        mock_batcher.submit.side_effect = submit_fallback
        definition = schedule_factory.create(auto_publish=True, requires_approval=False)
        await runner.update_schedule(definition)

        record = await runner.run_now(definition.id)

        assert record.status == ContentStatus.DRAFT
        assert record.is_fallback is True
        assert definition.posts_generated == 1
        assert definition.posts_published == 0

    @pytest.mark.asyncio
    async def test_request_uses_schedule_defaults(self, runner, schedule_factory, submitted):
        definition = schedule_factory.create(
            tone="analytical",
            audience="investors",
            keyword_focus=["staking"],
            word_count_range=WordCountRange(min=900, max=950),
            topic_category="defi",
        )
        await runner.update_schedule(definition)

        await runner.run_now(definition.id)

        request = submitted[0]
        assert request.topic == "Validator Economics"
        assert request.tone == "analytical"
        assert request.audience == "investors"
        assert request.keywords == ["staking"]
        assert 900 <= request.length <= 950
        assert request.seo_optimization is True
        runner.topic_selector.select_topic.assert_awaited_once_with("defi")

    @pytest.mark.asyncio
    async def test_missing_range_uses_default_length(self, runner, schedule_factory, submitted):
        definition = schedule_factory.create(word_count_range=None)
        await runner.update_schedule(definition)

        await runner.run_now(definition.id)

        assert submitted[0].length == 1000

    @pytest.mark.asyncio
    async def test_preferred_category_is_chosen(self, runner, schedule_factory):
        definition = schedule_factory.create(preferred_categories=["guides"])
        await runner.update_schedule(definition)

        record = await runner.run_now(definition.id)

        assert record.category == "guides"

    @pytest.mark.asyncio
    async def test_failed_run_is_counted_and_schedule_stays_active(
        self, runner, task_scheduler, schedule_factory, mock_batcher, mock_content_repository
    ):
        mock_batcher.submit.side_effect = GenerationError("backend down", generation_step="dispatch")
        definition = schedule_factory.create()
        await runner.update_schedule(definition)

        assert await runner.run_now(definition.id) is None

        assert definition.runs_attempted == 1
        assert definition.runs_failed == 1
        assert definition.posts_generated == 0
        assert runner.get_state(definition.id) == ScheduleState.IDLE
        assert task_scheduler.is_scheduled(task_name(definition.id))
        mock_content_repository.insert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_store_failure_after_run_is_not_raised(
        self, runner, schedule_factory, mock_schedule_repository
    ):
        definition = schedule_factory.create()
        await runner.update_schedule(definition)
        mock_schedule_repository.save.side_effect = RuntimeError("db unavailable")

        record = await runner.run_now(definition.id)

        assert record is not None
        assert definition.posts_generated == 1

    @pytest.mark.asyncio
    async def test_run_now_unknown_schedule(self, runner):
        with pytest.raises(EntityNotFoundError):
            await runner.run_now("missing")

    @pytest.mark.asyncio
    async def test_run_now_disabled_schedule(self, runner, schedule_factory):
        definition = schedule_factory.create(is_active=False)
        await runner.update_schedule(definition)

        with pytest.raises(ScheduleExecutionError) as exc_info:
            await runner.run_now(definition.id)
        assert exc_info.value.context["schedule_id"] == definition.id

    @pytest.mark.asyncio
    async def test_status_reports_schedules(self, runner, schedule_factory):
        definition = schedule_factory.create(name="Daily DeFi")
        await runner.update_schedule(definition)
        await runner.run_now(definition.id)

        status = runner.get_status()

        assert status["active"] == 1
        entry = status["schedules"][0]
        assert entry["name"] == "Daily DeFi"
        assert entry["state"] == "idle"
        assert entry["posts_generated"] == 1
