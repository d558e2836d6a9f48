"""
Schedule Runner: Recurring Generation per Schedule Definition

Each active schedule owns one named timer on the TaskScheduler. A run
selects a topic, submits a request through the batcher, persists the
resulting post and writes the updated run statistics back to the store.

Per-schedule state machine:
    Idle -> Triggered -> Running -> Idle
    Disabled while the schedule is inactive

A run that fails is logged and counted; the schedule stays active.
"""

import random
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from core.enums import ContentStatus, ScheduleState
from core.exceptions import EntityNotFoundError, ScheduleExecutionError
from core.models import ContentRecord, GeneratedResult, GenerationRequest, ScheduleDefinition
from execution.topic_selector import TopicSelector
from intelligence.content_analyzer import ContentAnalyzer
from knowledge.content_repository import ContentRepository
from knowledge.schedule_repository import ScheduleRepository
from orchestration.recurrence import RecurrenceResolver
from orchestration.request_batcher import RequestBatcher
from orchestration.task_scheduler import TaskScheduler


def task_name(schedule_id: str) -> str:
    return f"schedule:{schedule_id}"


class ScheduleRunner:
    """
    Drives scheduled content generation.

    Args:
        batcher: Request path into the dispatcher
        topic_selector: Picks a topic per run
        content_repository: Stores generated posts
        schedule_repository: Loads definitions and stores run statistics
        task_scheduler: Hosts one timer per active schedule
        recurrence: Cron resolution and next-run computation
        content_analyzer: Title, slug and excerpt helpers
        default_word_count: Requested length when a schedule has no range
        default_topic_category: Category when a schedule names none
        now_fn: Naive UTC clock
    """

    def __init__(
        self,
        batcher: RequestBatcher,
        topic_selector: TopicSelector,
        content_repository: ContentRepository,
        schedule_repository: ScheduleRepository,
        task_scheduler: TaskScheduler,
        recurrence: RecurrenceResolver,
        content_analyzer: Optional[ContentAnalyzer] = None,
        default_word_count: int = 1000,
        default_topic_category: str = "blockchain",
        rng: Optional[random.Random] = None,
        now_fn: Callable[[], datetime] = datetime.utcnow,
        metrics_collector: Optional[Any] = None,
    ):
        self.batcher = batcher
        self.topic_selector = topic_selector
        self.content_repository = content_repository
        self.schedule_repository = schedule_repository
        self.task_scheduler = task_scheduler
        self.recurrence = recurrence
        self.analyzer = content_analyzer or ContentAnalyzer()
        self.default_word_count = default_word_count
        self.default_topic_category = default_topic_category
        self.rng = rng or random.Random()
        self.now_fn = now_fn
        self.metrics = metrics_collector

        self._definitions: Dict[str, ScheduleDefinition] = {}
        self._states: Dict[str, ScheduleState] = {}
        self._expressions: Dict[str, str] = {}
        self._timer_targets: Dict[str, datetime] = {}

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    async def initialize(self) -> int:
        """Load active schedules from the store and install their timers."""
        definitions = await self.schedule_repository.list_active()
        for definition in definitions:
            await self.update_schedule(definition, persist=False)
        logger.info(f"ScheduleRunner initialized with {len(definitions)} active schedules")
        return len(definitions)

    async def update_schedule(self, definition: ScheduleDefinition, persist: bool = True) -> ScheduleDefinition:
        """
        Install or replace the timer for a schedule.

        Any existing timer for the id is cancelled first, so one schedule
        never has two timers. Inactive schedules are parked as Disabled.
        """
        schedule_id = definition.id
        self.task_scheduler.cancel(task_name(schedule_id))
        self._timer_targets.pop(schedule_id, None)
        self._definitions[schedule_id] = definition

        if not definition.is_active:
            self._states[schedule_id] = ScheduleState.DISABLED
            self._expressions.pop(schedule_id, None)
            definition.next_run_at = None
            logger.info(f"Schedule '{definition.name}' is inactive, timer removed")
        else:
            expression = self.recurrence.resolve(definition)
            self._expressions[schedule_id] = expression
            definition.next_run_at = self.recurrence.next_run(expression, self.now_fn())

            # A run already in progress finishes and returns to Idle on its own
            if self._states.get(schedule_id) not in (ScheduleState.TRIGGERED, ScheduleState.RUNNING):
                self._states[schedule_id] = ScheduleState.IDLE

            self.task_scheduler.schedule_at(
                task_name(schedule_id),
                lambda: self._delay_until_next_run(schedule_id),
                lambda: self._execute(schedule_id),
            )
            logger.info(
                f"Schedule '{definition.name}' installed ({expression}), "
                f"next run at {definition.next_run_at.isoformat()}Z"
            )

        if persist:
            await self.schedule_repository.save(definition)
        return definition

    async def remove_schedule(self, schedule_id: str) -> bool:
        """
        Stop a schedule's timer and deactivate it in the store.

        Returns:
            False when the id was not registered
        """
        cancelled = self.task_scheduler.cancel(task_name(schedule_id))
        definition = self._definitions.pop(schedule_id, None)
        self._states.pop(schedule_id, None)
        self._expressions.pop(schedule_id, None)
        self._timer_targets.pop(schedule_id, None)

        if definition is None:
            return cancelled

        definition.is_active = False
        definition.next_run_at = None
        await self.schedule_repository.save(definition)
        logger.info(f"Schedule '{definition.name}' removed")
        return True

    async def run_now(self, schedule_id: str) -> Optional[ContentRecord]:
        """
        Trigger a run immediately, outside the timer.

        Raises:
            EntityNotFoundError: Unknown schedule id
            ScheduleExecutionError: Schedule is disabled
        """
        if schedule_id not in self._definitions:
            raise EntityNotFoundError("ScheduleDefinition", schedule_id)
        if self._states.get(schedule_id) == ScheduleState.DISABLED:
            raise ScheduleExecutionError(
                f"Schedule '{self._definitions[schedule_id].name}' is disabled",
                schedule_id=schedule_id,
            )
        return await self._execute(schedule_id)

    def _delay_until_next_run(self, schedule_id: str) -> Optional[float]:
        expression = self._expressions.get(schedule_id)
        definition = self._definitions.get(schedule_id)
        if expression is None or definition is None:
            return None

        now = self.now_fn()
        # The loop may wake just before the instant it slept toward; never fire that instant twice
        previous = self._timer_targets.get(schedule_id)
        anchor = max(now, previous) if previous else now
        next_run = self.recurrence.next_run(expression, anchor)
        self._timer_targets[schedule_id] = next_run
        definition.next_run_at = next_run
        return max(0.0, (next_run - now).total_seconds())

    # =========================================================================
    # EXECUTION
    # =========================================================================

    def _transition(self, schedule_id: str, target: ScheduleState) -> bool:
        current = self._states.get(schedule_id)
        if current is None or not current.can_transition_to(target):
            return False
        self._states[schedule_id] = target
        return True

    async def _execute(self, schedule_id: str) -> Optional[ContentRecord]:
        definition = self._definitions.get(schedule_id)
        if definition is None:
            return None

        if not self._transition(schedule_id, ScheduleState.TRIGGERED):
            logger.warning(
                f"Skipping run of '{definition.name}': schedule is {self._states.get(schedule_id)}"
            )
            return None

        started = time.monotonic()
        record: Optional[ContentRecord] = None
        status = "success"

        try:
            self._transition(schedule_id, ScheduleState.RUNNING)
            logger.info(f"Running schedule '{definition.name}'")
            record = await self._generate_and_store(definition)
        except Exception as e:
            status = "failed"
            logger.exception(f"Scheduled run of '{definition.name}' failed: {e}")
        finally:
            # A schedule deactivated mid-run stays Disabled
            if self._states.get(schedule_id) in (ScheduleState.TRIGGERED, ScheduleState.RUNNING):
                self._transition(schedule_id, ScheduleState.IDLE)

        # Pick up edits made while the run was in flight
        current = self._definitions.get(schedule_id, definition)
        self._apply_run_stats(current, record, failed=status == "failed")

        try:
            await self.schedule_repository.save(current)
        except Exception as e:
            logger.error(f"Failed to store run statistics for '{current.name}': {e}")

        duration = time.monotonic() - started
        if self.metrics:
            self.metrics.record_schedule_run(status=status, duration_seconds=duration)

        logger.info(
            f"Schedule '{current.name}' run {status} in {duration:.2f}s "
            f"(generated={current.posts_generated}, failed runs={current.runs_failed})"
        )
        return record

    async def _generate_and_store(self, definition: ScheduleDefinition) -> ContentRecord:
        category = definition.topic_category or self.default_topic_category
        topic = await self.topic_selector.select_topic(category)

        word_range = definition.word_count_range
        length = (
            self.rng.randint(word_range.min, word_range.max)
            if word_range
            else self.default_word_count
        )

        request = GenerationRequest(
            kind=definition.kind,
            topic=topic,
            keywords=definition.keyword_focus,
            audience=definition.audience,
            length=length,
            tone=definition.tone,
            seo_optimization=True,
        )
        result = await self.batcher.submit(request)

        record = self._build_record(definition, request, result, category)
        await self.content_repository.insert(record)
        return record

    def _build_record(
        self,
        definition: ScheduleDefinition,
        request: GenerationRequest,
        result: GeneratedResult,
        category: str,
    ) -> ContentRecord:
        status = definition.status_for(result.is_fallback)
        now = self.now_fn()

        title = self.analyzer.extract_title(result.text, fallback=request.topic)
        slug = f"{self.analyzer.slugify(title)[:80].rstrip('-')}-{request.id[:8]}"

        preferred: List[str] = definition.preferred_categories
        chosen_category = self.rng.choice(preferred) if preferred else category

        return ContentRecord(
            title=title,
            slug=slug,
            excerpt=self.analyzer.make_excerpt(result.text),
            body=result.text,
            status=status,
            published_at=now if status == ContentStatus.PUBLISHED else None,
            keywords=list(request.keywords),
            tone=request.tone,
            audience=request.audience,
            kind=request.kind,
            category=chosen_category,
            readability=result.metadata.readability,
            seo_score=result.metadata.seo_score.value,
            word_count=result.word_count,
            estimated_cost=result.estimated_cost,
            is_fallback=result.is_fallback,
            schedule_id=definition.id,
            created_at=now,
        )

    def _apply_run_stats(
        self, definition: ScheduleDefinition, record: Optional[ContentRecord], failed: bool
    ) -> None:
        now = self.now_fn()
        definition.runs_attempted += 1
        definition.last_run_at = now

        if failed:
            definition.runs_failed += 1
        elif record is not None:
            definition.posts_generated += 1
            if record.is_published:
                definition.posts_published += 1

        expression = self._expressions.get(definition.id)
        if definition.is_active and expression:
            definition.next_run_at = self.recurrence.next_run(expression, now)

    # =========================================================================
    # STATUS / LIFECYCLE
    # =========================================================================

    def get_state(self, schedule_id: str) -> Optional[ScheduleState]:
        return self._states.get(schedule_id)

    def get_status(self) -> Dict[str, Any]:
        schedules = []
        for schedule_id, definition in self._definitions.items():
            schedules.append(
                {
                    "id": schedule_id,
                    "name": definition.name,
                    "state": self._states[schedule_id].value,
                    "expression": self._expressions.get(schedule_id),
                    "next_run_at": definition.next_run_at.isoformat() if definition.next_run_at else None,
                    "last_run_at": definition.last_run_at.isoformat() if definition.last_run_at else None,
                    "runs_attempted": definition.runs_attempted,
                    "runs_failed": definition.runs_failed,
                    "posts_generated": definition.posts_generated,
                    "posts_published": definition.posts_published,
                }
            )
        return {"schedules": schedules, "active": len(self._expressions)}

    def shutdown(self) -> None:
        """Cancel every schedule timer; in-flight runs finish on their own."""
        for schedule_id in list(self._definitions):
            self.task_scheduler.cancel(task_name(schedule_id))
        logger.info(f"ScheduleRunner shut down ({len(self._definitions)} schedules)")


__all__ = ["ScheduleRunner", "task_name"]
