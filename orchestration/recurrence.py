"""
Recurrence Resolution: Cron Rules for Scheduled Generation

Maps schedule frequencies onto cron expressions and computes next-run
times with Celery's crontab schedule in the configured timezone. A
malformed or missing custom rule falls back to the daily default.
"""

from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from celery import Celery
from celery.schedules import ParseException, crontab
from loguru import logger

from config.constants import CRON_EXPRESSIONS
from core.enums import ScheduleFrequency
from core.exceptions import InvalidScheduleError
from core.models import ScheduleDefinition


class RecurrenceResolver:
    """
    Cron expression parsing and next-run computation.

    Times handed in and returned are naive UTC, like every other timestamp
    in the engine.
    """

    def __init__(
        self,
        timezone_name: str = "America/New_York",
        default_cron: str = CRON_EXPRESSIONS.DAILY,
    ):
        self.timezone_name = timezone_name
        self.tz = ZoneInfo(timezone_name)
        self.default_cron = default_cron

        # Standalone app only carries the timezone for crontab arithmetic
        self._app = Celery("content_engine_recurrence", set_as_current=False)
        self._app.conf.update(timezone=timezone_name, enable_utc=True)

        # Fail fast on a broken default
        self.parse(default_cron)

    def expression_for(self, definition: ScheduleDefinition) -> str:
        """Cron expression a schedule asks for (not yet validated)."""
        if definition.frequency == ScheduleFrequency.CUSTOM:
            return (definition.custom_cron or "").strip() or self.default_cron
        return definition.frequency.cron_expression or self.default_cron

    def parse(self, expression: str, now: Optional[datetime] = None) -> crontab:
        """
        Parse a five-field cron expression (minute hour day month weekday).

        Raises:
            InvalidScheduleError: Wrong field count or unparseable field
        """
        fields = (expression or "").split()
        if len(fields) != 5:
            raise InvalidScheduleError(
                f"Cron expression must have 5 fields, got {len(fields)}", expression=expression
            )

        minute, hour, day_of_month, month_of_year, day_of_week = fields
        try:
            return crontab(
                minute=minute,
                hour=hour,
                day_of_month=day_of_month,
                month_of_year=month_of_year,
                day_of_week=day_of_week,
                nowfun=(lambda: now) if now is not None else None,
                app=self._app,
            )
        except (ParseException, ValueError) as e:
            raise InvalidScheduleError(
                f"Invalid cron expression: {e}", expression=expression, cause=e
            ) from e

    def resolve(self, definition: ScheduleDefinition) -> str:
        """Schedule's cron expression, or the default when it cannot be parsed."""
        expression = self.expression_for(definition)
        try:
            self.parse(expression)
        except InvalidScheduleError as e:
            logger.warning(
                f"Schedule '{definition.name}' has an invalid recurrence ({e.message}), "
                f"falling back to '{self.default_cron}'"
            )
            return self.default_cron
        return expression

    def next_run(self, expression: str, after: Optional[datetime] = None) -> datetime:
        """First occurrence strictly after `after` (naive UTC in, naive UTC out)."""
        if after is None:
            after = datetime.utcnow()
        if after.tzinfo is None:
            after = after.replace(tzinfo=timezone.utc)
        local_after = after.astimezone(self.tz)

        schedule = self.parse(expression, now=local_after)
        next_local = local_after + schedule.remaining_estimate(local_after)

        return next_local.astimezone(timezone.utc).replace(tzinfo=None)

    def next_run_for(self, definition: ScheduleDefinition, after: Optional[datetime] = None) -> datetime:
        return self.next_run(self.resolve(definition), after)


__all__ = ["RecurrenceResolver"]
