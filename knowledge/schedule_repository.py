"""
Schedule Repository: Data Access Layer for Schedule Definitions

Loads schedules at startup, writes back run statistics after every run and
serves a cached overview of all schedules.

Design Pattern: Repository Pattern with SQLAlchemy Core
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from loguru import logger
from pydantic import ValidationError
from sqlalchemy import case, func, select
from sqlalchemy.dialects.postgresql import insert

from core.enums import ScheduleFrequency
from core.models import ScheduleDefinition, WordCountRange
from infrastructure.database import DatabaseManager
from infrastructure.schema import content_schedules_table
from optimization.query_cache import QueryCache, cached_query

OVERVIEW_FIELDS = (
    "total_schedules",
    "active_schedules",
    "posts_generated",
    "posts_published",
    "runs_attempted",
    "runs_failed",
)


def _to_row(definition: ScheduleDefinition) -> Dict[str, Any]:
    word_range = definition.word_count_range
    return {
        "id": definition.id,
        "name": definition.name,
        "is_active": definition.is_active,
        "frequency": definition.frequency.value,
        "custom_cron": definition.custom_cron,
        "kind": definition.kind.value,
        "tone": definition.tone,
        "audience": definition.audience,
        "word_count_min": word_range.min if word_range else None,
        "word_count_max": word_range.max if word_range else None,
        "keyword_focus": list(definition.keyword_focus),
        "topic_category": definition.topic_category,
        "preferred_categories": list(definition.preferred_categories),
        "auto_publish": definition.auto_publish,
        "requires_approval": definition.requires_approval,
        "posts_generated": definition.posts_generated,
        "posts_published": definition.posts_published,
        "runs_attempted": definition.runs_attempted,
        "runs_failed": definition.runs_failed,
        "last_run_at": definition.last_run_at,
        "next_run_at": definition.next_run_at,
        "updated_at": datetime.utcnow(),
    }


def _parse_frequency(value: Any, schedule_id: Any) -> ScheduleFrequency:
    try:
        return ScheduleFrequency(str(value).strip().lower())
    except ValueError:
        logger.warning(
            f"Schedule {schedule_id} has unknown frequency {value!r}, falling back to daily"
        )
        return ScheduleFrequency.DAILY


def _from_row(row: Dict[str, Any]) -> ScheduleDefinition:
    word_range = None
    if row.get("word_count_min") is not None and row.get("word_count_max") is not None:
        word_range = WordCountRange(min=row["word_count_min"], max=row["word_count_max"])

    return ScheduleDefinition(
        id=row["id"],
        name=row["name"],
        is_active=row["is_active"],
        frequency=_parse_frequency(row.get("frequency"), row.get("id")),
        custom_cron=row.get("custom_cron"),
        kind=row.get("kind") or "long_form",
        tone=row.get("tone"),
        audience=row.get("audience"),
        word_count_range=word_range,
        keyword_focus=row.get("keyword_focus") or [],
        topic_category=row.get("topic_category"),
        preferred_categories=row.get("preferred_categories") or [],
        auto_publish=row["auto_publish"],
        requires_approval=row["requires_approval"],
        posts_generated=row.get("posts_generated") or 0,
        posts_published=row.get("posts_published") or 0,
        runs_attempted=row.get("runs_attempted") or 0,
        runs_failed=row.get("runs_failed") or 0,
        last_run_at=row.get("last_run_at"),
        next_run_at=row.get("next_run_at"),
    )


class ScheduleRepository:
    """Repository for schedule definitions and their run statistics."""

    def __init__(self, db_manager: DatabaseManager, query_cache: Optional[QueryCache] = None):
        self.db = db_manager
        self.query_cache = query_cache
        logger.debug("ScheduleRepository initialized")

    async def list_active(self) -> List[ScheduleDefinition]:
        query = select(content_schedules_table).where(content_schedules_table.c.is_active.is_(True))
        rows = await self.db.fetch_all(query)

        definitions = []
        for row in rows:
            try:
                definitions.append(_from_row(row))
            except (KeyError, ValidationError) as e:
                logger.error(f"Skipping unreadable schedule row {row.get('id')}: {e}")
        return definitions

    async def get(self, schedule_id: str) -> Optional[ScheduleDefinition]:
        query = select(content_schedules_table).where(content_schedules_table.c.id == schedule_id)
        row = await self.db.fetch_one(query)
        return _from_row(row) if row else None

    async def save(self, definition: ScheduleDefinition) -> ScheduleDefinition:
        """Insert or update the full definition including statistics."""
        values = _to_row(definition)
        stmt = insert(content_schedules_table).values(values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[content_schedules_table.c.id],
            set_={k: stmt.excluded[k] for k in values if k != "id"},
        )
        await self.db.execute(stmt)

        if self.query_cache:
            await self.query_cache.invalidate("schedule_overview")

        return definition

    @cached_query("schedule_overview")
    async def get_overview(self) -> Dict[str, Any]:
        """Schedule counts and lifetime run totals across all schedules."""
        schedules = content_schedules_table.c
        query = select(
            func.count(schedules.id).label("total_schedules"),
            func.sum(case((schedules.is_active.is_(True), 1), else_=0)).label("active_schedules"),
            func.sum(schedules.posts_generated).label("posts_generated"),
            func.sum(schedules.posts_published).label("posts_published"),
            func.sum(schedules.runs_attempted).label("runs_attempted"),
            func.sum(schedules.runs_failed).label("runs_failed"),
        )

        row = await self.db.fetch_one(query) or {}
        return {key: int(row.get(key) or 0) for key in OVERVIEW_FIELDS}


__all__ = ["ScheduleRepository"]
