"""
Content Repository: Data Access Layer for Generated Posts

Encapsulates database operations for persisted content:
- Insert of posts produced by scheduled runs
- Aggregate statistics (cached per query type)
- Recent listings

Design Pattern: Repository Pattern with SQLAlchemy Core
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy import case, func, select

from core.enums import ContentStatus
from core.models import ContentRecord
from infrastructure.database import DatabaseManager
from infrastructure.schema import content_posts_table
from optimization.query_cache import QueryCache, cached_query


class ContentRepository:
    """
    Repository for generated content.

    Read-heavy aggregations go through the query cache; every insert
    invalidates the cached aggregates it changes.
    """

    def __init__(self, db_manager: DatabaseManager, query_cache: Optional[QueryCache] = None):
        self.db = db_manager
        self.query_cache = query_cache
        logger.debug("ContentRepository initialized")

    async def insert(self, record: ContentRecord) -> ContentRecord:
        """
        Persist a generated post.

        Args:
            record: Content row to insert

        Returns:
            The inserted record
        """
        values = record.model_dump(exclude={"is_published"})
        values["status"] = record.status.value
        values["kind"] = record.kind.value

        await self.db.execute(content_posts_table.insert().values(values))
        logger.info(f"Stored content '{record.title}' ({record.status.value}) id={record.id}")

        if self.query_cache:
            await self.query_cache.invalidate("content_stats")
            await self.query_cache.invalidate("recent_content")

        return record

    @cached_query("content_stats")
    async def get_content_stats(self, days: int = 30) -> Dict[str, Any]:
        """
        Aggregate counts and averages over the last `days` days.

        Returns:
            Dict with totals by status, averages and spend
        """
        since = datetime.utcnow() - timedelta(days=days)
        posts = content_posts_table.c

        query = select(
            func.count(posts.id).label("total_posts"),
            func.sum(case((posts.status == ContentStatus.PUBLISHED.value, 1), else_=0)).label(
                "published_posts"
            ),
            func.sum(case((posts.status == ContentStatus.DRAFT.value, 1), else_=0)).label(
                "draft_posts"
            ),
            func.sum(case((posts.is_fallback.is_(True), 1), else_=0)).label("fallback_posts"),
            func.avg(posts.word_count).label("avg_word_count"),
            func.avg(posts.readability).label("avg_readability"),
            func.avg(posts.seo_score).label("avg_seo_score"),
            func.sum(posts.estimated_cost).label("total_cost"),
        ).where(posts.created_at >= since)

        row = await self.db.fetch_one(query) or {}

        return {
            "period_days": days,
            "total_posts": int(row.get("total_posts") or 0),
            "published_posts": int(row.get("published_posts") or 0),
            "draft_posts": int(row.get("draft_posts") or 0),
            "fallback_posts": int(row.get("fallback_posts") or 0),
            "avg_word_count": round(float(row.get("avg_word_count") or 0), 1),
            "avg_readability": round(float(row.get("avg_readability") or 0), 1),
            "avg_seo_score": round(float(row.get("avg_seo_score") or 0), 1),
            "total_cost": round(float(row.get("total_cost") or 0), 6),
        }

    @cached_query("recent_content")
    async def list_recent(self, limit: int = 20, schedule_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Most recent posts without bodies."""
        posts = content_posts_table.c
        query = select(
            posts.id,
            posts.title,
            posts.slug,
            posts.excerpt,
            posts.status,
            posts.kind,
            posts.category,
            posts.word_count,
            posts.is_fallback,
            posts.schedule_id,
            posts.created_at,
        )
        if schedule_id:
            query = query.where(posts.schedule_id == schedule_id)
        query = query.order_by(posts.created_at.desc()).limit(limit)

        return await self.db.fetch_all(query)


__all__ = ["ContentRepository"]
