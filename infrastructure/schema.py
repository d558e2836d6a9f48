"""
Database Schema: SQLAlchemy Core Table Definitions

Minimal rows the engine reads and writes: generated posts and the
schedule definitions that produce them.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    func,
)

# Metadata instance for all tables
metadata = MetaData()

# Generated Content Table
content_posts_table = Table(
    "content_posts",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("title", String(500), nullable=False),
    Column("slug", String(500), nullable=False, unique=True),
    Column("excerpt", Text),
    Column("body", Text, nullable=False),
    Column("status", String(20), nullable=False, default="draft", index=True),
    Column("published_at", DateTime),
    Column("keywords", JSON),
    Column("tone", String(100)),
    Column("audience", String(200)),
    Column("kind", String(32), nullable=False),
    Column("category", String(100)),
    Column("readability", Float),
    Column("seo_score", Float),
    Column("word_count", Integer),
    Column("estimated_cost", Float),
    Column("is_fallback", Boolean, default=False),
    Column("schedule_id", String(64), index=True),
    Column("created_at", DateTime, default=func.now(), index=True),
    # Composite index for per-schedule listings
    Index("idx_posts_schedule_created", "schedule_id", "created_at"),
)

# Schedule Definitions Table
content_schedules_table = Table(
    "content_schedules",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("is_active", Boolean, nullable=False, default=True, index=True),
    Column("frequency", String(20), nullable=False, default="daily"),
    Column("custom_cron", String(100)),
    Column("kind", String(32), nullable=False, default="long_form"),
    Column("tone", String(100)),
    Column("audience", String(200)),
    Column("word_count_min", Integer),
    Column("word_count_max", Integer),
    Column("keyword_focus", JSON),
    Column("topic_category", String(100)),
    Column("preferred_categories", JSON),
    Column("auto_publish", Boolean, nullable=False, default=False),
    Column("requires_approval", Boolean, nullable=False, default=True),
    Column("posts_generated", Integer, nullable=False, default=0),
    Column("posts_published", Integer, nullable=False, default=0),
    Column("runs_attempted", Integer, nullable=False, default=0),
    Column("runs_failed", Integer, nullable=False, default=0),
    Column("last_run_at", DateTime),
    Column("next_run_at", DateTime),
    Column("created_at", DateTime, default=func.now()),
    Column("updated_at", DateTime, default=func.now(), onupdate=func.now()),
)

__all__ = [
    "metadata",
    "content_posts_table",
    "content_schedules_table",
]
