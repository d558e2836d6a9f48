"""
Domain Data Models
==================
Pydantic v2 schema definitions for the generation engine:
- Immutable request/result envelopes
- Kind-tagged content metadata (discriminated union)
- Batch, schedule and cost-reporting value objects

Architecture: Domain-Driven Design + Value Objects
"""

from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)

from core.enums import (
    ContentStatus,
    FlushReason,
    OptimizationLevel,
    RequestKind,
    ScheduleFrequency,
)

# =============================================================================
# CONFIGURATION
# =============================================================================


class BaseModelConfig(BaseModel):
    """Base configuration for all models."""

    model_config = ConfigDict(
        validate_assignment=True,  # Validate on field updates
        use_enum_values=False,  # Keep enum types (don't convert to strings)
        arbitrary_types_allowed=True,
    )


class FrozenModelConfig(BaseModel):
    """Base configuration for immutable value objects."""

    model_config = ConfigDict(
        frozen=True,
        use_enum_values=False,
    )


def _new_id() -> str:
    return uuid4().hex


# =============================================================================
# GENERATION REQUEST
# =============================================================================


class GenerationRequest(FrozenModelConfig):
    """
    Single unit of generation work.

    Immutable once created: the batcher, dispatcher and cache all read the
    same instance.
    """

    id: str = Field(default_factory=_new_id)
    kind: RequestKind = Field(default=RequestKind.LONG_FORM)
    topic: str = Field(..., min_length=1, max_length=500)
    keywords: tuple[str, ...] = Field(default_factory=tuple)
    audience: Optional[str] = Field(default=None, max_length=200)
    length: Optional[int] = Field(default=None, ge=1, le=20_000, description="Desired words")
    tone: Optional[str] = Field(default=None, max_length=100)

    # Source text for the optimization kind
    content: Optional[str] = Field(default=None)
    seo_optimization: bool = Field(default=False)

    submitted_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("kind", mode="before")
    @classmethod
    def parse_kind(cls, v: Any) -> Any:
        """Accept hyphenated kind names (`long-form`)."""
        if isinstance(v, str) and not isinstance(v, RequestKind):
            return RequestKind.parse(v)
        return v

    @field_validator("topic")
    @classmethod
    def strip_topic(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Topic cannot be blank")
        return v

    @field_validator("keywords", mode="before")
    @classmethod
    def normalize_keywords(cls, v: Any) -> Any:
        if v is None:
            return ()
        if isinstance(v, str):
            v = [v]
        return tuple(k.strip() for k in v if k and k.strip())

    @property
    def group_key(self) -> tuple[str, str, str]:
        """Similarity key used to group requests inside a batch."""
        return (self.kind.value, self.tone or "default", self.audience or "general")


# =============================================================================
# CONTENT METADATA (tagged per kind)
# =============================================================================


class HeuristicEstimate(FrozenModelConfig):
    """
    A number produced by a heuristic, never by measurement.

    The literal `is_estimate` flag travels with the value so downstream
    consumers cannot confuse it with observed data.
    """

    value: float = Field(..., ge=0.0, le=100.0)
    method: str = Field(..., min_length=1)
    is_estimate: Literal[True] = True


class _MetadataBase(FrozenModelConfig):
    word_count: int = Field(..., ge=0)
    readability: float = Field(..., ge=0.0, le=100.0, description="Flesch reading ease")
    keyword_density: dict[str, float] = Field(default_factory=dict)
    seo_score: HeuristicEstimate
    suggestions: list[str] = Field(default_factory=list)


class LongFormMetadata(_MetadataBase):
    kind: Literal[RequestKind.LONG_FORM] = RequestKind.LONG_FORM
    heading_count: int = Field(default=0, ge=0)
    paragraph_count: int = Field(default=0, ge=0)


class ShortFormMetadata(_MetadataBase):
    kind: Literal[RequestKind.SHORT_FORM] = RequestKind.SHORT_FORM
    character_count: int = Field(default=0, ge=0)
    within_limit: bool = Field(default=True)


class OptimizationMetadata(_MetadataBase):
    kind: Literal[RequestKind.OPTIMIZATION] = RequestKind.OPTIMIZATION
    original_word_count: int = Field(default=0, ge=0)
    word_count_delta: int = Field(default=0)


class TitleVariantsMetadata(_MetadataBase):
    kind: Literal[RequestKind.TITLE_VARIANTS] = RequestKind.TITLE_VARIANTS
    variants: list[str] = Field(default_factory=list)


class OutlineMetadata(_MetadataBase):
    kind: Literal[RequestKind.OUTLINE] = RequestKind.OUTLINE
    sections: list[str] = Field(default_factory=list)


ContentMetadata = Annotated[
    Union[
        LongFormMetadata,
        ShortFormMetadata,
        OptimizationMetadata,
        TitleVariantsMetadata,
        OutlineMetadata,
    ],
    Field(discriminator="kind"),
]


# =============================================================================
# GENERATION RESULT
# =============================================================================


class GeneratedResult(FrozenModelConfig):
    """
    Outcome of one request: generated, served from cache, or fallback.

    Cache-served and fallback results always carry zero cost.
    """

    request_id: str
    kind: RequestKind
    text: str
    metadata: ContentMetadata
    estimated_cost: float = Field(default=0.0, ge=0.0)
    generation_time: float = Field(default=0.0, ge=0.0)

    cached: bool = Field(default=False)
    is_fallback: bool = Field(default=False)
    error: Optional[str] = Field(default=None)

    @model_validator(mode="after")
    def zero_cost_when_not_generated(self) -> "GeneratedResult":
        if (self.cached or self.is_fallback) and self.estimated_cost != 0.0:
            raise ValueError("Cached and fallback results must report zero cost")
        if self.metadata.kind != self.kind:
            raise ValueError("Metadata variant does not match result kind")
        return self

    @property
    def word_count(self) -> int:
        return self.metadata.word_count

    def as_cache_hit(self, request_id: str) -> "GeneratedResult":
        """Zero-cost copy served from the response cache."""
        return self.model_copy(
            update={
                "request_id": request_id,
                "estimated_cost": 0.0,
                "generation_time": 0.0,
                "cached": True,
            }
        )


# =============================================================================
# BATCHING
# =============================================================================


class Batch(BaseModelConfig):
    """Ordered slice of the pending queue handed to the dispatcher."""

    id: str = Field(default_factory=_new_id)
    requests: list[GenerationRequest] = Field(default_factory=list)
    reason: FlushReason = Field(default=FlushReason.MANUAL)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    def __len__(self) -> int:
        return len(self.requests)


class BatchResult(BaseModelConfig):
    """Aggregate outcome of one flush."""

    batch_id: Optional[str] = Field(default=None)
    results: list[GeneratedResult] = Field(default_factory=list)
    total_cost: float = Field(default=0.0, ge=0.0)
    total_time: float = Field(default=0.0, ge=0.0)
    cache_hits: int = Field(default=0, ge=0)
    optimization_savings: float = Field(default=0.0, ge=0.0)
    flush_reason: Optional[FlushReason] = Field(default=None)

    @computed_field
    @property
    def fallback_count(self) -> int:
        return sum(1 for r in self.results if r.is_fallback)

    @property
    def is_empty(self) -> bool:
        return not self.results

    @classmethod
    def empty(cls, reason: Optional[FlushReason] = None) -> "BatchResult":
        return cls(flush_reason=reason)


# =============================================================================
# COST REPORTING
# =============================================================================


class CostStats(FrozenModelConfig):
    """Point-in-time snapshot of the cost tracker."""

    total_requests: int = Field(default=0, ge=0)
    cached_requests: int = Field(default=0, ge=0)
    total_input_tokens: int = Field(default=0, ge=0)
    total_output_tokens: int = Field(default=0, ge=0)
    estimated_cost: float = Field(default=0.0, ge=0.0)
    estimated_savings: float = Field(default=0.0, ge=0.0)
    cache_size: int = Field(default=0, ge=0)

    @computed_field
    @property
    def total_tokens(self) -> int:
        return self.total_input_tokens + self.total_output_tokens

    @computed_field
    @property
    def cache_hit_rate(self) -> float:
        """Cache-hit percentage (0-100), zero when nothing was requested."""
        if self.total_requests == 0:
            return 0.0
        return self.cached_requests / self.total_requests * 100

    @computed_field
    @property
    def optimization_level(self) -> OptimizationLevel:
        return OptimizationLevel.from_hit_rate(self.cache_hit_rate)


# =============================================================================
# SCHEDULING
# =============================================================================


class WordCountRange(FrozenModelConfig):
    min: int = Field(default=800, ge=1)
    max: int = Field(default=1200, ge=1)

    @model_validator(mode="after")
    def check_bounds(self) -> "WordCountRange":
        if self.min > self.max:
            raise ValueError(f"Word count min ({self.min}) exceeds max ({self.max})")
        return self


class ScheduleDefinition(BaseModelConfig):
    """
    Operator-defined recurring generation job.

    Edited by operators, read by the schedule runner at trigger time and
    updated with run statistics after every run.
    """

    id: str = Field(default_factory=_new_id)
    name: str = Field(..., min_length=1, max_length=255)
    is_active: bool = Field(default=True)

    # Recurrence
    frequency: ScheduleFrequency = Field(default=ScheduleFrequency.DAILY)
    custom_cron: Optional[str] = Field(default=None)

    # Generation defaults
    kind: RequestKind = Field(default=RequestKind.LONG_FORM)
    tone: Optional[str] = Field(default=None)
    audience: Optional[str] = Field(default=None)
    word_count_range: Optional[WordCountRange] = Field(default_factory=WordCountRange)
    keyword_focus: list[str] = Field(default_factory=list)
    topic_category: Optional[str] = Field(default=None)
    preferred_categories: list[str] = Field(default_factory=list)

    # Publish policy
    auto_publish: bool = Field(default=False)
    requires_approval: bool = Field(default=True)

    # Run statistics
    posts_generated: int = Field(default=0, ge=0)
    posts_published: int = Field(default=0, ge=0)
    runs_attempted: int = Field(default=0, ge=0)
    runs_failed: int = Field(default=0, ge=0)
    last_run_at: Optional[datetime] = Field(default=None)
    next_run_at: Optional[datetime] = Field(default=None)

    @field_validator("kind", mode="before")
    @classmethod
    def parse_kind(cls, v: Any) -> Any:
        if isinstance(v, str) and not isinstance(v, RequestKind):
            return RequestKind.parse(v)
        return v

    @computed_field
    @property
    def publishes_directly(self) -> bool:
        """Generated posts go live without review."""
        return self.auto_publish and not self.requires_approval

    def status_for(self, is_fallback: bool = False) -> ContentStatus:
        if self.publishes_directly and not is_fallback:
            return ContentStatus.PUBLISHED
        return ContentStatus.DRAFT


class ContentRecord(BaseModelConfig):
    """Persisted content row produced by a scheduled run."""

    id: str = Field(default_factory=_new_id)
    title: str = Field(..., min_length=1, max_length=500)
    slug: str = Field(..., min_length=1, max_length=500)
    excerpt: str = Field(default="")
    body: str
    status: ContentStatus = Field(default=ContentStatus.DRAFT)
    published_at: Optional[datetime] = Field(default=None)

    keywords: list[str] = Field(default_factory=list)
    tone: Optional[str] = Field(default=None)
    audience: Optional[str] = Field(default=None)
    kind: RequestKind = Field(default=RequestKind.LONG_FORM)
    category: Optional[str] = Field(default=None)

    readability: float = Field(default=0.0, ge=0.0, le=100.0)
    seo_score: float = Field(default=0.0, ge=0.0, le=100.0)
    word_count: int = Field(default=0, ge=0)
    estimated_cost: float = Field(default=0.0, ge=0.0)
    is_fallback: bool = Field(default=False)

    schedule_id: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @computed_field
    @property
    def is_published(self) -> bool:
        return self.status == ContentStatus.PUBLISHED


__all__ = [
    "BaseModelConfig",
    "FrozenModelConfig",
    "GenerationRequest",
    "HeuristicEstimate",
    "LongFormMetadata",
    "ShortFormMetadata",
    "OptimizationMetadata",
    "TitleVariantsMetadata",
    "OutlineMetadata",
    "ContentMetadata",
    "GeneratedResult",
    "Batch",
    "BatchResult",
    "CostStats",
    "WordCountRange",
    "ScheduleDefinition",
    "ContentRecord",
]
