"""
Domain Enumerations & Type Taxonomy
====================================
Type-safe enumerations for the generation engine with string values for
JSON serialization and database storage.

Architecture: Type-Driven Design + ADT (Algebraic Data Types)
"""

from enum import Enum, IntEnum
from typing import Optional


class RequestKind(str, Enum):
    """
    Closed set of generation request kinds.

    Each kind carries its own prompt template, token budget, sampling
    temperature and cache lifetime.
    """

    LONG_FORM = "long_form"  # Full blog post / article
    SHORT_FORM = "short_form"  # Social media post
    OPTIMIZATION = "optimization"  # Rewrite existing content for SEO/readability
    TITLE_VARIANTS = "title_variants"  # Alternative headlines
    OUTLINE = "outline"  # Section outline

    def __str__(self) -> str:
        return self.value.replace("_", "-")

    @property
    def base_tokens(self) -> int:
        """Minimum completion budget for this kind."""
        from config.constants import TOKEN_BUDGETS

        budgets = {
            self.LONG_FORM: TOKEN_BUDGETS.LONG_FORM,
            self.SHORT_FORM: TOKEN_BUDGETS.SHORT_FORM,
            self.OPTIMIZATION: TOKEN_BUDGETS.OPTIMIZATION,
            self.TITLE_VARIANTS: TOKEN_BUDGETS.TITLE_VARIANTS,
            self.OUTLINE: TOKEN_BUDGETS.OUTLINE,
        }
        return budgets[self]

    @property
    def temperature(self) -> float:
        """Sampling temperature for this kind."""
        from config.constants import TEMPERATURES

        temperatures = {
            self.LONG_FORM: TEMPERATURES.LONG_FORM,
            self.SHORT_FORM: TEMPERATURES.SHORT_FORM,
            self.OPTIMIZATION: TEMPERATURES.OPTIMIZATION,
            self.TITLE_VARIANTS: TEMPERATURES.TITLE_VARIANTS,
            self.OUTLINE: TEMPERATURES.OUTLINE,
        }
        return temperatures[self]

    @classmethod
    def parse(cls, value: str) -> "RequestKind":
        """Accept both `long-form` and `long_form` spellings."""
        return cls(value.strip().lower().replace("-", "_"))


class FlushReason(str, Enum):
    """Why a batch left the pending queue."""

    SIZE = "size"  # Queue reached max batch size
    TIMEOUT = "timeout"  # Recurring flush timer fired
    MANUAL = "manual"  # Explicit caller request or shutdown drain


class ScheduleFrequency(str, Enum):
    """Recurrence vocabulary accepted by the schedule runner."""

    DAILY = "daily"
    WEEKLY = "weekly"
    BI_WEEKLY = "bi-weekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"

    @property
    def cron_expression(self) -> Optional[str]:
        """Fixed cron mapping, None for custom rules."""
        from config.constants import CRON_EXPRESSIONS

        mapping = {
            self.DAILY: CRON_EXPRESSIONS.DAILY,
            self.WEEKLY: CRON_EXPRESSIONS.WEEKLY,
            self.BI_WEEKLY: CRON_EXPRESSIONS.BI_WEEKLY,
            self.MONTHLY: CRON_EXPRESSIONS.MONTHLY,
            self.CUSTOM: None,
        }
        return mapping[self]


class ScheduleState(str, Enum):
    """
    Per-schedule lifecycle states.

    Idle -> Triggered -> Running -> Idle, looping.
    Disabled is parked until the schedule is re-activated.
    """

    IDLE = "idle"
    TRIGGERED = "triggered"
    RUNNING = "running"
    DISABLED = "disabled"

    def can_transition_to(self, target: "ScheduleState") -> bool:
        valid_transitions = {
            self.IDLE: {self.TRIGGERED, self.DISABLED},
            self.TRIGGERED: {self.RUNNING, self.IDLE, self.DISABLED},
            self.RUNNING: {self.IDLE},
            self.DISABLED: {self.IDLE},
        }
        return target in valid_transitions.get(self, set())


class ContentStatus(str, Enum):
    """Publication status of persisted content."""

    DRAFT = "draft"
    PUBLISHED = "published"


class OptimizationLevel(str, Enum):
    """Cost optimization classification derived from cache-hit ratio."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @classmethod
    def from_hit_rate(cls, hit_rate_percent: float) -> "OptimizationLevel":
        from config.constants import OPTIMIZATION_LEVELS

        if hit_rate_percent > OPTIMIZATION_LEVELS.HIGH:
            return cls.HIGH
        if hit_rate_percent > OPTIMIZATION_LEVELS.MEDIUM:
            return cls.MEDIUM
        return cls.LOW


class ErrorSeverity(IntEnum):
    """
    Error classification by impact severity.

    Determines alerting, retry, and recovery strategies.
    """

    CRITICAL = 5  # System failure, immediate intervention required
    ERROR = 4  # Operation failed, automatic retry possible
    WARNING = 3  # Degraded performance, monitoring needed
    INFO = 2  # Notable event, no action required
    DEBUG = 1  # Diagnostic information

    @property
    def should_alert(self) -> bool:
        """Determine if severity warrants immediate alert."""
        return self >= self.ERROR
