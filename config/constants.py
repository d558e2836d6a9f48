"""
System Constants & Invariants
==============================
Immutable domain constants for prompt budgets, sampling temperatures,
content-quality heuristics and recurrence vocabulary.

Architecture: Value Objects + Namespace Organization
"""

from dataclasses import dataclass
from typing import Final, Tuple

# =============================================================================
# TOKEN BUDGETS & SAMPLING
# =============================================================================


@dataclass(frozen=True)
class TokenBudgets:
    """Base completion budget per request kind (tokens)."""

    LONG_FORM: int = 2_000
    SHORT_FORM: int = 300
    OPTIMIZATION: int = 1_500
    TITLE_VARIANTS: int = 100
    OUTLINE: int = 150

    # Requested length is converted with this words-to-tokens ratio
    TOKENS_PER_WORD: float = 1.5

    # Rough estimation used when the provider does not report usage
    CHARS_PER_TOKEN: int = 4

    # Topic suggestion call
    TOPIC_SUGGESTIONS: int = 400


TOKEN_BUDGETS: Final = TokenBudgets()


@dataclass(frozen=True)
class Temperatures:
    """Sampling temperature per request kind."""

    LONG_FORM: float = 0.7
    SHORT_FORM: float = 0.8
    OPTIMIZATION: float = 0.3
    TITLE_VARIANTS: float = 0.8
    OUTLINE: float = 0.6
    TOPIC_SUGGESTIONS: float = 0.7


TEMPERATURES: Final = Temperatures()


# =============================================================================
# CONTENT QUALITY HEURISTICS
# =============================================================================


@dataclass(frozen=True)
class QualityThresholds:
    """Acceptance bands used to derive improvement suggestions."""

    # Keyword density (percent of total words)
    MIN_KEYWORD_DENSITY: float = 1.0
    MAX_KEYWORD_DENSITY: float = 3.0

    # Allowed deviation from the requested word count
    WORD_COUNT_TOLERANCE: float = 0.2

    # Short-form posts
    SHORT_FORM_CHAR_LIMIT: int = 280

    # SEO heuristic weights
    SEO_BASE_SCORE_NO_KEYWORDS: float = 50.0
    SEO_POINTS_PER_KEYWORD: float = 20.0
    SEO_POINTS_HEADINGS: float = 15.0
    SEO_POINTS_LENGTH: float = 15.0
    SEO_LENGTH_THRESHOLD: int = 300

    # Readability below this gets a simplification suggestion
    MIN_READABILITY: float = 30.0


QUALITY_THRESHOLDS: Final = QualityThresholds()


# =============================================================================
# COST OPTIMIZATION
# =============================================================================


@dataclass(frozen=True)
class OptimizationLevels:
    """Cache-hit percentage thresholds for the optimization level."""

    HIGH: float = 30.0
    MEDIUM: float = 15.0


OPTIMIZATION_LEVELS: Final = OptimizationLevels()


# =============================================================================
# RECURRENCE
# =============================================================================


@dataclass(frozen=True)
class CronExpressions:
    """Cron expressions for the named schedule frequencies."""

    DAILY: str = "0 9 * * *"
    WEEKLY: str = "0 9 * * 1"
    BI_WEEKLY: str = "0 9 */14 * *"
    MONTHLY: str = "0 9 1 * *"


CRON_EXPRESSIONS: Final = CronExpressions()

FALLBACK_TOPICS: Final[Tuple[str, ...]] = (
    "DeFi Yield Farming Strategies",
    "NFT Market Analysis",
    "Layer 2 Solutions Comparison",
    "Crypto Tax Planning Guide",
    "Blockchain Security Best Practices",
)


# =============================================================================
# TEXT PATTERNS
# =============================================================================


@dataclass(frozen=True)
class RegexPatterns:
    """Regex patterns for text analysis."""

    SENTENCE_END: str = r"[.!?]+"
    MARKDOWN_HEADING: str = r"^\s{0,3}#{1,6}\s"
    HTML_HEADING: str = r"<h[1-6][\s>]"
    LIST_MARKER: str = r"^\s*(?:[-*+]|\d+[.)])\s+"
    SLUG_INVALID: str = r"[^a-z0-9]+"


REGEX_PATTERNS: Final = RegexPatterns()


__all__ = [
    "TOKEN_BUDGETS",
    "TEMPERATURES",
    "QUALITY_THRESHOLDS",
    "OPTIMIZATION_LEVELS",
    "CRON_EXPRESSIONS",
    "FALLBACK_TOPICS",
    "REGEX_PATTERNS",
]
