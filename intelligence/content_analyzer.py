"""
Content Analyzer: Heuristic Quality Metrics for Generated Text

Computes the metadata attached to every generated result:
- Word count and Flesch reading ease
- Per-keyword phrase density
- Heuristic SEO score (typed as an estimate, never a measurement)
- Improvement suggestions
- Kind-specific structure (headings, variants, outline sections...)

All functions are pure; nothing here touches the network.
"""

import re
from typing import Dict, List, Optional, Sequence

from config.constants import QUALITY_THRESHOLDS, REGEX_PATTERNS
from core.enums import RequestKind
from core.models import (
    ContentMetadata,
    GenerationRequest,
    HeuristicEstimate,
    LongFormMetadata,
    OptimizationMetadata,
    OutlineMetadata,
    ShortFormMetadata,
    TitleVariantsMetadata,
)

_SENTENCE_END = re.compile(REGEX_PATTERNS.SENTENCE_END)
_MARKDOWN_HEADING = re.compile(REGEX_PATTERNS.MARKDOWN_HEADING, re.MULTILINE)
_HTML_HEADING = re.compile(REGEX_PATTERNS.HTML_HEADING, re.IGNORECASE)
_LIST_MARKER = re.compile(REGEX_PATTERNS.LIST_MARKER)
_SLUG_INVALID = re.compile(REGEX_PATTERNS.SLUG_INVALID)
_EDGE_PUNCTUATION = "\"'.,;:!?()[]{}*_`“”‘’"

SEO_METHOD = "keyword-presence+headings+length"


class ContentAnalyzer:
    """
    Heuristic analyzer producing kind-tagged ContentMetadata.

    Usage:
        analyzer = ContentAnalyzer()
        metadata = analyzer.analyze(request, text)
    """

    def analyze(self, request: GenerationRequest, text: str) -> ContentMetadata:
        keywords = list(request.keywords)
        word_count = self.count_words(text)
        density = self.keyword_density(text, keywords)

        common = {
            "word_count": word_count,
            "readability": round(self.readability(text), 2),
            "keyword_density": density,
            "seo_score": self.seo_score(text, keywords),
            "suggestions": self.suggestions(request, text, density),
        }

        if request.kind == RequestKind.SHORT_FORM:
            characters = len(text.strip())
            return ShortFormMetadata(
                character_count=characters,
                within_limit=characters <= QUALITY_THRESHOLDS.SHORT_FORM_CHAR_LIMIT,
                **common,
            )
        if request.kind == RequestKind.OPTIMIZATION:
            original = self.count_words(request.content or "")
            return OptimizationMetadata(
                original_word_count=original,
                word_count_delta=word_count - original,
                **common,
            )
        if request.kind == RequestKind.TITLE_VARIANTS:
            return TitleVariantsMetadata(variants=self.extract_lines(text), **common)
        if request.kind == RequestKind.OUTLINE:
            return OutlineMetadata(sections=self.extract_lines(text), **common)

        return LongFormMetadata(
            heading_count=self.count_headings(text),
            paragraph_count=self.count_paragraphs(text),
            **common,
        )

    # =========================================================================
    # METRICS
    # =========================================================================

    @staticmethod
    def count_words(text: str) -> int:
        return len(text.split())

    def readability(self, text: str) -> float:
        """
        Flesch reading ease, clamped to [0, 100].

        Formula: 206.835 - 1.015(words/sentences) - 84.6(syllables/words)
        """
        words = text.split()
        sentences = [s for s in _SENTENCE_END.split(text) if s.strip()]

        total_words = len(words)
        total_sentences = len(sentences)

        if total_words == 0 or total_sentences == 0:
            return 0.0

        total_syllables = sum(self._count_syllables(word) for word in words)

        score = (
            206.835
            - 1.015 * (total_words / total_sentences)
            - 84.6 * (total_syllables / total_words)
        )

        return max(0.0, min(100.0, score))

    @staticmethod
    def _count_syllables(word: str) -> int:
        """Approximate syllable count using vowel clustering."""
        word = word.lower().strip(_EDGE_PUNCTUATION)
        vowels = "aeiouy"
        syllable_count = 0
        previous_was_vowel = False

        for char in word:
            is_vowel = char in vowels
            if is_vowel and not previous_was_vowel:
                syllable_count += 1
            previous_was_vowel = is_vowel

        # Silent 'e'
        if word.endswith("e") and syllable_count > 1:
            syllable_count -= 1

        return max(1, syllable_count)

    @staticmethod
    def keyword_density(text: str, keywords: Sequence[str]) -> Dict[str, float]:
        """
        Percent of words that start an exact match of each keyword phrase.

        Multi-word phrases are matched as consecutive word sequences.
        """
        words = [w.strip(_EDGE_PUNCTUATION) for w in text.lower().split()]
        total_words = len(words)
        density: Dict[str, float] = {}

        for keyword in keywords:
            phrase = keyword.lower().split()
            if not phrase or total_words == 0:
                density[keyword] = 0.0
                continue

            span = len(phrase)
            count = sum(
                1 for i in range(total_words - span + 1) if words[i : i + span] == phrase
            )
            density[keyword] = round(count / total_words * 100, 4)

        return density

    @staticmethod
    def has_headings(text: str) -> bool:
        return bool(_MARKDOWN_HEADING.search(text) or _HTML_HEADING.search(text))

    @staticmethod
    def count_headings(text: str) -> int:
        return len(_MARKDOWN_HEADING.findall(text)) + len(_HTML_HEADING.findall(text))

    @staticmethod
    def count_paragraphs(text: str) -> int:
        blocks = [b.strip() for b in re.split(r"\n\s*\n", text) if b.strip()]
        return sum(1 for b in blocks if not _MARKDOWN_HEADING.match(b) or "\n" in b)

    def seo_score(self, text: str, keywords: Sequence[str]) -> HeuristicEstimate:
        """
        Heuristic SEO score.

        Base 50 without keywords; otherwise points for every keyword present,
        for heading structure and for length over 300 words, capped at 100.
        """
        if not keywords:
            return HeuristicEstimate(
                value=QUALITY_THRESHOLDS.SEO_BASE_SCORE_NO_KEYWORDS, method=SEO_METHOD
            )

        lowered = text.lower()
        score = sum(
            QUALITY_THRESHOLDS.SEO_POINTS_PER_KEYWORD for k in keywords if k.lower() in lowered
        )
        if self.has_headings(text):
            score += QUALITY_THRESHOLDS.SEO_POINTS_HEADINGS
        if self.count_words(text) > QUALITY_THRESHOLDS.SEO_LENGTH_THRESHOLD:
            score += QUALITY_THRESHOLDS.SEO_POINTS_LENGTH

        return HeuristicEstimate(value=min(100.0, score), method=SEO_METHOD)

    def suggestions(
        self,
        request: GenerationRequest,
        text: str,
        density: Optional[Dict[str, float]] = None,
    ) -> List[str]:
        """Short list of actionable improvements."""
        suggestions: List[str] = []
        density = density if density is not None else self.keyword_density(text, request.keywords)

        for keyword in request.keywords:
            value = density.get(keyword, 0.0)
            if value < QUALITY_THRESHOLDS.MIN_KEYWORD_DENSITY:
                suggestions.append(f'Increase density of keyword "{keyword}"')
            elif value > QUALITY_THRESHOLDS.MAX_KEYWORD_DENSITY:
                suggestions.append(f'Reduce density of keyword "{keyword}"')

        word_count = self.count_words(text)
        if request.length and abs(word_count - request.length) > (
            request.length * QUALITY_THRESHOLDS.WORD_COUNT_TOLERANCE
        ):
            suggestions.append(
                f"Adjust word count (current: {word_count}, target: {request.length})"
            )

        if request.kind in (RequestKind.LONG_FORM, RequestKind.OPTIMIZATION):
            if not self.has_headings(text):
                suggestions.append("Add heading structure for better SEO")
            if word_count and self.readability(text) < QUALITY_THRESHOLDS.MIN_READABILITY:
                suggestions.append("Simplify sentences to improve readability")

        if (
            request.kind == RequestKind.SHORT_FORM
            and len(text.strip()) > QUALITY_THRESHOLDS.SHORT_FORM_CHAR_LIMIT
        ):
            suggestions.append(
                f"Shorten post to {QUALITY_THRESHOLDS.SHORT_FORM_CHAR_LIMIT} characters"
            )

        return suggestions

    # =========================================================================
    # STRUCTURE HELPERS
    # =========================================================================

    @staticmethod
    def extract_lines(text: str) -> List[str]:
        """Non-empty lines with list markers, heading hashes and quotes removed."""
        lines = []
        for raw in text.splitlines():
            line = _LIST_MARKER.sub("", raw).lstrip("#").strip().strip('"').strip()
            if line:
                lines.append(line)
        return lines

    @staticmethod
    def extract_title(text: str, fallback: str) -> str:
        """First heading (or first line) of the text, else the fallback."""
        for raw in text.splitlines():
            line = raw.strip()
            if not line:
                continue
            if _MARKDOWN_HEADING.match(line):
                return line.lstrip("#").strip()[:500] or fallback
            break
        return fallback[:500]

    @staticmethod
    def make_excerpt(text: str, max_chars: int = 200) -> str:
        body = " ".join(
            line.strip()
            for line in text.splitlines()
            if line.strip() and not _MARKDOWN_HEADING.match(line)
        )
        if len(body) <= max_chars:
            return body
        return body[:max_chars].rsplit(" ", 1)[0] + "..."

    @staticmethod
    def slugify(value: str) -> str:
        slug = _SLUG_INVALID.sub("-", value.lower()).strip("-")
        return slug or "post"


__all__ = ["SEO_METHOD", "ContentAnalyzer"]
