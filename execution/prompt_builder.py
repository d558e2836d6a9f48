"""
Prompt Builder: Kind-Specific Prompt Synthesis

Turns a GenerationRequest into a backend call specification: prompt text
from a per-kind template, a completion budget derived from the requested
length, and a sampling temperature per kind.
"""

import math
from dataclasses import dataclass

from config.constants import TOKEN_BUDGETS
from core.enums import RequestKind
from core.models import GenerationRequest

SYSTEM_PROMPT = (
    "You are an expert content writer for a technology publication. "
    "Write accurate, engaging copy and follow the requested format exactly."
)

SEO_REQUIREMENTS = """SEO REQUIREMENTS:
- Include target keywords naturally throughout the content
- Use proper heading structure (H1, H2, H3)
- Keep keyword density between 1% and 3%
- Optimize for readability and user engagement"""


@dataclass(frozen=True)
class PromptSpec:
    """Everything the LLM client needs for one call."""

    prompt: str
    system_prompt: str
    max_tokens: int
    temperature: float


class PromptBuilder:
    """
    Builds prompts for the five request kinds.

    Token budget: max(base budget of the kind, ceil(words x 1.5)).
    """

    def __init__(self, system_prompt: str = SYSTEM_PROMPT):
        self.system_prompt = system_prompt

    def build(self, request: GenerationRequest) -> PromptSpec:
        return PromptSpec(
            prompt=self.build_prompt(request),
            system_prompt=self.system_prompt,
            max_tokens=self.calculate_max_tokens(request),
            temperature=request.kind.temperature,
        )

    @staticmethod
    def calculate_max_tokens(request: GenerationRequest) -> int:
        base = request.kind.base_tokens
        if request.length:
            return max(base, math.ceil(request.length * TOKEN_BUDGETS.TOKENS_PER_WORD))
        return base

    def build_prompt(self, request: GenerationRequest) -> str:
        """Kind template followed by the optional parameter lines."""
        templates = {
            RequestKind.LONG_FORM: self._long_form,
            RequestKind.SHORT_FORM: self._short_form,
            RequestKind.OPTIMIZATION: self._optimization,
            RequestKind.TITLE_VARIANTS: self._title_variants,
            RequestKind.OUTLINE: self._outline,
        }
        lines = [templates[request.kind](request)]

        if request.keywords:
            lines.append(f"Target keywords: {', '.join(request.keywords)}")
        if request.audience:
            lines.append(f"Target audience: {request.audience}")
        if request.length:
            lines.append(f"Target word count: {request.length}")
        if request.tone:
            lines.append(f"Tone: {request.tone}")

        prompt = "\n".join(lines)

        if request.seo_optimization:
            prompt += f"\n\n{SEO_REQUIREMENTS}"

        return prompt

    # =========================================================================
    # TEMPLATES
    # =========================================================================

    @staticmethod
    def _long_form(request: GenerationRequest) -> str:
        return (
            f'Write a comprehensive, SEO-optimized blog post about "{request.topic}".\n'
            "Start with a single H1 title line, use H2/H3 headings for sections, "
            "keep paragraphs short and end with a clear conclusion."
        )

    @staticmethod
    def _short_form(request: GenerationRequest) -> str:
        return (
            f'Create an engaging social media post about "{request.topic}".\n'
            "Keep it under 280 characters, include a call to action and at most two hashtags."
        )

    @staticmethod
    def _optimization(request: GenerationRequest) -> str:
        source = request.content or ""
        return (
            f'Rewrite the following content about "{request.topic}" to improve SEO and readability '
            "while preserving its meaning. Return only the rewritten content.\n\n"
            f"CONTENT:\n{source}\n"
        )

    @staticmethod
    def _title_variants(request: GenerationRequest) -> str:
        return (
            f'Generate 5 optimized headline variants for an article about "{request.topic}".\n'
            "Return one title per line without numbering or quotes."
        )

    @staticmethod
    def _outline(request: GenerationRequest) -> str:
        return (
            f'Create a section outline for an article about "{request.topic}".\n'
            "Return one section heading per line as a markdown list."
        )


def fallback_text(request: GenerationRequest) -> str:
    """Deterministic placeholder used when generation fails."""
    topic = request.topic
    if request.kind == RequestKind.SHORT_FORM:
        return f"Stay tuned for our latest insights on {topic}."
    if request.kind == RequestKind.TITLE_VARIANTS:
        return f"{topic}: A Complete Guide\nUnderstanding {topic}\n{topic} Explained"
    if request.kind == RequestKind.OUTLINE:
        return f"- Introduction to {topic}\n- Key Concepts\n- Practical Applications\n- Conclusion"
    if request.kind == RequestKind.OPTIMIZATION:
        return request.content or f"Content about {topic} is being prepared."
    return (
        f"# {topic}\n\n"
        f"Content about {topic} is being prepared. Please check back soon for the full article."
    )


__all__ = ["SYSTEM_PROMPT", "PromptSpec", "PromptBuilder", "fallback_text"]
