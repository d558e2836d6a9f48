"""
Unit tests for PromptBuilder and fallback text.
"""

import pytest

from core.enums import RequestKind
from core.models import GenerationRequest
from execution.prompt_builder import SEO_REQUIREMENTS, PromptBuilder, fallback_text


@pytest.fixture
def builder():
    return PromptBuilder()


class TestPromptBuilder:
    """Test per-kind templates, budgets and temperatures."""

    def test_long_form_prompt_includes_parameters(self, builder):
        request = GenerationRequest(
            kind=RequestKind.LONG_FORM,
            topic="Staking",
            keywords=["staking", "rewards"],
            audience="beginners",
            length=1200,
            tone="friendly",
        )

        spec = builder.build(request)

        assert '"Staking"' in spec.prompt
        assert "Target keywords: staking, rewards" in spec.prompt
        assert "Target audience: beginners" in spec.prompt
        assert "Target word count: 1200" in spec.prompt
        assert "Tone: friendly" in spec.prompt
        assert SEO_REQUIREMENTS not in spec.prompt
        assert spec.temperature == 0.7

    def test_seo_block_only_when_requested(self, builder):
        request = GenerationRequest(topic="Staking", seo_optimization=True)
        assert builder.build_prompt(request).endswith(SEO_REQUIREMENTS)

    @pytest.mark.parametrize(
        "kind,length,expected",
        [
            (RequestKind.LONG_FORM, None, 2000),
            (RequestKind.LONG_FORM, 1000, 2000),
            (RequestKind.LONG_FORM, 2000, 3000),
            (RequestKind.SHORT_FORM, None, 300),
            (RequestKind.TITLE_VARIANTS, None, 100),
            (RequestKind.OUTLINE, 101, 152),
        ],
    )
    def test_token_budget(self, kind, length, expected):
        request = GenerationRequest(kind=kind, topic="Staking", length=length)
        assert PromptBuilder.calculate_max_tokens(request) == expected

    def test_optimization_prompt_embeds_source(self, builder):
        request = GenerationRequest(
            kind=RequestKind.OPTIMIZATION, topic="Staking", content="Original draft text."
        )

        spec = builder.build(request)

        assert "Original draft text." in spec.prompt
        assert spec.temperature == 0.3


class TestFallbackText:
    """Test deterministic placeholders."""

    def test_fallback_is_deterministic_per_kind(self):
        request = GenerationRequest(kind=RequestKind.SHORT_FORM, topic="Staking")
        assert fallback_text(request) == fallback_text(request)
        assert "Staking" in fallback_text(request)

    def test_long_form_fallback_has_title(self):
        text = fallback_text(GenerationRequest(topic="Staking"))
        assert text.startswith("# Staking")

    def test_optimization_fallback_returns_source(self):
        request = GenerationRequest(kind=RequestKind.OPTIMIZATION, topic="Staking", content="Keep me.")
        assert fallback_text(request) == "Keep me."
