"""
Unit tests for TopicSelector.
"""

import random

import pytest

from config.constants import FALLBACK_TOPICS
from core.exceptions import LLMInvalidResponseError, LLMRateLimitError
from execution.topic_selector import TopicSelector


@pytest.fixture
def selector(mock_llm_client):
    return TopicSelector(llm_client=mock_llm_client, rng=random.Random(3))


class TestParseTopics:
    """Test JSON extraction from backend replies."""

    def test_plain_json(self):
        assert TopicSelector.parse_topics('{"topics": ["A", " B "]}') == ["A", "B"]

    def test_code_fenced_json(self):
        reply = '```json\n{"topics": ["Restaking", "MEV"]}\n```'
        assert TopicSelector.parse_topics(reply) == ["Restaking", "MEV"]

    def test_non_string_and_blank_entries_dropped(self):
        assert TopicSelector.parse_topics('{"topics": ["A", 3, "", null]}') == ["A"]

    @pytest.mark.parametrize(
        "reply",
        [
            "not json",
            '{"topics": []}',
            '["A"]',
            '{"other": 1}',
            '{"topics": 5}',
            '{"topics": "Bitcoin ETFs"}',
            '{"topics": {"a": "Restaking"}}',
        ],
    )
    def test_unusable_replies_rejected(self, reply):
        with pytest.raises(LLMInvalidResponseError):
            TopicSelector.parse_topics(reply)


class TestSelection:
    """Test suggestion and selection with fallbacks."""

    @pytest.mark.asyncio
    async def test_suggestions_come_from_backend(self, selector, mock_llm_client, llm_response):
        mock_llm_client.complete.return_value = llm_response(content='{"topics": ["Restaking", "MEV"]}')

        topics = await selector.suggest_topics("defi")

        assert topics == ["Restaking", "MEV"]
        assert '"defi"' in mock_llm_client.complete.await_args.kwargs["prompt"]

    @pytest.mark.asyncio
    async def test_selected_topic_is_one_of_suggestions(self, selector, mock_llm_client, llm_response):
        mock_llm_client.complete.return_value = llm_response(content='{"topics": ["Restaking", "MEV"]}')
        assert await selector.select_topic("defi") in {"Restaking", "MEV"}

    @pytest.mark.asyncio
    async def test_backend_failure_uses_fallback_list(self, selector, mock_llm_client):
        mock_llm_client.complete.side_effect = LLMRateLimitError("quota")

        assert await selector.suggest_topics("defi") == list(FALLBACK_TOPICS)
        assert await selector.select_topic("defi") in FALLBACK_TOPICS

    @pytest.mark.asyncio
    async def test_invalid_reply_uses_fallback_list(self, selector, mock_llm_client, llm_response):
        mock_llm_client.complete.return_value = llm_response(content="Here are some topics!")
        assert await selector.suggest_topics("defi") == list(FALLBACK_TOPICS)

    @pytest.mark.asyncio
    async def test_string_topics_field_is_not_split_into_letters(
        self, selector, mock_llm_client, llm_response
    ):
        mock_llm_client.complete.return_value = llm_response(content='{"topics": "Bitcoin ETFs"}')
        assert await selector.select_topic("defi") in FALLBACK_TOPICS
