"""
Topic Selector: Trending Topic Suggestions for Scheduled Runs

Asks the backend for trending topics in a category as JSON, falls back to
a fixed list on backend or parse failure, then picks one uniformly.
"""

import json
import random
from typing import List, Optional, Sequence

from loguru import logger

from config.constants import FALLBACK_TOPICS, TEMPERATURES, TOKEN_BUDGETS
from core.exceptions import LLMException, LLMInvalidResponseError
from infrastructure.llm_client import AbstractLLMClient

TOPIC_SYSTEM_PROMPT = (
    "You are a content strategy expert. Always respond with valid JSON only."
)


class TopicSelector:
    """Suggests and selects topics for scheduled content."""

    def __init__(
        self,
        llm_client: AbstractLLMClient,
        fallback_topics: Sequence[str] = FALLBACK_TOPICS,
        suggestion_count: int = 10,
        rng: Optional[random.Random] = None,
    ):
        self.llm = llm_client
        self.fallback_topics = list(fallback_topics)
        self.suggestion_count = suggestion_count
        self.rng = rng or random.Random()

    async def suggest_topics(self, category: str) -> List[str]:
        """
        Trending topics for a category.

        Never raises: backend and parse failures return the fallback list.
        """
        prompt = f"""Suggest {self.suggestion_count} trending and valuable blog topics in the "{category}" category.

Focus on:
- Current trends and developments
- Practical, actionable content
- Topics with high search potential

Respond with JSON:
{{"topics": ["Topic 1", "Topic 2", "..."]}}"""

        try:
            response = await self.llm.complete(
                prompt=prompt,
                temperature=TEMPERATURES.TOPIC_SUGGESTIONS,
                max_tokens=TOKEN_BUDGETS.TOPIC_SUGGESTIONS,
                system_prompt=TOPIC_SYSTEM_PROMPT,
            )
            topics = self.parse_topics(response.content)
        except LLMException as e:
            logger.warning(f"Topic suggestion failed for '{category}', using fallback list: {e.message}")
            return list(self.fallback_topics)

        logger.debug(f"Received {len(topics)} topic suggestions for '{category}'")
        return topics

    async def select_topic(self, category: str) -> str:
        topics = await self.suggest_topics(category) or list(self.fallback_topics)
        return self.rng.choice(topics)

    @staticmethod
    def parse_topics(content: str) -> List[str]:
        """
        Extract the `topics` list from a JSON reply.

        Raises:
            LLMInvalidResponseError: Reply is not JSON or carries no topics
        """
        text = content.strip()
        if text.startswith("```"):
            text = text.strip("`")
            if text.lower().startswith("json"):
                text = text[4:]

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise LLMInvalidResponseError(
                "Topic suggestions are not valid JSON",
                response_text=content,
                expected_format='{"topics": [...]}',
                cause=e,
            ) from e

        raw_topics = data.get("topics") if isinstance(data, dict) else None
        if not isinstance(raw_topics, list):
            raw_topics = []
        topics = [t.strip() for t in raw_topics if isinstance(t, str) and t.strip()]
        if not topics:
            raise LLMInvalidResponseError(
                "Topic suggestions contained no topics",
                response_text=content,
                expected_format='{"topics": [...]}',
            )
        return topics


__all__ = ["TopicSelector"]
