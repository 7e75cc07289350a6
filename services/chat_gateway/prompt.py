"""System prompt synthesis from the conversation so far, with a TTL cache."""

from __future__ import annotations

import hashlib
import logging

from shared.llm_adapter.cache import PromptCache
from shared.llm_adapter.models import ChatMessage
from shared.observability.metrics import GatewayMetrics, prompt_cache_events
from services.chat_gateway.config import DEFAULT_SYSTEM_PROMPT

logger = logging.getLogger(__name__)

FINGERPRINT_MESSAGES = 3
FINGERPRINT_CHARS = 40

_TOPICS: list[tuple[str, tuple[str, ...]]] = [
    ("programming", ("code", "programming", "javascript")),
    ("explanations", ("explain", "how to")),
    ("data analysis", ("data", "analysis")),
]
_PREFERENCES: list[tuple[str, tuple[str, ...]]] = [
    ("concise responses", ("short", "brief", "concise")),
    ("detailed explanations", ("detail", "explain more")),
]


def fingerprint(history: list[ChatMessage]) -> str:
    """Cache key: role and leading characters of the last few messages."""
    tail = history[-FINGERPRINT_MESSAGES:]
    raw = "|".join(f"{m.role}:{m.content[:FINGERPRINT_CHARS]}" for m in tail)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def extract_topics(history: list[ChatMessage]) -> list[str]:
    text = " ".join(m.content for m in history).lower()
    return [topic for topic, keywords in _TOPICS if any(k in text for k in keywords)]


def extract_user_preferences(history: list[ChatMessage]) -> list[str]:
    user_texts = [m.content.lower() for m in history if m.role == "user"]
    return [
        pref
        for pref, keywords in _PREFERENCES
        if any(k in text for text in user_texts for k in keywords)
    ]


def generate_system_prompt(
    history: list[ChatMessage], base_prompt: str = DEFAULT_SYSTEM_PROMPT
) -> str:
    prompt = base_prompt
    if not history:
        return prompt
    topics = extract_topics(history)
    if topics:
        prompt += f" The conversation has been about: {', '.join(topics)}."
    preferences = extract_user_preferences(history)
    if preferences:
        prompt += f" The user seems to prefer: {', '.join(preferences)}."
    return prompt


class SystemPromptSynthesizer:
    """
    Builds the system prompt for a request and caches it per conversation
    fingerprint. Every ``sweep_every``-th request (as counted by the shared
    metrics) evicts stale cache entries.
    """

    def __init__(
        self,
        cache: PromptCache,
        metrics: GatewayMetrics,
        base_prompt: str = DEFAULT_SYSTEM_PROMPT,
        sweep_every: int = 10,
    ) -> None:
        self._cache = cache
        self._metrics = metrics
        self._base_prompt = base_prompt
        self._sweep_every = max(sweep_every, 1)

    async def synthesize(self, history: list[ChatMessage]) -> str:
        if self._metrics.total_requests % self._sweep_every == 0:
            await self._cache.sweep()

        key = fingerprint(history)
        entry = await self._cache.get(key)
        if entry is not None:
            self._metrics.record_cache_hit()
            logger.debug("System prompt cache hit")
            return entry.value

        prompt_cache_events.labels(result="miss").inc()
        prompt = generate_system_prompt(history, self._base_prompt)
        await self._cache.set(key, prompt)
        return prompt
