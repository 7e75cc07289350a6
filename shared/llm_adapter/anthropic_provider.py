"""
Anthropic (Claude) adapter for the Messages API.

The system prompt goes in the dedicated ``system`` field, never as a message.
History is coerced into strictly alternating user/assistant turns. Images
become ``image`` content blocks: http(s) images are sent as URL sources,
``data:`` URLs as base64 sources.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from shared.llm_adapter.base import ProviderAdapter
from shared.llm_adapter.errors import ResponseShapeError
from shared.llm_adapter.formatting import (
    build_user_text,
    is_remote_url,
    parse_data_url,
    usage_or_estimate,
)
from shared.llm_adapter.models import ChatMessage, ProviderRequest, ResponseEnvelope
from shared.logging.logger import preview
from shared.observability.metrics import provider_call_latency

logger = logging.getLogger(__name__)

API_URL = "https://api.anthropic.com/v1/messages"
API_VERSION = "2023-06-01"


def alternate_turns(history: list[ChatMessage]) -> list[dict[str, Any]]:
    """Merge consecutive same-role messages; the first turn must be the user's."""
    turns: list[dict[str, Any]] = []
    for message in history:
        role = "assistant" if message.role == "assistant" else "user"
        if not message.content:
            continue
        if turns and turns[-1]["role"] == role:
            turns[-1]["content"] += f"\n\n{message.content}"
        else:
            turns.append({"role": role, "content": message.content})
    while turns and turns[0]["role"] != "user":
        turns.pop(0)
    return turns


def image_block(image: str) -> dict[str, Any] | None:
    if is_remote_url(image):
        return {"type": "image", "source": {"type": "url", "url": image}}
    parsed = parse_data_url(image)
    if parsed is None:
        return None
    return {
        "type": "image",
        "source": {
            "type": "base64",
            "media_type": parsed.mime_type,
            "data": parsed.data,
        },
    }


class AnthropicAdapter(ProviderAdapter):
    name = "anthropic"
    display_name = "Anthropic"
    api_key_env = "ANTHROPIC_API_KEY"

    def __init__(
        self,
        api_key: str,
        http_client: httpx.AsyncClient,
        max_tokens: int = 1000,
        timeout: float | None = None,
    ) -> None:
        super().__init__(api_key, http_client, timeout)
        self._max_tokens = max_tokens

    async def handle(self, request: ProviderRequest) -> ResponseEnvelope:
        api_key = self._require_key()
        logger.info(
            "Anthropic model %s (%d image(s)): %s",
            request.model_id, len(request.images), preview(request.content),
        )

        user_text = build_user_text(
            request.content, request.attachments, request.search_results
        )
        user_blocks: list[dict[str, Any]] = [{"type": "text", "text": user_text}]
        for image in request.images:
            block = image_block(image)
            if block is None:
                logger.warning("Skipping image that is neither a URL nor a data URL")
                continue
            user_blocks.append(block)

        messages = alternate_turns(request.history)
        if messages and messages[-1]["role"] == "user":
            # keep alternation: fold the trailing user turn into this one
            previous = messages.pop()
            user_blocks.insert(0, {"type": "text", "text": previous["content"]})
        messages.append({"role": "user", "content": user_blocks})

        payload = {
            "model": request.model_id,
            "system": request.system_prompt,
            "messages": messages,
            "max_tokens": self._max_tokens,
        }
        headers = {
            "x-api-key": api_key,
            "anthropic-version": API_VERSION,
            "content-type": "application/json",
        }

        start = time.monotonic()
        try:
            data = await self._post_json(API_URL, payload, headers=headers)
        finally:
            provider_call_latency.labels(provider=self.name).observe(
                time.monotonic() - start
            )

        blocks = data.get("content")
        if not isinstance(blocks, list) or not blocks:
            logger.error("Unexpected Anthropic response: %s", str(data)[:500])
            raise ResponseShapeError(self.display_name, "missing content blocks")

        text = "".join(b.get("text", "") for b in blocks if b.get("type") == "text")
        thinking = "\n\n".join(
            b.get("thinking", "") for b in blocks if b.get("type") == "thinking"
        )
        if not text:
            raise ResponseShapeError(self.display_name, "no text block in content")

        usage = data.get("usage") or {}
        return ResponseEnvelope(
            content=text,
            model=request.model_id,
            provider=self.display_name,
            tokens=usage_or_estimate(
                usage.get("input_tokens"),
                usage.get("output_tokens"),
                [request.system_prompt, user_text],
                text,
            ),
            web_search_results=request.search_results,
            reasoning_content=thinking or None,
        )
