"""
Krutrim adapter. Every request goes to one hosted model (DeepSeek-R1).

Krutrim gets its own, smaller file budget and a hard 30s request timeout.
DeepSeek-R1 wraps its chain of thought in ``<think>...</think>``; that part
is reported as reasoning content instead of answer text.
"""

from __future__ import annotations

import json
import logging
import re
import time

import httpx

from shared.llm_adapter.attachments import apply_byte_budget
from shared.llm_adapter.base import ProviderAdapter
from shared.llm_adapter.errors import ResponseShapeError
from shared.llm_adapter.formatting import (
    build_user_text,
    history_as_dicts,
    usage_or_estimate,
)
from shared.llm_adapter.models import ProviderRequest, ResponseEnvelope
from shared.logging.logger import preview
from shared.observability.metrics import provider_call_latency

logger = logging.getLogger(__name__)

API_URL = "https://cloud.olakrutrim.com/v1/chat/completions"
UPSTREAM_MODEL = "DeepSeek-R1"
MAX_FILE_BYTES = 50 * 1024
REQUEST_TIMEOUT_S = 30.0

_THINK_RE = re.compile(r"<think>(.*?)</think>", re.DOTALL)


def split_reasoning(text: str) -> tuple[str, str | None]:
    """Separate ``<think>`` blocks from the visible answer."""
    thoughts = [t.strip() for t in _THINK_RE.findall(text)]
    answer = _THINK_RE.sub("", text).strip()
    return answer, ("\n\n".join(t for t in thoughts if t) or None)


class KrutrimAdapter(ProviderAdapter):
    name = "krutrim"
    display_name = "Krutrim"
    api_key_env = "KRUTRIM_API_KEY"

    def __init__(
        self,
        api_key: str,
        http_client: httpx.AsyncClient,
        max_tokens: int = 25000,
        temperature: float = 0.7,
        max_file_bytes: int = MAX_FILE_BYTES,
        timeout: float = REQUEST_TIMEOUT_S,
    ) -> None:
        super().__init__(api_key, http_client, timeout)
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._max_file_bytes = max_file_bytes

    async def handle(self, request: ProviderRequest) -> ResponseEnvelope:
        api_key = self._require_key()
        logger.info(
            "Krutrim model %s (upstream %s): %s",
            request.model_id, UPSTREAM_MODEL, preview(request.content),
        )
        if request.images:
            logger.info("Krutrim does not accept images; dropping %d", len(request.images))

        attachments = apply_byte_budget(request.attachments, self._max_file_bytes)
        user_text = build_user_text(request.content, attachments, request.search_results)
        payload = {
            "model": UPSTREAM_MODEL,
            "messages": [
                {"role": "system", "content": request.system_prompt},
                *history_as_dicts(request.history),
                {"role": "user", "content": user_text},
            ],
            "temperature": self._temperature,
            "max_tokens": self._max_tokens,
        }
        headers = {"Authorization": f"Bearer {api_key}"}

        start = time.monotonic()
        try:
            response = await self._send(API_URL, payload, headers=headers)
        finally:
            provider_call_latency.labels(provider=self.name).observe(
                time.monotonic() - start
            )

        if not response.is_success:
            raise self._http_error(response)
        try:
            data = json.loads(response.text)
            raw_text = data["choices"][0]["message"]["content"]
        except ValueError as exc:
            raise ResponseShapeError(
                self.display_name, f"invalid JSON: {response.text[:100]}"
            ) from exc
        except (KeyError, IndexError, TypeError) as exc:
            logger.error("Unexpected Krutrim response: %s", response.text[:500])
            raise ResponseShapeError(self.display_name, "missing choices[0].message.content") from exc
        if not raw_text:
            raise ResponseShapeError(self.display_name, "empty message content")

        text, reasoning = split_reasoning(raw_text)
        usage = data.get("usage") or {}
        return ResponseEnvelope(
            content=text or raw_text,
            model=request.model_id,
            provider=self.display_name,
            tokens=usage_or_estimate(
                usage.get("prompt_tokens"),
                usage.get("completion_tokens"),
                [request.content, request.system_prompt],
                raw_text,
            ),
            web_search_results=request.search_results,
            reasoning_content=reasoning,
        )
