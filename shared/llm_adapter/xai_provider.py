"""
xAI (Grok) adapter.

The raw body is read as text before any JSON parsing: the API sometimes
answers with a non-JSON body, or with a ``{code, msg}`` pair in another
locale instead of the usual ``{error}`` object.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any

import httpx

from shared.llm_adapter.base import ProviderAdapter
from shared.llm_adapter.errors import ResponseShapeError, UpstreamHTTPError
from shared.llm_adapter.formatting import (
    build_user_text,
    history_as_dicts,
    usage_or_estimate,
)
from shared.llm_adapter.models import ProviderRequest, ResponseEnvelope
from shared.logging.logger import preview
from shared.observability.metrics import provider_call_latency

logger = logging.getLogger(__name__)

API_URL = "https://api.x.ai/v1/chat/completions"
DEFAULT_MODEL = "grok-2-latest"

MODEL_ALIASES: dict[str, str] = {
    "grok-3": "grok-3",
    "grok-3-mini": "grok-3-mini",
    "grok-3-fast": "grok-3-fast",
    "grok-2-vision": "grok-2-vision-latest",
}


def resolve_model(model_id: str) -> str:
    return MODEL_ALIASES.get(model_id, DEFAULT_MODEL)


class XAIAdapter(ProviderAdapter):
    name = "xai"
    display_name = "xAI"
    api_key_env = "XAI_API_KEY"

    def __init__(
        self,
        api_key: str,
        http_client: httpx.AsyncClient,
        max_tokens: int = 4000,
        temperature: float = 0.7,
        timeout: float | None = None,
    ) -> None:
        super().__init__(api_key, http_client, timeout)
        self._max_tokens = max_tokens
        self._temperature = temperature

    async def handle(self, request: ProviderRequest) -> ResponseEnvelope:
        api_key = self._require_key()
        grok_model = resolve_model(request.model_id)
        logger.info(
            "xAI model %s (%d file(s)): %s",
            grok_model, len(request.attachments), preview(request.content),
        )
        if request.images:
            logger.info("xAI adapter does not forward images; dropping %d", len(request.images))

        user_text = build_user_text(
            request.content, request.attachments, request.search_results
        )
        payload = {
            "model": grok_model,
            "messages": [
                {"role": "system", "content": request.system_prompt},
                *history_as_dicts(request.history),
                {"role": "user", "content": user_text},
            ],
            "temperature": self._temperature,
            "max_tokens": self._max_tokens,
            "stream": False,
        }
        headers = {"Authorization": f"Bearer {api_key}"}

        start = time.monotonic()
        try:
            response = await self._send(API_URL, payload, headers=headers)
        finally:
            provider_call_latency.labels(provider=self.name).observe(
                time.monotonic() - start
            )

        data = self._parse_body(response)
        self._raise_for_error(response, data)

        try:
            message = data["choices"][0]["message"]
            text = message["content"]
        except (KeyError, IndexError, TypeError) as exc:
            logger.error("Unexpected xAI response: %s", str(data)[:500])
            raise ResponseShapeError(self.display_name, "missing choices[0].message.content") from exc
        if not text:
            raise ResponseShapeError(self.display_name, "empty message content")

        usage = data.get("usage") or {}
        details = usage.get("completion_tokens_details") or {}
        return ResponseEnvelope(
            content=text,
            model=grok_model,
            provider=self.display_name,
            tokens=usage_or_estimate(
                usage.get("prompt_tokens"),
                usage.get("completion_tokens"),
                [request.content, request.system_prompt],
                text,
                reasoning=details.get("reasoning_tokens"),
            ),
            web_search_results=request.search_results,
            reasoning_content=message.get("reasoning_content") or None,
        )

    def _parse_body(self, response: httpx.Response) -> dict[str, Any]:
        text = response.text
        logger.debug("xAI status %d, body: %s", response.status_code, text[:500])
        try:
            data = json.loads(text)
        except ValueError as exc:
            logger.error("xAI returned non-JSON body: %s", text[:500])
            if not response.is_success:
                raise UpstreamHTTPError(
                    self.display_name, response.status_code, text[:100]
                ) from exc
            raise ResponseShapeError(self.display_name, f"invalid JSON: {text[:100]}") from exc
        if not isinstance(data, dict):
            raise ResponseShapeError(self.display_name, "body is not a JSON object")
        return data

    def _raise_for_error(self, response: httpx.Response, data: dict[str, Any]) -> None:
        if data.get("code") != 401 and response.is_success:
            return
        status = data.get("code") or response.status_code
        if isinstance(status, str) and status.isdigit():
            status = int(status)
        if not isinstance(status, int):
            status = response.status_code
        if data.get("msg"):
            logger.error("xAI authentication error: %s", data["msg"])
            raise UpstreamHTTPError(
                self.display_name,
                status,
                "authentication failed; check the API key and its permissions",
            )
        error = data.get("error")
        if error:
            detail = error.get("message") if isinstance(error, dict) else str(error)
            raise UpstreamHTTPError(self.display_name, status, detail or "Unknown error")
        raise UpstreamHTTPError(self.display_name, status, response.text[:100])
