"""
Google Gemini adapter for the ``generateContent`` REST endpoint.

Internal model aliases are remapped to real API model names. Images are sent
as ``inline_data`` parts, so any ``data:<mime>;base64,`` prefix is stripped;
remote image URLs are not supported inline and are skipped.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from shared.llm_adapter.base import ProviderAdapter
from shared.llm_adapter.errors import ResponseShapeError
from shared.llm_adapter.formatting import build_user_text, parse_data_url, usage_or_estimate
from shared.llm_adapter.models import ProviderRequest, ResponseEnvelope
from shared.logging.logger import preview
from shared.observability.metrics import provider_call_latency

logger = logging.getLogger(__name__)

API_BASE = "https://generativelanguage.googleapis.com"

MODEL_ALIASES: dict[str, str] = {
    "gemini-pro": "gemini-1.0-pro",
    "gemini-1.0-pro": "gemini-1.0-pro",
    "gemini-pro-vision": "gemini-1.5-flash",
    "gemini-1.5-pro": "gemini-1.5-pro-latest",
    "gemini-1.5-flash": "gemini-1.5-flash-latest",
    "gemini-2.0-flash": "gemini-2.0-flash-001",
    "gemini-2.0-flash-lite": "gemini-2.0-flash-lite-001",
    "gemini-2.0-flash-thinking": "gemini-2.0-flash-thinking-exp-01-21",
    "gemini-2.5-pro": "gemini-2.5-pro-exp-03-25",
    "gemini-2.5-flash": "gemini-2.5-flash-preview-04-17",
}


def resolve_model(model_id: str) -> str:
    return MODEL_ALIASES.get(model_id, model_id)


def endpoint_for(api_model: str) -> str:
    # 2.x and experimental models are only served from v1beta
    version = "v1beta" if ("2.0" in api_model or "2.5" in api_model or "exp" in api_model) else "v1"
    return f"{API_BASE}/{version}/models/{api_model}:generateContent"


class GoogleAdapter(ProviderAdapter):
    name = "google"
    display_name = "Google"
    api_key_env = "GOOGLE_API_KEY"

    def __init__(
        self,
        api_key: str,
        http_client: httpx.AsyncClient,
        max_output_tokens: int = 1000,
        temperature: float = 0.7,
        timeout: float | None = None,
    ) -> None:
        super().__init__(api_key, http_client, timeout)
        self._max_output_tokens = max_output_tokens
        self._temperature = temperature

    async def handle(self, request: ProviderRequest) -> ResponseEnvelope:
        api_key = self._require_key()
        api_model = resolve_model(request.model_id)
        logger.info(
            "Google model %s (api model %s): %s",
            request.model_id, api_model, preview(request.content),
        )

        user_text = build_user_text(
            request.content, request.attachments, request.search_results
        )
        user_parts: list[dict[str, Any]] = [{"text": user_text}]
        for image in request.images:
            parsed = parse_data_url(image)
            if parsed is None:
                logger.warning("Gemini needs inline image data; skipping non-data image")
                continue
            user_parts.append(
                {"inline_data": {"mime_type": parsed.mime_type, "data": parsed.data}}
            )

        contents: list[dict[str, Any]] = [
            {"role": "user", "parts": [{"text": f"System: {request.system_prompt}"}]},
        ]
        contents.extend(
            {
                "role": "model" if m.role == "assistant" else "user",
                "parts": [{"text": m.content}],
            }
            for m in request.history
            if m.content
        )
        contents.append({"role": "user", "parts": user_parts})

        payload = {
            "contents": contents,
            "generationConfig": {
                "temperature": self._temperature,
                "maxOutputTokens": self._max_output_tokens,
            },
        }

        start = time.monotonic()
        try:
            data = await self._post_json(
                endpoint_for(api_model), payload, params={"key": api_key}
            )
        finally:
            provider_call_latency.labels(provider=self.name).observe(
                time.monotonic() - start
            )

        try:
            parts = data["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError) as exc:
            logger.error("Unexpected Gemini response: %s", str(data)[:500])
            raise ResponseShapeError(self.display_name, "no candidate content") from exc

        text = "".join(p.get("text", "") for p in parts if not p.get("thought"))
        thoughts = "".join(p.get("text", "") for p in parts if p.get("thought"))
        if not text:
            raise ResponseShapeError(self.display_name, "candidate has no text")

        usage = data.get("usageMetadata") or {}
        return ResponseEnvelope(
            content=text,
            model=request.model_id,
            provider=self.display_name,
            tokens=usage_or_estimate(
                usage.get("promptTokenCount"),
                usage.get("candidatesTokenCount"),
                [request.system_prompt, user_text],
                text,
                reasoning=usage.get("thoughtsTokenCount"),
            ),
            web_search_results=request.search_results,
            reasoning_content=thoughts or None,
        )
