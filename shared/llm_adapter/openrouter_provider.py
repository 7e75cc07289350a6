"""
OpenRouter adapter -- the aggregator.

OpenRouter speaks the OpenAI Chat Completions protocol, so it goes through
the same SDK with a different base_url. It is used either as the forced
provider for every request or as the single fallback hop when a native
provider fails.

Internal model ids are mapped to OpenRouter's ``vendor/model`` namespace;
unmapped ids get a best guess from their prefix.
"""

from __future__ import annotations

import logging
import re
import time
from typing import Any

import httpx
import openai
from openai import AsyncOpenAI

from shared.llm_adapter.base import ProviderAdapter
from shared.llm_adapter.errors import ProviderError, ResponseShapeError, UpstreamHTTPError
from shared.llm_adapter.formatting import (
    build_user_text,
    error_detail,
    history_as_dicts,
    usage_or_estimate,
)
from shared.llm_adapter.models import ModelSpec, ProviderRequest, ResponseEnvelope
from shared.logging.logger import preview
from shared.observability.metrics import provider_call_latency

logger = logging.getLogger(__name__)

BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL = "openai/gpt-4o-mini"
REASONING_ONLY_PLACEHOLDER = (
    "The model returned its reasoning but no final answer. "
    "Try again or pick a model with a larger output limit."
)

MODEL_MAP: dict[str, str] = {
    # OpenAI
    "gpt-3.5-turbo": "openai/gpt-3.5-turbo",
    "gpt-4o": "openai/gpt-4o",
    "gpt-4o-mini": "openai/gpt-4o-mini",
    "gpt-4.5-preview": "openai/gpt-4.5-preview",
    "o1": "openai/o1",
    "o1-mini": "openai/o1-mini",
    "o1-pro": "openai/o1-pro",
    "o3-mini": "openai/o3-mini",
    # Anthropic
    "claude-3-haiku-20240307": "anthropic/claude-3-haiku",
    "claude-3-5-sonnet-20241022": "anthropic/claude-3.5-sonnet",
    "claude-3-7-sonnet-20250219": "anthropic/claude-3.7-sonnet",
    "claude-3-7-sonnet-thinking": "anthropic/claude-3.7-sonnet:thinking",
    "claude-3-opus-20240229": "anthropic/claude-3-opus",
    # Google
    "gemini-1.0-pro": "google/gemini-pro",
    "gemini-1.5-pro": "google/gemini-pro-1.5",
    "gemini-1.5-flash": "google/gemini-flash-1.5",
    "gemini-2.0-flash": "google/gemini-2.0-flash-001",
    "gemini-2.5-pro": "google/gemini-2.5-pro-preview",
    # xAI
    "grok-2-latest": "x-ai/grok-2-1212",
    "grok-3": "x-ai/grok-3-beta",
    "grok-3-mini": "x-ai/grok-3-mini-beta",
    # Others
    "deepseek-r1": "deepseek/deepseek-r1",
    "DeepSeek-R1": "deepseek/deepseek-r1",
}

_PREFIX_VENDORS: list[tuple[str, str]] = [
    ("gpt-", "openai"),
    ("claude-", "anthropic"),
    ("gemini-", "google"),
    ("grok-", "x-ai"),
    ("deepseek", "deepseek"),
    ("llama", "meta-llama"),
    ("mistral", "mistralai"),
    ("mixtral", "mistralai"),
    ("qwen", "qwen"),
]
_PROVIDER_VENDORS: dict[str, str] = {
    "openai": "openai",
    "anthropic": "anthropic",
    "google": "google",
    "xai": "x-ai",
    "krutrim": "deepseek",
    "meta": "meta-llama",
    "mistral": "mistralai",
}

_REASONING_RE = re.compile(r"(^o\d|deepseek-r1|thinking|reasoner|grok-3-mini|qwq)", re.IGNORECASE)

# Output-token ceilings per tier
TOKEN_TIERS: dict[str, int] = {
    "high": 4000,
    "medium": 3000,
    "efficiency": 2000,
    "default": 1500,
}
_HIGH_TIER_RE = re.compile(r"(opus|gpt-4\.5|o1-pro|^o1$|gemini-2\.5-pro|grok-3$|deepseek-r1|thinking)", re.IGNORECASE)
_MEDIUM_TIER_RE = re.compile(r"(sonnet|gpt-4o$|gemini-1\.5-pro|grok-2|o3-mini|o1-mini)", re.IGNORECASE)
_EFFICIENCY_TIER_RE = re.compile(r"(mini|haiku|flash|lite|3\.5-turbo)", re.IGNORECASE)

_VISION_MODELS = {
    "gpt-4o", "gpt-4o-mini", "gpt-4.5-preview",
    "claude-3-5-sonnet-20241022", "claude-3-7-sonnet-20250219", "claude-3-opus-20240229",
    "gemini-1.5-pro", "gemini-1.5-flash", "gemini-2.0-flash", "gemini-pro-vision",
}
THINKING_BUDGET_TOKENS = 2000


def map_model_id(model_id: str, provider: str = "") -> str:
    """Translate an internal model id into OpenRouter's namespace."""
    if model_id in MODEL_MAP:
        return MODEL_MAP[model_id]
    if "/" in model_id:
        return model_id
    lowered = model_id.lower()
    if re.match(r"^o\d", lowered):
        return f"openai/{lowered}"
    for prefix, vendor in _PREFIX_VENDORS:
        if lowered.startswith(prefix):
            return f"{vendor}/{lowered}"
    vendor = _PROVIDER_VENDORS.get(provider.lower())
    if vendor:
        return f"{vendor}/{lowered}"
    logger.warning("No OpenRouter mapping for %s; using %s", model_id, DEFAULT_MODEL)
    return DEFAULT_MODEL


def token_tier(model_id: str) -> str:
    if _HIGH_TIER_RE.search(model_id):
        return "high"
    if _MEDIUM_TIER_RE.search(model_id):
        return "medium"
    if _EFFICIENCY_TIER_RE.search(model_id):
        return "efficiency"
    return "default"


def max_tokens_for(model_id: str) -> int:
    return TOKEN_TIERS[token_tier(model_id)]


def supports_vision(model: ModelSpec) -> bool:
    return model.supports("images") or model.id in _VISION_MODELS


def extra_parameters(model: ModelSpec, router_model: str) -> dict[str, Any]:
    """Additional body fields for reasoning-capable and ``:thinking`` models."""
    extra: dict[str, Any] = {}
    if router_model.endswith(":thinking") or "thinking" in model.id:
        extra["reasoning"] = {"max_tokens": THINKING_BUDGET_TOKENS}
        extra["include_reasoning"] = True
    elif model.supports("reasoning") or _REASONING_RE.search(model.id):
        extra["include_reasoning"] = True
        if model.reasoning_effort:
            extra["reasoning"] = {"effort": model.reasoning_effort}
    return extra


class OpenRouterAdapter(ProviderAdapter):
    name = "openrouter"
    display_name = "OpenRouter"
    api_key_env = "OPENROUTER_API_KEY"

    def __init__(
        self,
        api_key: str,
        http_client: httpx.AsyncClient,
        referer: str = "https://krix.app",
        title: str = "Krix AI Assistant",
        temperature: float = 0.7,
        timeout: float | None = None,
        base_url: str = BASE_URL,
    ) -> None:
        super().__init__(api_key, http_client, timeout)
        self._referer = referer
        self._title = title
        self._temperature = temperature
        self._base_url = base_url
        self._client: AsyncOpenAI | None = None

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            kwargs: dict[str, Any] = {
                "api_key": self._require_key(),
                "base_url": self._base_url,
                "http_client": self._http,
                "default_headers": {"HTTP-Referer": self._referer, "X-Title": self._title},
            }
            if self._timeout is not None:
                kwargs["timeout"] = self._timeout
            self._client = AsyncOpenAI(**kwargs)
        return self._client

    async def handle(self, request: ProviderRequest) -> ResponseEnvelope:
        client = self._get_client()
        router_model = map_model_id(request.model_id, request.model.provider)
        logger.info(
            "OpenRouter model %s (mapped to %s): %s",
            request.model_id, router_model, preview(request.content),
        )

        user_text = build_user_text(
            request.content, request.attachments, request.search_results
        )
        user_message: dict[str, Any] = {"role": "user", "content": user_text}
        if request.images and supports_vision(request.model):
            parts: list[dict[str, Any]] = [{"type": "text", "text": user_text}]
            parts.extend({"type": "image_url", "image_url": {"url": img}} for img in request.images)
            user_message["content"] = parts

        kwargs: dict[str, Any] = {
            "model": router_model,
            "messages": [
                {"role": "system", "content": request.system_prompt},
                *history_as_dicts(request.history),
                user_message,
            ],
            "temperature": self._temperature,
            "max_tokens": max_tokens_for(request.model_id),
            "stream": False,
        }
        extra = extra_parameters(request.model, router_model)
        if extra:
            kwargs["extra_body"] = extra

        start = time.monotonic()
        try:
            response = await client.chat.completions.create(**kwargs)
        except openai.APIStatusError as exc:
            raise UpstreamHTTPError(
                self.display_name, exc.status_code, error_detail(exc.body, exc.message)
            ) from exc
        except openai.APITimeoutError as exc:
            raise ProviderError(self.display_name, "request timed out") from exc
        except openai.APIConnectionError as exc:
            raise ProviderError(self.display_name, f"connection failed: {exc}") from exc
        finally:
            provider_call_latency.labels(provider=self.name).observe(
                time.monotonic() - start
            )

        if not response.choices:
            raise ResponseShapeError(self.display_name, "no choices in completion")
        message = response.choices[0].message.model_dump()
        text = message.get("content") or ""
        reasoning = message.get("reasoning") or None
        if not text and not reasoning:
            raise ResponseShapeError(self.display_name, "completion has no content")
        if not text:
            logger.warning("%s returned reasoning without an answer", router_model)

        usage = response.usage
        return ResponseEnvelope(
            content=text or REASONING_ONLY_PLACEHOLDER,
            model=request.model_id,
            provider=self.name,
            actual_model=response.model or router_model,
            tokens=usage_or_estimate(
                usage.prompt_tokens if usage else None,
                usage.completion_tokens if usage else None,
                [request.content],
                text or reasoning,
            ),
            web_search_results=request.search_results,
            reasoning_content=reasoning,
        )
