"""
Adapter registry -- maps a provider name to its adapter instance.

The router only ever looks adapters up by name, so supporting a new vendor
means registering one more adapter here and nothing else.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from shared.llm_adapter.anthropic_provider import AnthropicAdapter
from shared.llm_adapter.base import ProviderAdapter
from shared.llm_adapter.google_provider import GoogleAdapter
from shared.llm_adapter.krutrim_provider import KrutrimAdapter
from shared.llm_adapter.openai_provider import OpenAIAdapter
from shared.llm_adapter.openrouter_provider import OpenRouterAdapter
from shared.llm_adapter.xai_provider import XAIAdapter
from shared.tools.chat_tools import SearchFunc

if TYPE_CHECKING:
    from services.chat_gateway.config import GatewayConfig

logger = logging.getLogger(__name__)

AGGREGATOR = "openrouter"


class AdapterRegistry:

    def __init__(self) -> None:
        self._adapters: dict[str, ProviderAdapter] = {}

    def register(self, adapter: ProviderAdapter, name: str | None = None) -> None:
        key = (name or adapter.name).lower()
        if key in self._adapters:
            logger.warning("Adapter '%s' already registered, overwriting", key)
        self._adapters[key] = adapter

    def get(self, name: str) -> ProviderAdapter | None:
        return self._adapters.get((name or "").lower())

    def names(self) -> list[str]:
        return sorted(self._adapters)

    def __contains__(self, name: str) -> bool:
        return (name or "").lower() in self._adapters

    def __len__(self) -> int:
        return len(self._adapters)


def build_default_registry(
    cfg: GatewayConfig,
    http_client: httpx.AsyncClient,
    search: SearchFunc | None = None,
) -> AdapterRegistry:
    """Register one adapter per supported vendor, keys taken from config."""
    registry = AdapterRegistry()
    registry.register(
        OpenAIAdapter(
            cfg.openai_api_key,
            http_client,
            search=search,
            reasoning_effort=cfg.reasoning_effort,
            max_search_results=cfg.max_search_results,
            search_timeout=cfg.search_timeout_s,
        )
    )
    registry.register(AnthropicAdapter(cfg.anthropic_api_key, http_client))
    registry.register(GoogleAdapter(cfg.google_api_key, http_client))
    registry.register(XAIAdapter(cfg.xai_api_key, http_client))
    registry.register(
        KrutrimAdapter(
            cfg.krutrim_api_key,
            http_client,
            timeout=cfg.krutrim_timeout_s,
        )
    )
    registry.register(
        OpenRouterAdapter(
            cfg.openrouter_api_key,
            http_client,
            referer=cfg.openrouter_referer,
            title=cfg.openrouter_title,
        )
    )

    missing = [
        name for name in registry.names() if not registry.get(name).configured
    ]
    if missing:
        logger.warning("Providers without API keys: %s", ", ".join(missing))
    logger.info("Registered providers: %s", ", ".join(registry.names()))
    return registry
