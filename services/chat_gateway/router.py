"""
Dispatch router: picks the adapter for a request and applies the single
aggregator fallback hop.
"""

from __future__ import annotations

import logging

from shared.llm_adapter.errors import UnsupportedProviderError
from shared.llm_adapter.models import ProviderRequest, ResponseEnvelope
from shared.llm_adapter.registry import AGGREGATOR, AdapterRegistry
from shared.observability.metrics import provider_fallbacks

logger = logging.getLogger(__name__)


class DispatchRouter:

    def __init__(
        self,
        registry: AdapterRegistry,
        force_aggregator: bool = False,
        fallback_enabled: bool = True,
        aggregator: str = AGGREGATOR,
    ) -> None:
        self._registry = registry
        self._force = force_aggregator
        self._fallback = fallback_enabled
        self._aggregator = aggregator

    @property
    def registry(self) -> AdapterRegistry:
        return self._registry

    async def dispatch(self, request: ProviderRequest) -> ResponseEnvelope:
        """
        Route ``request`` to its provider's adapter.

        At most one extra call is ever made: either the forced aggregator
        falls through to the native adapter, or a failed native call is
        retried once via the aggregator.
        """
        provider = (request.model.provider or "").lower()
        aggregator_tried = False

        if self._force and provider != self._aggregator:
            aggregator_tried = True
            try:
                return await self._call(self._aggregator, request)
            except Exception as exc:
                if not self._fallback:
                    raise
                logger.warning(
                    "Forced aggregator failed for %s, using native provider: %s",
                    request.model_id, exc,
                )

        adapter = self._registry.get(provider)
        if adapter is None:
            if self._fallback and not aggregator_tried and provider != self._aggregator:
                logger.warning("Unknown provider %r; routing to %s", provider, self._aggregator)
                provider_fallbacks.labels(from_provider=provider or "unknown").inc()
                return await self._call(self._aggregator, request)
            raise UnsupportedProviderError(request.model.provider)

        try:
            return await adapter.handle(request)
        except Exception as exc:
            if not self._fallback or aggregator_tried or provider == self._aggregator:
                raise
            logger.warning(
                "%s failed for %s, falling back to %s: %s",
                provider, request.model_id, self._aggregator, exc,
            )
            provider_fallbacks.labels(from_provider=provider).inc()
            return await self._call(self._aggregator, request)

    async def _call(self, name: str, request: ProviderRequest) -> ResponseEnvelope:
        adapter = self._registry.get(name)
        if adapter is None:
            raise UnsupportedProviderError(name)
        return await adapter.handle(request)
