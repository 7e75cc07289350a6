"""
Per-request pipeline of the chat gateway.

    INTAKE -> AUGMENT (URL fetch, search decision, search) -> PROMPT
           -> DISPATCH (adapter, optional tool round, optional fallback)
           -> ENVELOPE -> RESPOND

``ChatPipeline.run`` always produces an envelope. Every failure after intake
becomes an ``Error: ...`` envelope that keeps whatever search results were
already gathered.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any

import httpx
from pydantic import ValidationError

from shared.llm_adapter.attachments import parse_attachments
from shared.llm_adapter.errors import MalformedRequestError
from shared.llm_adapter.models import (
    ChatRequest,
    ProviderRequest,
    ResponseEnvelope,
    SearchResult,
    TokenUsage,
)
from shared.llm_adapter.registry import AdapterRegistry
from shared.logging.logger import preview
from shared.observability.metrics import GatewayMetrics, chat_requests, record_tokens
from shared.tools.chat_tools import SearchFunc
from shared.utils.timeouts import with_timeout
from services.chat_gateway.augmentation import augment_with_urls
from services.chat_gateway.config import GatewayConfig
from services.chat_gateway.prompt import SystemPromptSynthesizer, generate_system_prompt
from services.chat_gateway.router import DispatchRouter
from services.chat_gateway.search import BraveSearchClient
from services.chat_gateway.search_decision import should_search

logger = logging.getLogger(__name__)


def parse_chat_request(body: bytes | str | dict[str, Any]) -> ChatRequest:
    """Decode and validate an inbound body. Raises MalformedRequestError."""
    try:
        data = json.loads(body) if isinstance(body, (bytes, str)) else body
    except ValueError as exc:
        raise MalformedRequestError(f"Invalid JSON body: {exc}") from exc
    if not isinstance(data, dict):
        raise MalformedRequestError("Request body must be a JSON object")
    try:
        return ChatRequest.model_validate(data)
    except ValidationError as exc:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in exc.errors()
        )
        raise MalformedRequestError(f"Invalid request: {errors}") from exc


def error_envelope(
    message: str,
    model: str = "",
    provider: str = "",
    search_results: list[SearchResult] | None = None,
) -> ResponseEnvelope:
    return ResponseEnvelope(
        content=f"Error: {message}",
        model=model,
        provider=provider,
        tokens=TokenUsage(),
        web_search_results=search_results or [],
    )


def bounded_search(client: BraveSearchClient, count: int, timeout: float) -> SearchFunc:
    """Search callable that degrades to no results after ``timeout`` seconds."""

    async def search(query: str) -> list[SearchResult]:
        return await with_timeout(client.search(query, count), timeout, [], label="web search")

    return search


class ChatPipeline:

    def __init__(
        self,
        cfg: GatewayConfig,
        router: DispatchRouter,
        synthesizer: SystemPromptSynthesizer,
        search_client: BraveSearchClient,
        http_client: httpx.AsyncClient,
        metrics: GatewayMetrics,
    ) -> None:
        self._cfg = cfg
        self._router = router
        self._synthesizer = synthesizer
        self._search_client = search_client
        self._search = bounded_search(search_client, cfg.search_count, cfg.search_timeout_s)
        self._http = http_client
        self._metrics = metrics

    @property
    def registry(self) -> AdapterRegistry:
        return self._router.registry

    async def run(self, request: ChatRequest) -> ResponseEnvelope:
        start = time.monotonic()
        request_no = self._metrics.record_request()
        model = request.model
        logger.info(
            "Chat request #%d for %s/%s: %s",
            request_no, model.provider, model.id, preview(request.content),
            extra={"_extra": {
                "provider": model.provider,
                "model": model.id,
                "files": len(request.files),
                "images": len(request.images),
                "history": len(request.messages),
            }},
        )

        search_results: list[SearchResult] = []
        try:
            attachments = await augment_with_urls(
                request.content,
                parse_attachments(request.files),
                self._http,
                max_urls=self._cfg.max_urls,
                timeout=self._cfg.url_fetch_timeout_s,
                max_url_bytes=self._cfg.max_url_bytes,
                max_total_bytes=self._cfg.max_attachment_bytes,
            )
            search_results = await self._pre_search(request.content)
            system_prompt = await self._system_prompt(request)

            envelope = await self._router.dispatch(
                ProviderRequest(
                    history=request.messages,
                    content=request.content,
                    model=model,
                    system_prompt=system_prompt,
                    images=request.images,
                    search_results=search_results,
                    attachments=attachments,
                )
            )
            outcome = "ok"
        except Exception as exc:
            logger.error(
                "Chat request #%d failed: %s", request_no, exc,
                exc_info=True,
                extra={"_extra": {"provider": model.provider, "model": model.id}},
            )
            envelope = error_envelope(str(exc), model.id, model.provider, search_results)
            outcome = "error"

        elapsed = time.monotonic() - start
        self._metrics.record_processing_time(elapsed)
        label = (envelope.provider or model.provider or "unknown").lower()
        chat_requests.labels(provider=label, outcome=outcome).inc()
        record_tokens(label, envelope.tokens.input, envelope.tokens.output)
        logger.info(
            "Chat request #%d finished in %.2fs (%s)", request_no, elapsed, outcome,
            extra={"_extra": {
                "provider": envelope.provider,
                "tokens_in": envelope.tokens.input,
                "tokens_out": envelope.tokens.output,
                "search_results": len(envelope.web_search_results),
            }},
        )
        return envelope

    async def _pre_search(self, content: str) -> list[SearchResult]:
        if not (self._cfg.web_search_enabled and self._search_client.configured):
            return []
        if not should_search(content):
            return []
        results = await self._search(content)
        return results[: self._cfg.max_search_results]

    async def _system_prompt(self, request: ChatRequest) -> str:
        try:
            return await self._synthesizer.synthesize(request.messages)
        except Exception:
            logger.warning("Prompt cache unavailable; building prompt uncached", exc_info=True)
            return generate_system_prompt(request.messages, self._cfg.system_prompt)
