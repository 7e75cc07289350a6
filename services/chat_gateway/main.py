"""
Chat Gateway -- HTTP entry point for chat completions.

Routes:
  POST    /chat     one conversation turn -> response envelope (always HTTP 200)
  OPTIONS /chat     CORS preflight, empty body
  GET     /health   status, registered providers, request counters
  GET     /metrics  prometheus exposition
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shared.llm_adapter.cache import PromptCache, RedisPromptCache, build_prompt_cache
from shared.llm_adapter.errors import MalformedRequestError
from shared.llm_adapter.registry import AdapterRegistry, build_default_registry
from shared.logging.logger import setup_logging
from shared.observability.metrics import GatewayMetrics, chat_requests, metrics_response
from services.chat_gateway.config import GatewayConfig
from services.chat_gateway.pipeline import (
    ChatPipeline,
    bounded_search,
    error_envelope,
    parse_chat_request,
)
from services.chat_gateway.prompt import SystemPromptSynthesizer
from services.chat_gateway.router import DispatchRouter
from services.chat_gateway.search import BraveSearchClient

SERVICE_NAME = "chat_gateway"

cfg = GatewayConfig.from_env()
metrics = GatewayMetrics()
http_client: httpx.AsyncClient | None = None
prompt_cache: PromptCache | None = None
registry: AdapterRegistry | None = None
pipeline: ChatPipeline | None = None

logger = logging.getLogger(SERVICE_NAME)


def build_pipeline(
    config: GatewayConfig,
    client: httpx.AsyncClient,
    cache: PromptCache,
    gateway_metrics: GatewayMetrics,
    adapters: AdapterRegistry | None = None,
) -> ChatPipeline:
    """Wire the per-process collaborators into one pipeline."""
    search_client = BraveSearchClient(config.brave_api_key, client)
    search = None
    if config.web_search_enabled and search_client.configured:
        search = bounded_search(search_client, config.search_count, config.search_timeout_s)
    if adapters is None:
        adapters = build_default_registry(config, client, search)
    return ChatPipeline(
        cfg=config,
        router=DispatchRouter(
            adapters,
            force_aggregator=config.openrouter_force,
            fallback_enabled=config.openrouter_fallback,
        ),
        synthesizer=SystemPromptSynthesizer(
            cache,
            gateway_metrics,
            base_prompt=config.system_prompt,
            sweep_every=config.prompt_cache_sweep_every,
        ),
        search_client=search_client,
        http_client=client,
        metrics=gateway_metrics,
    )


@asynccontextmanager
async def lifespan(application: FastAPI):
    global http_client, prompt_cache, registry, pipeline
    log = setup_logging(SERVICE_NAME, cfg.log_level)

    http_client = httpx.AsyncClient(timeout=cfg.vendor_http_timeout_s)
    prompt_cache = build_prompt_cache(cfg.prompt_cache_redis_url, cfg.prompt_cache_ttl_s)
    pipeline = build_pipeline(cfg, http_client, prompt_cache, metrics)
    registry = pipeline.registry

    log.info(
        "Chat Gateway ready (force_aggregator=%s, fallback=%s, web_search=%s)",
        cfg.openrouter_force, cfg.openrouter_fallback, cfg.web_search_enabled,
    )
    yield

    log.info("Shutting down")
    if isinstance(prompt_cache, RedisPromptCache):
        await prompt_cache.close()
    if http_client:
        await http_client.aclose()


app = FastAPI(
    title="Krix - Chat Gateway",
    version="0.1.0",
    description="Multi-provider chat completion gateway with web search and URL augmentation",
    lifespan=lifespan,
)

CORS_ALLOW_METHODS = ["POST", "GET", "OPTIONS"]
CORS_ALLOW_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(cfg.cors_origins),
    allow_methods=CORS_ALLOW_METHODS,
    allow_headers=CORS_ALLOW_HEADERS,
)


def preflight_headers(origin: str | None) -> dict[str, str]:
    """CORS headers for an ``OPTIONS /chat`` answer, bare or browser-issued."""
    headers = {
        "Access-Control-Allow-Methods": ", ".join(CORS_ALLOW_METHODS),
        "Access-Control-Allow-Headers": ", ".join(CORS_ALLOW_HEADERS),
    }
    if "*" in cfg.cors_origins:
        headers["Access-Control-Allow-Origin"] = "*"
    elif origin and origin in cfg.cors_origins:
        headers["Access-Control-Allow-Origin"] = origin
        headers["Vary"] = "Origin"
    return headers


# Registered after CORSMiddleware so it runs first: the middleware would
# otherwise answer browser preflights itself with a plain-text "OK" body.
@app.middleware("http")
async def chat_preflight(request: Request, call_next):
    if request.method == "OPTIONS" and request.url.path == "/chat":
        return Response(
            status_code=200, headers=preflight_headers(request.headers.get("origin"))
        )
    return await call_next(request)


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "service": SERVICE_NAME,
        "providers": registry.names() if registry else [],
        "metrics": metrics.snapshot(),
    }


@app.get("/metrics")
async def prometheus_metrics():
    return metrics_response()


@app.post("/chat")
async def chat(request: Request):
    body = await request.body()
    try:
        chat_request = parse_chat_request(body)
    except MalformedRequestError as exc:
        logger.warning("Rejected malformed chat request: %s", exc)
        chat_requests.labels(provider="unknown", outcome="malformed").inc()
        return JSONResponse(content=error_envelope(str(exc)).to_wire(), status_code=200)

    if pipeline is None:
        return JSONResponse(
            content=error_envelope(
                "Gateway is not ready", chat_request.model.id, chat_request.model.provider
            ).to_wire(),
            status_code=200,
        )

    # a client disconnect must not cancel an in-flight vendor call
    envelope = await asyncio.shield(pipeline.run(chat_request))
    return JSONResponse(content=envelope.to_wire(), status_code=200)
