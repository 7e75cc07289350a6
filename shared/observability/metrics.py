from __future__ import annotations

import threading
from dataclasses import dataclass, field

from prometheus_client import (
    Counter,
    Histogram,
    generate_latest,
    CONTENT_TYPE_LATEST,
)
from fastapi import Response


chat_requests = Counter(
    "chat_requests_total",
    "Chat requests handled by the gateway",
    ["provider", "outcome"],
)

provider_call_latency = Histogram(
    "provider_call_latency_seconds",
    "Latency of a single upstream provider call",
    ["provider"],
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
)

llm_tokens = Counter(
    "llm_tokens_total",
    "LLM tokens reported per provider",
    ["provider", "direction"],
)

provider_fallbacks = Counter(
    "provider_fallbacks_total",
    "Requests re-dispatched to the aggregator after a provider failure",
    ["from_provider"],
)

prompt_cache_events = Counter(
    "prompt_cache_events_total",
    "System-prompt cache lookups",
    ["result"],
)

augmentation_fetches = Counter(
    "augmentation_fetches_total",
    "URL fetches and web searches performed for prompt augmentation",
    ["kind", "outcome"],
)


@dataclass
class GatewayMetrics:
    """
    Process-wide request counters.

    Updated once per request. The lock only guards the increments; nothing
    waits on it for longer than an addition.
    """

    total_requests: int = 0
    cache_hits: int = 0
    total_processing_time: float = 0.0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record_request(self) -> int:
        with self._lock:
            self.total_requests += 1
            return self.total_requests

    def record_cache_hit(self) -> None:
        with self._lock:
            self.cache_hits += 1
        prompt_cache_events.labels(result="hit").inc()

    def record_processing_time(self, seconds: float) -> None:
        with self._lock:
            self.total_processing_time += seconds

    def snapshot(self) -> dict[str, float]:
        with self._lock:
            average = (
                self.total_processing_time / self.total_requests
                if self.total_requests
                else 0.0
            )
            return {
                "totalRequests": self.total_requests,
                "cacheHits": self.cache_hits,
                "totalProcessingTime": round(self.total_processing_time, 3),
                "averageProcessingTime": round(average, 3),
            }


def record_tokens(provider: str, input_tokens: int, output_tokens: int) -> None:
    if input_tokens:
        llm_tokens.labels(provider=provider, direction="input").inc(input_tokens)
    if output_tokens:
        llm_tokens.labels(provider=provider, direction="output").inc(output_tokens)


def metrics_response() -> Response:
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
