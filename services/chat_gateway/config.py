from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_SYSTEM_PROMPT = (
    "You are Krix, a helpful AI assistant. Be concise, clear, and maintain "
    "context from previous messages."
)


def _flag(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _float(name: str, default: float) -> float:
    return float(os.environ.get(name, "") or default)


def _int(name: str, default: int) -> int:
    return int(os.environ.get(name, "") or default)


@dataclass(frozen=True)
class GatewayConfig:
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    google_api_key: str = ""
    xai_api_key: str = ""
    krutrim_api_key: str = ""
    openrouter_api_key: str = ""
    brave_api_key: str = ""

    openrouter_force: bool = False
    openrouter_fallback: bool = True
    openrouter_referer: str = "https://krix.app"
    openrouter_title: str = "Krix AI Assistant"

    web_search_enabled: bool = True
    max_search_results: int = 3
    search_count: int = 5
    search_timeout_s: float = 7.0

    max_urls: int = 3
    url_fetch_timeout_s: float = 5.0
    max_url_bytes: int = 10 * 1024
    max_attachment_bytes: int = 250 * 1024

    krutrim_timeout_s: float = 30.0
    vendor_http_timeout_s: float = 120.0
    reasoning_effort: str = "high"

    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    prompt_cache_ttl_s: float = 180.0
    prompt_cache_sweep_every: int = 10
    prompt_cache_redis_url: str | None = None

    cors_origins: tuple[str, ...] = ("*",)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> GatewayConfig:
        origins = os.environ.get("CORS_ORIGINS", "*")
        return cls(
            openai_api_key=os.environ.get("OPENAI_API_KEY", ""),
            anthropic_api_key=os.environ.get("ANTHROPIC_API_KEY", ""),
            google_api_key=os.environ.get("GOOGLE_API_KEY", ""),
            xai_api_key=os.environ.get("XAI_API_KEY", ""),
            krutrim_api_key=os.environ.get("KRUTRIM_API_KEY", ""),
            openrouter_api_key=os.environ.get("OPENROUTER_API_KEY", ""),
            brave_api_key=os.environ.get("BRAVE_API_KEY", ""),
            openrouter_force=_flag("OPENROUTER_FORCE", False),
            openrouter_fallback=_flag("OPENROUTER_FALLBACK", True),
            openrouter_referer=os.environ.get("OPENROUTER_REFERER", "https://krix.app"),
            openrouter_title=os.environ.get("OPENROUTER_TITLE", "Krix AI Assistant"),
            web_search_enabled=_flag("WEB_SEARCH_ENABLED", True),
            max_search_results=_int("MAX_SEARCH_RESULTS", 3),
            search_count=min(_int("SEARCH_RESULT_COUNT", 5), 5),
            search_timeout_s=_float("SEARCH_TIMEOUT", 7.0),
            max_urls=_int("MAX_URLS", 3),
            url_fetch_timeout_s=_float("URL_FETCH_TIMEOUT", 5.0),
            max_url_bytes=_int("MAX_URL_BYTES", 10 * 1024),
            max_attachment_bytes=_int("MAX_ATTACHMENT_BYTES", 250 * 1024),
            krutrim_timeout_s=_float("KRUTRIM_TIMEOUT", 30.0),
            vendor_http_timeout_s=_float("VENDOR_HTTP_TIMEOUT", 120.0),
            reasoning_effort=os.environ.get("OPENAI_REASONING_EFFORT", "high"),
            system_prompt=os.environ.get("SYSTEM_PROMPT", DEFAULT_SYSTEM_PROMPT),
            prompt_cache_ttl_s=_float("PROMPT_CACHE_TTL", 180.0),
            prompt_cache_sweep_every=_int("PROMPT_CACHE_SWEEP_EVERY", 10),
            prompt_cache_redis_url=os.environ.get("PROMPT_CACHE_REDIS_URL") or None,
            cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()) or ("*",),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
        )
