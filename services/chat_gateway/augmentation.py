"""
Prompt augmentation from links in the user's message.

URLs mentioned in the message are fetched concurrently (bounded), reduced
to readable text and appended as ``URL: <u>`` attachments after the user's
own files. The combined list is then cut to the global attachment budget,
so earlier attachments always win over web content.
"""

from __future__ import annotations

import asyncio
import logging
import re

import httpx
from bs4 import BeautifulSoup

from shared.llm_adapter.attachments import apply_byte_budget, truncate_utf8
from shared.llm_adapter.models import Attachment
from shared.observability.metrics import augmentation_fetches
from shared.utils.timeouts import with_timeout

logger = logging.getLogger(__name__)

URL_RE = re.compile(r"https?://\S+")
_TRAILING_PUNCTUATION = ".,;:!?)]}'\">"

DEFAULT_MAX_URLS = 3
DEFAULT_FETCH_TIMEOUT_S = 5.0
DEFAULT_MAX_URL_BYTES = 10 * 1024
HTML_READ_FACTOR = 4
_UTF8_SLACK = 4

_TEXT_TYPES = ("text/", "application/json", "application/xml", "application/xhtml")
_DROP_TAGS = ["script", "style", "noscript", "template", "svg", "iframe"]


def extract_urls(content: str) -> list[str]:
    """URLs in order of appearance, trailing punctuation trimmed, no duplicates."""
    seen: dict[str, None] = {}
    for match in URL_RE.finditer(content or ""):
        url = match.group(0).rstrip(_TRAILING_PUNCTUATION)
        if url and url not in seen:
            seen[url] = None
    return list(seen)


def html_to_text(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(_DROP_TAGS):
        tag.decompose()
    title = soup.title.get_text(strip=True) if soup.title else ""
    root = soup.body or soup
    body = "\n".join(
        line for line in (s.strip() for s in root.get_text("\n").splitlines()) if line
    )
    return f"{title}\n\n{body}" if title else body


def read_limit(content_type: str, max_bytes: int) -> int:
    """Raw bytes worth reading for ``max_bytes`` of text; markup is mostly dropped."""
    if "html" in content_type:
        return max_bytes * HTML_READ_FACTOR
    return max_bytes + _UTF8_SLACK


async def _fetch(http_client: httpx.AsyncClient, url: str, max_bytes: int) -> str | None:
    async with http_client.stream(
        "GET",
        url,
        follow_redirects=True,
        headers={"User-Agent": "Mozilla/5.0 (compatible; KrixBot/1.0)"},
    ) as response:
        if not response.is_success:
            logger.warning("URL fetch %s returned %d", url, response.status_code)
            return None

        content_type = response.headers.get("content-type", "text/plain").lower()
        if not content_type.startswith(_TEXT_TYPES):
            logger.info("Skipping %s: non-text content type %s", url, content_type)
            return None

        limit = read_limit(content_type, max_bytes)
        raw = bytearray()
        async for chunk in response.aiter_bytes():
            raw.extend(chunk)
            if len(raw) >= limit:
                logger.debug("Stopped reading %s after %d bytes", url, len(raw))
                break
        encoding = response.encoding or "utf-8"

    text = bytes(raw[:limit]).decode(encoding, errors="ignore")
    if "html" in content_type:
        text = html_to_text(text)
    augmentation_fetches.labels(kind="url", outcome="ok").inc()
    return truncate_utf8(text.strip(), max_bytes)


async def fetch_url_text(
    http_client: httpx.AsyncClient,
    url: str,
    max_bytes: int = DEFAULT_MAX_URL_BYTES,
    timeout: float = DEFAULT_FETCH_TIMEOUT_S,
) -> str | None:
    """Fetch one URL as text. Any failure, including the deadline, yields None."""
    text = await with_timeout(
        _fetch(http_client, url, max_bytes), timeout, None, label=f"URL fetch {url}"
    )
    if text is None:
        augmentation_fetches.labels(kind="url", outcome="failed").inc()
    return text or None


async def augment_with_urls(
    content: str,
    attachments: list[Attachment],
    http_client: httpx.AsyncClient,
    max_urls: int = DEFAULT_MAX_URLS,
    timeout: float = DEFAULT_FETCH_TIMEOUT_S,
    max_url_bytes: int = DEFAULT_MAX_URL_BYTES,
    max_total_bytes: int = 250 * 1024,
) -> list[Attachment]:
    """
    Return ``attachments`` plus fetched pages for unseen URLs in ``content``,
    cut to ``max_total_bytes``.
    """
    known = {a.source_url for a in attachments if a.source_url}
    pending = [u for u in extract_urls(content) if u not in known][:max_urls]

    fetched: list[Attachment] = []
    if pending:
        logger.info("Fetching %d URL(s) from the message", len(pending))
        results = await asyncio.gather(
            *(fetch_url_text(http_client, u, max_url_bytes, timeout) for u in pending),
            return_exceptions=True,
        )
        for url, result in zip(pending, results):
            if isinstance(result, BaseException):
                logger.warning("URL fetch %s failed: %s", url, result)
                continue
            if result:
                fetched.append(
                    Attachment(name=f"URL: {url}", content=result, source_url=url)
                )

    return apply_byte_budget([*attachments, *fetched], max_total_bytes)
