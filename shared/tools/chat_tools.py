"""
Function-calling tools offered to OpenAI models: ``web_search`` and ``file_search``.

A toolbox is built per request. It closes over the request's attachments and
pre-fetched search results and records whatever the tools returned, so the
adapter can report them in the response envelope.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from pydantic import Field

from shared.llm_adapter.models import Attachment, FileSearchResult, SearchResult
from shared.tools.models import ToolDefinition, ToolInput
from shared.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

SearchFunc = Callable[[str], Awaitable[list[SearchResult]]]

MAX_FILE_RESULTS = 3
_SNIPPET_CHARS = 400
_TERM_RE = re.compile(r"[a-z0-9]{3,}")


class WebSearchInput(ToolInput):
    query: str = Field(..., description="The search query to look up on the web")


class FileSearchInput(ToolInput):
    query: str = Field(..., description="What to look for in the user's attached files")


@dataclass
class ChatToolbox:
    registry: ToolRegistry
    prefetched: list[SearchResult] = field(default_factory=list)
    web_results: list[SearchResult] = field(default_factory=list)
    file_results: list[FileSearchResult] = field(default_factory=list)
    searched: bool = False


def search_attachments(
    query: str, attachments: list[Attachment], limit: int = MAX_FILE_RESULTS
) -> list[FileSearchResult]:
    """Rank attachments by query-term hits and return a snippet around the first hit."""
    terms = set(_TERM_RE.findall(query.lower()))
    scored: list[tuple[int, FileSearchResult]] = []

    for attachment in attachments:
        lowered = attachment.content.lower()
        hits = sum(lowered.count(term) for term in terms)
        if not hits:
            continue
        first = min(
            (lowered.find(term) for term in terms if term in lowered), default=0
        )
        start = max(first - _SNIPPET_CHARS // 4, 0)
        snippet = attachment.content[start:start + _SNIPPET_CHARS].strip()
        scored.append((hits, FileSearchResult(filename=attachment.name, snippet=snippet)))

    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [result for _, result in scored[:limit]]


def build_chat_toolbox(
    search: SearchFunc | None,
    attachments: list[Attachment],
    prefetched: list[SearchResult],
    max_results: int = 3,
    search_timeout: float = 7.0,
) -> ChatToolbox:
    registry = ToolRegistry()
    toolbox = ChatToolbox(registry=registry, prefetched=list(prefetched))

    async def web_search(args: WebSearchInput) -> list[dict]:
        if toolbox.prefetched:
            toolbox.web_results = toolbox.prefetched[:max_results]
        else:
            # An empty pre-search still triggers a fresh search here.
            toolbox.searched = True
            results = await search(args.query) if search else []
            toolbox.web_results = results[:max_results]
        logger.info(
            "web_search tool returned %d result(s) for %r",
            len(toolbox.web_results), args.query[:80],
        )
        return [r.model_dump() for r in toolbox.web_results]

    def file_search(args: FileSearchInput) -> list[dict]:
        toolbox.file_results = search_attachments(args.query, attachments)
        return [r.model_dump() for r in toolbox.file_results]

    if search is not None or prefetched:
        registry.register(
            ToolDefinition(
                name="web_search",
                description=(
                    "Search the web for current information. Use it for recent "
                    "events, news, prices or anything that may have changed."
                ),
                input_model=WebSearchInput,
                func=web_search,
                timeout_s=search_timeout,
                tags=["search"],
            )
        )
    if attachments:
        registry.register(
            ToolDefinition(
                name="file_search",
                description="Search the files the user attached to this conversation.",
                input_model=FileSearchInput,
                func=file_search,
                timeout_s=0,
                tags=["files"],
            )
        )
    return toolbox
