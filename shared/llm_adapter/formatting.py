"""
Prompt-building helpers shared by every provider adapter.

Token estimates produced here are an APPROXIMATION (characters / 4). They are
only used when a vendor does not report usage and must not be treated as a
tokenizer-accurate count.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from shared.llm_adapter.models import (
    Attachment,
    ChatMessage,
    SearchResult,
    TokenUsage,
)

_DATA_URL_RE = re.compile(r"^data:([^;]+);base64,(.+)$", re.DOTALL)


def splice_files(content: str, attachments: list[Attachment]) -> str:
    """Append attachment text to the user's message under per-file headers."""
    if not attachments:
        return content

    parts = [f"{content}\n\nHere are the contents of the provided files:\n\n"]
    for attachment in attachments:
        parts.append(f"--- {attachment.name} ---\n{attachment.content}\n\n")
    parts.append(
        "\nPlease analyze and respond to the above file content"
        f"{' based on my request' if content else ''}."
    )
    return "".join(parts)


def format_search_results(results: list[SearchResult]) -> str:
    return "\n".join(
        f"[{i}] {r.title}\nURL: {r.url}\n{r.snippet}\n"
        for i, r in enumerate(results, start=1)
    )


def search_context_block(results: list[SearchResult]) -> str:
    """Context paragraph appended to the system prompt or user turn."""
    if not results:
        return ""
    return (
        "I've found some potentially relevant information from the web about "
        "the user's query. This is supplementary context; use your own "
        "knowledge alongside it.\n\n"
        "Here are some relevant web search results:\n"
        f"{format_search_results(results)}\n"
        "Reference this information if it's helpful and cite the URLs you use."
    )


def build_user_text(content: str, attachments: list[Attachment], results: list[SearchResult]) -> str:
    """User turn with attached files and (optionally) search results inlined."""
    text = splice_files(content, attachments)
    if results:
        text += (
            "\n\nWeb search results related to the query:\n"
            f"{format_search_results(results)}"
            "\nPlease use these search results to inform your response if relevant."
        )
    return text


def history_as_dicts(history: list[ChatMessage]) -> list[dict[str, str]]:
    return [{"role": m.role, "content": m.content} for m in history]


@dataclass
class ImageData:
    mime_type: str
    data: str


def parse_data_url(image: str) -> ImageData | None:
    """Split a ``data:<mime>;base64,<payload>`` URL. Returns None for plain URLs."""
    match = _DATA_URL_RE.match(image.strip())
    if not match:
        return None
    return ImageData(mime_type=match.group(1), data=match.group(2))


def is_remote_url(image: str) -> bool:
    return image.startswith(("http://", "https://"))


def estimate_tokens(*texts: str) -> int:
    """Rough token estimate: total characters / 4."""
    return round(sum(len(t or "") for t in texts) / 4)


def usage_or_estimate(
    reported_input: int | None,
    reported_output: int | None,
    prompt_texts: list[str],
    completion_text: str,
    reasoning: int | None = None,
) -> TokenUsage:
    """Prefer vendor-reported usage; fall back to the character heuristic."""
    return TokenUsage(
        input=reported_input or estimate_tokens(*prompt_texts),
        output=reported_output or estimate_tokens(completion_text),
        reasoning=reasoning or None,
    )


def error_detail(body: Any, fallback: str) -> str:
    """Pull a human-readable message out of a vendor error body."""
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
        for key in ("message", "msg", "type"):
            if body.get(key):
                return str(body[key])
    return fallback
