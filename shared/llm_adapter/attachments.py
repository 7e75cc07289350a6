"""
Attachment intake and byte budgeting.

Clients send files as raw blobs using the ``"File: <name>\\nContent: <body>"``
convention. PDFs that were extracted client-side arrive as
``"Content: PDF_EXTRACTION:<json>"`` where the JSON carries
``{text, pages, filename, images}``. Web pages that were already fetched for
an earlier turn are named ``"URL: <url>"``.

Everything is parsed into :class:`Attachment` records exactly once, so the
provider adapters never split strings themselves.
"""

from __future__ import annotations

import json
import logging
import re

from shared.llm_adapter.models import Attachment

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTACHMENT_BYTES = 250 * 1024
TRUNCATION_MARKER = "\n[... content truncated: attachment size limit reached]"

_PDF_PREFIX = "PDF_EXTRACTION:"
_URL_PREFIX = "URL: "
_FILE_NAME_RE = re.compile(r"^File: (.+?)$", re.MULTILINE)
_CONTENT_RE = re.compile(r"^Content: ([\s\S]+)$", re.MULTILINE)


def parse_attachment(raw: str, index: int = 0) -> Attachment:
    """Parse one raw file blob into an Attachment."""
    text = str(raw)

    if text.startswith(_URL_PREFIX):
        first_line, _, rest = text.partition("\n")
        url = first_line[len(_URL_PREFIX):].strip()
        body = rest
        content_match = _CONTENT_RE.search(rest)
        if content_match:
            body = content_match.group(1)
        return Attachment(
            name=f"{_URL_PREFIX}{url}",
            mime_type="text/plain",
            content=body.strip(),
            source_url=url,
        )

    name_match = _FILE_NAME_RE.search(text)
    name = name_match.group(1).strip() if name_match else f"File {index + 1}"

    content_match = _CONTENT_RE.search(text)
    body = content_match.group(1) if content_match else text

    source_url = None
    if name.startswith(_URL_PREFIX):
        source_url = name[len(_URL_PREFIX):].strip()

    if body.startswith(_PDF_PREFIX):
        return _unwrap_pdf(name, body[len(_PDF_PREFIX):])

    return Attachment(
        name=name,
        mime_type=_guess_mime_type(name),
        content=body,
        source_url=source_url,
    )


def parse_attachments(raw_files: list[str]) -> list[Attachment]:
    return [parse_attachment(raw, i) for i, raw in enumerate(raw_files or [])]


def _unwrap_pdf(name: str, payload: str) -> Attachment:
    try:
        data = json.loads(payload)
    except ValueError:
        logger.warning("PDF extraction payload for %s is not valid JSON", name)
        return Attachment(name=name, mime_type="application/pdf", content=payload)

    if not isinstance(data, dict):
        return Attachment(name=name, mime_type="application/pdf", content=str(data))

    text = data.get("text") or ""
    pages = data.get("pages")
    filename = data.get("filename") or name
    if pages:
        text = f"[{pages} pages]\n{text}"
    return Attachment(name=filename, mime_type="application/pdf", content=text)


def _guess_mime_type(name: str) -> str:
    lowered = name.lower()
    if lowered.endswith(".pdf"):
        return "application/pdf"
    if lowered.endswith((".json",)):
        return "application/json"
    if lowered.endswith((".md", ".markdown")):
        return "text/markdown"
    if lowered.endswith((".csv",)):
        return "text/csv"
    return "text/plain"


def truncate_utf8(text: str, max_bytes: int) -> str:
    """Cut ``text`` to at most ``max_bytes`` UTF-8 bytes without splitting a character."""
    if max_bytes <= 0:
        return ""
    encoded = text.encode("utf-8")
    if len(encoded) <= max_bytes:
        return text
    return encoded[:max_bytes].decode("utf-8", errors="ignore")


def apply_byte_budget(
    attachments: list[Attachment],
    max_bytes: int = DEFAULT_MAX_ATTACHMENT_BYTES,
) -> list[Attachment]:
    """
    Keep attachments in order until their combined content reaches ``max_bytes``.

    The item that overflows is truncated and gets TRUNCATION_MARKER appended;
    every later item is dropped. Room for the marker is always reserved, so
    the total returned never exceeds ``max_bytes``.
    """
    marker_size = len(TRUNCATION_MARKER.encode("utf-8"))
    content_budget = max(max_bytes - marker_size, 0)

    kept: list[Attachment] = []
    used = 0
    for i, attachment in enumerate(attachments):
        size = attachment.size
        if used + size <= content_budget:
            kept.append(attachment)
            used += size
            continue

        remaining = content_budget - used
        if remaining > 0:
            truncated = truncate_utf8(attachment.content, remaining)
            kept.append(
                attachment.model_copy(update={"content": truncated + TRUNCATION_MARKER})
            )
        elif kept:
            last = kept[-1]
            if not last.content.endswith(TRUNCATION_MARKER):
                kept[-1] = last.model_copy(
                    update={"content": last.content + TRUNCATION_MARKER}
                )

        dropped = len(attachments) - i - (1 if remaining > 0 else 0)
        logger.info(
            "Attachment budget of %d bytes reached; truncated %s, dropped %d item(s)",
            max_bytes,
            attachment.name if remaining > 0 else "nothing",
            dropped,
        )
        break

    return kept
