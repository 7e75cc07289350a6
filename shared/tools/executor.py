from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Dict

from pydantic import ValidationError

from shared.tools.models import ToolExecutionResult, ToolInput
from shared.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


class ToolExecutionError(Exception):
    """Raised when a tool cannot be executed successfully."""


async def _maybe_await(func, arg: ToolInput) -> Any:
    result = func(arg)
    if asyncio.iscoroutine(result):
        return await result
    return result


def _decode_arguments(raw_args: str | Dict[str, Any] | None) -> Dict[str, Any]:
    if raw_args is None or raw_args == "":
        return {}
    if isinstance(raw_args, dict):
        return raw_args
    try:
        decoded = json.loads(raw_args)
    except ValueError as exc:
        raise ToolExecutionError(f"Tool arguments are not valid JSON: {exc}") from exc
    if not isinstance(decoded, dict):
        raise ToolExecutionError("Tool arguments must be a JSON object")
    return decoded


async def execute_tool(
    registry: ToolRegistry,
    name: str,
    raw_args: str | Dict[str, Any] | None,
) -> ToolExecutionResult:
    """
    Execute a tool requested by a model.

    ``raw_args`` is the JSON argument string exactly as the vendor returned it
    (or an already-decoded dict). The call is bounded by the tool's timeout;
    failures are reported in the result, never raised.
    """
    tool = registry.get(name)
    if tool is None:
        return ToolExecutionResult(success=False, error=f"Unknown tool: {name}")

    try:
        args = tool.input_model.model_validate(_decode_arguments(raw_args))
    except (ValidationError, ToolExecutionError) as exc:
        return ToolExecutionResult(
            success=False,
            error=f"Invalid arguments for tool {name}: {exc}",
        )

    start = time.monotonic()
    try:
        output = await asyncio.wait_for(
            _maybe_await(tool.func, args),
            timeout=tool.timeout_s if tool.timeout_s > 0 else None,
        )
    except asyncio.TimeoutError:
        logger.warning("Tool %s timed out after %.1fs", name, tool.timeout_s)
        return ToolExecutionResult(
            success=False,
            error=f"Tool {name} timed out",
            duration_s=time.monotonic() - start,
        )
    except Exception as exc:
        logger.warning("Tool %s failed: %s", name, exc)
        return ToolExecutionResult(
            success=False,
            error=f"Tool {name} failed: {exc}",
            duration_s=time.monotonic() - start,
        )

    return ToolExecutionResult(
        success=True,
        output=output,
        duration_s=time.monotonic() - start,
    )
