from __future__ import annotations

import threading
from typing import Any, Dict, Iterable, Optional

from shared.tools.models import ToolDefinition


class ToolRegistry:
    """
    Registry of the tools offered to a model for one request.

    Adapters build a fresh registry per request (the tools close over the
    request's attachments), so the lock only matters if one is shared.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tools: Dict[str, ToolDefinition] = {}

    def register(self, tool: ToolDefinition) -> None:
        """Register or overwrite a tool by name."""
        with self._lock:
            self._tools[tool.name] = tool

    def get(self, name: str) -> Optional[ToolDefinition]:
        with self._lock:
            return self._tools.get(name)

    def list(self) -> Iterable[ToolDefinition]:
        """Return a snapshot list of all registered tools."""
        with self._lock:
            return list(self._tools.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._tools)

    def chat_completions_specs(self) -> list[dict[str, Any]]:
        return [tool.chat_completions_spec() for tool in self.list()]

    def responses_specs(self) -> list[dict[str, Any]]:
        return [tool.responses_spec() for tool in self.list()]
