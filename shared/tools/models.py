from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Type

from pydantic import BaseModel


class ToolInput(BaseModel):
    """
    Base class for tool input models.

    Each concrete tool defines its own subclass describing the arguments the
    model may pass. The JSON schema sent to the vendor is generated from it.
    """


ToolFunc = Callable[[ToolInput], Awaitable[Any]] | Callable[[ToolInput], Any]


@dataclass
class ToolDefinition:
    """
    Runtime description of a function-calling tool offered to a model.

    - name: identifier the model uses in its tool call
    - description: natural language description shown to the model
    - input_model: Pydantic model used for validation and JSON-schema export
    - func: async or sync callable implementing the tool
    - timeout_s: max wall-clock time for a single execution
    """

    name: str
    description: str
    input_model: Type[ToolInput]
    func: ToolFunc
    timeout_s: float = 7.0
    tags: list[str] = field(default_factory=list)

    def json_schema(self) -> dict[str, Any]:
        schema = self.input_model.model_json_schema()
        schema.pop("title", None)
        for prop in schema.get("properties", {}).values():
            prop.pop("title", None)
        return schema

    def chat_completions_spec(self) -> dict[str, Any]:
        """Tool entry for the chat-completions ``tools`` array."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.json_schema(),
            },
        }

    def responses_spec(self) -> dict[str, Any]:
        """Tool entry for the responses endpoint (flat function shape)."""
        return {
            "type": "function",
            "name": self.name,
            "description": self.description,
            "parameters": self.json_schema(),
            "strict": False,
        }


@dataclass
class ToolExecutionResult:
    """
    Normalised result of executing a tool.

    - success: whether the tool completed without raising
    - output: raw value returned by the tool (if any)
    - error: error message when success is False
    - duration_s: approximate wall-clock time in seconds
    """

    success: bool
    output: Any = None
    error: str | None = None
    duration_s: float | None = None
