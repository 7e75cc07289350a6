from shared.tools.models import ToolInput, ToolDefinition, ToolExecutionResult
from shared.tools.registry import ToolRegistry
from shared.tools.executor import execute_tool, ToolExecutionError
from shared.tools.chat_tools import ChatToolbox, build_chat_toolbox, search_attachments

__all__ = [
    "ToolInput",
    "ToolDefinition",
    "ToolExecutionResult",
    "ToolRegistry",
    "execute_tool",
    "ToolExecutionError",
    "ChatToolbox",
    "build_chat_toolbox",
    "search_attachments",
]
