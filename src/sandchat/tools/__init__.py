from .base import BaseTool, NoParams, ToolRegistry
from .factory import build_tool_registry
from .models import ToolCall, ToolCallResult
from .sandbox import SandboxTool, create_sandbox_tools
from .search import (
    AggregateSearchTool,
    DuckDuckGoSearchTool,
    GoogleSearchTool,
    SearchResult,
    SearchToolResult,
    WebSearchTool,
    create_search_tools,
)

__all__ = [
    "BaseTool",
    "NoParams",
    "ToolRegistry",
    "build_tool_registry",
    "ToolCall",
    "ToolCallResult",
    "SandboxTool",
    "create_sandbox_tools",
    "AggregateSearchTool",
    "DuckDuckGoSearchTool",
    "GoogleSearchTool",
    "SearchResult",
    "SearchToolResult",
    "WebSearchTool",
    "create_search_tools",
]
