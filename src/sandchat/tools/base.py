"""Tool infrastructure shared by the network and sandbox tool families."""

from abc import ABC, abstractmethod
from typing import Any, ClassVar

import structlog
from pydantic import BaseModel, ValidationError

from ..errors import NoSuchToolError, ToolExecutionError, ToolNameCollisionError
from .models import ToolCall, ToolCallResult

logger = structlog.get_logger(__name__)


class NoParams(BaseModel):
    """Parameter model for tools that take no arguments."""


class BaseTool(ABC):
    """Abstract base class for tools.

    Subclasses declare ``name``, ``description`` and a pydantic ``Params``
    model; the JSON schema sent to the model is derived from ``Params`` so
    the declared shape and the validated shape cannot drift apart.
    """

    name: ClassVar[str]
    description: ClassVar[str]
    Params: ClassVar[type[BaseModel]] = NoParams

    @property
    def parameters_schema(self) -> dict[str, Any]:
        """Get the JSON schema for tool parameters."""
        return self.Params.model_json_schema(by_alias=True)

    @abstractmethod
    async def run(self, params: Any) -> Any:
        """Run the tool with validated parameters.

        Returns:
            JSON-serialisable result. Tools that report failures as data
            return ``{"success": False, "error": ...}``.
        """

    async def execute(self, tool_call: ToolCall) -> ToolCallResult:
        """Execute the tool call.

        Never raises: invalid arguments and handler exceptions are returned
        as ``{"success": False, "error": ...}`` payloads so one failing tool
        never aborts the turn.

        Args:
            tool_call: The tool call to execute

        Returns:
            ToolCallResult with the execution result
        """
        try:
            params = self.Params.model_validate(tool_call.arguments)
        except ValidationError as e:
            logger.debug("tool_arguments_invalid", tool=self.name, errors=e.error_count())
            return ToolCallResult(
                tool_call_id=tool_call.id_,
                tool_name=self.name,
                content={"success": False, "error": f"Invalid arguments for {self.name}: {e}"},
                error=True,
            )

        logger.debug("tool_called", tool=self.name, tool_call_id=tool_call.id_)
        try:
            result = await self.run(params)
        except Exception as e:
            error = ToolExecutionError(self.name, e)
            logger.warning("tool_failed", tool=self.name, error=str(e))
            return ToolCallResult(
                tool_call_id=tool_call.id_,
                tool_name=self.name,
                content={"success": False, "error": error.message},
                error=True,
            )

        failed = isinstance(result, dict) and (result.get("success") is False or "error" in result)
        return ToolCallResult(
            tool_call_id=tool_call.id_,
            tool_name=self.name,
            content=result,
            error=failed,
        )

    def to_llm_spec(self) -> dict[str, Any]:
        """Convert tool to LLM-friendly specification.

        Returns:
            Dictionary describing the tool for the LLM
        """
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters_schema
        }


class ToolRegistry:
    """Flat name -> tool namespace for one turn.

    Names are globally unique: registering a second tool under an existing
    name raises ``ToolNameCollisionError``.
    """

    def __init__(self, tools: list[BaseTool] | None = None):
        self._tools: dict[str, BaseTool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: BaseTool) -> None:
        if tool.name in self._tools:
            raise ToolNameCollisionError(tool.name)
        self._tools[tool.name] = tool

    @classmethod
    def merge(cls, *registries: "ToolRegistry") -> "ToolRegistry":
        """Merge registries into a new one, rejecting duplicate names."""
        merged = cls()
        for registry in registries:
            for tool in registry:
                merged.register(tool)
        return merged

    def get(self, name: str) -> BaseTool | None:
        return self._tools.get(name)

    def require(self, name: str) -> BaseTool:
        """Get a tool by name.

        Raises:
            NoSuchToolError: If no tool with this name is registered
        """
        tool = self._tools.get(name)
        if tool is None:
            raise NoSuchToolError(name, self.names())
        return tool

    def names(self) -> list[str]:
        return list(self._tools)

    def specs(self) -> list[dict[str, Any]]:
        """Tool specs in registration order, as sent to providers."""
        return [tool.to_llm_spec() for tool in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self):
        return iter(list(self._tools.values()))
