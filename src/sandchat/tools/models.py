import uuid
from typing import Any

from pydantic import BaseModel, Field


class ToolCall(BaseModel):
    """Represents a tool call request.

    Attributes:
        id_: Identifier assigned by the model (or generated)
        tool_name: Name of the tool to call
        arguments: Arguments for the tool call
    """

    id_: str = Field(default_factory=lambda: str(uuid.uuid4()))
    tool_name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ToolCallResult(BaseModel):
    """Result of executing a tool call.

    Attributes:
        tool_call_id: ID of the tool call that was executed
        tool_name: Name of the tool that ran
        content: JSON-serialisable result handed back to the model
        error: Whether the call failed (the failure is described in content)
    """

    tool_call_id: str
    tool_name: str
    content: Any = None
    error: bool = False
