"""Exception hierarchy and user-facing error formatting.

Transport failures are raised once at the provider boundary as
``APICallError``; tool failures are captured as data by the tool layer and
only use these classes to build the message that ends up in the transcript.
Aborts are never represented here.
"""

from typing import Any


class SandchatError(Exception):
    """Base exception for all sandchat errors.

    Attributes:
        code: Optional machine-readable error code
        details: Arbitrary key/value context about the error
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    @property
    def is_retryable(self) -> bool:
        """Whether the operation that raised this error can be retried."""
        return False


class APICallError(SandchatError):
    """A provider call failed (network, quota, authentication, server).

    Attributes:
        cause: Underlying exception or provider message, if any
        status_code: HTTP status code when the provider returned one
        retryable: Explicit retryability flag (None when unknown)
    """

    def __init__(
        self,
        message: str,
        *,
        cause: Any = None,
        status_code: int | None = None,
        retryable: bool | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code="api_error", details=details)
        self.cause = cause
        self.status_code = status_code
        self.retryable = retryable

    @property
    def is_retryable(self) -> bool:
        if self.retryable is not None:
            return self.retryable
        if self.status_code is None:
            return False
        return self.status_code in (408, 409, 429) or self.status_code >= 500


class AuthenticationError(APICallError):
    """The provider rejected the credential (missing or invalid API key)."""

    @property
    def is_retryable(self) -> bool:
        return False


class RateLimitError(APICallError):
    """The provider throttled the request."""

    @property
    def is_retryable(self) -> bool:
        return True


class NoSuchToolError(SandchatError):
    """The model asked for a tool that is not registered for this turn."""

    def __init__(self, tool_name: str, available_tools: list[str] | None = None) -> None:
        super().__init__(
            f"Model tried to call unavailable tool '{tool_name}'.",
            code="no_such_tool",
            details={"available_tools": available_tools or []},
        )
        self.tool_name = tool_name
        self.available_tools = available_tools or []


class ToolExecutionError(SandchatError):
    """A tool handler raised instead of returning a failure payload."""

    def __init__(self, tool_name: str, cause: BaseException) -> None:
        super().__init__(
            f"Error executing tool {tool_name}: {cause}",
            code="tool_execution_error",
        )
        self.tool_name = tool_name
        self.cause = cause


class ToolNameCollisionError(SandchatError):
    """Two tool sources tried to register the same name for one turn."""

    def __init__(self, tool_name: str) -> None:
        super().__init__(f"Tool {tool_name} already registered", code="tool_name_collision")
        self.tool_name = tool_name


class SandboxError(SandchatError):
    """The sandbox substrate could not perform a filesystem or process operation."""


def format_error(error: object) -> str:
    """Render an error as the human-readable text shown to the user.

    Args:
        error: Any exception (or arbitrary object) surfaced by a turn

    Returns:
        Formatted message; API errors include cause and a retry hint
    """
    if isinstance(error, APICallError):
        msg = f"API Error: {error.message}"
        if error.cause:
            msg += f"\nCause: {error.cause}"
        if error.retryable is not None or error.status_code is not None:
            if error.is_retryable:
                msg += "\nThis error may be temporary. Please try again."
            else:
                msg += "\nThis error is not retryable."
        return msg

    if isinstance(error, NoSuchToolError):
        return "Tool Error: The tool you tried to use is not available. Please try again."

    if isinstance(error, ToolExecutionError):
        return f"Tool Error: {error.message}"

    if isinstance(error, Exception):
        return f"Error: {error}"

    return "An unknown error occurred."
