"""Multi-step text streaming with tool execution.

``stream_text`` drives a provider through up to ``max_steps`` steps. A step
that ends with tool calls has those calls executed in arrival order, their
results appended to the transcript, and the next step started; a step
without tool calls finishes the stream.
"""

import json
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any

import structlog

from ..config import MAX_STEPS
from ..errors import NoSuchToolError, ToolExecutionError, format_error
from ..tools.models import ToolCall
from .base import LLMProvider, ToolChoice
from .catalog import Model
from .models import (
    ChatMessage,
    ErrorPart,
    FinishPart,
    ModelParameters,
    StepFinishPart,
    StreamPart,
    TextDeltaPart,
    ToolCallPart,
    ToolCallRequest,
    ToolResultPart,
    Usage,
)
from .retry import RetryPolicy

if TYPE_CHECKING:
    from ..chat.cancellation import AbortSignal
    from ..tools.base import ToolRegistry

logger = structlog.get_logger(__name__)


def resolve_tool_choice(model: Model) -> ToolChoice:
    """Models without tool support must not be offered tools."""
    return "auto" if model.tool_use else "none"


async def _open_step(
    provider: LLMProvider,
    messages: list[ChatMessage],
    **kwargs: Any,
) -> tuple[AsyncIterator[StreamPart], StreamPart | None]:
    """Start a provider step and wait for its first part.

    Failures before the first part leave nothing to roll back, so this is
    the unit the retry policy wraps.
    """
    step = provider.stream_step(messages, **kwargs)
    try:
        first = await anext(step)
    except StopAsyncIteration:
        return step, None
    except BaseException:
        await step.aclose()
        raise
    return step, first


async def _execute_tool_call(call: ToolCallPart, tools: "ToolRegistry | None") -> Any:
    """Run one requested tool call and return the result payload."""
    if call.args_error is not None:
        return {"success": False, "error": f"Invalid arguments for {call.tool_name}: {call.args_error}"}

    if tools is None or call.tool_name not in tools:
        error = NoSuchToolError(call.tool_name, tools.names() if tools is not None else [])
        logger.warning("tool_not_found", tool=call.tool_name)
        return {"success": False, "error": format_error(error)}

    tool = tools.require(call.tool_name)
    try:
        result = await tool.execute(ToolCall(
            id_=call.tool_call_id,
            tool_name=call.tool_name,
            arguments=call.args,
        ))
    except Exception as e:
        error = ToolExecutionError(call.tool_name, e)
        logger.warning("tool_execution_failed", tool=call.tool_name, error=str(e))
        return {"success": False, "error": format_error(error)}
    return result.content


async def stream_text(
    provider: LLMProvider,
    messages: list[ChatMessage],
    *,
    tools: "ToolRegistry | None" = None,
    tool_choice: ToolChoice = "auto",
    parameters: ModelParameters | None = None,
    options: dict[str, Any] | None = None,
    max_steps: int = MAX_STEPS,
    retry_policy: RetryPolicy | None = None,
    signal: "AbortSignal | None" = None,
) -> AsyncIterator[StreamPart]:
    """Stream a full response, executing tool calls between steps.

    Args:
        provider: Backend to stream from
        messages: Transcript including the system prompt
        tools: Tools the model may call (None sends no tools)
        tool_choice: How the model may use the tools
        parameters: Sampling parameters
        options: Provider-specific request options
        max_steps: Maximum number of provider steps
        retry_policy: Retry for opening a step (defaults to ``RetryPolicy()``)
        signal: Abort signal checked before each tool execution

    Yields:
        Stream parts in arrival order. Ends with a FinishPart, or with a
        single ErrorPart when the provider fails.
    """
    policy = retry_policy or RetryPolicy()
    transcript = list(messages)
    tool_specs = tools.specs() if tools is not None and len(tools) and tool_choice != "none" else None
    total_usage = Usage()
    finish_reason = "stop"

    for step_number in range(1, max_steps + 1):
        if signal is not None and signal.aborted:
            return

        logger.debug("step_started", model=provider.model, step=step_number)
        try:
            step, part = await policy.execute(
                _open_step,
                provider,
                transcript,
                tools=tool_specs,
                tool_choice=tool_choice,
                parameters=parameters,
                options=options,
            )
        except Exception as e:
            logger.error("step_failed", model=provider.model, step=step_number, error=str(e))
            yield ErrorPart(error=e)
            return

        text: list[str] = []
        tool_calls: list[ToolCallPart] = []
        try:
            while part is not None:
                if isinstance(part, StepFinishPart):
                    total_usage = total_usage + part.usage
                    finish_reason = part.finish_reason
                elif isinstance(part, TextDeltaPart):
                    text.append(part.text_delta)
                elif isinstance(part, ToolCallPart):
                    tool_calls.append(part)
                yield part
                part = await anext(step, None)
        except Exception as e:
            logger.error("stream_failed", model=provider.model, step=step_number, error=str(e))
            yield ErrorPart(error=e)
            return
        finally:
            await step.aclose()

        if not tool_calls:
            break

        transcript.append(ChatMessage(
            role="assistant",
            content="".join(text),
            tool_calls=tuple(
                ToolCallRequest(id=call.tool_call_id, name=call.tool_name, arguments=call.args)
                for call in tool_calls
            ),
        ))

        for call in tool_calls:
            if signal is not None and signal.aborted:
                return
            result = await _execute_tool_call(call, tools)
            yield ToolResultPart(
                tool_call_id=call.tool_call_id,
                tool_name=call.tool_name,
                args=call.args,
                result=result,
            )
            transcript.append(ChatMessage(
                role="tool",
                content=json.dumps(result, default=str),
                tool_call_id=call.tool_call_id,
                name=call.tool_name,
            ))
    else:
        logger.info("max_steps_reached", model=provider.model, max_steps=max_steps)

    yield FinishPart(finish_reason=finish_reason, usage=total_usage)
