"""Pytest configuration and shared fixtures."""
import asyncio
from typing import Any

import pytest

from sandchat.chat import ChatOrchestrator
from sandchat.credentials import InMemorySecretStore
from sandchat.llm.base import LLMProvider
from sandchat.llm.catalog import Capability, Model
from sandchat.llm.factory import Endpoint
from sandchat.llm.models import StepFinishPart, TextDeltaPart, Usage
from sandchat.llm.retry import RetryPolicy
from sandchat.sandbox import InMemorySandbox, SandboxSession


class ScriptedProvider(LLMProvider):
    """Provider replaying scripted steps.

    Each step is a list of stream parts, or an exception raised when the
    step is opened. Inside a step, an exception is raised at that point and
    an ``asyncio.Event`` blocks the step until it is set.
    """

    def __init__(self, steps: list[Any], model: str = "scripted-model"):
        self.steps = list(steps)
        self.calls: list[dict[str, Any]] = []
        self.closed = False
        self._model = model

    @property
    def model(self) -> str:
        return self._model

    async def stream_step(
        self,
        messages,
        *,
        tools=None,
        tool_choice="auto",
        parameters=None,
        options=None,
    ):
        self.calls.append({
            "messages": list(messages),
            "tools": tools,
            "tool_choice": tool_choice,
            "parameters": parameters,
            "options": options,
        })
        if not self.steps:
            raise AssertionError("No scripted step left")
        step = self.steps.pop(0)
        if isinstance(step, BaseException):
            raise step
        for part in step:
            if isinstance(part, asyncio.Event):
                await part.wait()
            elif isinstance(part, BaseException):
                raise part
            else:
                yield part

    async def close(self) -> None:
        self.closed = True


def text_step(*deltas: str, finish_reason: str = "stop", **usage: int) -> list[Any]:
    """A step streaming text deltas and finishing."""
    return [
        *(TextDeltaPart(text_delta=d) for d in deltas),
        StepFinishPart(finish_reason=finish_reason, usage=Usage(**usage)),
    ]


@pytest.fixture
def secrets():
    """Secret store with a key for every hosted provider."""
    return InMemorySecretStore({
        "OpenAI": "sk-openai",
        "Groq": "gsk-groq",
        "Google": "google-key",
        "Anthropic": "sk-ant",
        "Mistral": "mistral-key",
    })


@pytest.fixture
def plain_model():
    """Text-only model without tool support."""
    return Model(
        id="plain-model",
        name="Plain",
        provider="lmstudio",
        capabilities=(Capability.TEXT,),
        tool_use=False,
    )


@pytest.fixture
def tool_model():
    """Text and image model with tool support."""
    return Model(
        id="tool-model",
        name="Tools",
        provider="lmstudio",
        capabilities=(Capability.TEXT, Capability.IMAGE),
        tool_use=True,
    )


@pytest.fixture
def sandbox_session():
    """Sandbox session over a small in-memory project."""
    return SandboxSession(InMemorySandbox({
        "/README.md": "# Demo",
        "/src/app.py": "print('Hello')\n",
    }))


@pytest.fixture
def fast_retry():
    """Retry policy without backoff delays."""
    return RetryPolicy(max_retries=2, backoff_base=0.0, jitter=False)


@pytest.fixture
def make_orchestrator(secrets, sandbox_session, fast_retry):
    """Build an orchestrator whose provider factory returns a scripted provider."""
    def _make(provider: LLMProvider, **kwargs: Any) -> ChatOrchestrator:
        def factory(model: Model, store):
            return provider, Endpoint(provider=model.provider, strategy="Scripted", model_id=model.id)

        kwargs.setdefault("sandbox_session", sandbox_session)
        return ChatOrchestrator(
            secrets,
            provider_factory=factory,
            retry_policy=fast_retry,
            **kwargs,
        )

    return _make
