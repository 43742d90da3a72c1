"""Static catalogue of the language models the chat can talk to.

Models are read-only configuration: the provider tag selects a backend
strategy in ``factory``; capabilities drive attachment filtering; ``tool_use``
decides whether tools are offered; ``reasoning`` enables provider reasoning
options.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Capability(str, Enum):
    """Input modalities a model accepts."""

    TEXT = "text"
    IMAGE = "image"
    AUDIO = "audio"
    PDF = "pdf"


class Model(BaseModel):
    """Static model descriptor."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Provider-side model identifier")
    name: str = Field(description="Display name")
    provider: str = Field(description="Provider tag, e.g. 'openai', 'groq', 'lmstudio'")
    capabilities: tuple[Capability, ...] = Field(default=(Capability.TEXT,))
    tool_use: bool = False
    reasoning: bool = False

    def supports(self, capability: Capability | str) -> bool:
        """Check whether the model accepts an input modality."""
        return Capability(capability) in self.capabilities


MODELS: tuple[Model, ...] = (
    # Groq preview models
    Model(
        id="meta-llama/llama-4-scout-17b-16e-instruct",
        name="Llama 4 Scout 17B",
        provider="groq",
        capabilities=(Capability.TEXT, Capability.IMAGE),
        tool_use=False,
        reasoning=False,
    ),
    Model(
        id="deepseek-r1-distill-llama-70b",
        name="DeepSeek Distill Llama 70B",
        provider="groq",
        capabilities=(Capability.TEXT,),
        tool_use=True,
        reasoning=True,
    ),
    # Local models served by LM Studio
    Model(
        id="microsoft/phi-4-mini-reasoning",
        name="Phi 4 Mini Reasoning",
        provider="lmstudio",
        capabilities=(Capability.TEXT, Capability.IMAGE),
        tool_use=True,
        reasoning=True,
    ),
    Model(
        id="qwen3-0.6b",
        name="Qwen3 0.6B",
        provider="lmstudio",
        capabilities=(Capability.TEXT,),
        tool_use=True,
        reasoning=True,
    ),
    Model(
        id="qwen3-1.7b",
        name="Qwen3 1.7B",
        provider="lmstudio",
        capabilities=(Capability.TEXT,),
        tool_use=True,
        reasoning=True,
    ),
    Model(
        id="qwen3-4b",
        name="Qwen3 4B",
        provider="lmstudio",
        capabilities=(Capability.TEXT,),
        tool_use=True,
        reasoning=True,
    ),
    Model(
        id="deepseek-ai_deepseek-r1-0528-qwen3-8b",
        name="DeepSeek R1 Qwen3 8B",
        provider="lmstudio",
        capabilities=(Capability.TEXT,),
        tool_use=True,
        reasoning=True,
    ),
    # OpenAI
    Model(
        id="gpt-4.1-nano",
        name="GPT-4.1 Nano",
        provider="openai",
        capabilities=(Capability.TEXT, Capability.IMAGE, Capability.PDF),
        tool_use=True,
        reasoning=False,
    ),
    # Google
    Model(
        id="gemini-2.5-pro",
        name="Gemini 2.5 Pro",
        provider="google",
        capabilities=(Capability.TEXT, Capability.IMAGE, Capability.AUDIO, Capability.PDF),
        tool_use=True,
        reasoning=True,
    ),
    # Anthropic
    Model(
        id="claude-sonnet-4-20250514",
        name="Claude Sonnet 4",
        provider="anthropic",
        capabilities=(Capability.TEXT, Capability.IMAGE, Capability.PDF),
        tool_use=True,
        reasoning=False,
    ),
    # Mistral
    Model(
        id="mistral-small-latest",
        name="Mistral Small",
        provider="mistral",
        capabilities=(Capability.TEXT, Capability.IMAGE),
        tool_use=True,
        reasoning=False,
    ),
)

_MODELS_BY_ID = {m.id: m for m in MODELS}


def get_model(model_id: str) -> Model:
    """Look up a catalogue entry by id.

    Raises:
        KeyError: If the id is not in the catalogue
    """
    try:
        return _MODELS_BY_ID[model_id]
    except KeyError:
        raise KeyError(
            f"Unknown model: {model_id}. "
            f"Available models: {list(_MODELS_BY_ID)}"
        ) from None


def default_model() -> Model:
    """The model a new session starts with."""
    return MODELS[0]


def list_models(provider: str | None = None) -> list[Model]:
    """List catalogue entries, optionally for one provider tag."""
    if provider is None:
        return list(MODELS)
    return [m for m in MODELS if m.provider == provider]
