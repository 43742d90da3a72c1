"""
Sandchat: a streaming chat orchestration engine with sandboxed tool use.

Each module hides one design decision: which backend serves a model
(``llm``), which tools exist and how they fail (``tools``), how the sandbox
substrate is reached (``sandbox``) and how stream increments become
conversation state (``chat``).
"""

__version__ = "0.1.0"

from .chat import ChatEvent, ChatEventType, ChatSession, ChatState, Message
from .credentials import EnvSecretStore, InMemorySecretStore, SecretStore
from .errors import APICallError, SandchatError, format_error
from .llm import MODELS, Model, ModelParameters, get_model

__all__ = [
    "ChatEvent",
    "ChatEventType",
    "ChatSession",
    "ChatState",
    "Message",
    "EnvSecretStore",
    "InMemorySecretStore",
    "SecretStore",
    "APICallError",
    "SandchatError",
    "format_error",
    "MODELS",
    "Model",
    "ModelParameters",
    "get_model",
]
