from .base import DirEntry, Sandbox, SandboxFileSystem, SandboxProcess, normalize_path
from .local import LocalSandbox
from .memory import InMemorySandbox
from .session import ManagedProcess, SandboxSession

__all__ = [
    "DirEntry",
    "Sandbox",
    "SandboxFileSystem",
    "SandboxProcess",
    "normalize_path",
    "LocalSandbox",
    "InMemorySandbox",
    "ManagedProcess",
    "SandboxSession",
]
