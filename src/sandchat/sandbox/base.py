"""Sandbox substrate interfaces.

The sandbox is the filesystem/process environment tools act on. The chat
engine only consumes these interfaces; ``memory`` and ``local`` provide two
concrete substrates.

Paths are POSIX-style and absolute inside the sandbox ("/src/app.py").
Failures raise ``SandboxError`` with node-style messages
("ENOENT: no such file or directory, open '/x'").
"""

import posixpath
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable
from typing import Literal, overload

from pydantic import BaseModel, ConfigDict

WatchListener = Callable[[str, str], None]
"""Called with (event_type, path); event_type is "change" or "rename"."""


def normalize_path(path: str) -> str:
    """Make a sandbox path absolute and collapse duplicate slashes and dots."""
    absolute = path if path.startswith("/") else "/" + path
    normalized = posixpath.normpath(absolute)
    # normpath keeps a leading "//" as a POSIX special case
    return "/" + normalized.lstrip("/")


def parent_path(path: str) -> str:
    return posixpath.dirname(normalize_path(path)) or "/"


def join_path(directory: str, name: str) -> str:
    return normalize_path(posixpath.join(directory, name))


class DirEntry(BaseModel):
    """Directory entry returned by ``readdir(with_file_types=True)``."""

    model_config = ConfigDict(frozen=True)

    name: str
    is_dir: bool
    size: int = 0

    def is_file(self) -> bool:
        return not self.is_dir

    def is_directory(self) -> bool:
        return self.is_dir


class WatcherSet:
    """Listener bookkeeping shared by filesystem implementations."""

    def __init__(self) -> None:
        self._watchers: list[tuple[str, WatchListener]] = []

    def add(self, path: str, listener: WatchListener) -> Callable[[], None]:
        entry = (normalize_path(path), listener)
        self._watchers.append(entry)

        def unsubscribe() -> None:
            if entry in self._watchers:
                self._watchers.remove(entry)

        return unsubscribe

    def notify(self, event_type: str, path: str) -> None:
        path = normalize_path(path)
        for watched, listener in list(self._watchers):
            if watched == "/" or path == watched or path.startswith(watched + "/"):
                listener(event_type, path)


class SandboxFileSystem(ABC):
    """Filesystem half of the sandbox substrate."""

    @overload
    async def readdir(self, path: str, with_file_types: Literal[False] = ...) -> list[str]: ...

    @overload
    async def readdir(self, path: str, with_file_types: Literal[True]) -> list[DirEntry]: ...

    @abstractmethod
    async def readdir(self, path: str, with_file_types: bool = False) -> list[str] | list[DirEntry]:
        """List a directory's entry names (or entries with types), sorted by name."""

    @abstractmethod
    async def read_file(self, path: str) -> str:
        """Read a file as UTF-8 text."""

    @abstractmethod
    async def write_file(self, path: str, content: str) -> None:
        """Create or overwrite a file. The parent directory must exist."""

    @abstractmethod
    async def rm(self, path: str, recursive: bool = False) -> None:
        """Remove a file, or a directory tree when ``recursive``."""

    @abstractmethod
    async def rename(self, src: str, dst: str) -> None:
        """Move a file or directory."""

    @abstractmethod
    async def mkdir(self, path: str, recursive: bool = False) -> None:
        """Create a directory (and missing parents when ``recursive``)."""

    @abstractmethod
    def watch(self, path: str, listener: WatchListener) -> Callable[[], None]:
        """Watch a path (recursively) for changes.

        Returns:
            Function that removes the listener
        """


class SandboxProcess(ABC):
    """A process running inside the sandbox."""

    @property
    @abstractmethod
    def output(self) -> AsyncIterator[str]:
        """Combined stdout/stderr as decoded text chunks."""

    @abstractmethod
    async def write_input(self, data: str) -> None:
        """Write to the process's stdin."""

    @abstractmethod
    async def wait(self) -> int:
        """Wait for the process to exit and return its exit code."""

    @abstractmethod
    def kill(self) -> None:
        """Terminate the process."""

    @abstractmethod
    def resize(self, cols: int, rows: int) -> None:
        """Resize the attached terminal."""


class Sandbox(ABC):
    """A filesystem plus the ability to spawn processes over it."""

    @property
    @abstractmethod
    def fs(self) -> SandboxFileSystem:
        """The sandbox filesystem."""

    @abstractmethod
    async def spawn(
        self,
        command: str,
        args: list[str] | None = None,
        *,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        output: bool = True,
        terminal: tuple[int, int] | None = None,
    ) -> SandboxProcess:
        """Start a process.

        Args:
            command: Executable name, e.g. "npm"
            args: Command arguments
            cwd: Sandbox working directory
            env: Extra environment variables
            output: Whether to capture the output stream
            terminal: Terminal size as (cols, rows)

        Raises:
            SandboxError: If the process cannot be started
        """
