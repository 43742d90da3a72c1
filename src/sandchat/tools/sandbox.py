"""Filesystem and process tools bound to one sandbox session.

Tool names and parameter names are part of the conversation contract:
transcripts refer to them by name, so they must not be renamed. Every tool
reports failures as ``{"success": False, "error": ...}`` instead of raising.
"""

from abc import abstractmethod
from collections.abc import AsyncIterator
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field

from ..errors import SandboxError
from ..sandbox import DirEntry, SandboxFileSystem, SandboxSession, normalize_path
from ..sandbox.base import join_path, parent_path
from .base import BaseTool, NoParams

logger = structlog.get_logger(__name__)


def _failure(error: Exception) -> dict[str, Any]:
    return {"success": False, "error": getattr(error, "message", None) or str(error)}


async def _walk(fs: SandboxFileSystem, directory: str) -> AsyncIterator[tuple[str, DirEntry]]:
    """Yield (path, entry) for everything below a directory, depth first.

    Unreadable subdirectories are skipped; an unreadable root raises.
    """
    for entry in await fs.readdir(directory, with_file_types=True):
        path = join_path(directory, entry.name)
        yield path, entry
        if entry.is_dir:
            try:
                async for item in _walk(fs, path):
                    yield item
            except SandboxError as e:
                logger.debug("walk_skipped_directory", path=path, error=str(e))


class SandboxTool(BaseTool):
    """Base for tools acting on a sandbox session.

    ``run`` wraps ``handle`` so each tool call is caught on its own.
    """

    def __init__(self, session: SandboxSession):
        self._session = session

    @property
    def fs(self) -> SandboxFileSystem:
        return self._session.fs

    async def run(self, params: Any) -> Any:
        try:
            return await self.handle(params)
        except Exception as e:
            logger.info("sandbox_tool_failed", tool=self.name, error=str(e))
            return _failure(e)

    @abstractmethod
    async def handle(self, params: Any) -> Any:
        """Perform the operation; exceptions become failure payloads."""


# Parameter models


class PathParams(BaseModel):
    path: str = Field(description="The path to the file or directory")


class FileContentParams(BaseModel):
    path: str = Field(description="The path to the file")
    content: str = Field(description="The content to write")


class TransferParams(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_: str = Field(alias="from", description="Source path")
    to: str = Field(description="Destination path")


class DirectoryParams(BaseModel):
    path: str = Field(description="The path to the directory")
    recursive: bool = Field(default=True)


class SearchParams(BaseModel):
    root: str = Field(default="/", description="Directory to search from")
    query: str = Field(description="Case-insensitive substring to search for")


class RootParams(BaseModel):
    root: str = Field(default="/", description="Directory to aggregate from")


class TerminalSize(BaseModel):
    cols: int | None = None
    rows: int | None = None


class SpawnOptions(BaseModel):
    cwd: str | None = Field(default=None, description="Working directory for the process")
    env: dict[str, str | int | bool] | None = Field(
        default=None,
        description="Environment variables for the process"
    )
    output: bool | None = Field(
        default=None,
        description="Whether to enable output stream (default true)"
    )
    terminal: TerminalSize | None = Field(default=None, description="Terminal size options")


class SpawnParams(BaseModel):
    command: str = Field(description="The command to run, e.g. 'npm' or 'yarn'")
    args: list[str] = Field(default_factory=list, description="Arguments for the command")
    options: SpawnOptions = Field(default_factory=SpawnOptions)


class ProcessParams(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    process_id: str = Field(alias="processId", description="The process id returned by spawn_process")


class ResizeParams(ProcessParams):
    cols: int = Field(description="Number of columns for the terminal")
    rows: int = Field(description="Number of rows for the terminal")


# Filesystem tools


class ReadRootDirectoryTool(SandboxTool):
    name = "read_root_directory"
    description = "Read the contents of the root directory"
    Params = NoParams

    async def handle(self, params: NoParams) -> list[str]:
        return await self.fs.readdir("/")


class ReadDirectoryTool(SandboxTool):
    name = "read_directory"
    description = "Read the contents of a directory"
    Params = PathParams

    async def handle(self, params: PathParams) -> list[str]:
        return await self.fs.readdir(params.path)


class ReadFileTool(SandboxTool):
    name = "read_file"
    description = "Read the contents of a file as text"
    Params = PathParams

    async def handle(self, params: PathParams) -> str:
        return await self.fs.read_file(params.path)


class WriteFileTool(SandboxTool):
    name = "write_file"
    description = "Write content to a file (overwrites if exists)"
    Params = FileContentParams

    async def handle(self, params: FileContentParams) -> dict[str, Any]:
        path = normalize_path(params.path)
        async with self._session.locked(path):
            await self.fs.mkdir(parent_path(path), recursive=True)
            await self.fs.write_file(path, params.content)
        return {"success": True}


class AppendFileTool(SandboxTool):
    name = "append_file"
    description = "Append content to a file"
    Params = FileContentParams

    async def handle(self, params: FileContentParams) -> dict[str, Any]:
        path = normalize_path(params.path)
        async with self._session.locked(path):
            try:
                previous = await self.fs.read_file(path)
            except SandboxError:
                previous = ""
            await self.fs.write_file(path, previous + params.content)
        return {"success": True}


class DeleteFileTool(SandboxTool):
    name = "delete_file"
    description = "Delete a file"
    Params = PathParams

    async def handle(self, params: PathParams) -> dict[str, Any]:
        async with self._session.locked(params.path):
            await self.fs.rm(params.path)
        return {"success": True}


class MoveFileTool(SandboxTool):
    name = "move_file"
    description = "Move (rename) a file or directory"
    Params = TransferParams

    async def handle(self, params: TransferParams) -> dict[str, Any]:
        async with self._session.locked(params.from_, params.to):
            await self.fs.rename(params.from_, params.to)
        return {"success": True}


class CopyFileTool(SandboxTool):
    name = "copy_file"
    description = "Copy a file"
    Params = TransferParams

    async def handle(self, params: TransferParams) -> dict[str, Any]:
        async with self._session.locked(params.to):
            content = await self.fs.read_file(params.from_)
            await self.fs.write_file(params.to, content)
        return {"success": True}


class ExistsTool(SandboxTool):
    name = "exists"
    description = "Check if a file or directory exists"
    Params = PathParams

    async def handle(self, params: PathParams) -> dict[str, bool]:
        path = normalize_path(params.path)
        if path == "/":
            return {"exists": True}
        try:
            entries = await self.fs.readdir(parent_path(path))
        except SandboxError:
            return {"exists": False}
        return {"exists": path.rsplit("/", 1)[1] in entries}


class MkdirTool(SandboxTool):
    name = "mkdir"
    description = "Create a directory"
    Params = DirectoryParams

    async def handle(self, params: DirectoryParams) -> dict[str, Any]:
        await self.fs.mkdir(params.path, recursive=params.recursive)
        return {"success": True}


class RmdirTool(SandboxTool):
    name = "rmdir"
    description = "Remove a directory"
    Params = DirectoryParams

    async def handle(self, params: DirectoryParams) -> dict[str, Any]:
        async with self._session.locked(params.path):
            await self.fs.rm(params.path, recursive=params.recursive)
        return {"success": True}


class SearchFilesTool(SandboxTool):
    name = "search_files"
    description = "Search for files by name (case-insensitive substring match)"
    Params = SearchParams

    async def handle(self, params: SearchParams) -> list[str]:
        query = params.query.lower()
        return [
            path
            async for path, entry in _walk(self.fs, normalize_path(params.root))
            if query in entry.name.lower()
        ]


class SearchContentTool(SandboxTool):
    name = "search_content"
    description = "Search for a string in all files (case-insensitive)"
    Params = SearchParams

    async def handle(self, params: SearchParams) -> list[str]:
        query = params.query.lower()
        matches = []
        async for path, entry in _walk(self.fs, normalize_path(params.root)):
            if entry.is_dir:
                continue
            try:
                content = await self.fs.read_file(path)
            except SandboxError:
                continue
            if query in content.lower():
                matches.append(path)
        return matches


class AggregateTool(SandboxTool):
    name = "aggregate"
    description = "Aggregate file and directory statistics recursively from a root directory"
    Params = RootParams

    async def handle(self, params: RootParams) -> dict[str, int]:
        stats = {"files": 0, "dirs": 0, "size": 0}
        async for _, entry in _walk(self.fs, normalize_path(params.root)):
            if entry.is_dir:
                stats["dirs"] += 1
            else:
                stats["files"] += 1
                stats["size"] += entry.size
        return stats


# Process tools


class SpawnProcessTool(SandboxTool):
    name = "spawn_process"
    description = "Spawn a process in the sandbox (returns a process id for later control)"
    Params = SpawnParams

    async def handle(self, params: SpawnParams) -> dict[str, Any]:
        options = params.options
        env = None
        if options.env is not None:
            env = {
                key: str(value).lower() if isinstance(value, bool) else str(value)
                for key, value in options.env.items()
            }
        terminal = None
        if options.terminal is not None and options.terminal.cols and options.terminal.rows:
            terminal = (options.terminal.cols, options.terminal.rows)

        managed = await self._session.spawn(
            params.command,
            params.args,
            cwd=options.cwd,
            env=env,
            output=options.output is not False,
            terminal=terminal,
        )
        return {"success": True, "processId": managed.process_id}


class KillProcessTool(SandboxTool):
    name = "kill_process"
    description = "Kill a running process by processId"
    Params = ProcessParams

    async def handle(self, params: ProcessParams) -> dict[str, Any]:
        if not self._session.kill(params.process_id):
            return {"success": False, "error": "Process not found"}
        return {"success": True}


class ResizeProcessTool(SandboxTool):
    name = "resize_process"
    description = "Resize the terminal for a running process (if attached)"
    Params = ResizeParams

    async def handle(self, params: ResizeParams) -> dict[str, Any]:
        managed = self._session.get_process(params.process_id)
        if managed is None:
            return {"success": False, "error": "Process not found"}
        managed.process.resize(params.cols, params.rows)
        return {"success": True}


SANDBOX_TOOL_TYPES: tuple[type[SandboxTool], ...] = (
    ReadRootDirectoryTool,
    ReadDirectoryTool,
    ReadFileTool,
    WriteFileTool,
    AppendFileTool,
    DeleteFileTool,
    MoveFileTool,
    CopyFileTool,
    ExistsTool,
    MkdirTool,
    RmdirTool,
    SearchFilesTool,
    SearchContentTool,
    AggregateTool,
    SpawnProcessTool,
    KillProcessTool,
    ResizeProcessTool,
)


def create_sandbox_tools(session: SandboxSession) -> list[SandboxTool]:
    """Create every sandbox tool bound to one session."""
    return [tool_type(session) for tool_type in SANDBOX_TOOL_TYPES]
