"""Sandbox rooted in a real directory, with processes run as asyncio subprocesses.

Sandbox paths are resolved under the root directory and may not escape it.
Change notifications are delivered for mutations made through this API only.
"""

import asyncio
import os
import shutil
from collections.abc import AsyncIterator, Callable
from pathlib import Path

import structlog

from ..errors import SandboxError
from .base import (
    DirEntry,
    Sandbox,
    SandboxFileSystem,
    SandboxProcess,
    WatcherSet,
    WatchListener,
    normalize_path,
)

logger = structlog.get_logger(__name__)

_READ_CHUNK = 4096


def _os_error(e: OSError, syscall: str, path: str) -> SandboxError:
    code = {
        2: "ENOENT: no such file or directory",
        17: "EEXIST: file already exists",
        20: "ENOTDIR: not a directory",
        21: "EISDIR: illegal operation on a directory",
        39: "ENOTEMPTY: directory not empty",
    }.get(e.errno or 0, e.strerror or str(e))
    return SandboxError(f"{code}, {syscall} '{path}'")


class LocalFileSystem(SandboxFileSystem):
    """Filesystem jail over a host directory."""

    def __init__(self, root: Path):
        self._root = root.resolve()
        self._watchers = WatcherSet()

    @property
    def root(self) -> Path:
        return self._root

    def host_path(self, path: str, follow_symlinks: bool = True) -> Path:
        """Map a sandbox path to the host path under the root.

        With ``follow_symlinks=False`` only the parent directory is resolved,
        so a symlink as the last component names the link itself.

        Raises:
            SandboxError: If the path escapes the root (e.g. through a symlink)
        """
        relative = normalize_path(path).lstrip("/")
        if not relative:
            return self._root
        if follow_symlinks:
            host = (self._root / relative).resolve()
            checked = host
        else:
            unresolved = self._root / relative
            checked = unresolved.parent.resolve()
            host = checked / unresolved.name
        if checked != self._root and self._root not in checked.parents:
            raise SandboxError(f"EACCES: permission denied, '{path}' is outside the sandbox")
        return host

    async def readdir(self, path: str, with_file_types: bool = False) -> list[str] | list[DirEntry]:
        host = self.host_path(path)

        def _list() -> list[DirEntry]:
            entries = []
            for child in sorted(host.iterdir(), key=lambda p: p.name):
                is_dir = child.is_dir()
                entries.append(DirEntry(
                    name=child.name,
                    is_dir=is_dir,
                    size=0 if is_dir else child.stat().st_size,
                ))
            return entries

        try:
            entries = await asyncio.to_thread(_list)
        except OSError as e:
            raise _os_error(e, "scandir", path) from e
        if with_file_types:
            return entries
        return [entry.name for entry in entries]

    async def read_file(self, path: str) -> str:
        host = self.host_path(path)
        try:
            return await asyncio.to_thread(host.read_text, encoding="utf-8", errors="replace")
        except OSError as e:
            raise _os_error(e, "open", path) from e

    async def write_file(self, path: str, content: str) -> None:
        host = self.host_path(path)
        created = not host.exists()
        try:
            await asyncio.to_thread(host.write_text, content, encoding="utf-8")
        except OSError as e:
            raise _os_error(e, "open", path) from e
        self._watchers.notify("rename" if created else "change", path)

    async def rm(self, path: str, recursive: bool = False) -> None:
        host = self.host_path(path, follow_symlinks=False)
        if host == self._root:
            raise SandboxError("EPERM: operation not permitted, rm '/'")
        try:
            if not host.is_symlink() and host.is_dir():
                if not recursive:
                    raise SandboxError(f"EISDIR: path is a directory, rm '{path}'")
                await asyncio.to_thread(shutil.rmtree, host)
            else:
                await asyncio.to_thread(host.unlink)
        except OSError as e:
            raise _os_error(e, "rm", path) from e
        self._watchers.notify("rename", path)

    async def rename(self, src: str, dst: str) -> None:
        src_host = self.host_path(src, follow_symlinks=False)
        dst_host = self.host_path(dst, follow_symlinks=False)
        try:
            await asyncio.to_thread(os.replace, src_host, dst_host)
        except OSError as e:
            raise _os_error(e, "rename", src) from e
        self._watchers.notify("rename", src)
        self._watchers.notify("rename", dst)

    async def mkdir(self, path: str, recursive: bool = False) -> None:
        host = self.host_path(path)
        try:
            await asyncio.to_thread(host.mkdir, parents=recursive, exist_ok=recursive)
        except OSError as e:
            raise _os_error(e, "mkdir", path) from e
        self._watchers.notify("rename", path)

    def watch(self, path: str, listener: WatchListener) -> Callable[[], None]:
        return self._watchers.add(path, listener)


class LocalProcess(SandboxProcess):
    """Wrapper around an ``asyncio.subprocess.Process``."""

    def __init__(self, process: asyncio.subprocess.Process, terminal: tuple[int, int] | None = None):
        self._process = process
        self.terminal = terminal

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def output(self) -> AsyncIterator[str]:
        return self._read_output()

    async def _read_output(self) -> AsyncIterator[str]:
        stream = self._process.stdout
        if stream is None:
            return
        while chunk := await stream.read(_READ_CHUNK):
            yield chunk.decode("utf-8", errors="replace")

    async def write_input(self, data: str) -> None:
        if self._process.stdin is None:
            raise SandboxError("Process stdin is closed")
        self._process.stdin.write(data.encode("utf-8"))
        await self._process.stdin.drain()

    async def wait(self) -> int:
        return await self._process.wait()

    def kill(self) -> None:
        if self._process.returncode is None:
            self._process.kill()

    def resize(self, cols: int, rows: int) -> None:
        # Pipes have no terminal to resize; only the requested size is kept
        self.terminal = (cols, rows)


class LocalSandbox(Sandbox):
    """Sandbox over a host directory."""

    def __init__(self, root: str | Path):
        root = Path(root)
        root.mkdir(parents=True, exist_ok=True)
        self._fs = LocalFileSystem(root)

    @property
    def fs(self) -> LocalFileSystem:
        return self._fs

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
        workdir = self._fs.host_path(cwd or "/")
        process_env = {**os.environ, **(env or {})}
        if terminal is not None:
            process_env["COLUMNS"], process_env["LINES"] = str(terminal[0]), str(terminal[1])

        try:
            process = await asyncio.create_subprocess_exec(
                command,
                *(args or []),
                cwd=workdir,
                env=process_env,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE if output else asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.STDOUT if output else asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            raise SandboxError(f"spawn {command} failed: {e.strerror or e}") from e

        logger.info("process_spawned", command=command, pid=process.pid, cwd=str(workdir))
        return LocalProcess(process, terminal)
