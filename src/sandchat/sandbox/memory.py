"""Dict-backed sandbox, used for tests and for chats without a workspace."""

from collections.abc import Callable

from ..errors import SandboxError
from .base import (
    DirEntry,
    Sandbox,
    SandboxFileSystem,
    SandboxProcess,
    WatcherSet,
    WatchListener,
    join_path,
    normalize_path,
    parent_path,
)


class InMemoryFileSystem(SandboxFileSystem):
    """Filesystem held in two structures: file contents by path and a set of directories."""

    def __init__(self, files: dict[str, str] | None = None):
        self._files: dict[str, str] = {}
        self._dirs: set[str] = {"/"}
        self._watchers = WatcherSet()
        for path, content in (files or {}).items():
            path = normalize_path(path)
            self._make_parents(path)
            self._files[path] = content

    def _make_parents(self, path: str) -> None:
        parent = parent_path(path)
        while parent not in self._dirs:
            self._dirs.add(parent)
            parent = parent_path(parent)

    def _children(self, directory: str) -> list[str]:
        names = {
            p.rsplit("/", 1)[1]
            for p in (*self._files, *self._dirs)
            if p != "/" and parent_path(p) == directory
        }
        return sorted(names)

    def _require_parent(self, path: str, syscall: str) -> None:
        if parent_path(path) not in self._dirs:
            raise SandboxError(f"ENOENT: no such file or directory, {syscall} '{path}'")

    async def readdir(self, path: str, with_file_types: bool = False) -> list[str] | list[DirEntry]:
        path = normalize_path(path)
        if path not in self._dirs:
            if path in self._files:
                raise SandboxError(f"ENOTDIR: not a directory, scandir '{path}'")
            raise SandboxError(f"ENOENT: no such file or directory, scandir '{path}'")

        names = self._children(path)
        if not with_file_types:
            return names

        entries = []
        for name in names:
            child = join_path(path, name)
            is_dir = child in self._dirs
            size = 0 if is_dir else len(self._files[child].encode("utf-8"))
            entries.append(DirEntry(name=name, is_dir=is_dir, size=size))
        return entries

    async def read_file(self, path: str) -> str:
        path = normalize_path(path)
        if path in self._dirs:
            raise SandboxError(f"EISDIR: illegal operation on a directory, read '{path}'")
        if path not in self._files:
            raise SandboxError(f"ENOENT: no such file or directory, open '{path}'")
        return self._files[path]

    async def write_file(self, path: str, content: str) -> None:
        path = normalize_path(path)
        if path in self._dirs:
            raise SandboxError(f"EISDIR: illegal operation on a directory, open '{path}'")
        self._require_parent(path, "open")
        created = path not in self._files
        self._files[path] = content
        self._watchers.notify("rename" if created else "change", path)

    async def rm(self, path: str, recursive: bool = False) -> None:
        path = normalize_path(path)
        if path in self._files:
            del self._files[path]
        elif path in self._dirs:
            if path == "/":
                raise SandboxError("EPERM: operation not permitted, rm '/'")
            if not recursive:
                raise SandboxError(f"EISDIR: path is a directory, rm '{path}'")
            prefix = path + "/"
            self._files = {p: c for p, c in self._files.items() if not p.startswith(prefix)}
            self._dirs = {d for d in self._dirs if d != path and not d.startswith(prefix)}
        else:
            raise SandboxError(f"ENOENT: no such file or directory, rm '{path}'")
        self._watchers.notify("rename", path)

    async def rename(self, src: str, dst: str) -> None:
        src, dst = normalize_path(src), normalize_path(dst)
        if src not in self._files and src not in self._dirs:
            raise SandboxError(f"ENOENT: no such file or directory, rename '{src}' -> '{dst}'")
        self._require_parent(dst, "rename")

        if src in self._files:
            self._files[dst] = self._files.pop(src)
        else:
            if dst == src or dst.startswith(src + "/"):
                raise SandboxError(f"EINVAL: invalid argument, rename '{src}' -> '{dst}'")
            prefix = src + "/"
            self._files = {
                (dst + p[len(src):] if p.startswith(prefix) else p): c
                for p, c in self._files.items()
            }
            self._dirs = {
                dst + d[len(src):] if d == src or d.startswith(prefix) else d
                for d in self._dirs
            }
        self._watchers.notify("rename", src)
        self._watchers.notify("rename", dst)

    async def mkdir(self, path: str, recursive: bool = False) -> None:
        path = normalize_path(path)
        if path in self._files:
            raise SandboxError(f"EEXIST: file already exists, mkdir '{path}'")
        if path in self._dirs:
            if recursive:
                return
            raise SandboxError(f"EEXIST: file already exists, mkdir '{path}'")
        if recursive:
            self._make_parents(path)
        else:
            self._require_parent(path, "mkdir")
        self._dirs.add(path)
        self._watchers.notify("rename", path)

    def watch(self, path: str, listener: WatchListener) -> Callable[[], None]:
        return self._watchers.add(path, listener)


class InMemorySandbox(Sandbox):
    """Sandbox with an in-memory filesystem and no process support."""

    def __init__(self, files: dict[str, str] | None = None):
        self._fs = InMemoryFileSystem(files)

    @property
    def fs(self) -> InMemoryFileSystem:
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
        raise SandboxError(f"Cannot spawn '{command}': the in-memory sandbox has no process support")
