"""Per-conversation sandbox session.

Owns the state the sandbox tools share: the table of spawned processes and
the per-path write locks. Closing the session kills every tracked process.
"""

import asyncio
import secrets
from collections import deque
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

import structlog

from .base import Sandbox, SandboxFileSystem, SandboxProcess, normalize_path

logger = structlog.get_logger(__name__)

_OUTPUT_BUFFER_CHUNKS = 256


@dataclass
class ManagedProcess:
    """A spawned process plus the task draining its output."""

    process_id: str
    command: str
    args: list[str]
    process: SandboxProcess
    output: deque[str] = field(default_factory=lambda: deque(maxlen=_OUTPUT_BUFFER_CHUNKS))
    exit_code: int | None = None
    drain_task: asyncio.Task | None = None


class SandboxSession:
    """Explicit owner of one sandbox's process table and path locks."""

    def __init__(self, sandbox: Sandbox):
        self._sandbox = sandbox
        self._processes: dict[str, ManagedProcess] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @property
    def sandbox(self) -> Sandbox:
        return self._sandbox

    @property
    def fs(self) -> SandboxFileSystem:
        return self._sandbox.fs

    @asynccontextmanager
    async def locked(self, *paths: str) -> AsyncIterator[None]:
        """Hold the write locks of several paths.

        Locks are taken in sorted order so two operations over the same
        pair of paths cannot deadlock. A path's lock is dropped once no
        operation holds or waits for it.
        """
        ordered = sorted({normalize_path(p) for p in paths})
        for path in ordered:
            self._lock_users[path] = self._lock_users.get(path, 0) + 1
        acquired: list[asyncio.Lock] = []
        try:
            for path in ordered:
                lock = self._locks.setdefault(path, asyncio.Lock())
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for path in ordered:
                self._lock_users[path] -= 1
                if not self._lock_users[path]:
                    del self._lock_users[path]
                    self._locks.pop(path, None)

    def held_lock_paths(self) -> list[str]:
        """Paths that currently have a lock held or awaited."""
        return sorted(self._locks)

    async def spawn(
        self,
        command: str,
        args: list[str] | None = None,
        *,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        output: bool = True,
        terminal: tuple[int, int] | None = None,
    ) -> ManagedProcess:
        """Spawn a process and track it under a new process id.

        Raises:
            SandboxError: If the sandbox cannot start the process
        """
        process = await self._sandbox.spawn(
            command, args, cwd=cwd, env=env, output=output, terminal=terminal
        )
        process_id = secrets.token_hex(6)
        managed = ManagedProcess(
            process_id=process_id,
            command=command,
            args=list(args or []),
            process=process,
        )
        managed.drain_task = asyncio.create_task(self._drain(managed))
        self._processes[process_id] = managed
        logger.info("process_tracked", process_id=process_id, command=command)
        return managed

    async def _drain(self, managed: ManagedProcess) -> None:
        async for chunk in managed.process.output:
            managed.output.append(chunk)
        managed.exit_code = await managed.process.wait()
        if self._processes.get(managed.process_id) is managed:
            del self._processes[managed.process_id]
        logger.debug("process_exited", process_id=managed.process_id, exit_code=managed.exit_code)

    def get_process(self, process_id: str) -> ManagedProcess | None:
        return self._processes.get(process_id)

    def process_ids(self) -> list[str]:
        return list(self._processes)

    def kill(self, process_id: str) -> bool:
        """Kill a tracked process and forget it.

        Returns:
            False if no process has this id
        """
        managed = self._processes.pop(process_id, None)
        if managed is None:
            return False
        managed.process.kill()
        logger.info("process_killed", process_id=process_id)
        return True

    async def close(self) -> None:
        """Kill every tracked process and wait for their output to drain."""
        tasks = []
        for process_id in list(self._processes):
            managed = self._processes[process_id]
            self.kill(process_id)
            if managed.drain_task is not None:
                tasks.append(managed.drain_task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
