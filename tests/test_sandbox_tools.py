"""Unit tests for the sandbox filesystem and process tools."""
import asyncio
from collections.abc import AsyncIterator

import pytest

from sandchat.errors import ToolNameCollisionError
from sandchat.sandbox import InMemorySandbox, SandboxProcess, SandboxSession
from sandchat.sandbox.base import Sandbox
from sandchat.tools import BaseTool, ToolCall, ToolRegistry, build_tool_registry, create_sandbox_tools

SANDBOX_TOOL_NAMES = [
    "read_root_directory",
    "read_directory",
    "read_file",
    "write_file",
    "append_file",
    "delete_file",
    "move_file",
    "copy_file",
    "exists",
    "mkdir",
    "rmdir",
    "search_files",
    "search_content",
    "aggregate",
    "spawn_process",
    "kill_process",
    "resize_process",
]


class FakeProcess(SandboxProcess):
    """Process that prints one line and runs until killed."""

    def __init__(self):
        self.killed = asyncio.Event()
        self.sizes: list[tuple[int, int]] = []

    @property
    def output(self) -> AsyncIterator[str]:
        return self._output()

    async def _output(self):
        yield "ready\n"
        await self.killed.wait()

    async def write_input(self, data: str) -> None:
        pass

    async def wait(self) -> int:
        await self.killed.wait()
        return -9

    def kill(self) -> None:
        self.killed.set()

    def resize(self, cols: int, rows: int) -> None:
        self.sizes.append((cols, rows))


class FakeSandbox(Sandbox):
    """In-memory filesystem plus fake processes."""

    def __init__(self):
        self._inner = InMemorySandbox()
        self.spawned: list[dict] = []
        self.processes: list[FakeProcess] = []

    @property
    def fs(self):
        return self._inner.fs

    async def spawn(self, command, args=None, *, cwd=None, env=None, output=True, terminal=None):
        self.spawned.append({
            "command": command, "args": args, "cwd": cwd,
            "env": env, "output": output, "terminal": terminal,
        })
        process = FakeProcess()
        self.processes.append(process)
        return process


@pytest.fixture
def tools(sandbox_session) -> ToolRegistry:
    return ToolRegistry(create_sandbox_tools(sandbox_session))


async def call(registry: ToolRegistry, name: str, **arguments):
    result = await registry.require(name).execute(ToolCall(tool_name=name, arguments=arguments))
    return result.content


class TestToolSet:
    """Tests for the sandbox tool namespace."""

    def test_tool_names(self, tools):
        assert tools.names() == SANDBOX_TOOL_NAMES

    def test_specs_use_wire_parameter_names(self, tools):
        move = tools.require("move_file").to_llm_spec()
        assert set(move["parameters"]["properties"]) == {"from", "to"}
        kill = tools.require("kill_process").to_llm_spec()
        assert "processId" in kill["parameters"]["properties"]

    def test_name_collision_with_network_tools(self, sandbox_session):
        class Impostor(BaseTool):
            name = "read_file"
            description = "Shadows the sandbox tool"

            async def run(self, params):
                return None

        with pytest.raises(ToolNameCollisionError):
            build_tool_registry([Impostor()], sandbox_session)

    def test_registry_without_sandbox(self):
        assert len(build_tool_registry()) == 0


class TestFilesystemTools:
    """Tests for the filesystem tools over the in-memory sandbox."""

    async def test_read_root_directory(self, tools):
        assert await call(tools, "read_root_directory") == ["README.md", "src"]

    async def test_read_directory(self, tools):
        assert await call(tools, "read_directory", path="/src") == ["app.py"]

    async def test_read_file(self, tools):
        assert await call(tools, "read_file", path="/src/app.py") == "print('Hello')\n"

    async def test_read_missing_file(self, tools):
        assert await call(tools, "read_file", path="/x") == {
            "success": False,
            "error": "ENOENT: no such file or directory, open '/x'",
        }

    async def test_write_file_creates_parents(self, tools):
        assert await call(tools, "write_file", path="/docs/guide.md", content="# Guide") == {"success": True}
        assert await call(tools, "read_file", path="/docs/guide.md") == "# Guide"

    async def test_write_file_overwrites(self, tools):
        await call(tools, "write_file", path="/README.md", content="new")
        assert await call(tools, "read_file", path="/README.md") == "new"

    async def test_append_file(self, tools):
        await call(tools, "append_file", path="/README.md", content="\nMore")
        assert await call(tools, "read_file", path="/README.md") == "# Demo\nMore"

    async def test_append_creates_missing_file(self, tools):
        await call(tools, "append_file", path="/log.txt", content="line")
        assert await call(tools, "read_file", path="/log.txt") == "line"

    async def test_delete_file(self, tools):
        assert await call(tools, "delete_file", path="/README.md") == {"success": True}
        assert await call(tools, "exists", path="/README.md") == {"exists": False}

    async def test_move_file(self, tools):
        assert await call(tools, "move_file", **{"from": "/README.md", "to": "/docs.md"}) == {"success": True}
        assert await call(tools, "read_root_directory") == ["docs.md", "src"]

    async def test_copy_file(self, tools):
        await call(tools, "copy_file", **{"from": "/src/app.py", "to": "/main.py"})
        assert await call(tools, "read_file", path="/main.py") == "print('Hello')\n"
        assert await call(tools, "exists", path="/src/app.py") == {"exists": True}

    @pytest.mark.parametrize("path,expected", [
        ("/", True),
        ("/src", True),
        ("/src/app.py", True),
        ("/src/missing.py", False),
        ("/nowhere/file", False),
    ])
    async def test_exists(self, tools, path, expected):
        assert await call(tools, "exists", path=path) == {"exists": expected}

    async def test_mkdir_and_rmdir(self, tools):
        assert await call(tools, "mkdir", path="/a/b/c") == {"success": True}
        assert await call(tools, "exists", path="/a/b/c") == {"exists": True}
        assert await call(tools, "rmdir", path="/a") == {"success": True}
        assert await call(tools, "exists", path="/a") == {"exists": False}

    async def test_non_recursive_mkdir_needs_parent(self, tools):
        result = await call(tools, "mkdir", path="/x/y", recursive=False)
        assert result["success"] is False
        assert result["error"].startswith("ENOENT")

    async def test_search_files(self, tools):
        assert await call(tools, "search_files", query="APP") == ["/src/app.py"]
        assert await call(tools, "search_files", query="r") == ["/README.md", "/src"]

    async def test_search_files_from_subdirectory(self, tools):
        assert await call(tools, "search_files", root="/src", query=".py") == ["/src/app.py"]

    async def test_search_content(self, tools):
        assert await call(tools, "search_content", query="hello") == ["/src/app.py"]
        assert await call(tools, "search_content", query="nothing like this") == []

    async def test_aggregate(self, tools):
        assert await call(tools, "aggregate") == {"files": 2, "dirs": 1, "size": 21}

    async def test_aggregate_missing_root(self, tools):
        result = await call(tools, "aggregate", root="/missing")
        assert result["success"] is False

    async def test_invalid_arguments(self, tools):
        result = await tools.require("read_file").execute(ToolCall(tool_name="read_file", arguments={}))
        assert result.error
        assert result.content["success"] is False
        assert result.content["error"].startswith("Invalid arguments for read_file")

    async def test_failures_are_marked(self, tools):
        result = await tools.require("read_file").execute(ToolCall(tool_name="read_file", arguments={"path": "/x"}))
        assert result.error


class TestProcessTools:
    """Tests for spawn_process, kill_process and resize_process."""

    @pytest.fixture
    def fake_sandbox(self):
        return FakeSandbox()

    @pytest.fixture
    async def process_session(self, fake_sandbox):
        session = SandboxSession(fake_sandbox)
        yield session
        await session.close()

    @pytest.fixture
    def process_tools(self, process_session):
        return ToolRegistry(create_sandbox_tools(process_session))

    async def test_spawn_returns_process_id(self, process_tools, process_session, fake_sandbox):
        result = await call(process_tools, "spawn_process", command="npm", args=["run", "dev"])

        assert result["success"] is True
        managed = process_session.get_process(result["processId"])
        assert managed.command == "npm"
        assert managed.args == ["run", "dev"]
        assert fake_sandbox.spawned[0]["output"] is True

    async def test_spawn_options(self, process_tools, process_session, fake_sandbox):
        await call(
            process_tools,
            "spawn_process",
            command="node",
            options={
                "cwd": "/app",
                "env": {"DEBUG": True, "PORT": 3000, "NAME": "demo"},
                "output": False,
                "terminal": {"cols": 120, "rows": 40},
            },
        )

        spawned = fake_sandbox.spawned[0]
        assert spawned["cwd"] == "/app"
        assert spawned["env"] == {"DEBUG": "true", "PORT": "3000", "NAME": "demo"}
        assert spawned["output"] is False
        assert spawned["terminal"] == (120, 40)

    async def test_output_is_drained(self, process_tools, process_session):
        result = await call(process_tools, "spawn_process", command="npm")
        managed = process_session.get_process(result["processId"])
        await asyncio.sleep(0.01)
        assert list(managed.output) == ["ready\n"]

    async def test_kill_process(self, process_tools, process_session, fake_sandbox):
        process_id = (await call(process_tools, "spawn_process", command="npm"))["processId"]

        assert await call(process_tools, "kill_process", processId=process_id) == {"success": True}
        assert fake_sandbox.processes[0].killed.is_set()
        assert process_session.get_process(process_id) is None
        assert await call(process_tools, "kill_process", processId=process_id) == {
            "success": False,
            "error": "Process not found",
        }

    async def test_resize_process(self, process_tools, fake_sandbox):
        process_id = (await call(process_tools, "spawn_process", command="npm"))["processId"]
        result = await call(process_tools, "resize_process", processId=process_id, cols=100, rows=30)
        assert result == {"success": True}
        assert fake_sandbox.processes[0].sizes == [(100, 30)]

    async def test_resize_unknown_process(self, process_tools):
        result = await call(process_tools, "resize_process", processId="nope", cols=1, rows=1)
        assert result == {"success": False, "error": "Process not found"}

    async def test_close_kills_every_process(self, process_tools, process_session, fake_sandbox):
        for _ in range(3):
            await call(process_tools, "spawn_process", command="npm")
        await process_session.close()

        assert all(p.killed.is_set() for p in fake_sandbox.processes)
        assert process_session.process_ids() == []

    async def test_spawn_without_process_support(self, tools):
        result = await call(tools, "spawn_process", command="npm")
        assert result["success"] is False
        assert "no process support" in result["error"]


class TestPathLocks:
    """Tests for the per-path write locks."""

    async def test_locks_are_dropped_after_writes(self, tools, sandbox_session):
        for i in range(5):
            await call(tools, "write_file", path=f"/notes/{i}.txt", content="x")
        await call(tools, "move_file", **{"from": "/notes/0.txt", "to": "/notes/moved.txt"})

        assert sandbox_session.held_lock_paths() == []

    async def test_lock_survives_while_awaited(self, sandbox_session):
        order = []
        first_holds = asyncio.Event()
        release_first = asyncio.Event()

        async def first():
            async with sandbox_session.locked("/a"):
                first_holds.set()
                await release_first.wait()
                order.append("first")

        async def second():
            async with sandbox_session.locked("/b", "/a"):
                order.append("second")

        first_task = asyncio.create_task(first())
        await first_holds.wait()
        second_task = asyncio.create_task(second())
        await asyncio.sleep(0)

        assert sandbox_session.held_lock_paths() == ["/a"]
        release_first.set()
        await asyncio.gather(first_task, second_task)

        assert order == ["first", "second"]
        assert sandbox_session.held_lock_paths() == []
