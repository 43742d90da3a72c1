from collections.abc import Sequence

from ..sandbox import SandboxSession
from .base import BaseTool, ToolRegistry
from .sandbox import create_sandbox_tools


def build_tool_registry(
    network_tools: Sequence[BaseTool] = (),
    sandbox_session: SandboxSession | None = None,
) -> ToolRegistry:
    """Merge the network and sandbox tool namespaces for one turn.

    Args:
        network_tools: Stateless search tools
        sandbox_session: Session the sandbox tools are bound to (None omits them)

    Returns:
        Flat registry of every tool

    Raises:
        ToolNameCollisionError: If a name appears in both namespaces
    """
    network = ToolRegistry(list(network_tools))
    sandbox = ToolRegistry(create_sandbox_tools(sandbox_session) if sandbox_session else [])
    return ToolRegistry.merge(network, sandbox)
