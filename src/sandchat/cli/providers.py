"""Factory functions for the CLI.

Centralizes creation of the secret store, sandbox and tools from the
environment. Hides configuration details from command implementations.
"""

from pathlib import Path

import httpx
import typer
from rich.console import Console

from ..config import RAPIDAPI_CREDENTIAL, SEARCH_TIMEOUT_SECONDS
from ..credentials import EnvSecretStore, SecretStore
from ..llm.catalog import Model, default_model, get_model
from ..sandbox import LocalSandbox, SandboxSession
from ..tools.base import BaseTool
from ..tools.search import create_search_tools

# Default console for output
_console = Console()

PROVIDER_CREDENTIALS = ("OpenAI", "Groq", "Google", "Anthropic", "Mistral", RAPIDAPI_CREDENTIAL)


def get_secrets() -> SecretStore:
    """Create the secret store from environment variables and ``.env``."""
    return EnvSecretStore()


def get_chat_model(model_id: str | None, console: Console | None = None) -> Model:
    """Look up the model to chat with.

    Raises:
        SystemExit: If the id is not in the catalogue
    """
    con = console or _console
    if model_id is None:
        return default_model()
    try:
        return get_model(model_id)
    except KeyError as e:
        con.print(f"[red]Error: {e.args[0]}[/red]")
        raise typer.Exit(code=1)


def get_sandbox_session(workspace: Path) -> SandboxSession:
    """Create a sandbox session rooted at a local directory."""
    workspace.mkdir(parents=True, exist_ok=True)
    return SandboxSession(LocalSandbox(workspace))


def get_network_tools(
    secrets: SecretStore,
    console: Console | None = None,
) -> tuple[list[BaseTool], httpx.AsyncClient | None]:
    """Create the search tools when a RapidAPI key is configured.

    Returns:
        Tuple of (tools, HTTP client to close when done); ([], None) without a key

    Environment variables:
        RAPIDAPI_KEY: RapidAPI key for the search tools (optional)
    """
    con = console or _console
    api_key = secrets.get_api_key(RAPIDAPI_CREDENTIAL)
    if not api_key:
        con.print("[yellow]Warning: RAPIDAPI_KEY not set, search tools disabled[/yellow]")
        return [], None

    client = httpx.AsyncClient(timeout=SEARCH_TIMEOUT_SECONDS)
    return create_search_tools(client, api_key), client
