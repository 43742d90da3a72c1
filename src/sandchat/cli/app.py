"""Main CLI application using Typer."""
import asyncio
import signal
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from ..chat import ChatError, ChatEvent, ChatEventType, ChatSession, ChatState, load_attachment
from ..credentials import EnvSecretStore
from ..llm.catalog import list_models
from ..llm.models import ModelParameters
from ..utils import configure_logging
from .providers import (
    PROVIDER_CREDENTIALS,
    get_chat_model,
    get_network_tools,
    get_sandbox_session,
    get_secrets,
)

# Create Typer app
app = typer.Typer(
    name="sandchat",
    help="Streaming chat with tool use against a local sandbox",
    no_args_is_help=True,
    add_completion=True,
)

# Console for rich output
console = Console()


@app.callback()
def main(
    log_level: str = typer.Option(
        "WARNING",
        "--log-level",
        "-l",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)"
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Render logs as JSON instead of console output"
    ),
):
    """Configure logging for every command."""
    configure_logging(level=log_level, json=json_logs)


@app.command()
def models(
    provider: str | None = typer.Option(
        None,
        "--provider",
        "-p",
        help="Only list models of one provider tag"
    )
):
    """List the models in the catalogue and their capabilities."""
    entries = list_models(provider)
    if not entries:
        console.print(f"[yellow]No models for provider: {provider}[/yellow]")
        raise typer.Exit(code=1)

    table = Table(title="Models")
    table.add_column("ID", style="bold cyan")
    table.add_column("Name")
    table.add_column("Provider")
    table.add_column("Capabilities")
    table.add_column("Tools", justify="center")
    table.add_column("Reasoning", justify="center")

    for model in entries:
        table.add_row(
            model.id,
            model.name,
            model.provider,
            ", ".join(c.value for c in model.capabilities),
            "yes" if model.tool_use else "-",
            "yes" if model.reasoning else "-",
        )

    console.print(table)


@app.command()
def health():
    """Check which provider API keys are configured."""
    secrets = get_secrets()
    for name in PROVIDER_CREDENTIALS:
        variable = EnvSecretStore.env_var_for(name)
        if secrets.get_api_key(name):
            console.print(f"[green]+[/green] {name} ({variable}): SET")
        else:
            console.print(f"[yellow]![/yellow] {name} ({variable}): NOT SET")


def _print_error(error: ChatError) -> None:
    console.print(f"\n[red]{error.message}[/red]")


class StreamRenderer:
    """Prints the growth of assistant messages as snapshots arrive."""

    def __init__(self, console: Console):
        self.console = console
        self._content: dict[str, int] = {}
        self._reasoning: dict[str, int] = {}
        self._tool_calls: dict[str, int] = {}

    def __call__(self, event: ChatEvent | None, state: ChatState) -> None:
        if event is None:
            return
        if event.type is ChatEventType.MESSAGE and event.data.role == "assistant":
            self._render_message(event.data)
        elif event.type is ChatEventType.SOURCE:
            title = event.data.get("title") or event.data.get("url", "")
            self.console.print(f"\n[dim]source: {title}[/dim]", highlight=False)
        elif event.type is ChatEventType.STREAMING and event.data is False:
            self.console.print()
            if state.usage is not None:
                self.console.print(f"[dim]{state.usage.total_tokens} tokens[/dim]")

    def _render_message(self, message) -> None:
        reasoning = message.reasoning or ""
        seen = self._reasoning.get(message.id, 0)
        if len(reasoning) > seen:
            self.console.print(reasoning[seen:], style="dim italic", end="", highlight=False)
            self._reasoning[message.id] = len(reasoning)

        for record in message.tool_calls[self._tool_calls.get(message.id, 0):]:
            status = "failed" if isinstance(record.result, dict) and record.result.get("success") is False else "ok"
            self.console.print(f"\n[magenta]tool[/magenta] {record.tool_name}: {status}", highlight=False)
        self._tool_calls[message.id] = len(message.tool_calls)

        content = message.text
        seen = self._content.get(message.id, 0)
        if len(content) > seen:
            self.console.print(content[seen:], end="", markup=False, highlight=False)
            self._content[message.id] = len(content)


@app.command()
def chat(
    prompt: str | None = typer.Argument(
        None,
        help="Send one message and exit (interactive when omitted)"
    ),
    model_id: str | None = typer.Option(
        None,
        "--model",
        "-m",
        help="Model id (see `sandchat models`)"
    ),
    workspace: Path = typer.Option(
        Path("workspace"),
        "--workspace",
        "-w",
        file_okay=False,
        dir_okay=True,
        help="Directory the sandbox tools operate on"
    ),
    attach: list[Path] = typer.Option(
        [],
        "--attach",
        "-a",
        exists=True,
        dir_okay=False,
        help="File to attach to the first message (repeatable)"
    ),
    temperature: float | None = typer.Option(
        None,
        "--temperature",
        "-t",
        min=0.0,
        max=2.0,
        help="Sampling temperature"
    ),
    max_tokens: int | None = typer.Option(
        None,
        "--max-tokens",
        min=1,
        help="Maximum tokens per response"
    ),
    system_prompt_file: Path | None = typer.Option(
        None,
        "--system-prompt-file",
        exists=True,
        dir_okay=False,
        help="File holding a custom system prompt"
    ),
):
    """Chat with a model that can use the sandbox and search tools."""
    async def _chat():
        secrets = get_secrets()
        model = get_chat_model(model_id, console)

        parameters = ModelParameters()
        updates = {}
        if temperature is not None:
            updates["temperature"] = temperature
        if max_tokens is not None:
            updates["max_tokens"] = max_tokens
        if system_prompt_file is not None:
            updates["system_prompt"] = system_prompt_file.read_text(encoding="utf-8")
        parameters = parameters.model_copy(update=updates)

        network_tools, http_client = get_network_tools(secrets, console)
        session = ChatSession(
            secrets,
            sandbox_session=get_sandbox_session(workspace),
            network_tools=network_tools,
            model=model,
            parameters=parameters,
            on_warning=lambda text: console.print(f"[yellow]{text}[/yellow]"),
            on_error=_print_error,
        )
        session.subscribe(StreamRenderer(console))

        for path in attach:
            session.add_attachment(load_attachment(path))

        loop = asyncio.get_running_loop()

        async def send(text: str) -> None:
            session.set_input_value(text)
            # Ctrl-C stops the current response instead of the program
            loop.add_signal_handler(signal.SIGINT, session.stop_streaming)
            try:
                console.print("[bold green]Assistant:[/bold green] ", end="")
                await session.send_message()
            finally:
                loop.remove_signal_handler(signal.SIGINT)

        try:
            if prompt is not None:
                await send(prompt)
                return

            console.print(f"[bold cyan]sandchat[/bold cyan] [dim]{model.name} ({model.provider})[/dim]")
            console.print("[dim]Type /exit to leave, /clear to reset the conversation[/dim]\n")

            while True:
                try:
                    user_input = console.input("[bold yellow]You:[/bold yellow] ")
                except (KeyboardInterrupt, EOFError):
                    console.print("\n[dim]Goodbye![/dim]")
                    break

                command = user_input.strip().lower()
                if command in ("/exit", "/quit"):
                    console.print("[dim]Goodbye![/dim]")
                    break
                if command == "/clear":
                    session.clear_chat()
                    console.print("[dim]Conversation cleared[/dim]")
                    continue
                if not user_input.strip() and not session.state.attachments:
                    continue

                await send(user_input)
                console.print()

        finally:
            await session.close()
            if http_client is not None:
                await http_client.aclose()

    asyncio.run(_chat())


if __name__ == "__main__":
    app()
