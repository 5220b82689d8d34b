import asyncio
import json
import logging
from typing import List, Optional

import httpx
import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from .models.agent import AgentResult, ChatMessage, ContextScope, FinalAnswerStep, ToolCallStep
from .models.stream import StreamCallbacks, StreamError, ToolCallRecord
from .services.agent import VaultAgent
from .services.agentic_search import AgenticSearch
from .services.config import AppConfig, get_config
from .services.llm_client import LLMClientError, LMStudioClient
from .services.operation_log import OperationError
from .services.runtime import VaultRuntime, build_runtime

logger = logging.getLogger(__name__)
console = Console()

APP_HELP = """
vault-agent: a reversible LLM agent for a Markdown vault.

Every change the agent makes (create, rename, move, delete, edit) is recorded
as an undoable entry. The same tools are served over MCP so an external
LLM runtime can call them.

CORE WORKFLOW:
1. SERVE:  Run `vault-agent serve` to expose the vault tools on loopback.
2. ASK:    Run `vault-agent ask "<request>"` for one agent run.
3. REPL:   Run `vault-agent repl` to talk to the agent and /undo its actions.
4. UNDO:   Run `vault-agent undo` to revert the last action of a running server.
5. SEARCH: Run `vault-agent search "<question>"` for answers without tools.
"""

app = typer.Typer(name="vault-agent", help=APP_HELP, no_args_is_help=True)

REPL_HELP = "Commands: /undo, /history, /quit"


def _configure_logging(config: AppConfig, verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _runtime(model: Optional[str], active: Optional[str]) -> VaultRuntime:
    runtime = build_runtime(active_path=active)
    if model:
        runtime.llm.set_model(model)
    return runtime


def _print_result(result: AgentResult) -> None:
    for index, step in enumerate(result.steps, 1):
        if isinstance(step, ToolCallStep):
            colour = "green" if step.result.success else "red"
            console.print(
                f"[dim]{index}.[/dim] [cyan]{step.call.tool}[/cyan] "
                f"{json.dumps(step.call.params)[:120]}"
            )
            console.print(f"   [{colour}]{step.result.result.splitlines()[0] if step.result.result else ''}[/{colour}]")
        elif isinstance(step, FinalAnswerStep):
            console.print(f"[dim]{index}.[/dim] [cyan]final_answer[/cyan]")

    console.print(Panel(Markdown(result.answer), title="Answer", border_style="green"))
    if result.actions_performed:
        console.print("[bold]Actions:[/bold]")
        for action in result.actions_performed:
            console.print(f"  - {action}")
    if result.sources:
        console.print(f"[bold]Sources:[/bold] {', '.join(result.sources)}")


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Loopback address to bind (default from config)"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to listen on (default from config)"),
):
    """
    Run the MCP tool server.

    External LLM runtimes connect to http://<host>:<port>/mcp over MCP and
    call the vault tools. Use `vault-agent history` and `vault-agent undo`
    from another terminal to review and revert what they did.
    """
    from .rpc.server import run_server

    config = get_config()
    runtime = build_runtime(config)
    try:
        run_server(runtime.registry, runtime.operation_log, config, host=host, port=port)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1)


@app.command()
def ask(
    query: str = typer.Argument(..., help="What the agent should do"),
    scope: Optional[ContextScope] = typer.Option(None, "--scope", "-s", help="Context scope"),
    active: Optional[str] = typer.Option(None, "--active", "-a", help="Vault path of the open note"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Override the configured model"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Run the agent once and show its steps, actions and answer."""
    config = get_config()
    _configure_logging(config, verbose)
    runtime = _runtime(model, active)
    agent = VaultAgent(runtime.llm, runtime.registry, runtime.store, config.max_iterations)

    result = asyncio.run(agent.run(query, scope or config.default_scope))
    if json_output:
        print(json.dumps(result.model_dump(), default=str))
        return
    _print_result(result)


@app.command()
def search(
    query: str = typer.Argument(..., help="Question to answer from your notes"),
    scope: ContextScope = typer.Option(ContextScope.VAULT, "--scope", "-s", help="Context scope"),
    active: Optional[str] = typer.Option(None, "--active", "-a", help="Vault path of the open note"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Override the configured model"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Answer a question from matching notes without tool calls."""
    _configure_logging(get_config())
    runtime = _runtime(model, active)
    result = asyncio.run(AgenticSearch(runtime.llm, runtime.store).search(query, scope))

    if json_output:
        print(json.dumps(result.model_dump(), default=str))
        return
    for step in result.steps:
        console.print(f"[dim]{step.iteration}. {step.action}:[/dim] {step.reasoning}")
    console.print(Panel(Markdown(result.answer), title="Answer", border_style="green"))
    if result.sources:
        console.print(f"[bold]Sources:[/bold] {', '.join(result.sources)}")


@app.command()
def chat(
    message: str = typer.Argument(..., help="Message to send"),
    system: Optional[str] = typer.Option(None, "--system", help="System prompt"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Override the configured model"),
    previous: Optional[str] = typer.Option(None, "--previous", help="Continue from a response id"),
    with_tools: bool = typer.Option(
        False, "--with-tools", help="Let the model call the running tool server"
    ),
    show_reasoning: bool = typer.Option(False, "--reasoning", help="Print reasoning deltas"),
):
    """
    Stream a single-shot chat from LM Studio.

    With --with-tools the local tool server (see `serve`) is passed to the
    model as an ephemeral MCP integration.
    """
    config = get_config()
    _configure_logging(config)
    runtime = _runtime(model, None)
    if not isinstance(runtime.llm, LMStudioClient):
        console.print("[yellow]Streaming is only native on LM Studio; using a single reply.[/yellow]")

    integrations = None
    if with_tools:
        integrations = [
            {
                "type": "ephemeral_mcp",
                "server_label": "vault-agent",
                "server_url": config.rpc_url,
            }
        ]

    def on_tool_start(record: ToolCallRecord) -> None:
        console.print(f"\n[cyan]-> {record.tool}[/cyan]")

    def on_tool_success(record: ToolCallRecord) -> None:
        console.print(f"[green]<- {record.tool} ok[/green]")

    def on_tool_failure(reason: str, record: Optional[ToolCallRecord]) -> None:
        console.print(f"[red]<- {record.tool if record else 'tool'} failed: {reason}[/red]")

    def on_error(error: StreamError) -> None:
        console.print(f"\n[red]Stream error ({error.type}): {error.message}[/red]")

    callbacks = StreamCallbacks(
        on_message_delta=lambda text: console.print(text, end="", markup=False, highlight=False),
        on_reasoning_delta=(
            (lambda text: console.print(text, end="", style="dim", markup=False, highlight=False))
            if show_reasoning else None
        ),
        on_model_load_progress=lambda p: console.print(f"[dim]Loading model {p:.0%}[/dim]"),
        on_tool_call_start=on_tool_start,
        on_tool_call_success=on_tool_success,
        on_tool_call_failure=on_tool_failure,
        on_error=on_error,
    )

    try:
        result = asyncio.run(
            runtime.llm.chat_stream(
                message,
                system_prompt=system,
                callbacks=callbacks,
                previous_response_id=previous,
                integrations=integrations,
            )
        )
    except LLMClientError as e:
        console.print(f"\n[red]Error: {e.message}[/red]")
        raise typer.Exit(code=1)

    console.print()
    if result.stats:
        console.print(
            f"[dim]{result.stats.total_output_tokens} tokens, "
            f"{result.stats.tokens_per_second:.1f} tok/s[/dim]"
        )
    if result.response_id:
        console.print(f"[dim]response id: {result.response_id}[/dim]")


@app.command()
def repl(
    scope: Optional[ContextScope] = typer.Option(None, "--scope", "-s", help="Context scope"),
    active: Optional[str] = typer.Option(None, "--active", "-a", help="Vault path of the open note"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Override the configured model"),
):
    """Talk to the agent interactively; /undo reverts its last action."""
    config = get_config()
    _configure_logging(config)
    runtime = _runtime(model, active)
    agent = VaultAgent(runtime.llm, runtime.registry, runtime.store, config.max_iterations)
    asyncio.run(_repl(runtime, agent, scope or config.default_scope))


async def _repl(runtime: VaultRuntime, agent: VaultAgent, scope: ContextScope) -> None:
    history: List[ChatMessage] = []
    console.print(f"[bold blue]vault-agent[/bold blue] on {runtime.config.vault_path}")
    console.print(f"[dim]{REPL_HELP}[/dim]")

    while True:
        try:
            line = console.input("[bold]> [/bold]").strip()
        except (EOFError, KeyboardInterrupt):
            console.print()
            return
        if not line:
            continue

        if line in ("/quit", "/exit"):
            return
        if line == "/history":
            entries = runtime.operation_log.history()
            if not entries:
                console.print("[dim]Nothing to undo.[/dim]")
            for entry in entries:
                console.print(f"[dim]{entry.timestamp:%H:%M:%S}[/dim] {entry.description}")
            continue
        if line == "/undo":
            try:
                entry = await runtime.operation_log.undo()
            except OperationError as e:
                console.print(f"[red]Undo failed: {e.message}[/red]")
                continue
            except Exception as e:
                console.print(f"[red]Undo failed: {e}[/red]")
                continue
            console.print(f"[green]Undid: {entry.description}[/green]" if entry else "[dim]Nothing to undo.[/dim]")
            continue
        if line.startswith("/"):
            console.print(f"[yellow]Unknown command. {REPL_HELP}[/yellow]")
            continue

        result = await agent.run(line, scope, history)
        _print_result(result)
        history.append(ChatMessage(role="user", content=line))
        history.append(ChatMessage(role="assistant", content=result.answer))


def _server_client(config: AppConfig) -> httpx.Client:
    return httpx.Client(base_url=config.server_url, timeout=10.0)


def _call_server(method: str, path: str) -> dict:
    config = get_config()
    try:
        with _server_client(config) as client:
            response = client.request(method, path)
    except httpx.HTTPError as e:
        console.print(f"[red]Cannot reach tool server at {config.server_url}: {e}[/red]")
        raise typer.Exit(code=1)
    if response.status_code >= 400:
        detail = response.json().get("detail", response.text)
        console.print(f"[red]Error: {detail}[/red]")
        raise typer.Exit(code=1)
    return response.json()


@app.command()
def undo():
    """Revert the newest action recorded by a running `serve` process."""
    entry = _call_server("POST", "/undo")["undone"]
    if entry is None:
        console.print("[dim]Nothing to undo.[/dim]")
        return
    console.print(f"[green]Undid: {entry['description']}[/green]")


@app.command()
def history(json_output: bool = typer.Option(False, "--json", help="Output as JSON")):
    """List the undoable actions recorded by a running `serve` process."""
    entries = _call_server("GET", "/history")["entries"]
    if json_output:
        print(json.dumps(entries))
        return
    if not entries:
        console.print("[dim]Nothing to undo.[/dim]")
    for entry in entries:
        console.print(f"[dim]{entry['timestamp']}[/dim] {entry['description']}")


@app.command()
def tools(json_output: bool = typer.Option(False, "--json", help="Output as JSON")):
    """List the tools served to the agent and to RPC clients."""
    runtime = build_runtime()
    schemas = runtime.registry.schemas()
    if json_output:
        print(json.dumps([s.to_wire() for s in schemas]))
        return

    table = Table(title="Vault Tools")
    table.add_column("Name", style="cyan")
    table.add_column("Parameters", style="magenta")
    table.add_column("Description")
    for schema in schemas:
        params = [
            f"{name}{'*' if name in schema.input_schema.required else ''}"
            for name in schema.input_schema.properties
        ]
        table.add_row(schema.name, ", ".join(params), schema.description)
    console.print(table)


@app.command()
def models():
    """List models offered by the configured LLM backend."""
    runtime = build_runtime()
    try:
        names = asyncio.run(runtime.llm.list_models())
    except LLMClientError as e:
        console.print(f"[red]Cannot reach {runtime.config.llm_base_url}: {e.message}[/red]")
        raise typer.Exit(code=1)

    current = runtime.config.llm_model
    for name in names:
        marker = "[green]*[/green] " if name == current else "  "
        console.print(f"{marker}{name}")
    if not names:
        console.print("[dim]No models available.[/dim]")


if __name__ == "__main__":
    app()
