import asyncio

import click
from rich.console import Console
from rich.table import Table

from collabflow.config import Config
from collabflow.constants import DEFAULT_MCP_PORT
from collabflow.logging import configure_logging, uvicorn_log_config
from collabflow.workflow.errors import WorkflowError
from collabflow.workflow.graph import WORKFLOW_STATES, display_name, phase_for_state

console = Console()

STATUS_COLORS = {
    "pending": "dim",
    "in_progress": "yellow",
    "completed": "green",
    "failed": "red",
    "brainstormed": "cyan",
    "complete": "green",
}


@click.group(invoke_without_command=True)
@click.pass_context
def main(ctx):
    """collabflow - collaborative workflow engine"""
    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = Config()
    except ValueError as e:
        ctx.obj["config_error"] = str(e)

    if ctx.invoked_subcommand is None:
        console.print("[bold]collabflow[/bold] - collaborative workflow engine\n")
        console.print("Run [cyan]collabflow serve[/cyan] to start the API server.")
        console.print("\nUse [cyan]collabflow --help[/cyan] for all commands.")


def _config(ctx) -> Config:
    if "config_error" in ctx.obj:
        console.print(f"[red]Error:[/red] {ctx.obj['config_error']}")
        raise SystemExit(1)
    return ctx.obj["config"]


@main.command()
@click.pass_context
def status(ctx):
    """Show configuration."""
    config = _config(ctx)
    console.print("[bold]collabflow status[/bold]")
    console.print()
    console.print(f"Database: [cyan]{config.sessions_db_path}[/cyan]")
    console.print(f"Default pipeline: {config.pipeline}")
    console.print(f"Max routing hops: {config.max_routing_hops}")
    console.print(f"Log level: {config.log_level}")


@main.command()
def states():
    """Print the workflow state graph."""
    table = Table(title="Workflow states")
    table.add_column("State", style="cyan")
    table.add_column("Skill")
    table.add_column("Phase", style="dim")
    table.add_column("Transitions")

    for node in WORKFLOW_STATES.values():
        transitions = []
        for t in node.transitions:
            if t.condition is None:
                transitions.append(t.to.value)
            elif t.condition.value is None:
                transitions.append(f"{t.to.value} [dim]if {t.condition.type}[/dim]")
            else:
                transitions.append(f"{t.to.value} [dim]if {t.condition.type}={t.condition.value}[/dim]")
        skill = node.skill or f"[dim]({display_name(node.id).lower()})[/dim]"
        table.add_row(node.id.value, skill, phase_for_state(node.id), "\n".join(transitions) or "-")

    console.print(table)


@main.command()
@click.argument("project")
@click.argument("session")
@click.pass_context
def show(ctx, project: str, session: str):
    """Show a session's state, work items and task batches."""
    config = _config(ctx)
    try:
        data = asyncio.run(_load_session(config, project, session))
    except WorkflowError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1) from None

    console.print(f"[bold]{project}/{session}[/bold]: {data['displayName']} ([cyan]{data['state']}[/cyan])")
    console.print(f"Phase: {data['phase']}  Pipeline: {data['pipeline']}  Current item: {data['currentItem']}")
    console.print()

    items = Table(title="Work items")
    items.add_column("#", justify="right")
    items.add_column("Title")
    items.add_column("Type")
    items.add_column("Status")
    for item in data["workItems"]:
        color = STATUS_COLORS.get(item["status"], "white")
        items.add_row(str(item["number"]), item["title"], item["type"], f"[{color}]{item['status']}[/{color}]")
    console.print(items)

    for batch in data["batches"]:
        color = STATUS_COLORS.get(batch["status"], "white")
        console.print(f"\n[bold]{batch['id']}[/bold] [{color}]{batch['status']}[/{color}]")
        for task in batch["tasks"]:
            task_color = STATUS_COLORS.get(task["status"], "white")
            console.print(f"  [{task_color}]{task['status']:<12}[/{task_color}] {task['id']}")


async def _load_session(config: Config, project: str, session: str) -> dict:
    from collabflow.server.runtime import Runtime

    runtime = Runtime(config=config)
    await runtime.connect()
    try:
        return await runtime.service.get_session(project, session)
    finally:
        await runtime.close()


@main.command()
@click.option("--host", default=None, help="Host to bind to")
@click.option("--port", default=None, type=int, help="Port to bind to")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
@click.pass_context
def serve(ctx, host: str | None, port: int | None, reload: bool):
    """Start the collabflow API server."""
    config = _config(ctx)
    host = host or config.host
    port = port or config.port

    import uvicorn

    console.print(f"[bold]collabflow server[/bold] starting on http://{host}:{port}")
    console.print("[dim]Press Ctrl+C to stop[/dim]")
    console.print()

    uvicorn.run(
        "collabflow.server.app:app",
        host=host,
        port=port,
        reload=reload,
        log_config=uvicorn_log_config(config.log_level),
    )


@main.command()
@click.option("--http", "use_http", is_flag=True, help="Use streamable HTTP instead of stdio")
@click.option("--host", default="127.0.0.1", help="Host to bind to (HTTP only)")
@click.option("--port", default=DEFAULT_MCP_PORT, help="Port to bind to (HTTP only)")
@click.pass_context
def mcp(ctx, use_http: bool, host: str, port: int):
    """Run the MCP tool server."""
    config = _config(ctx)
    configure_logging(config.log_level)

    from collabflow.mcp_server import run_http, run_stdio

    if use_http:
        asyncio.run(run_http(host=host, port=port))
    else:
        asyncio.run(run_stdio())


if __name__ == "__main__":
    main()
