"""Agent commands — mechevolve agents list, memory, status, delete, review."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from mechevolve.cli.context import MechEvolveContext, run_command
from mechevolve.knowledge.patterns import PatternStore
from mechevolve.types import AgentStatus

app = typer.Typer(help="Inspect and manage an application's agents")
console = Console()

_STATUS_STYLE = {
    "active": "bold green",
    "learning": "cyan",
    "inactive": "dim",
    "error": "bold red",
}


async def _factory():
    engine = await MechEvolveContext.get().ensure_engine()
    return engine.factory


@app.command("list")
def list_agents(
    application_id: str = typer.Argument(help="Application ID"),
    all_: bool = typer.Option(False, "--all", "-a", help="Include inactive and failed agents"),
):
    """List agents and their performance."""

    async def _list():
        return await (await _factory()).list_agents(application_id, include_inactive=all_)

    agents = run_command(_list())
    if not agents:
        console.print("[dim]No agents yet. Run `mechevolve analyze` first.[/dim]")
        return

    table = Table(title=f"Agents — {application_id}")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Name", style="white")
    table.add_column("Role", style="blue")
    table.add_column("Tier", justify="right")
    table.add_column("Status")
    table.add_column("Suggested", justify="right", style="yellow")
    table.add_column("Success", justify="right", style="green")
    table.add_column("Patterns", justify="right")

    for a in agents:
        style = _STATUS_STYLE.get(a.status.value, "white")
        table.add_row(
            a.id,
            a.name,
            a.role,
            str(a.tier),
            f"[{style}]{a.status.value}[/{style}]",
            str(a.performance.suggestions_generated),
            f"{a.performance.success_rate:.0%}",
            str(len(a.memory.patterns)),
        )
    console.print(table)


@app.command("memory")
def memory(
    application_id: str = typer.Argument(help="Application ID"),
    agent_id: str = typer.Argument(help="Agent ID"),
):
    """Show what an agent has learned."""

    async def _get():
        return await (await _factory()).get_agent(application_id, agent_id)

    agent = run_command(_get())
    console.print(f"[bold]{agent.name}[/bold] ({agent.role}) — {agent.purpose}")

    table = Table(title="Patterns")
    table.add_column("Pattern", style="cyan")
    table.add_column("Seen", justify="right")
    table.add_column("Confidence", justify="right", style="green")
    table.add_column("Last seen", style="dim")
    for p in PatternStore.top(agent.memory, 20):
        table.add_row(
            p.pattern, str(p.frequency), f"{p.confidence:.2f}",
            p.last_seen.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)

    for label, items in (("Successes", agent.memory.successes), ("Failures", agent.memory.failures)):
        if items:
            console.print(f"\n[bold]{label}[/bold]")
            for item in items[-5:]:
                console.print(f"  - {item}")


@app.command("status")
def set_status(
    application_id: str = typer.Argument(help="Application ID"),
    agent_id: str = typer.Argument(help="Agent ID"),
    status: AgentStatus = typer.Argument(help="New status"),
):
    """Move an agent to another status."""

    async def _set():
        return await (await _factory()).set_status(application_id, agent_id, status)

    agent = run_command(_set())
    console.print(f"[green]{agent.name} is now {agent.status.value}[/green]")


@app.command("delete")
def delete(
    application_id: str = typer.Argument(help="Application ID"),
    agent_id: str = typer.Argument(help="Agent ID"),
):
    """Delete one agent."""

    async def _delete():
        await (await _factory()).delete_agent(application_id, agent_id)

    run_command(_delete())
    console.print(f"[yellow]Deleted agent {agent_id}[/yellow]")


@app.command("review")
def review(application_id: str = typer.Argument(help="Application ID")):
    """Promote learning agents with a good track record."""

    async def _review():
        return await (await _factory()).review_performance(application_id)

    promoted = run_command(_review())
    if not promoted:
        console.print("[dim]No agents ready for promotion.[/dim]")
        return
    for agent in promoted:
        console.print(f"[green]Promoted {agent.name} to active[/green]")


@app.command("ecosystem")
def ecosystem(application_id: str = typer.Argument(help="Application ID")):
    """Summarize the agent population."""

    async def _snapshot():
        return await (await _factory()).get_ecosystem(application_id)

    snapshot = run_command(_snapshot())
    console.print(f"[bold]{snapshot.agent_count}[/bold] agents for {application_id}")
    for role, count in sorted(snapshot.agent_types.items()):
        console.print(f"  {role}: {count}")
