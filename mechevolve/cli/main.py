"""mechevolve CLI — run the server and inspect what the agents learned."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from mechevolve.cli import agents
from mechevolve.cli.context import MechEvolveContext, run_command

console = Console()

app = typer.Typer(
    name="mechevolve",
    help="mechevolve -- agents that learn from every code change.",
    no_args_is_help=True,
)
app.add_typer(agents.app, name="agents", help="Inspect and manage agents")


@app.command("serve")
def serve(
    host: str = typer.Option(None, "--host", help="Bind address"),
    port: int = typer.Option(None, "--port", "-p", help="Port"),
):
    """Run the HTTP API."""
    import asyncio

    from mechevolve.serve import main

    asyncio.run(main(host=host, port=port))


@app.command("analyze")
def analyze(
    application_id: str = typer.Argument(help="Application ID"),
    project_path: Path = typer.Argument(Path("."), help="Project root"),
):
    """Analyze a project and create the agents it needs."""

    async def _analyze():
        engine = await MechEvolveContext.get().ensure_engine()
        return await engine.analyze_project(application_id, project_path)

    analysis, created = run_command(_analyze())
    console.print(
        f"[bold]{analysis.project_type}[/bold] "
        f"({', '.join(analysis.languages) or 'no known languages'}; "
        f"{analysis.complexity})"
    )
    if not created:
        console.print("[dim]No new agents; the population is already in place.[/dim]")
        return
    for agent in created:
        console.print(f"[green]+ {agent.name}[/green] [dim]tier {agent.tier}, {agent.role}[/dim]")


@app.command("reset")
def reset(
    application_id: str = typer.Argument(help="Application ID"),
    project_path: Path = typer.Argument(Path("."), help="Project root"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Delete every agent of an application and recreate them from a fresh analysis."""
    if not yes:
        typer.confirm(f"Delete all agents of {application_id}?", abort=True)

    async def _reset():
        engine = await MechEvolveContext.get().ensure_engine()
        analysis, _ = await engine.analyze_project(application_id, project_path, create=False)
        return await engine.factory.reset_agents(application_id, analysis)

    created = run_command(_reset())
    console.print(f"[green]Recreated {len(created)} agents for {application_id}[/green]")


@app.command("suggest")
def suggest(
    application_id: str = typer.Argument(help="Application ID"),
    limit: int = typer.Option(10, "--limit", "-n", help="Max suggestions"),
):
    """Show pending suggestions, most urgent first."""

    async def _suggest():
        engine = await MechEvolveContext.get().ensure_engine()
        return await engine.suggest(application_id, limit)

    suggestions = run_command(_suggest())
    if not suggestions:
        console.print("[dim]No pending suggestions.[/dim]")
        return

    table = Table(title=f"Suggestions — {application_id}")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("P", justify="right")
    table.add_column("Type", style="cyan")
    table.add_column("Agent", style="blue")
    table.add_column("Confidence", justify="right", style="green")
    table.add_column("Description", style="white")
    for s in suggestions:
        table.add_row(
            s.id, str(s.priority), s.type, s.agent_name,
            f"{s.confidence:.2f}", s.description[:80],
        )
    console.print(table)


@app.command("history")
def history(
    application_id: str = typer.Argument(help="Application ID"),
    limit: int = typer.Option(20, "--limit", "-n", help="Max evolutions"),
):
    """Show recently tracked changes."""

    async def _history():
        engine = await MechEvolveContext.get().ensure_engine()
        return await engine.history(application_id, limit)

    evolutions = run_command(_history())
    if not evolutions:
        console.print("[dim]No changes tracked yet.[/dim]")
        return

    table = Table(title=f"History — {application_id}")
    table.add_column("When", style="dim", no_wrap=True)
    table.add_column("Change", style="cyan")
    table.add_column("File", style="white")
    table.add_column("Status")
    table.add_column("Agents", justify="right")
    for e in evolutions:
        style = "red" if e.status.value == "analysis_failed" else "green"
        table.add_row(
            e.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            e.change_type,
            e.file_path,
            f"[{style}]{e.status.value}[/{style}]",
            str(e.agent_count),
        )
    console.print(table)


@app.command("metrics")
def metrics(
    application_id: str = typer.Argument(help="Application ID"),
    period: str = typer.Option("7d", "--period", help="Window such as 7d, 24h or 30m"),
):
    """Summarize tracked changes and outcomes."""

    async def _metrics():
        engine = await MechEvolveContext.get().ensure_engine()
        return await engine.metrics(application_id, period)

    data = run_command(_metrics())
    console.print(f"[bold]Changes[/bold] ({period}): {data['changes']['total']}")
    for change_type, count in sorted(data["changes"]["byType"].items()):
        console.print(f"  {change_type}: {count}")
    console.print(f"[bold]Suggestions[/bold]: {data['suggestions']['total']}")
    for status, count in sorted(data["suggestions"]["byStatus"].items()):
        console.print(f"  {status}: {count}")
    outcomes = data["outcomes"]
    console.print(
        f"[bold]Outcomes[/bold]: {outcomes['total']} "
        f"({outcomes['successRate']:.0%} successful)"
    )


@app.command("trends")
def trends(
    application_id: str = typer.Option(None, "--app", "-a", help="Application ID (default: all)"),
    period: str = typer.Option("30d", "--period", help="Window such as 30d, 24h or 30m"),
):
    """Show daily changes and improvements."""

    async def _trends():
        engine = await MechEvolveContext.get().ensure_engine()
        return await engine.trends(period, application_id)

    data = run_command(_trends())
    if not data["daily"]:
        console.print("[dim]No changes in this period.[/dim]")
        return

    table = Table(title=f"Trends — {data['applicationId']} ({period})")
    table.add_column("Day", style="dim", no_wrap=True)
    table.add_column("Changes", justify="right")
    table.add_column("Improvements", justify="right", style="green")
    table.add_column("Types", style="cyan")
    for day in data["daily"]:
        table.add_row(
            day["date"],
            str(day["totalChanges"]),
            str(day["totalImprovements"]),
            ", ".join(f"{t['type']} ({t['count']})" for t in day["byType"]),
        )
    console.print(table)

    summary = data["summary"]
    console.print(
        f"[bold]{summary['totalChanges']}[/bold] changes over {summary['totalDays']} days, "
        f"{summary['avgChangesPerDay']} per day, "
        f"{summary['totalImprovements']} improvements"
    )


@app.command("version")
def version_cmd():
    """Show mechevolve version."""
    from mechevolve import __version__
    console.print(f"mechevolve v{__version__}")
