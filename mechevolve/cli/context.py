"""CLI runtime context — bridges the sync CLI to the async engine."""

from __future__ import annotations

import asyncio
from typing import Any, Coroutine

import typer
from rich.console import Console

from mechevolve.config import settings
from mechevolve.events.bus import EventBus
from mechevolve.evolution.engine import EvolutionEngine
from mechevolve.exceptions import EvolveError


class MechEvolveContext:
    """Singleton that opens the engine on first use."""

    _instance: MechEvolveContext | None = None

    def __init__(self) -> None:
        self.event_bus = EventBus()
        self.engine: EvolutionEngine | None = None

    async def ensure_engine(self) -> EvolutionEngine:
        if self.engine is None:
            settings.workspace_dir.mkdir(parents=True, exist_ok=True)
            self.engine = await EvolutionEngine.open(settings.db_path, event_bus=self.event_bus)
        return self.engine

    @classmethod
    def get(cls) -> MechEvolveContext:
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance


def run_async(coro: Coroutine) -> Any:
    """Run an async coroutine from sync CLI code."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None

    if loop and loop.is_running():
        import concurrent.futures
        with concurrent.futures.ThreadPoolExecutor() as pool:
            return pool.submit(asyncio.run, coro).result()
    return asyncio.run(coro)


def run_command(coro: Coroutine) -> Any:
    """``run_async`` for commands: engine errors become a red message and exit 1."""
    try:
        return run_async(coro)
    except EvolveError as e:
        Console(stderr=True).print(f"[red]Error ({e.category}): {e}[/red]")
        raise typer.Exit(code=1) from e
