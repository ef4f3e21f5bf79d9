"""mechevolve server — the HTTP API and the engine in one event loop."""

from __future__ import annotations

import asyncio
import logging

import uvicorn

from mechevolve.api.app import app, configure
from mechevolve.config import settings
from mechevolve.events.bus import EventBus
from mechevolve.evolution.engine import EvolutionEngine

_logger = logging.getLogger(__name__)


async def main(host: str | None = None, port: int | None = None) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings.workspace_dir.mkdir(parents=True, exist_ok=True)

    event_bus = EventBus()
    engine = await EvolutionEngine.open(settings.db_path, event_bus=event_bus)
    configure(engine)
    _logger.info("Evolution engine ready (db: %s)", settings.db_path)

    config = uvicorn.Config(
        app,
        host=host or settings.host,
        port=port or settings.port,
        log_level="warning",
    )
    server = uvicorn.Server(config)
    try:
        await server.serve()
    finally:
        configure(None)


if __name__ == "__main__":
    asyncio.run(main())
