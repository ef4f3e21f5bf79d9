"""Shared test fixtures — temporary SQLite databases and analysis builders."""

from __future__ import annotations

import tempfile

import pytest
import pytest_asyncio

from mechevolve.agents.factory import AgentFactory
from mechevolve.agents.models import AgentSuggestion, ProjectAnalysis
from mechevolve.agents.store import AgentStore
from mechevolve.events.bus import EventBus
from mechevolve.evolution.engine import EvolutionEngine
from mechevolve.evolution.ledger import EvolutionLedger
from mechevolve.types import AgentPriority


@pytest.fixture
def db_path():
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        return f.name


@pytest_asyncio.fixture
async def store(db_path):
    s = AgentStore(db_path)
    await s.initialize()
    return s


@pytest.fixture
def bus():
    return EventBus()


@pytest_asyncio.fixture
async def factory(store, bus):
    return AgentFactory(store, event_bus=bus)


@pytest_asyncio.fixture
async def ledger(db_path, store):
    lg = EvolutionLedger(db_path, store)
    await lg.initialize()
    return lg


@pytest_asyncio.fixture
async def engine(db_path, bus):
    return await EvolutionEngine.open(db_path, event_bus=bus)


@pytest.fixture
def make_suggestion():
    def _make(
        name: str,
        tier: int = 2,
        triggers: list[str] | None = None,
        capabilities: list[str] | None = None,
        priority: AgentPriority = AgentPriority.IMPORTANT,
        role: str = "quality",
    ) -> AgentSuggestion:
        return AgentSuggestion(
            name=name,
            role=role,
            purpose=f"{name} purpose",
            triggers=triggers if triggers is not None else ["*.ts"],
            capabilities=capabilities if capabilities is not None else ["linting"],
            priority=priority,
            tier=tier,
        )
    return _make


@pytest.fixture
def make_analysis():
    def _make(application_id: str, suggestions: list[AgentSuggestion]) -> ProjectAnalysis:
        return ProjectAnalysis(
            application_id=application_id,
            project_type="backend-service",
            languages=["typescript"],
            suggested_agents=suggestions,
        )
    return _make
