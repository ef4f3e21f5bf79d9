"""Evolution Engine — wires the components into the track/suggest/apply loop.

Tracking a change:

1. the ledger durably records the raw event and hands the analysis to
   exactly one caller; a retry that loses the claim gets the stored result
2. the matcher selects eligible agents whose triggers fit
3. each agent responds and learns in its own atomic update, concurrently
4. multi-agent responses are cross-annotated
5. responses and suggestions go to the ledger

A failing agent never fails the others. A failure to persist after the
raw event is durable marks the evolution ``analysis_failed`` and is
surfaced as a transient error.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import structlog

from mechevolve.agents.factory import FAILURE_COUNTER, AgentFactory
from mechevolve.agents.models import AgentRecord, ProjectAnalysis
from mechevolve.agents.store import AgentStore
from mechevolve.analysis.analyzer import CodebaseAnalyzer
from mechevolve.config import settings
from mechevolve.coordination.coordinator import coordinate
from mechevolve.events.bus import EventBus
from mechevolve.evolution.confidence import ConfidenceCalculator
from mechevolve.evolution.ledger import EvolutionLedger
from mechevolve.evolution.models import (
    AgentResponse,
    Application,
    ApplyRequest,
    ChangeEvent,
    Evolution,
    StoredSuggestion,
    TrackRequest,
    TrackResult,
)
from mechevolve.evolution.responder import Responder
from mechevolve.exceptions import AgentNotFoundError, InvalidRequestError, StoreError
from mechevolve.triggers.matcher import TriggerMatcher
from mechevolve.types import ApplicationId, utcnow

logger = structlog.get_logger()


class EvolutionEngine:
    def __init__(
        self,
        store: AgentStore,
        ledger: EvolutionLedger,
        factory: AgentFactory,
        event_bus: EventBus | None = None,
        matcher: TriggerMatcher | None = None,
        responder: Responder | None = None,
        calculator: ConfidenceCalculator | None = None,
        analyzer: CodebaseAnalyzer | None = None,
    ) -> None:
        self.store = store
        self.ledger = ledger
        self.factory = factory
        self.event_bus = event_bus or EventBus()
        self._matcher = matcher or TriggerMatcher(factory)
        self._responder = responder or Responder()
        self._calculator = calculator or ConfidenceCalculator()
        self._analyzer = analyzer or CodebaseAnalyzer()

    @classmethod
    async def open(
        cls, db_path: str | Path | None = None, event_bus: EventBus | None = None,
    ) -> EvolutionEngine:
        """Build an engine on one SQLite file and make sure its tables exist."""
        path = Path(db_path or settings.db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        bus = event_bus or EventBus()
        store = AgentStore(str(path))
        ledger = EvolutionLedger(str(path), store)
        await store.initialize()
        await ledger.initialize()
        return cls(store, ledger, AgentFactory(store, event_bus=bus), event_bus=bus)

    # ── Tracking ─────────────────────────────────────────────────

    async def track(self, request: TrackRequest | ChangeEvent) -> TrackResult:
        event = request if isinstance(request, ChangeEvent) else ChangeEvent.from_request(request)
        evolution_id, created = await self.ledger.track(event)

        if not created:
            previous = await self.ledger.get_evolution(evolution_id)
            if previous is not None and previous.application_id != event.application_id:
                raise InvalidRequestError(
                    f"Event id {evolution_id} already belongs to {previous.application_id}"
                )

        if not await self.ledger.claim(evolution_id):
            previous = await self.ledger.get_evolution(evolution_id)
            logger.info(
                "evolution_replayed",
                evolution_id=evolution_id,
                status=previous.status.value if previous else None,
            )
            return TrackResult(
                evolution_id=evolution_id,
                responses=previous.responses if previous else [],
                replayed=True,
            )

        try:
            agents = await self._matcher.match_agents(event.application_id, event)
            results = await asyncio.gather(*(self._respond(a, event) for a in agents))
            responses = coordinate([r for r in results if r is not None])
            await self.ledger.record_responses(evolution_id, responses)
        except StoreError as e:
            logger.error("evolution_analysis_failed", evolution_id=evolution_id, error=str(e))
            await self._mark_failed(evolution_id, str(e))
            raise

        logger.info(
            "evolution_tracked",
            evolution_id=evolution_id,
            application_id=event.application_id,
            change_type=event.change_type,
            matched=len(agents),
            responses=len(responses),
        )
        await self.event_bus.emit("evolution.tracked", {
            "evolution_id": evolution_id,
            "application_id": event.application_id,
            "file_path": event.file_path,
            "change_type": event.change_type,
            "responses": len(responses),
        }, source="evolution_engine")
        return TrackResult(evolution_id=evolution_id, responses=responses)

    async def _respond(self, agent: AgentRecord, event: ChangeEvent) -> AgentResponse | None:
        analysis = self._responder.analyze(agent, event)
        suggestions = self._responder.suggest(agent, event)
        now = utcnow()

        def learn(current: AgentRecord) -> tuple[float, str]:
            scored = self._calculator.score(current, event, len(suggestions), now=now)
            current.memory.context.pop(FAILURE_COUNTER, None)
            return scored

        try:
            _, (confidence, key) = await self.store.update(agent.id, learn)
        except AgentNotFoundError:
            logger.warning("agent_vanished", agent_id=agent.id, evolution_id=event.id)
            return None
        except StoreError as e:
            logger.warning("agent_response_failed", agent_id=agent.id, error=str(e))
            await self._count_failure(agent, str(e))
            return None

        return AgentResponse(
            agent_id=agent.id,
            agent_name=agent.name,
            change_event_id=event.id,
            analysis=analysis,
            suggestions=suggestions,
            confidence=confidence,
            pattern_key=key,
            timestamp=now,
        )

    async def _count_failure(self, agent: AgentRecord, reason: str) -> None:
        try:
            await self.factory.record_failure(agent.id, reason)
        except (AgentNotFoundError, StoreError) as e:
            logger.warning("agent_failure_not_recorded", agent_id=agent.id, error=str(e))

    async def _mark_failed(self, evolution_id: str, reason: str) -> None:
        try:
            await self.ledger.mark_failed(evolution_id, reason)
        except StoreError as e:
            logger.error("evolution_mark_failed_failed", evolution_id=evolution_id, error=str(e))

    # ── Ledger views ─────────────────────────────────────────────

    async def suggest(
        self, application_id: ApplicationId, limit: int | None = None,
    ) -> list[StoredSuggestion]:
        return await self.ledger.suggest(application_id, limit)

    async def history(
        self, application_id: ApplicationId, limit: int | None = None,
    ) -> list[Evolution]:
        return await self.ledger.history(application_id, limit)

    async def metrics(self, application_id: ApplicationId, period: str = "7d") -> dict[str, Any]:
        return await self.ledger.metrics(application_id, period)

    async def trends(
        self, period: str = "30d", application_id: ApplicationId | None = None,
    ) -> dict[str, Any]:
        return await self.ledger.trends(period, application_id)

    async def apply(self, request: ApplyRequest) -> Application | None:
        application_id = request.application_id or request.project_id
        if not application_id:
            raise InvalidRequestError("Missing required field(s): applicationId")

        application = await self.ledger.apply(
            request.suggestion_id, application_id, request.result,
        )
        if application is None:
            return None

        await self.event_bus.emit("evolution.applied", {
            "suggestion_id": application.suggestion_id,
            "application_id": application.application_id,
            "agent_id": application.agent_id,
            "success": application.outcome.success,
        }, source="evolution_engine")
        return application

    # ── Project analysis ─────────────────────────────────────────

    async def analyze_project(
        self, application_id: ApplicationId, project_path: str | Path, create: bool = True,
    ) -> tuple[ProjectAnalysis, list[AgentRecord]]:
        """Analyze a project tree and, unless ``create`` is off, create its agents."""
        analysis = await asyncio.to_thread(
            self._analyzer.analyze_project, application_id, project_path,
        )
        if not create:
            return analysis, []
        created = await self.factory.create_agents_from_analysis(analysis)
        logger.info(
            "project_analyzed",
            application_id=application_id,
            project_type=analysis.project_type,
            suggested=len(analysis.suggested_agents),
            created=len(created),
        )
        return analysis, created
