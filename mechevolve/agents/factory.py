"""Agent Factory — turns a project analysis into a living agent population.

Creation is idempotent: agents are unique per ``(application, name)`` at
the store level, so re-running an analysis only adds what is missing.
Tier 2 is a limited population; suggestions beyond the cap are dropped
in analysis order. Duplicates and capped suggestions are logged, never
raised.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from mechevolve.agents.models import (
    AgentRecord,
    AgentUpdate,
    EcosystemSnapshot,
    ProjectAnalysis,
    new_agent_id,
)
from mechevolve.agents.specs import specification_for
from mechevolve.agents.state_machine import can_transition, check_transition
from mechevolve.agents.store import AgentStore, AgentTransaction
from mechevolve.config import settings
from mechevolve.exceptions import (
    AgentNotFoundError,
    CapacityLimitError,
    InvalidRequestError,
)
from mechevolve.types import (
    ELIGIBLE_STATUSES,
    AgentId,
    AgentStatus,
    ApplicationId,
)

if TYPE_CHECKING:
    from mechevolve.events.bus import EventBus

logger = logging.getLogger(__name__)

CAPPED_TIER = 2
FAILURE_COUNTER = "consecutive_failures"


class AgentFactory:
    """Creates, lists, edits and retires the agents of each application."""

    def __init__(
        self,
        store: AgentStore,
        event_bus: EventBus | None = None,
        tier2_cap: int | None = None,
        error_threshold: int | None = None,
        promotion_min_suggestions: int | None = None,
        promotion_min_success_rate: float | None = None,
    ) -> None:
        self._store = store
        self._bus = event_bus
        self._tier2_cap = settings.tier2_cap if tier2_cap is None else tier2_cap
        self._error_threshold = error_threshold or settings.agent_error_threshold
        self._promotion_min_suggestions = (
            settings.promotion_min_suggestions
            if promotion_min_suggestions is None else promotion_min_suggestions
        )
        self._promotion_min_success_rate = (
            settings.promotion_min_success_rate
            if promotion_min_success_rate is None else promotion_min_success_rate
        )

    # ── Creation ─────────────────────────────────────────────────

    async def create_agents_from_analysis(self, analysis: ProjectAnalysis) -> list[AgentRecord]:
        """Create the suggested agents that do not exist yet.

        Returns only the agents created by this call.
        """
        _validate(analysis)
        async with self._store.transaction() as tx:
            created = await self._create(tx, analysis)
        await self._announce(created)
        return created

    async def reset_agents(
        self, application_id: ApplicationId, analysis: ProjectAnalysis,
    ) -> list[AgentRecord]:
        """Delete every agent of the application and derive them afresh.

        Rows are deleted by application id without being read, so a
        corrupted agent document cannot block the reset.
        """
        _validate(analysis)
        if analysis.application_id != application_id:
            raise InvalidRequestError(
                f"Analysis is for {analysis.application_id}, not {application_id}"
            )
        async with self._store.transaction() as tx:
            removed = await tx.delete_application(application_id)
            created = await self._create(tx, analysis)
        logger.info(
            "Reset agents for %s: removed %d, created %d",
            application_id, removed, len(created),
        )
        await self._announce(created)
        return created

    async def _create(self, tx: AgentTransaction, analysis: ProjectAnalysis) -> list[AgentRecord]:
        application_id = analysis.application_id
        created: list[AgentRecord] = []
        capped = await tx.count_tier(application_id, CAPPED_TIER)

        for suggestion in analysis.suggested_agents:
            if suggestion.tier == CAPPED_TIER and capped >= self._tier2_cap:
                logger.info(
                    "Tier %d population for %s is full (%d); skipping %s",
                    CAPPED_TIER, application_id, self._tier2_cap, suggestion.name,
                )
                continue

            agent = AgentRecord(
                id=new_agent_id(application_id, suggestion.name),
                application_id=application_id,
                name=suggestion.name,
                role=suggestion.role,
                purpose=suggestion.purpose,
                triggers=list(suggestion.triggers),
                capabilities=list(suggestion.capabilities),
                priority=suggestion.priority,
                tier=suggestion.tier,
                status=AgentStatus.LEARNING,
                reasoning=suggestion.reasoning,
                specification=specification_for(suggestion),
            )
            if not await tx.insert_if_absent(agent):
                logger.debug("Agent %s already exists for %s", suggestion.name, application_id)
                continue

            if agent.tier == CAPPED_TIER:
                capped += 1
            created.append(agent)
            logger.info("Created agent %s (%s, tier %d)", agent.name, agent.role, agent.tier)

        snapshot = await tx.refresh_ecosystem(application_id)
        logger.info(
            "Created %d agents for %s (%d total)",
            len(created), application_id, snapshot.agent_count,
        )
        return created

    async def _announce(self, agents: list[AgentRecord]) -> None:
        if self._bus is None:
            return
        for agent in agents:
            await self._bus.emit("agent.created", {
                "agent_id": agent.id,
                "application_id": agent.application_id,
                "name": agent.name,
                "tier": agent.tier,
            }, source="agent_factory")

    # ── Queries ──────────────────────────────────────────────────

    async def get_active_agents(self, application_id: ApplicationId) -> list[AgentRecord]:
        """Agents that take part in matching: active or still learning."""
        return await self._store.list_agents(application_id, statuses=ELIGIBLE_STATUSES)

    async def list_agents(
        self, application_id: ApplicationId, include_inactive: bool = False,
    ) -> list[AgentRecord]:
        if include_inactive:
            return await self._store.list_agents(application_id)
        return await self.get_active_agents(application_id)

    async def get_agent(self, application_id: ApplicationId, agent_id: AgentId) -> AgentRecord:
        agent = await self._store.get(agent_id)
        if agent is None or agent.application_id != application_id:
            raise AgentNotFoundError(f"Agent {agent_id} not found for {application_id}")
        return agent

    async def get_ecosystem(self, application_id: ApplicationId) -> EcosystemSnapshot:
        snapshot = await self._store.get_ecosystem(application_id)
        return snapshot or EcosystemSnapshot(application_id=application_id)

    # ── Operator changes ─────────────────────────────────────────

    async def update_agent(
        self, application_id: ApplicationId, agent_id: AgentId, changes: AgentUpdate,
    ) -> AgentRecord:
        # the cap count and the write share one transaction
        async with self._store.transaction() as tx:
            agent = await tx.get(agent_id)
            if agent is None or agent.application_id != application_id:
                raise AgentNotFoundError(f"Agent {agent_id} not found for {application_id}")

            if changes.tier == CAPPED_TIER and agent.tier != CAPPED_TIER:
                capped = await tx.count_tier(application_id, CAPPED_TIER)
                if capped >= self._tier2_cap:
                    raise CapacityLimitError(
                        f"{application_id} already has {capped} tier {CAPPED_TIER} agents"
                    )

            if changes.status is not None:
                check_transition(agent.id, agent.status, changes.status)
                agent.status = changes.status
            for field in ("purpose", "triggers", "capabilities", "priority", "tier"):
                value = getattr(changes, field)
                if value is not None:
                    setattr(agent, field, value)

            await tx.save(agent)
            if changes.tier is not None:
                await tx.refresh_ecosystem(application_id)
        return agent

    async def set_status(
        self, application_id: ApplicationId, agent_id: AgentId, status: AgentStatus,
    ) -> AgentRecord:
        """Move an agent through the status state machine."""
        agent = await self.update_agent(application_id, agent_id, AgentUpdate(status=status))
        logger.info("Agent %s is now %s", agent.name, agent.status.value)
        return agent

    async def delete_agent(self, application_id: ApplicationId, agent_id: AgentId) -> None:
        await self.get_agent(application_id, agent_id)
        if not await self._store.delete(agent_id):
            raise AgentNotFoundError(f"Agent {agent_id} not found for {application_id}")
        await self._store.touch_ecosystem(application_id)

    async def review_performance(self, application_id: ApplicationId) -> list[AgentRecord]:
        """Promote learning agents whose track record earned it."""
        promoted: list[AgentRecord] = []
        for agent in await self._store.list_agents(application_id, [AgentStatus.LEARNING]):
            perf = agent.performance
            if (
                perf.suggestions_generated >= self._promotion_min_suggestions
                and perf.success_rate >= self._promotion_min_success_rate
            ):
                promoted.append(
                    await self.set_status(application_id, agent.id, AgentStatus.ACTIVE)
                )
        return promoted

    # ── Failure accounting ───────────────────────────────────────

    async def record_failure(self, agent_id: AgentId, reason: str) -> AgentRecord:
        """Count a failed analysis; enough in a row puts the agent in error."""
        threshold = self._error_threshold

        def fail(agent: AgentRecord) -> None:
            failures = int(agent.memory.context.get(FAILURE_COUNTER, 0)) + 1
            agent.memory.context[FAILURE_COUNTER] = failures
            agent.memory.context["last_error"] = reason[:500]
            if (
                failures >= threshold
                and agent.status != AgentStatus.ERROR
                and can_transition(agent.status, AgentStatus.ERROR)
            ):
                agent.status = AgentStatus.ERROR

        agent, _ = await self._store.update(agent_id, fail)
        if agent.status == AgentStatus.ERROR:
            logger.warning("Agent %s moved to error: %s", agent.name, reason)
        return agent


def _validate(analysis: ProjectAnalysis) -> None:
    if not analysis.application_id.strip():
        raise InvalidRequestError("Analysis is missing applicationId")
    unnamed = [i for i, s in enumerate(analysis.suggested_agents) if not s.name.strip()]
    if unnamed:
        raise InvalidRequestError(f"Suggested agents at positions {unnamed} have no name")
