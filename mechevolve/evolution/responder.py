"""Responder — turns an agent and a change into an analysis and suggestions."""

from __future__ import annotations

from pathlib import PurePosixPath

from mechevolve.agents.models import AgentRecord
from mechevolve.config import settings
from mechevolve.evolution.models import ChangeEvent, Suggestion
from mechevolve.types import AgentPriority


class Responder:
    def __init__(self, max_suggestions: int | None = None) -> None:
        self._max = max_suggestions or settings.max_suggestions_per_agent

    def analyze(self, agent: AgentRecord, event: ChangeEvent) -> str:
        focus = agent.specification.analysis_logic or f"{agent.role or 'general'} review"
        name = PurePosixPath(event.file_path.replace("\\", "/")).name or event.file_path
        return f"{agent.name} reviewed {name} ({event.change_type}): {focus}."

    def suggest(self, agent: AgentRecord, event: ChangeEvent) -> list[Suggestion]:
        """One suggestion per capability, capped. Agents without any still review."""
        kinds = agent.capabilities or [f"{agent.role or 'general'}-review"]
        impact = "high" if agent.priority == AgentPriority.CRITICAL else "medium"
        return [
            Suggestion(
                type=kind,
                description=f"Apply {kind} to {event.file_path}",
                priority=agent.priority.rank,
                effort="low",
                impact=impact,
            )
            for kind in kinds[: self._max]
        ]
