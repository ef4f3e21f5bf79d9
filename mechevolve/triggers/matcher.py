"""Trigger matcher — which agents care about this change?

An agent's triggers are OR-combined. A trigger can be:

- a glob (``*.ts``, ``*.test.py``, ``src/api/*``) matched against the
  file's name and its full path,
- an extension (``.py``) compared with the file's extension,
- a keyword (``file-modify``, ``test``) matched exactly or as a
  substring of the change type.
"""

from __future__ import annotations

import fnmatch
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

from mechevolve.agents.models import AgentRecord
from mechevolve.types import ELIGIBLE_STATUSES, ApplicationId

if TYPE_CHECKING:
    from mechevolve.agents.factory import AgentFactory
    from mechevolve.evolution.models import ChangeEvent

_GLOB_CHARS = frozenset("*?[")


def is_glob(trigger: str) -> bool:
    return any(c in _GLOB_CHARS for c in trigger)


def trigger_matches(trigger: str, file_path: str, change_type: str) -> bool:
    trigger = trigger.strip()
    if not trigger:
        return False

    path = file_path.replace("\\", "/")
    if is_glob(trigger):
        name = PurePosixPath(path).name
        return (
            fnmatch.fnmatchcase(name, trigger)
            or fnmatch.fnmatchcase(path, trigger)
            or fnmatch.fnmatchcase(path, f"*/{trigger}")
        )

    if trigger.startswith(".") and len(trigger) > 1:
        return PurePosixPath(path).suffix.lower() == trigger.lower()

    return trigger == change_type or trigger in change_type


def agent_matches(agent: AgentRecord, file_path: str, change_type: str) -> bool:
    return any(trigger_matches(t, file_path, change_type) for t in agent.triggers)


class TriggerMatcher:
    """Selects the eligible agents whose triggers match a change event."""

    def __init__(self, factory: AgentFactory) -> None:
        self._factory = factory

    def select(self, agents: list[AgentRecord], event: ChangeEvent) -> list[AgentRecord]:
        return [
            a for a in agents
            if a.status in ELIGIBLE_STATUSES
            and agent_matches(a, event.file_path, event.change_type)
        ]

    async def match_agents(
        self, application_id: ApplicationId, event: ChangeEvent,
    ) -> list[AgentRecord]:
        agents = await self._factory.get_active_agents(application_id)
        return self.select(agents, event)
