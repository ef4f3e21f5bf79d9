"""Agent records and the project-analysis document they are created from.

Field names are snake_case in Python and camelCase on the wire; every
model accepts either spelling.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from mechevolve.types import (
    AgentId,
    AgentPriority,
    AgentStatus,
    ApplicationId,
    new_id,
    utcnow,
)

Tier = Literal[1, 2, 3]

_WIRE = {"populate_by_name": True}


# ── Pattern memory ────────────────────────────────────────────────────────────


class PatternMemory(BaseModel):
    """How often an agent has seen one (change type, extension) pair."""

    pattern: str
    frequency: int = 0
    confidence: float = 0.0
    examples: list[str] = Field(default_factory=list)
    last_seen: datetime = Field(default_factory=utcnow, alias="lastSeen")

    model_config = _WIRE


class AgentMemory(BaseModel):
    patterns: list[PatternMemory] = Field(default_factory=list)
    successes: list[str] = Field(default_factory=list)
    failures: list[str] = Field(default_factory=list)
    learnings: list[str] = Field(default_factory=list)
    context: dict[str, Any] = Field(default_factory=dict)

    def find_pattern(self, key: str) -> PatternMemory | None:
        for p in self.patterns:
            if p.pattern == key:
                return p
        return None


class AgentPerformance(BaseModel):
    suggestions_generated: int = Field(0, alias="suggestionsGenerated")
    suggestions_accepted: int = Field(0, alias="suggestionsAccepted")
    success_rate: float = Field(0.0, alias="successRate")
    outcomes_recorded: int = Field(0, alias="outcomesRecorded")

    model_config = _WIRE

    def recompute(self) -> None:
        self.success_rate = min(
            1.0, self.suggestions_accepted / max(1, self.suggestions_generated)
        )

    @property
    def has_history(self) -> bool:
        return self.outcomes_recorded > 0


class AgentSpecification(BaseModel):
    """What an agent looks at and how it tries to improve things."""

    analysis_logic: str = Field("", alias="analysisLogic")
    improvement_strategies: list[str] = Field(
        default_factory=list, alias="improvementStrategies",
    )
    communication_protocols: list[str] = Field(
        default_factory=list, alias="communicationProtocols",
    )
    learning_mechanisms: list[str] = Field(
        default_factory=list, alias="learningMechanisms",
    )

    model_config = _WIRE


# ── The Agent Record ──────────────────────────────────────────────────────────


class AgentRecord(BaseModel):
    """A persisted, named heuristic analyzer scoped to one application."""

    id: AgentId
    application_id: ApplicationId = Field(alias="applicationId")
    name: str
    role: str = ""
    purpose: str = ""
    triggers: list[str] = Field(default_factory=list)
    capabilities: list[str] = Field(default_factory=list)
    priority: AgentPriority = AgentPriority.IMPORTANT
    tier: Tier = 2
    status: AgentStatus = AgentStatus.LEARNING
    reasoning: str = ""
    performance: AgentPerformance = Field(default_factory=AgentPerformance)
    memory: AgentMemory = Field(default_factory=AgentMemory)
    specification: AgentSpecification = Field(default_factory=AgentSpecification)
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")
    last_active: datetime = Field(default_factory=utcnow, alias="lastActive")
    version: int = 0

    model_config = _WIRE

    def summary(self) -> dict[str, Any]:
        """The listing shape consumed by presentation layers."""
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role,
            "purpose": self.purpose,
            "tier": self.tier,
            "priority": self.priority.value,
            "status": self.status.value,
            "triggers": list(self.triggers),
            "capabilities": list(self.capabilities),
            "performance": self.performance.model_dump(by_alias=True),
            "lastActive": self.last_active.isoformat(),
            "patterns": len(self.memory.patterns),
        }


# ── Analysis document (produced upstream) ─────────────────────────────────────


class AgentSuggestion(BaseModel):
    """One agent the project analysis recommends creating."""

    name: str
    role: str = ""
    purpose: str = ""
    triggers: list[str] = Field(default_factory=list)
    capabilities: list[str] = Field(default_factory=list)
    priority: AgentPriority = AgentPriority.IMPORTANT
    tier: Tier = 2
    reasoning: str = ""


class DetectedPattern(BaseModel):
    name: str
    confidence: float = 0.0
    files: list[str] = Field(default_factory=list)
    description: str = ""


class ProjectAnalysis(BaseModel):
    """Output of a one-time project analysis."""

    application_id: ApplicationId = Field(alias="applicationId")
    project_type: str = Field("unknown", alias="projectType")
    languages: list[str] = Field(default_factory=list)
    frameworks: list[str] = Field(default_factory=list)
    architecture: str = "unknown"
    complexity: str = "simple"
    file_types: dict[str, int] = Field(default_factory=dict, alias="fileTypes")
    patterns: list[DetectedPattern] = Field(default_factory=list)
    suggested_agents: list[AgentSuggestion] = Field(
        default_factory=list, alias="suggestedAgents",
    )

    model_config = _WIRE


class EcosystemSnapshot(BaseModel):
    """Derived summary of an application's agent population."""

    application_id: ApplicationId = Field(alias="applicationId")
    agent_count: int = Field(0, alias="agentCount")
    agent_types: dict[str, int] = Field(default_factory=dict, alias="agentTypes")
    updated_at: datetime = Field(default_factory=utcnow, alias="updatedAt")

    model_config = _WIRE


class AgentUpdate(BaseModel):
    """Operator edits to an existing agent. Unset fields are left alone."""

    purpose: str | None = None
    triggers: list[str] | None = None
    capabilities: list[str] | None = None
    priority: AgentPriority | None = None
    tier: Tier | None = None
    status: AgentStatus | None = None


def new_agent_id(application_id: ApplicationId, name: str) -> AgentId:
    slug = "".join(c if c.isalnum() else "-" for c in name.lower()).strip("-")
    while "--" in slug:
        slug = slug.replace("--", "-")
    return f"{application_id}_{slug or 'agent'}_{new_id()}"
