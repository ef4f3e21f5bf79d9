"""Change events, agent responses and ledger entries."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from mechevolve.evolution.change_types import derive_change_type
from mechevolve.exceptions import InvalidRequestError
from mechevolve.types import (
    AgentId,
    ApplicationId,
    EvolutionId,
    EvolutionStatus,
    SuggestionId,
    SuggestionStatus,
    new_id,
    utcnow,
)

_WIRE = {"populate_by_name": True}

# integer range orjson can encode
_INT_MIN, _INT_MAX = -(2**63), 2**64 - 1


def _json_safe(value: Any) -> Any:
    """Opaque client data in a shape the ledger can always encode."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value if _INT_MIN <= value <= _INT_MAX else str(value)
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return value


def _opaque_metadata(value: Any) -> dict[str, Any]:
    if value is None:
        return {}
    if isinstance(value, dict):
        return _json_safe(value)
    return {"value": _json_safe(value)}


# ── Inbound ───────────────────────────────────────────────────────────────────


class TrackRequest(BaseModel):
    """What the change-event relay sends. Loosely typed on purpose.

    ``projectId`` is accepted for ``applicationId``; when ``changeType`` is
    absent it is derived from ``toolName`` and ``command``.
    """

    application_id: str | None = Field(None, alias="applicationId")
    project_id: str | None = Field(None, alias="projectId")
    file_path: str | None = Field(None, alias="filePath")
    change_type: str | None = Field(None, alias="changeType")
    tool_name: str | None = Field(None, alias="toolName")
    command: str | None = None
    event_id: str | None = Field(None, alias="eventId")
    machine_id: str | None = Field(None, alias="machineId")
    metadata: Any = None

    model_config = _WIRE


class ChangeEvent(BaseModel):
    """An observed code change. Immutable once recorded."""

    id: str = Field(default_factory=new_id)
    application_id: ApplicationId = Field(alias="applicationId")
    file_path: str = Field(alias="filePath")
    change_type: str = Field("file-modify", alias="changeType")
    machine_id: str = Field("", alias="machineId")
    timestamp: datetime = Field(default_factory=utcnow)
    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = {"populate_by_name": True, "frozen": True}

    @field_validator("metadata", mode="before")
    @classmethod
    def _wrap_metadata(cls, value: Any) -> dict[str, Any]:
        return _opaque_metadata(value)

    @model_validator(mode="after")
    def _require_fields(self) -> ChangeEvent:
        if not self.application_id.strip():
            raise ValueError("applicationId must not be empty")
        if not self.file_path.strip():
            raise ValueError("filePath must not be empty")
        return self

    @classmethod
    def from_request(cls, request: TrackRequest) -> ChangeEvent:
        """Build an event from a relay request, rejecting incomplete ones."""
        application_id = (request.application_id or request.project_id or "").strip()
        file_path = (request.file_path or "").strip()
        missing = [
            name for name, value in (("applicationId", application_id), ("filePath", file_path))
            if not value
        ]
        if missing:
            raise InvalidRequestError(f"Missing required field(s): {', '.join(missing)}")

        metadata = _opaque_metadata(request.metadata)
        file_exists = metadata.get("fileExists")
        change_type = request.change_type or derive_change_type(
            request.tool_name or "",
            request.command or "",
            file_path,
            file_exists if isinstance(file_exists, bool) else None,
        )
        data: dict[str, Any] = {
            "application_id": application_id,
            "file_path": file_path,
            "change_type": change_type,
            "metadata": metadata,
            "machine_id": (request.machine_id or "").strip(),
        }
        if request.event_id:
            data["id"] = request.event_id
        return cls(**data)


# ── Agent output ──────────────────────────────────────────────────────────────


class Suggestion(BaseModel):
    id: SuggestionId = Field(default_factory=new_id)
    type: str
    description: str = ""
    priority: int = 2  # 1 = critical, 3 = nice-to-have
    effort: str = "low"
    impact: str = "medium"


class Coordination(BaseModel):
    related_agents: list[AgentId] = Field(default_factory=list, alias="relatedAgents")
    shared_findings: list[str] = Field(default_factory=list, alias="sharedFindings")

    model_config = _WIRE


class AgentResponse(BaseModel):
    """One agent's verdict on one change event."""

    id: str = Field(default_factory=new_id)
    agent_id: AgentId = Field(alias="agentId")
    agent_name: str = Field("", alias="agentName")
    change_event_id: str = Field("", alias="changeEventId")
    analysis: str = ""
    suggestions: list[Suggestion] = Field(default_factory=list)
    confidence: float = 0.0
    pattern_key: str = Field("", alias="patternKey")
    timestamp: datetime = Field(default_factory=utcnow)
    coordination: Coordination | None = None

    model_config = _WIRE

    def to_wire(self) -> dict[str, Any]:
        # coordination is left out, not nulled, for solo responses
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ── Ledger entries ────────────────────────────────────────────────────────────


class StoredSuggestion(Suggestion):
    """A suggestion as the ledger keeps it."""

    application_id: ApplicationId = Field(alias="applicationId")
    agent_id: AgentId = Field(alias="agentId")
    agent_name: str = Field("", alias="agentName")
    evolution_id: EvolutionId = Field(alias="evolutionId")
    response_id: str = Field("", alias="responseId")
    confidence: float = 0.0
    status: SuggestionStatus = SuggestionStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")

    model_config = _WIRE


class Evolution(BaseModel):
    """One tracked change event and what the agents made of it."""

    id: EvolutionId
    application_id: ApplicationId = Field(alias="applicationId")
    file_path: str = Field(alias="filePath")
    change_type: str = Field(alias="changeType")
    machine_id: str = Field("", alias="machineId")
    metadata: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime
    status: EvolutionStatus = EvolutionStatus.TRACKED
    agent_count: int = Field(0, alias="agentCount")
    error: str = ""
    responses: list[AgentResponse] = Field(default_factory=list)

    model_config = _WIRE


class Outcome(BaseModel):
    """What happened when a suggestion was acted on."""

    success: bool
    applied_types: list[str] = Field(default_factory=list, alias="appliedTypes")
    details: dict[str, Any] = Field(default_factory=dict)

    model_config = _WIRE

    @field_validator("details", mode="before")
    @classmethod
    def _wrap_details(cls, value: Any) -> dict[str, Any]:
        return _opaque_metadata(value)


class ApplyRequest(BaseModel):
    suggestion_id: SuggestionId = Field(alias="suggestionId")
    application_id: ApplicationId | None = Field(None, alias="applicationId")
    project_id: ApplicationId | None = Field(None, alias="projectId")
    result: Outcome

    model_config = _WIRE


class Application(BaseModel):
    """The ledger's record of one applied (or failed) suggestion."""

    id: str = Field(default_factory=new_id)
    suggestion_id: SuggestionId = Field(alias="suggestionId")
    application_id: ApplicationId = Field(alias="applicationId")
    agent_id: AgentId = Field(alias="agentId")
    outcome: Outcome
    status: SuggestionStatus
    timestamp: datetime = Field(default_factory=utcnow)

    model_config = _WIRE


class TrackResult(BaseModel):
    evolution_id: EvolutionId = Field(alias="evolutionId")
    responses: list[AgentResponse] = Field(default_factory=list)
    replayed: bool = False

    model_config = _WIRE

    @property
    def suggestions(self) -> list[Suggestion]:
        return [s for r in self.responses for s in r.suggestions]

    def to_wire(self) -> dict[str, Any]:
        count = len(self.responses)
        return {
            "success": True,
            "evolutionId": self.evolution_id,
            "agentResponses": count,
            "responses": [r.to_wire() for r in self.responses],
            "suggestions": [s.model_dump(mode="json") for s in self.suggestions],
            "message": (
                f"Change analyzed by {count} agents" if count
                else "Change tracked; no agents matched"
            ),
        }
