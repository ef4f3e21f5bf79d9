"""Tests for change events and wire shapes."""

import pytest
from pydantic import ValidationError

from mechevolve.evolution.models import (
    AgentResponse,
    ChangeEvent,
    Coordination,
    Outcome,
    Suggestion,
    TrackRequest,
    TrackResult,
)
from mechevolve.exceptions import InvalidRequestError


def test_event_from_request():
    event = ChangeEvent.from_request(TrackRequest.model_validate({
        "applicationId": "shop",
        "filePath": "/src/a.ts",
        "changeType": "file-modify",
        "metadata": {"tool": "Edit"},
    }))
    assert event.application_id == "shop"
    assert event.metadata == {"tool": "Edit"}
    assert event.id


def test_project_id_stands_in_for_application_id():
    event = ChangeEvent.from_request(TrackRequest.model_validate({
        "projectId": "shop", "filePath": "/a.ts",
    }))
    assert event.application_id == "shop"


def test_missing_fields_are_named():
    with pytest.raises(InvalidRequestError, match="applicationId, filePath"):
        ChangeEvent.from_request(TrackRequest())
    with pytest.raises(InvalidRequestError, match="filePath"):
        ChangeEvent.from_request(TrackRequest.model_validate({"applicationId": "shop", "filePath": "  "}))


def test_change_type_derived_from_tool():
    event = ChangeEvent.from_request(TrackRequest.model_validate({
        "applicationId": "shop", "filePath": "/a.ts", "toolName": "Bash", "command": "npm test",
    }))
    assert event.change_type == "test-run"

    created = ChangeEvent.from_request(TrackRequest.model_validate({
        "applicationId": "shop", "filePath": "/a.ts", "toolName": "Write",
        "metadata": {"fileExists": False},
    }))
    assert created.change_type == "file-create"


def test_non_dict_metadata_is_wrapped():
    event = ChangeEvent.from_request(TrackRequest.model_validate({
        "applicationId": "shop", "filePath": "/a.ts", "metadata": "free text",
    }))
    assert event.metadata == {"value": "free text"}


def test_integers_beyond_64_bits_become_text():
    huge = 123456789012345678901234567890
    event = ChangeEvent.from_request(TrackRequest.model_validate({
        "applicationId": "shop", "filePath": "/a.ts",
        "metadata": {"n": huge, "sizes": [1, -(2**70)], "nested": {"ok": 2**63}, "flag": True},
    }))
    assert event.metadata == {
        "n": str(huge),
        "sizes": [1, str(-(2**70))],
        "nested": {"ok": 2**63},
        "flag": True,
    }

    wrapped = ChangeEvent.from_request(TrackRequest.model_validate({
        "applicationId": "shop", "filePath": "/a.ts", "metadata": huge,
    }))
    assert wrapped.metadata == {"value": str(huge)}


def test_machine_id_is_carried():
    event = ChangeEvent.from_request(TrackRequest.model_validate({
        "applicationId": "shop", "filePath": "/a.ts", "machineId": " box-1 ",
    }))
    assert event.machine_id == "box-1"


def test_event_id_is_kept():
    event = ChangeEvent.from_request(TrackRequest.model_validate({
        "applicationId": "shop", "filePath": "/a.ts", "eventId": "evt-1",
    }))
    assert event.id == "evt-1"


def test_events_are_immutable():
    event = ChangeEvent(application_id="shop", file_path="/a.ts")
    with pytest.raises(ValidationError):
        event.file_path = "/b.ts"


def test_solo_response_has_no_coordination_on_the_wire():
    response = AgentResponse(agent_id="a1", agent_name="Quality", confidence=0.5)
    wire = response.to_wire()
    assert "coordination" not in wire
    assert wire["agentId"] == "a1"

    response.coordination = Coordination(related_agents=["a2"], shared_findings=["linting"])
    wire = response.to_wire()
    assert wire["coordination"] == {"relatedAgents": ["a2"], "sharedFindings": ["linting"]}


def test_outcome_details_are_opaque():
    assert Outcome(success=True, details=["x"]).details == {"value": ["x"]}


def test_track_result_wire_shape():
    response = AgentResponse(
        agent_id="a1", suggestions=[Suggestion(type="linting"), Suggestion(type="formatting")],
    )
    wire = TrackResult(evolution_id="e1", responses=[response]).to_wire()

    assert wire["success"] is True
    assert wire["evolutionId"] == "e1"
    assert wire["agentResponses"] == 1
    assert [s["type"] for s in wire["suggestions"]] == ["linting", "formatting"]

    empty = TrackResult(evolution_id="e2").to_wire()
    assert empty["agentResponses"] == 0
    assert empty["suggestions"] == []
