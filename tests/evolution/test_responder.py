"""Tests for response generation."""

from mechevolve.agents.models import AgentRecord, AgentSpecification
from mechevolve.evolution.models import ChangeEvent
from mechevolve.evolution.responder import Responder
from mechevolve.types import AgentPriority


def _event():
    return ChangeEvent(application_id="app", file_path="/src/cart.ts", change_type="file-modify")


def test_one_suggestion_per_capability_capped():
    agent = AgentRecord(
        id="a1", application_id="app", name="Quality",
        capabilities=["linting", "formatting", "complexity-analysis", "naming"],
        priority=AgentPriority.CRITICAL,
    )
    suggestions = Responder(max_suggestions=3).suggest(agent, _event())

    assert [s.type for s in suggestions] == ["linting", "formatting", "complexity-analysis"]
    assert all(s.priority == 1 and s.impact == "high" and s.effort == "low" for s in suggestions)
    assert len({s.id for s in suggestions}) == 3


def test_agent_without_capabilities_still_reviews():
    agent = AgentRecord(id="a1", application_id="app", name="Docs", role="documentation",
                        priority=AgentPriority.NICE_TO_HAVE)
    [suggestion] = Responder().suggest(agent, _event())

    assert suggestion.type == "documentation-review"
    assert suggestion.priority == 3
    assert suggestion.impact == "medium"


def test_analysis_mentions_agent_file_and_focus():
    agent = AgentRecord(
        id="a1", application_id="app", name="Quality",
        specification=AgentSpecification(analysis_logic="Check complexity"),
    )
    analysis = Responder().analyze(agent, _event())
    assert analysis == "Quality reviewed cart.ts (file-modify): Check complexity."
