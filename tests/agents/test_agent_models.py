"""Tests for agent records and the analysis document."""

from mechevolve.agents.models import (
    AgentPerformance,
    AgentRecord,
    ProjectAnalysis,
    new_agent_id,
)
from mechevolve.types import AgentPriority, AgentStatus


def test_record_accepts_wire_and_python_names():
    wire = AgentRecord.model_validate({
        "id": "a1", "applicationId": "app", "name": "Quality", "tier": 1,
    })
    native = AgentRecord(id="a1", application_id="app", name="Quality", tier=1)
    assert wire.application_id == native.application_id == "app"
    assert wire.status == AgentStatus.LEARNING


def test_new_record_defaults():
    agent = AgentRecord(id="a1", application_id="app", name="Quality")
    assert agent.tier == 2
    assert agent.version == 0
    assert agent.performance.suggestions_generated == 0
    assert agent.memory.patterns == []


def test_success_rate_is_bounded():
    perf = AgentPerformance(suggestions_generated=2, suggestions_accepted=5)
    perf.recompute()
    assert perf.success_rate == 1.0

    perf = AgentPerformance(suggestions_generated=0, suggestions_accepted=0)
    perf.recompute()
    assert perf.success_rate == 0.0


def test_history_depends_on_recorded_outcomes():
    assert not AgentPerformance(suggestions_generated=10).has_history
    assert AgentPerformance(outcomes_recorded=1).has_history


def test_priority_rank():
    assert AgentPriority.CRITICAL.rank == 1
    assert AgentPriority.IMPORTANT.rank == 2
    assert AgentPriority.NICE_TO_HAVE.rank == 3


def test_new_agent_id_is_scoped_and_unique():
    a = new_agent_id("shop", "Code Quality  Guardian!")
    b = new_agent_id("shop", "Code Quality  Guardian!")
    assert a.startswith("shop_code-quality-guardian_")
    assert a != b


def test_summary_shape():
    agent = AgentRecord(
        id="a1", application_id="app", name="Quality", role="qa",
        priority=AgentPriority.CRITICAL, tier=1, triggers=["*.ts"],
    )
    summary = agent.summary()
    assert summary["priority"] == "critical"
    assert summary["status"] == "learning"
    assert summary["performance"]["successRate"] == 0.0
    assert summary["patterns"] == 0
    assert summary["triggers"] == ["*.ts"]


def test_analysis_from_wire_document():
    analysis = ProjectAnalysis.model_validate({
        "applicationId": "app",
        "projectType": "frontend-webapp",
        "suggestedAgents": [
            {"name": "Quality", "tier": 1, "priority": "critical", "triggers": ["*.ts"]},
        ],
    })
    assert analysis.suggested_agents[0].priority == AgentPriority.CRITICAL
    assert analysis.suggested_agents[0].tier == 1
