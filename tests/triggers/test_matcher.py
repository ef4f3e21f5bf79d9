"""Tests for trigger matching."""

import pytest

from mechevolve.agents.models import AgentRecord
from mechevolve.evolution.models import ChangeEvent
from mechevolve.triggers.matcher import TriggerMatcher, is_glob, trigger_matches
from mechevolve.types import AgentStatus


@pytest.mark.parametrize("trigger,path,change_type,expected", [
    ("*.ts", "/src/a.ts", "file-modify", True),
    ("*.ts", "/src/a.py", "file-modify", False),
    ("*.test.ts", "/src/a.test.ts", "file-modify", True),
    ("src/api/*", "src/api/users.py", "file-modify", True),
    ("src/api/*", "/repo/src/api/users.py", "file-modify", True),
    (".py", "/src/a.py", "file-modify", True),
    (".py", "/src/a.pyc", "file-modify", False),
    ("file-modify", "/src/a.py", "file-modify", True),
    ("test", "/src/a.py", "test-run", True),
    ("test", "/src/a.py", "file-modify", False),
    ("", "/src/a.py", "file-modify", False),
    ("*.ts", "C:\\proj\\src\\a.ts", "file-modify", True),
])
def test_trigger_matches(trigger, path, change_type, expected):
    assert trigger_matches(trigger, path, change_type) is expected


def test_is_glob():
    assert is_glob("*.ts")
    assert is_glob("file?.py")
    assert not is_glob("file-modify")


def _agent(name, triggers, status=AgentStatus.LEARNING):
    return AgentRecord(id=name, application_id="app", name=name, triggers=triggers, status=status)


def test_select_uses_any_trigger_and_eligible_status():
    matcher = TriggerMatcher(factory=None)
    agents = [
        _agent("TS", ["*.ts"]),
        _agent("Any", ["*.py", "file-modify"]),
        _agent("Py", ["*.py"]),
        _agent("Sleeping", ["*.ts"], status=AgentStatus.INACTIVE),
        _agent("Broken", ["*.ts"], status=AgentStatus.ERROR),
        _agent("Active", ["*.ts"], status=AgentStatus.ACTIVE),
    ]
    event = ChangeEvent(application_id="app", file_path="/src/a.ts", change_type="file-modify")

    assert [a.name for a in matcher.select(agents, event)] == ["TS", "Any", "Active"]


@pytest.mark.asyncio
async def test_match_agents_reads_the_factory(factory, make_analysis, make_suggestion):
    await factory.create_agents_from_analysis(make_analysis("app", [
        make_suggestion("TS", tier=1, triggers=["*.ts"]),
        make_suggestion("Py", tier=1, triggers=["*.py"]),
    ]))
    matcher = TriggerMatcher(factory)
    event = ChangeEvent(application_id="app", file_path="/src/a.ts")

    assert [a.name for a in await matcher.match_agents("app", event)] == ["TS"]
    assert await matcher.match_agents("other", event) == []
