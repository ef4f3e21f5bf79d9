"""Tests for agent status transitions."""

import pytest

from mechevolve.agents.state_machine import VALID_TRANSITIONS, can_transition, check_transition
from mechevolve.exceptions import AgentStateError
from mechevolve.types import AgentStatus


def test_every_status_has_transitions():
    for status in AgentStatus:
        assert VALID_TRANSITIONS[status]


@pytest.mark.parametrize("current,target", [
    (AgentStatus.LEARNING, AgentStatus.ACTIVE),
    (AgentStatus.ACTIVE, AgentStatus.INACTIVE),
    (AgentStatus.INACTIVE, AgentStatus.LEARNING),
    (AgentStatus.ERROR, AgentStatus.LEARNING),
])
def test_valid_transitions(current, target):
    assert can_transition(current, target)
    check_transition("a1", current, target)


@pytest.mark.parametrize("current,target", [
    (AgentStatus.ACTIVE, AgentStatus.LEARNING),
    (AgentStatus.ERROR, AgentStatus.ACTIVE),
])
def test_invalid_transitions(current, target):
    assert not can_transition(current, target)
    with pytest.raises(AgentStateError, match="Cannot transition agent a1"):
        check_transition("a1", current, target)


def test_same_status_is_allowed():
    for status in AgentStatus:
        assert can_transition(status, status)
