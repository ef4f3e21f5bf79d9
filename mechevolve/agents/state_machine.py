"""Agent status state machine — enforces valid lifecycle transitions."""

from __future__ import annotations

from mechevolve.types import AgentId, AgentStatus
from mechevolve.exceptions import AgentStateError

# Valid status transitions. There is no terminal state: agents live until
# they are explicitly deleted.
VALID_TRANSITIONS: dict[AgentStatus, set[AgentStatus]] = {
    AgentStatus.LEARNING: {
        AgentStatus.ACTIVE,  # performance review promotes
        AgentStatus.INACTIVE,
        AgentStatus.ERROR,
    },
    AgentStatus.ACTIVE: {AgentStatus.INACTIVE, AgentStatus.ERROR},
    AgentStatus.INACTIVE: {
        AgentStatus.LEARNING,
        AgentStatus.ACTIVE,
        AgentStatus.ERROR,
    },
    AgentStatus.ERROR: {AgentStatus.LEARNING, AgentStatus.INACTIVE},  # manual reset
}


def can_transition(current: AgentStatus, target: AgentStatus) -> bool:
    if current == target:
        return True
    return target in VALID_TRANSITIONS.get(current, set())


def check_transition(agent_id: AgentId, current: AgentStatus, target: AgentStatus) -> None:
    """Raise AgentStateError unless ``current -> target`` is allowed."""
    if not can_transition(current, target):
        raise AgentStateError(
            f"Cannot transition agent {agent_id} "
            f"from {current.value} to {target.value}"
        )
