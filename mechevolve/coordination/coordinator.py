"""Coordination — tell each responding agent who else looked at the change.

Only multi-agent responses are annotated. Each one learns the ids of the
other responding agents and the suggestion types that at least two of
them proposed.
"""

from __future__ import annotations

from collections import Counter

from mechevolve.evolution.models import AgentResponse, Coordination


def shared_findings(responses: list[AgentResponse]) -> list[str]:
    """Suggestion types proposed by two or more agents, in first-seen order."""
    proposers: Counter[str] = Counter()
    order: list[str] = []
    for response in responses:
        for kind in dict.fromkeys(s.type for s in response.suggestions):
            if kind not in proposers:
                order.append(kind)
            proposers[kind] += 1
    return [kind for kind in order if proposers[kind] >= 2]


def coordinate(responses: list[AgentResponse]) -> list[AgentResponse]:
    """Annotate ``responses`` in place and return them."""
    if len(responses) < 2:
        return responses

    findings = shared_findings(responses)
    for response in responses:
        response.coordination = Coordination(
            related_agents=[r.agent_id for r in responses if r.agent_id != response.agent_id],
            shared_findings=list(findings),
        )
    return responses
