"""Confidence calculator — how much weight one agent's suggestion deserves.

    base       = success rate once outcomes exist, else the default (0.5)
    recognised = the pattern had been seen at least ``threshold`` times
    confidence = base + (1 - base) * weight * pattern_confidence   if recognised
               = base                                             otherwise

Pattern confidence is ``min(1, frequency / saturation)``, so confidence
never decreases as a pattern repeats and never exceeds 1.0.

Scoring always learns: the same call upserts the pattern, counts the
generated suggestions and refreshes the agent's activity timestamps.
"""

from __future__ import annotations

from datetime import datetime

from mechevolve.agents.models import AgentRecord
from mechevolve.config import settings
from mechevolve.evolution.models import ChangeEvent
from mechevolve.knowledge.patterns import PatternStore, pattern_key
from mechevolve.types import utcnow


class ConfidenceCalculator:
    def __init__(
        self,
        patterns: PatternStore | None = None,
        default_confidence: float | None = None,
        recognition_threshold: int | None = None,
        recognition_weight: float | None = None,
    ) -> None:
        self._patterns = patterns or PatternStore()
        self._default = (
            settings.default_confidence if default_confidence is None else default_confidence
        )
        self._threshold = recognition_threshold or settings.recognition_threshold
        self._weight = (
            settings.recognition_weight if recognition_weight is None else recognition_weight
        )

    def base_confidence(self, agent: AgentRecord) -> float:
        if agent.performance.has_history:
            return agent.performance.success_rate
        return self._default

    def estimate(self, agent: AgentRecord, key: str) -> float:
        """Confidence for ``key`` given the agent's current state, no side effects."""
        base = self.base_confidence(agent)
        confidence = base
        known = agent.memory.find_pattern(key)
        if known is not None and known.frequency >= self._threshold:
            confidence = base + (1.0 - base) * self._weight * known.confidence
        return max(0.0, min(1.0, confidence))

    def score(
        self,
        agent: AgentRecord,
        event: ChangeEvent,
        suggestion_count: int = 1,
        now: datetime | None = None,
    ) -> tuple[float, str]:
        """Score the agent's response to ``event`` and learn from it.

        Mutates ``agent`` in place; callers run this inside the agent
        store's compare-and-set update.
        """
        now = now or utcnow()
        key = pattern_key(event.change_type, event.file_path)
        confidence = self.estimate(agent, key)

        self._patterns.observe(agent.memory, key, event.file_path, now=now)

        agent.performance.suggestions_generated += max(1, suggestion_count)
        agent.performance.recompute()
        agent.last_active = now
        agent.memory.context[f"last_{event.change_type}"] = {
            "filePath": event.file_path,
            "eventId": event.id,
            "timestamp": now.isoformat(),
            "confidence": confidence,
        }
        return confidence, key
