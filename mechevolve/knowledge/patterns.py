"""Pattern memory — what kinds of change an agent keeps seeing.

Each agent remembers (change type, file extension) pairs as patterns.
A pattern's confidence grows linearly with how often it was seen and
saturates at exactly 1.0.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import PurePosixPath

from mechevolve.agents.models import AgentMemory, PatternMemory
from mechevolve.config import settings
from mechevolve.types import utcnow

_TICK = timedelta(microseconds=1)


def file_extension(file_path: str) -> str:
    """Lower-case extension without the dot, or ``"unknown"``."""
    suffix = PurePosixPath(file_path.replace("\\", "/")).suffix
    return suffix[1:].lower() if suffix else "unknown"


def pattern_key(change_type: str, file_path: str) -> str:
    return f"{change_type}_{file_extension(file_path)}"


def pattern_confidence(frequency: int, saturation: int | None = None) -> float:
    saturation = saturation or settings.pattern_saturation
    return min(1.0, max(0, frequency) / saturation)


class PatternStore:
    """Upserts patterns into one agent's memory.

    Operates on the in-memory ``AgentMemory`` of an agent that is being
    updated under the agent store's compare-and-set, so it never talks
    to the database itself.
    """

    def __init__(
        self,
        example_limit: int | None = None,
        saturation: int | None = None,
    ) -> None:
        self._example_limit = example_limit or settings.pattern_example_limit
        self._saturation = saturation or settings.pattern_saturation

    def observe(
        self,
        memory: AgentMemory,
        key: str,
        example: str,
        now: datetime | None = None,
    ) -> PatternMemory:
        """Record one sighting of ``key``. Returns the updated pattern."""
        now = now or utcnow()
        pattern = memory.find_pattern(key)
        if pattern is None:
            pattern = PatternMemory(pattern=key, frequency=0, last_seen=now)
            memory.patterns.append(pattern)
        else:
            # last_seen must move forward even when the clock did not
            pattern.last_seen = max(now, pattern.last_seen + _TICK)

        pattern.frequency += 1
        pattern.confidence = pattern_confidence(pattern.frequency, self._saturation)

        if example:
            if example in pattern.examples:
                pattern.examples.remove(example)
            pattern.examples.append(example)
            del pattern.examples[:-self._example_limit]
        return pattern

    @staticmethod
    def top(memory: AgentMemory, n: int = 5) -> list[PatternMemory]:
        """Most frequent patterns first."""
        return sorted(memory.patterns, key=lambda p: p.frequency, reverse=True)[:n]


def remember(items: list[str], item: str, limit: int | None = None) -> None:
    """Append to a bounded memory list (successes, failures, learnings)."""
    limit = limit or settings.memory_list_limit
    items.append(item)
    del items[:-limit]
