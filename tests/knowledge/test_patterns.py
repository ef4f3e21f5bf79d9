"""Tests for agent pattern memory."""

from datetime import datetime, timezone

from mechevolve.agents.models import AgentMemory
from mechevolve.knowledge.patterns import (
    PatternStore,
    file_extension,
    pattern_confidence,
    pattern_key,
    remember,
)

NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


def test_file_extension():
    assert file_extension("/src/App.TSX") == "tsx"
    assert file_extension("C:\\proj\\main.py") == "py"
    assert file_extension("/Makefile") == "unknown"


def test_pattern_key():
    assert pattern_key("file-modify", "/x.ts") == "file-modify_ts"
    assert pattern_key("test-run", "/README") == "test-run_unknown"


def test_pattern_confidence_saturates():
    assert pattern_confidence(1, 10) == 0.1
    assert pattern_confidence(10, 10) == 1.0
    assert pattern_confidence(25, 10) == 1.0


def test_first_observation_creates_pattern():
    memory = AgentMemory()
    pattern = PatternStore().observe(memory, "file-modify_ts", "/x.ts", now=NOW)

    assert memory.patterns == [pattern]
    assert pattern.frequency == 1
    assert pattern.examples == ["/x.ts"]
    assert pattern.last_seen == NOW


def test_repeat_observation_upserts():
    memory = AgentMemory()
    store = PatternStore()
    first = store.observe(memory, "file-modify_ts", "/x.ts", now=NOW)
    conf_1 = first.confidence
    second = store.observe(memory, "file-modify_ts", "/y.ts", now=NOW)

    assert len(memory.patterns) == 1
    assert second.frequency == 2
    assert second.confidence > conf_1
    assert second.last_seen > NOW


def test_examples_are_bounded_and_deduplicated():
    memory = AgentMemory()
    store = PatternStore(example_limit=3)
    for path in ["/a.ts", "/b.ts", "/c.ts", "/a.ts", "/d.ts"]:
        store.observe(memory, "file-modify_ts", path, now=NOW)

    pattern = memory.find_pattern("file-modify_ts")
    assert pattern.examples == ["/c.ts", "/a.ts", "/d.ts"]
    assert pattern.frequency == 5


def test_top_patterns():
    memory = AgentMemory()
    store = PatternStore()
    for _ in range(3):
        store.observe(memory, "file-modify_ts", "/x.ts")
    store.observe(memory, "test-run_ts", "/x.test.ts")

    assert [p.pattern for p in PatternStore.top(memory, 1)] == ["file-modify_ts"]


def test_remember_is_bounded():
    items: list[str] = []
    for i in range(5):
        remember(items, f"item-{i}", limit=3)
    assert items == ["item-2", "item-3", "item-4"]
