"""Tests for the SQLite agent store."""

import asyncio
import sqlite3

import aiosqlite
import pytest

from mechevolve.agents.models import AgentRecord
from mechevolve.agents.store import AgentStore
from mechevolve.exceptions import AgentNotFoundError, ConcurrentUpdateError, StoreError
from mechevolve.types import AgentStatus


def _agent(name="Quality", app="app", tier=2, **kw) -> AgentRecord:
    return AgentRecord(id=f"{app}_{name}", application_id=app, name=name, tier=tier, **kw)


@pytest.mark.asyncio
async def test_insert_and_get(store):
    async with store.transaction() as tx:
        assert await tx.insert_if_absent(_agent())

    agent = await store.get("app_Quality")
    assert agent is not None
    assert agent.name == "Quality"
    assert agent.version == 0


@pytest.mark.asyncio
async def test_name_is_unique_per_application(store):
    async with store.transaction() as tx:
        assert await tx.insert_if_absent(_agent())
        duplicate = _agent()
        duplicate.id = "other-id"
        assert not await tx.insert_if_absent(duplicate)
        assert await tx.insert_if_absent(_agent(app="other"))

    assert len(await store.list_agents("app")) == 1
    assert len(await store.list_agents("other")) == 1


@pytest.mark.asyncio
async def test_list_filters_by_status(store):
    async with store.transaction() as tx:
        await tx.insert_if_absent(_agent("A"))
        await tx.insert_if_absent(_agent("B", status=AgentStatus.INACTIVE))

    active = await store.list_agents("app", statuses=[AgentStatus.LEARNING])
    assert [a.name for a in active] == ["A"]
    assert len(await store.list_agents("app")) == 2


@pytest.mark.asyncio
async def test_update_bumps_version(store):
    async with store.transaction() as tx:
        await tx.insert_if_absent(_agent())

    def rename(agent):
        agent.purpose = "changed"
        return "done"

    agent, result = await store.update("app_Quality", rename)
    assert result == "done"
    assert agent.version == 1
    assert (await store.get("app_Quality")).purpose == "changed"


@pytest.mark.asyncio
async def test_update_missing_agent(store):
    with pytest.raises(AgentNotFoundError):
        await store.update("nope", lambda a: None)


@pytest.mark.asyncio
async def test_concurrent_updates_are_not_lost(store):
    async with store.transaction() as tx:
        await tx.insert_if_absent(_agent())

    def bump(agent):
        agent.performance.suggestions_generated += 1

    big = AgentStore(store._db_path, update_retries=50)
    await asyncio.gather(*(big.update("app_Quality", bump) for _ in range(10)))

    agent = await store.get("app_Quality")
    assert agent.performance.suggestions_generated == 10
    assert agent.version == 10


@pytest.mark.asyncio
async def test_update_gives_up_after_retries(db_path):
    store = AgentStore(db_path, update_retries=2)
    await store.initialize()
    async with store.transaction() as tx:
        await tx.insert_if_absent(_agent())

    calls = []

    def interfere(agent):
        calls.append(agent.version)
        # another writer slips in before ours
        _sync_bump(db_path, agent.version)

    with pytest.raises(ConcurrentUpdateError):
        await store.update("app_Quality", interfere)
    assert len(calls) == 2


def _sync_bump(db_path, version):
    with sqlite3.connect(db_path) as conn:
        conn.execute("UPDATE agents SET version = ? WHERE id = 'app_Quality'", (version + 1,))


@pytest.mark.asyncio
async def test_corrupted_rows_are_skipped_on_list(store, db_path):
    async with store.transaction() as tx:
        await tx.insert_if_absent(_agent("Good"))
        await tx.insert_if_absent(_agent("Bad"))

    async with aiosqlite.connect(db_path) as db:
        await db.execute("UPDATE agents SET document = '{broken' WHERE name = 'Bad'")
        await db.commit()

    agents = await store.list_agents("app")
    assert [a.name for a in agents] == ["Good"]
    with pytest.raises(StoreError):
        await store.get("app_Bad")


@pytest.mark.asyncio
async def test_delete_application_does_not_read_documents(store, db_path):
    async with store.transaction() as tx:
        await tx.insert_if_absent(_agent("A"))
        await tx.insert_if_absent(_agent("B"))
    async with aiosqlite.connect(db_path) as db:
        await db.execute("UPDATE agents SET document = 'garbage'")
        await db.commit()

    async with store.transaction() as tx:
        assert await tx.delete_application("app") == 2
    assert await store.list_agents("app") == []


@pytest.mark.asyncio
async def test_ecosystem_snapshot(store):
    async with store.transaction() as tx:
        await tx.insert_if_absent(_agent("A", role="quality"))
        await tx.insert_if_absent(_agent("B", role="quality"))
        await tx.insert_if_absent(_agent("C", role="security"))
        await tx.refresh_ecosystem("app")

    snapshot = await store.get_ecosystem("app")
    assert snapshot.agent_count == 3
    assert snapshot.agent_types == {"quality": 2, "security": 1}
    assert await store.get_ecosystem("unknown") is None


@pytest.mark.asyncio
async def test_failed_transaction_rolls_back(store):
    with pytest.raises(RuntimeError):
        async with store.transaction() as tx:
            await tx.insert_if_absent(_agent())
            raise RuntimeError("boom")
    assert await store.get("app_Quality") is None
