"""Agent store — one versioned JSON document per agent. SQLite-backed.

Three rules keep concurrent requests honest:

- ``(application_id, name)`` is a UNIQUE index and creation uses
  ``INSERT OR IGNORE``, so two analyses racing for the same agent
  produce exactly one row.
- Every mutation of an existing agent is a compare-and-set on its
  ``version`` column. A writer that lost the race re-reads and retries.
- Operator edits that depend on other rows, such as the tier cap, read
  and write inside one ``BEGIN IMMEDIATE`` transaction.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Iterable, TypeVar

import aiosqlite
import orjson
from pydantic import ValidationError

from mechevolve.agents.models import AgentRecord, EcosystemSnapshot
from mechevolve.config import settings
from mechevolve.exceptions import AgentNotFoundError, ConcurrentUpdateError, StoreError
from mechevolve.types import AgentId, AgentStatus, ApplicationId

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _encode(agent: AgentRecord) -> str:
    return orjson.dumps(agent.model_dump(mode="json", exclude={"version"})).decode()


def _decode(document: str, version: int) -> AgentRecord:
    agent = AgentRecord.model_validate(orjson.loads(document))
    agent.version = version
    return agent


def _readable(agent_id: AgentId, row: tuple | None) -> AgentRecord | None:
    if row is None:
        return None
    try:
        return _decode(row[0], row[1])
    except (orjson.JSONDecodeError, ValidationError) as e:
        raise StoreError(f"Agent {agent_id} document is unreadable: {e}") from e


_UPDATE_AGENT = (
    "UPDATE agents SET document = ?, status = ?, tier = ?, "
    "role = ?, version = ? WHERE id = ? AND version = ?"
)


def _update_params(agent: AgentRecord, expected: int) -> tuple:
    return (
        _encode(agent),
        agent.status.value,
        agent.tier,
        agent.role,
        agent.version,
        agent.id,
        expected,
    )


class AgentTransaction:
    """Operations available inside a single write transaction."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def insert_if_absent(self, agent: AgentRecord) -> bool:
        """Insert the agent unless one with the same name exists. True if inserted."""
        cursor = await self._db.execute(
            "INSERT OR IGNORE INTO agents "
            "(id, application_id, name, role, tier, status, version, document, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                agent.id,
                agent.application_id,
                agent.name,
                agent.role,
                agent.tier,
                agent.status.value,
                agent.version,
                _encode(agent),
                agent.created_at.isoformat(),
            ),
        )
        return cursor.rowcount > 0

    async def get(self, agent_id: AgentId) -> AgentRecord | None:
        cursor = await self._db.execute(
            "SELECT document, version FROM agents WHERE id = ?", (agent_id,),
        )
        row = await cursor.fetchone()
        return _readable(agent_id, row)

    async def save(self, agent: AgentRecord) -> None:
        """Write back an agent read in this transaction, bumping its version."""
        expected = agent.version
        agent.version = expected + 1
        cursor = await self._db.execute(_UPDATE_AGENT, _update_params(agent, expected))
        if cursor.rowcount == 0:
            agent.version = expected
            raise ConcurrentUpdateError(f"Agent {agent.id} changed during the transaction")

    async def count_tier(self, application_id: ApplicationId, tier: int) -> int:
        cursor = await self._db.execute(
            "SELECT COUNT(*) FROM agents WHERE application_id = ? AND tier = ?",
            (application_id, tier),
        )
        row = await cursor.fetchone()
        return row[0]

    async def delete_application(self, application_id: ApplicationId) -> int:
        """Drop every agent of an application without reading the documents."""
        cursor = await self._db.execute(
            "DELETE FROM agents WHERE application_id = ?", (application_id,),
        )
        return cursor.rowcount

    async def refresh_ecosystem(self, application_id: ApplicationId) -> EcosystemSnapshot:
        """Recompute the population summary from the stored rows and persist it."""
        agent_types: dict[str, int] = {}
        async with self._db.execute(
            "SELECT role, COUNT(*) FROM agents WHERE application_id = ? "
            "GROUP BY role ORDER BY role",
            (application_id,),
        ) as cursor:
            async for role, count in cursor:
                agent_types[role] = count

        snapshot = EcosystemSnapshot(
            application_id=application_id,
            agent_count=sum(agent_types.values()),
            agent_types=agent_types,
        )
        await self._db.execute(
            "INSERT OR REPLACE INTO agent_ecosystems (application_id, document, updated_at) "
            "VALUES (?, ?, ?)",
            (
                application_id,
                snapshot.model_dump_json(),
                snapshot.updated_at.isoformat(),
            ),
        )
        return snapshot


class AgentStore:
    """Durable home of every Agent Record."""

    def __init__(self, db_path: str, update_retries: int | None = None) -> None:
        self._db_path = db_path
        self._update_retries = update_retries or settings.update_retries

    async def initialize(self) -> None:
        async with self._connect() as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS agents (
                    id TEXT PRIMARY KEY,
                    application_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    role TEXT DEFAULT '',
                    tier INTEGER NOT NULL,
                    status TEXT NOT NULL,
                    version INTEGER NOT NULL DEFAULT 0,
                    document TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)
            await db.execute(
                "CREATE UNIQUE INDEX IF NOT EXISTS idx_agents_app_name "
                "ON agents(application_id, name)"
            )
            await db.execute(
                "CREATE INDEX IF NOT EXISTS idx_agents_app_status "
                "ON agents(application_id, status)"
            )
            await db.execute("""
                CREATE TABLE IF NOT EXISTS agent_ecosystems (
                    application_id TEXT PRIMARY KEY,
                    document TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            await db.commit()

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        try:
            async with aiosqlite.connect(self._db_path) as db:
                yield db
        except aiosqlite.Error as e:
            raise StoreError(f"Agent store unavailable: {e}") from e

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AgentTransaction]:
        """A write transaction that holds the database write lock throughout."""
        async with self._connect() as db:
            await db.execute("BEGIN IMMEDIATE")
            try:
                yield AgentTransaction(db)
            except BaseException:
                await db.rollback()
                raise
            await db.commit()

    # ── Reads ────────────────────────────────────────────────────

    async def get(self, agent_id: AgentId) -> AgentRecord | None:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT document, version FROM agents WHERE id = ?", (agent_id,),
            )
            row = await cursor.fetchone()
        return _readable(agent_id, row)

    async def list_agents(
        self,
        application_id: ApplicationId,
        statuses: Iterable[AgentStatus] | None = None,
    ) -> list[AgentRecord]:
        """Agents of an application, oldest first. Unreadable rows are skipped."""
        sql = "SELECT id, document, version FROM agents WHERE application_id = ?"
        params: list = [application_id]
        if statuses is not None:
            wanted = [s.value for s in statuses]
            sql += f" AND status IN ({', '.join('?' for _ in wanted)})"
            params.extend(wanted)
        sql += " ORDER BY created_at, rowid"

        agents: list[AgentRecord] = []
        async with self._connect() as db:
            async with db.execute(sql, params) as cursor:
                async for agent_id, document, version in cursor:
                    try:
                        agents.append(_decode(document, version))
                    except (orjson.JSONDecodeError, ValidationError) as e:
                        logger.warning("Skipping unreadable agent %s: %s", agent_id, e)
        return agents

    async def get_ecosystem(self, application_id: ApplicationId) -> EcosystemSnapshot | None:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT document FROM agent_ecosystems WHERE application_id = ?",
                (application_id,),
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        return EcosystemSnapshot.model_validate_json(row[0])

    # ── Writes ───────────────────────────────────────────────────

    async def update(
        self,
        agent_id: AgentId,
        mutate: Callable[[AgentRecord], T],
    ) -> tuple[AgentRecord, T]:
        """Read-modify-write one agent with optimistic concurrency.

        ``mutate`` receives a fresh copy of the agent and changes it in
        place; its return value is handed back with the stored agent. It
        may run more than once, so it must not touch anything but the agent.
        """
        for attempt in range(self._update_retries):
            agent = await self.get(agent_id)
            if agent is None:
                raise AgentNotFoundError(f"Agent {agent_id} not found")

            expected = agent.version
            result = mutate(agent)
            agent.version = expected + 1

            async with self._connect() as db:
                cursor = await db.execute(_UPDATE_AGENT, _update_params(agent, expected))
                await db.commit()
                if cursor.rowcount > 0:
                    return agent, result

            logger.debug(
                "Version conflict on agent %s (attempt %d/%d)",
                agent_id, attempt + 1, self._update_retries,
            )

        raise ConcurrentUpdateError(
            f"Agent {agent_id} changed concurrently {self._update_retries} times"
        )

    async def delete(self, agent_id: AgentId) -> bool:
        async with self._connect() as db:
            cursor = await db.execute("DELETE FROM agents WHERE id = ?", (agent_id,))
            await db.commit()
            return cursor.rowcount > 0

    async def touch_ecosystem(self, application_id: ApplicationId) -> EcosystemSnapshot:
        async with self.transaction() as tx:
            return await tx.refresh_ecosystem(application_id)

