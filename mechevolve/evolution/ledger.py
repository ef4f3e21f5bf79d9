"""Evolution Ledger — the durable record of changes, responses and outcomes.

Four tables:

- ``evolutions``    one row per change event, written before any analysis
- ``responses``     one JSON document per agent response
- ``suggestions``   one row per suggestion, queryable by status and rank
- ``applications``  one row per recorded outcome

Outcomes flow back to the originating agent's performance and memory.
A suggestion is resolved at most once; the resolving write is a
conditional update on ``status = 'pending'``.
"""

from __future__ import annotations

import logging
import re
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator

import aiosqlite
import orjson

from mechevolve.agents.models import AgentRecord
from mechevolve.agents.store import AgentStore
from mechevolve.config import settings
from mechevolve.evolution.models import (
    AgentResponse,
    Application,
    ChangeEvent,
    Evolution,
    Outcome,
    StoredSuggestion,
)
from mechevolve.exceptions import AgentNotFoundError, InvalidRequestError, StoreError
from mechevolve.knowledge.patterns import remember
from mechevolve.types import (
    ApplicationId,
    EvolutionId,
    EvolutionStatus,
    SuggestionId,
    SuggestionStatus,
    utcnow,
)

logger = logging.getLogger(__name__)

_PERIOD = re.compile(r"^(\d+)([dhm])$")
_PERIOD_UNITS = {"d": "days", "h": "hours", "m": "minutes"}


def _ts(value: datetime) -> str:
    """Sortable UTC timestamp text."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _metadata_json(metadata: dict[str, Any]) -> str:
    try:
        return orjson.dumps(metadata, default=str).decode()
    except orjson.JSONEncodeError as e:
        logger.warning("Storing unencodable metadata as text: %s", e)
        return orjson.dumps({"value": repr(metadata)[:2000]}).decode()


def parse_period(period: str) -> timedelta:
    """``"7d"``, ``"24h"`` or ``"30m"`` as a timedelta."""
    match = _PERIOD.match(period.strip())
    if not match:
        raise InvalidRequestError(f"Invalid period {period!r}; use e.g. 7d, 24h or 30m")
    return timedelta(**{_PERIOD_UNITS[match.group(2)]: int(match.group(1))})


class EvolutionLedger:
    """Append-mostly store of tracked evolutions backed by SQLite."""

    def __init__(self, db_path: str, agents: AgentStore) -> None:
        self._db_path = db_path
        self._agents = agents

    async def initialize(self) -> None:
        async with self._connect() as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS evolutions (
                    id TEXT PRIMARY KEY,
                    application_id TEXT NOT NULL,
                    file_path TEXT NOT NULL,
                    change_type TEXT NOT NULL,
                    machine_id TEXT DEFAULT '',
                    metadata TEXT NOT NULL DEFAULT '{}',
                    timestamp TEXT NOT NULL,
                    status TEXT NOT NULL,
                    agent_count INTEGER DEFAULT 0,
                    error TEXT DEFAULT ''
                )
            """)
            await db.execute("""
                CREATE TABLE IF NOT EXISTS responses (
                    id TEXT PRIMARY KEY,
                    evolution_id TEXT NOT NULL,
                    agent_id TEXT NOT NULL,
                    document TEXT NOT NULL,
                    timestamp TEXT NOT NULL
                )
            """)
            await db.execute("""
                CREATE TABLE IF NOT EXISTS suggestions (
                    id TEXT PRIMARY KEY,
                    application_id TEXT NOT NULL,
                    evolution_id TEXT NOT NULL,
                    response_id TEXT NOT NULL,
                    agent_id TEXT NOT NULL,
                    agent_name TEXT DEFAULT '',
                    type TEXT NOT NULL,
                    description TEXT DEFAULT '',
                    priority INTEGER NOT NULL,
                    effort TEXT DEFAULT '',
                    impact TEXT DEFAULT '',
                    confidence REAL NOT NULL,
                    status TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    resolved_at TEXT
                )
            """)
            await db.execute("""
                CREATE TABLE IF NOT EXISTS applications (
                    id TEXT PRIMARY KEY,
                    suggestion_id TEXT NOT NULL,
                    application_id TEXT NOT NULL,
                    agent_id TEXT NOT NULL,
                    success INTEGER NOT NULL,
                    outcome TEXT NOT NULL,
                    status TEXT NOT NULL,
                    timestamp TEXT NOT NULL
                )
            """)
            await db.execute(
                "CREATE INDEX IF NOT EXISTS idx_evolutions_app_ts "
                "ON evolutions(application_id, timestamp)"
            )
            await db.execute(
                "CREATE INDEX IF NOT EXISTS idx_responses_evolution "
                "ON responses(evolution_id)"
            )
            await db.execute(
                "CREATE INDEX IF NOT EXISTS idx_suggestions_app_status "
                "ON suggestions(application_id, status)"
            )
            await db.commit()

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        try:
            async with aiosqlite.connect(self._db_path) as db:
                db.row_factory = aiosqlite.Row
                yield db
        except aiosqlite.Error as e:
            raise StoreError(f"Evolution ledger unavailable: {e}") from e

    # ── Recording ────────────────────────────────────────────────

    async def track(self, event: ChangeEvent) -> tuple[EvolutionId, bool]:
        """Durably record the raw event. Returns ``(evolution_id, created)``.

        The event id is the evolution id, so a retried event is stored once.
        """
        async with self._connect() as db:
            cursor = await db.execute(
                "INSERT OR IGNORE INTO evolutions "
                "(id, application_id, file_path, change_type, machine_id, metadata, timestamp, status) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    event.id,
                    event.application_id,
                    event.file_path,
                    event.change_type,
                    event.machine_id,
                    _metadata_json(event.metadata),
                    _ts(event.timestamp),
                    EvolutionStatus.TRACKED.value,
                ),
            )
            await db.commit()
            created = cursor.rowcount > 0
        return event.id, created

    async def record_responses(
        self, evolution_id: EvolutionId, responses: list[AgentResponse],
    ) -> None:
        """Store responses and their suggestions, and mark the evolution analyzed."""
        async with self._connect() as db:
            row = await (await db.execute(
                "SELECT application_id FROM evolutions WHERE id = ?", (evolution_id,),
            )).fetchone()
            if row is None:
                raise StoreError(f"Evolution {evolution_id} was never tracked")
            application_id = row["application_id"]

            for response in responses:
                await db.execute(
                    "INSERT OR IGNORE INTO responses "
                    "(id, evolution_id, agent_id, document, timestamp) VALUES (?, ?, ?, ?, ?)",
                    (
                        response.id,
                        evolution_id,
                        response.agent_id,
                        orjson.dumps(response.to_wire()).decode(),
                        _ts(response.timestamp),
                    ),
                )
                for suggestion in response.suggestions:
                    await db.execute(
                        "INSERT OR IGNORE INTO suggestions "
                        "(id, application_id, evolution_id, response_id, agent_id, "
                        " agent_name, type, description, priority, effort, impact, "
                        " confidence, status, created_at) "
                        "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                        (
                            suggestion.id,
                            application_id,
                            evolution_id,
                            response.id,
                            response.agent_id,
                            response.agent_name,
                            suggestion.type,
                            suggestion.description,
                            suggestion.priority,
                            suggestion.effort,
                            suggestion.impact,
                            response.confidence,
                            SuggestionStatus.PENDING.value,
                            _ts(response.timestamp),
                        ),
                    )

            await db.execute(
                "UPDATE evolutions SET status = ?, agent_count = ?, error = '' WHERE id = ?",
                (EvolutionStatus.ANALYZED.value, len(responses), evolution_id),
            )
            await db.commit()

    async def claim(self, evolution_id: EvolutionId) -> bool:
        """Take the right to analyze an evolution. True for exactly one caller.

        Only ``tracked`` and ``analysis_failed`` evolutions can be claimed;
        a retry that loses the claim must not score the agents again.
        """
        async with self._connect() as db:
            cursor = await db.execute(
                "UPDATE evolutions SET status = ? WHERE id = ? AND status IN (?, ?)",
                (
                    EvolutionStatus.ANALYZING.value,
                    evolution_id,
                    EvolutionStatus.TRACKED.value,
                    EvolutionStatus.ANALYSIS_FAILED.value,
                ),
            )
            await db.commit()
            return cursor.rowcount == 1

    async def mark_failed(self, evolution_id: EvolutionId, reason: str) -> None:
        """Keep the raw event but flag that its analysis did not complete."""
        async with self._connect() as db:
            await db.execute(
                "UPDATE evolutions SET status = ?, error = ? WHERE id = ?",
                (EvolutionStatus.ANALYSIS_FAILED.value, reason[:500], evolution_id),
            )
            await db.commit()

    # ── Queries ──────────────────────────────────────────────────

    async def get_evolution(self, evolution_id: EvolutionId) -> Evolution | None:
        async with self._connect() as db:
            row = await (await db.execute(
                "SELECT * FROM evolutions WHERE id = ?", (evolution_id,),
            )).fetchone()
            if row is None:
                return None
            responses = await self._responses_for(db, [evolution_id])
        return _evolution(row, responses.get(evolution_id, []))

    async def history(
        self, application_id: ApplicationId, limit: int | None = None,
    ) -> list[Evolution]:
        """Most recent evolutions first, each with its responses."""
        limit = limit or settings.history_default_limit
        async with self._connect() as db:
            async with db.execute(
                "SELECT * FROM evolutions WHERE application_id = ? "
                "ORDER BY timestamp DESC, rowid DESC LIMIT ?",
                (application_id, limit),
            ) as cursor:
                rows = await cursor.fetchall()
            responses = await self._responses_for(db, [r["id"] for r in rows])
        return [_evolution(r, responses.get(r["id"], [])) for r in rows]

    async def suggest(
        self, application_id: ApplicationId, limit: int | None = None,
    ) -> list[StoredSuggestion]:
        """Pending suggestions: critical first, then most confident, then newest."""
        limit = limit or settings.suggestion_default_limit
        async with self._connect() as db:
            async with db.execute(
                "SELECT * FROM suggestions WHERE application_id = ? AND status = ? "
                "ORDER BY priority ASC, confidence DESC, created_at DESC, rowid DESC "
                "LIMIT ?",
                (application_id, SuggestionStatus.PENDING.value, limit),
            ) as cursor:
                rows = await cursor.fetchall()
        return [_suggestion(r) for r in rows]

    async def get_suggestion(self, suggestion_id: SuggestionId) -> StoredSuggestion | None:
        async with self._connect() as db:
            row = await (await db.execute(
                "SELECT * FROM suggestions WHERE id = ?", (suggestion_id,),
            )).fetchone()
        return _suggestion(row) if row is not None else None

    async def _responses_for(
        self, db: aiosqlite.Connection, evolution_ids: list[EvolutionId],
    ) -> dict[EvolutionId, list[AgentResponse]]:
        grouped: dict[EvolutionId, list[AgentResponse]] = {}
        if not evolution_ids:
            return grouped
        placeholders = ", ".join("?" for _ in evolution_ids)
        async with db.execute(
            f"SELECT evolution_id, document FROM responses "
            f"WHERE evolution_id IN ({placeholders}) ORDER BY timestamp, rowid",
            evolution_ids,
        ) as cursor:
            async for row in cursor:
                grouped.setdefault(row["evolution_id"], []).append(
                    AgentResponse.model_validate(orjson.loads(row["document"]))
                )
        return grouped

    # ── Outcomes ─────────────────────────────────────────────────

    async def apply(
        self,
        suggestion_id: SuggestionId,
        application_id: ApplicationId,
        outcome: Outcome,
    ) -> Application | None:
        """Record an outcome and feed it back to the originating agent.

        Unknown, foreign and already-resolved suggestions are logged and
        yield ``None``.
        """
        status = SuggestionStatus.APPLIED if outcome.success else SuggestionStatus.FAILED
        suggestion = await self.get_suggestion(suggestion_id)
        if suggestion is None or suggestion.application_id != application_id:
            logger.warning(
                "Ignoring outcome for unknown suggestion %s (%s)", suggestion_id, application_id,
            )
            return None

        application = Application(
            suggestion_id=suggestion_id,
            application_id=application_id,
            agent_id=suggestion.agent_id,
            outcome=outcome,
            status=status,
        )
        if not await self._resolve(application):
            logger.warning("Suggestion %s was already resolved", suggestion_id)
            return None

        try:
            await self._agents.update(
                suggestion.agent_id, _feedback(outcome.success, suggestion.description),
            )
        except AgentNotFoundError:
            logger.warning(
                "Agent %s is gone; outcome for %s kept without feedback",
                suggestion.agent_id, suggestion_id,
            )
        except StoreError:
            await self._release(application)
            raise

        logger.info(
            "Suggestion %s %s (agent %s)", suggestion_id, status.value, suggestion.agent_id,
        )
        return application

    async def _resolve(self, application: Application) -> bool:
        async with self._connect() as db:
            cursor = await db.execute(
                "UPDATE suggestions SET status = ?, resolved_at = ? "
                "WHERE id = ? AND application_id = ? AND status = ?",
                (
                    application.status.value,
                    _ts(application.timestamp),
                    application.suggestion_id,
                    application.application_id,
                    SuggestionStatus.PENDING.value,
                ),
            )
            if cursor.rowcount == 0:
                return False
            await db.execute(
                "INSERT INTO applications "
                "(id, suggestion_id, application_id, agent_id, success, outcome, status, timestamp) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    application.id,
                    application.suggestion_id,
                    application.application_id,
                    application.agent_id,
                    int(application.outcome.success),
                    application.outcome.model_dump_json(by_alias=True),
                    application.status.value,
                    _ts(application.timestamp),
                ),
            )
            await db.commit()
        return True

    async def _release(self, application: Application) -> None:
        """Undo ``_resolve`` when the agent could not be updated."""
        async with self._connect() as db:
            await db.execute("DELETE FROM applications WHERE id = ?", (application.id,))
            await db.execute(
                "UPDATE suggestions SET status = ?, resolved_at = NULL WHERE id = ?",
                (SuggestionStatus.PENDING.value, application.suggestion_id),
            )
            await db.commit()

    # ── Analytics ────────────────────────────────────────────────

    async def metrics(self, application_id: ApplicationId, period: str = "7d") -> dict[str, Any]:
        """Change, suggestion and outcome counts within ``period``."""
        since = _ts(utcnow() - parse_period(period))
        async with self._connect() as db:
            by_type = await _counts(
                db,
                "SELECT change_type, COUNT(*) FROM evolutions "
                "WHERE application_id = ? AND timestamp >= ? GROUP BY change_type",
                (application_id, since),
            )
            by_status = await _counts(
                db,
                "SELECT status, COUNT(*) FROM suggestions "
                "WHERE application_id = ? AND created_at >= ? GROUP BY status",
                (application_id, since),
            )
            outcomes = await _counts(
                db,
                "SELECT success, COUNT(*) FROM applications "
                "WHERE application_id = ? AND timestamp >= ? GROUP BY success",
                (application_id, since),
            )

        applied = sum(outcomes.values())
        successful = outcomes.get("1", 0)
        return {
            "applicationId": application_id,
            "period": period,
            "since": since,
            "changes": {"total": sum(by_type.values()), "byType": by_type},
            "suggestions": {"total": sum(by_status.values()), "byStatus": by_status},
            "outcomes": {
                "total": applied,
                "successful": successful,
                "successRate": successful / applied if applied else 0.0,
            },
        }


    async def trends(
        self, period: str = "30d", application_id: ApplicationId | None = None,
    ) -> dict[str, Any]:
        """Daily change and improvement totals, across all applications by default.

        An evolution's improvements are the suggestions its agents made.
        """
        since = _ts(utcnow() - parse_period(period))
        sql = (
            "SELECT substr(e.timestamp, 1, 10) AS day, e.change_type, COUNT(*), "
            "COALESCE(SUM(s.n), 0) "
            "FROM evolutions e LEFT JOIN ("
            "  SELECT evolution_id, COUNT(*) AS n FROM suggestions GROUP BY evolution_id"
            ") s ON s.evolution_id = e.id "
            "WHERE e.timestamp >= ?"
        )
        params: list[Any] = [since]
        if application_id:
            sql += " AND e.application_id = ?"
            params.append(application_id)
        sql += " GROUP BY day, e.change_type ORDER BY day, e.change_type"

        daily: dict[str, dict[str, Any]] = {}
        by_type: dict[str, dict[str, Any]] = {}
        async with self._connect() as db:
            async with db.execute(sql, params) as cursor:
                async for day, change_type, count, improvements in cursor:
                    entry = daily.setdefault(day, {
                        "date": day, "totalChanges": 0, "totalImprovements": 0, "byType": [],
                    })
                    entry["totalChanges"] += count
                    entry["totalImprovements"] += improvements
                    entry["byType"].append(
                        {"type": change_type, "count": count, "improvements": improvements}
                    )
                    totals = by_type.setdefault(
                        change_type, {"type": change_type, "count": 0, "improvements": 0},
                    )
                    totals["count"] += count
                    totals["improvements"] += improvements

        days = list(daily.values())
        total_changes = sum(d["totalChanges"] for d in days)
        top_types = sorted(
            by_type.values(), key=lambda t: (-t["improvements"], -t["count"], t["type"]),
        )[:10]
        return {
            "period": period,
            "applicationId": application_id or "all",
            "daily": days,
            "topTypes": top_types,
            "summary": {
                "totalDays": len(days),
                "totalChanges": total_changes,
                "totalImprovements": sum(d["totalImprovements"] for d in days),
                "avgChangesPerDay": int(total_changes / len(days) + 0.5) if days else 0,
            },
        }


async def _counts(db: aiosqlite.Connection, sql: str, params: tuple) -> dict[str, int]:
    async with db.execute(sql, params) as cursor:
        return {str(row[0]): row[1] async for row in cursor}


def _feedback(success: bool, description: str):
    def apply(agent: AgentRecord) -> None:
        perf = agent.performance
        perf.outcomes_recorded += 1
        if success:
            perf.suggestions_accepted += 1
            remember(agent.memory.successes, description)
        else:
            remember(agent.memory.failures, description)
        perf.recompute()

    return apply


def _evolution(row: aiosqlite.Row, responses: list[AgentResponse]) -> Evolution:
    return Evolution(
        id=row["id"],
        application_id=row["application_id"],
        file_path=row["file_path"],
        change_type=row["change_type"],
        machine_id=row["machine_id"] or "",
        metadata=orjson.loads(row["metadata"]),
        timestamp=datetime.fromisoformat(row["timestamp"]),
        status=EvolutionStatus(row["status"]),
        agent_count=row["agent_count"],
        error=row["error"] or "",
        responses=responses,
    )


def _suggestion(row: aiosqlite.Row) -> StoredSuggestion:
    return StoredSuggestion(
        id=row["id"],
        type=row["type"],
        description=row["description"],
        priority=row["priority"],
        effort=row["effort"],
        impact=row["impact"],
        application_id=row["application_id"],
        agent_id=row["agent_id"],
        agent_name=row["agent_name"],
        evolution_id=row["evolution_id"],
        response_id=row["response_id"],
        confidence=row["confidence"],
        status=SuggestionStatus(row["status"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )
