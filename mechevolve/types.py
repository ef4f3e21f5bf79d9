"""Core types shared across all mechevolve subsystems."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import TypeAlias

# ── ID Types ──────────────────────────────────────────────────────────────────

AgentId: TypeAlias = str
ApplicationId: TypeAlias = str
EvolutionId: TypeAlias = str
SuggestionId: TypeAlias = str


def new_id() -> str:
    return uuid.uuid4().hex[:12]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Agent States ──────────────────────────────────────────────────────────────


class AgentStatus(str, Enum):
    LEARNING = "learning"
    ACTIVE = "active"
    INACTIVE = "inactive"
    ERROR = "error"


ELIGIBLE_STATUSES = frozenset({AgentStatus.ACTIVE, AgentStatus.LEARNING})


class AgentPriority(str, Enum):
    CRITICAL = "critical"
    IMPORTANT = "important"
    NICE_TO_HAVE = "nice-to-have"

    @property
    def rank(self) -> int:
        """1 = most urgent. Used as the numeric suggestion priority."""
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    AgentPriority.CRITICAL: 1,
    AgentPriority.IMPORTANT: 2,
    AgentPriority.NICE_TO_HAVE: 3,
}


# ── Ledger States ─────────────────────────────────────────────────────────────


class SuggestionStatus(str, Enum):
    PENDING = "pending"
    APPLIED = "applied"
    FAILED = "failed"


class EvolutionStatus(str, Enum):
    TRACKED = "tracked"
    ANALYZING = "analyzing"
    ANALYZED = "analyzed"
    ANALYSIS_FAILED = "analysis_failed"
