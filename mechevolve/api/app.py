"""HTTP API — FastAPI surface over the Evolution Engine.

`mechevolve serve` runs this app at localhost:3011. Errors answer
``{"success": false, "error": ..., "category": ...}`` with the status
code of their category; nothing else about the failure is exposed.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import Body, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError

from mechevolve import __version__
from mechevolve.agents.models import AgentUpdate, ProjectAnalysis
from mechevolve.evolution.engine import EvolutionEngine
from mechevolve.evolution.models import ApplyRequest, TrackRequest
from mechevolve.exceptions import EvolveError, InvalidRequestError, StoreError
from mechevolve.types import utcnow

_logger = logging.getLogger(__name__)

app = FastAPI(title="mechevolve", version=__version__)

_engine: EvolutionEngine | None = None

STATUS_BY_CATEGORY = {
    "validation": 400,
    "not-found": 404,
    "capacity-limited": 409,
    "transient-service": 503,
}


def configure(engine: EvolutionEngine | None) -> None:
    global _engine
    _engine = engine


def _require_engine() -> EvolutionEngine:
    if _engine is None:
        raise StoreError("Evolution engine is not initialized")
    return _engine


def _failure(message: str, category: str) -> JSONResponse:
    return JSONResponse(
        {"success": False, "error": message, "category": category},
        status_code=STATUS_BY_CATEGORY.get(category, 500),
    )


@app.exception_handler(EvolveError)
async def _evolve_error(request: Request, exc: EvolveError) -> JSONResponse:
    if exc.category == "transient-service":
        _logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return _failure(str(exc), exc.category)


@app.exception_handler(RequestValidationError)
async def _request_invalid(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = sorted({".".join(str(p) for p in e["loc"][1:]) or "body" for e in exc.errors()})
    return _failure(f"Invalid request: {', '.join(fields)}", "validation")


def _analysis_from(application_id: str, payload: dict[str, Any]) -> ProjectAnalysis:
    given = payload.get("applicationId", payload.get("application_id"))
    if given is not None and given != application_id:
        raise InvalidRequestError(f"Analysis is for {given}, not {application_id}")
    try:
        return ProjectAnalysis.model_validate({**payload, "applicationId": application_id})
    except ValidationError as e:
        raise InvalidRequestError(f"Invalid analysis: {e.error_count()} error(s)") from e


def _created_summary(agents) -> dict:
    return {
        "created": len(agents),
        "tier1": sum(1 for a in agents if a.tier == 1),
        "tier2": sum(1 for a in agents if a.tier == 2),
        "tier3": sum(1 for a in agents if a.tier == 3),
        "agents": [a.summary() for a in agents],
    }


# ── Health ───────────────────────────────────────────────────────

@app.get("/health")
async def health() -> dict:
    return {
        "status": "healthy" if _engine is not None else "starting",
        "service": "mechevolve",
        "version": __version__,
        "timestamp": utcnow().isoformat(),
    }


# ── Evolution ────────────────────────────────────────────────────

@app.post("/api/evolution/track")
async def track(request: TrackRequest) -> dict:
    result = await _require_engine().track(request)
    return result.to_wire()


@app.get("/api/evolution/suggest/{application_id}")
async def suggest(application_id: str, limit: int | None = Query(None, ge=1, le=200)) -> dict:
    suggestions = await _require_engine().suggest(application_id, limit)
    return {
        "success": True,
        "applicationId": application_id,
        "count": len(suggestions),
        "suggestions": [s.model_dump(mode="json", by_alias=True) for s in suggestions],
    }


@app.post("/api/evolution/apply")
async def apply(request: ApplyRequest) -> dict:
    application = await _require_engine().apply(request)
    if application is None:
        return {
            "success": True,
            "status": "ignored",
            "suggestionId": request.suggestion_id,
            "message": "Unknown or already resolved suggestion",
        }
    return {
        "success": True,
        "status": application.status.value,
        "suggestionId": application.suggestion_id,
        "applicationRecordId": application.id,
        "message": f"Outcome recorded for agent {application.agent_id}",
    }


@app.get("/api/evolution/history/{application_id}")
async def history(application_id: str, limit: int | None = Query(None, ge=1, le=500)) -> dict:
    evolutions = await _require_engine().history(application_id, limit)
    return {
        "success": True,
        "applicationId": application_id,
        "count": len(evolutions),
        "evolutions": [e.model_dump(mode="json", by_alias=True, exclude_none=True) for e in evolutions],
    }


@app.get("/api/analytics/metrics/{application_id}")
async def metrics(application_id: str, period: str = "7d") -> dict:
    return {"success": True, "metrics": await _require_engine().metrics(application_id, period)}


@app.get("/api/analytics/trends")
async def trends(
    period: str = "30d",
    application_id: str | None = Query(None, alias="applicationId"),
    project_id: str | None = Query(None, alias="projectId"),
) -> dict:
    """Daily change and improvement totals for one application or all of them."""
    result = await _require_engine().trends(period, application_id or project_id)
    return {
        "success": True,
        "period": result.pop("period"),
        "applicationId": result.pop("applicationId"),
        "trends": result,
    }


# ── Agents ───────────────────────────────────────────────────────

class AnalyzeProjectRequest(BaseModel):
    application_id: str = Field(alias="applicationId")
    project_path: str = Field(alias="projectPath")

    model_config = {"populate_by_name": True}


@app.post("/api/agents/analyze-project")
async def analyze_project(request: AnalyzeProjectRequest) -> dict:
    analysis, created = await _require_engine().analyze_project(
        request.application_id, request.project_path,
    )
    return {
        "success": True,
        "analysis": {
            "projectType": analysis.project_type,
            "languages": analysis.languages,
            "frameworks": analysis.frameworks,
            "complexity": analysis.complexity,
            "patternsDetected": len(analysis.patterns),
        },
        "agents": _created_summary(created),
        "message": f"Created {len(created)} specialized agents for your project",
    }


@app.post("/api/agents/{application_id}/create")
async def create_agents(application_id: str, payload: dict[str, Any] = Body(...)) -> dict:
    analysis = _analysis_from(application_id, payload)
    created = await _require_engine().factory.create_agents_from_analysis(analysis)
    return {"success": True, "applicationId": application_id, "agents": _created_summary(created)}


@app.post("/api/agents/{application_id}/reset")
async def reset_agents(application_id: str, payload: dict[str, Any] = Body(...)) -> dict:
    analysis = _analysis_from(application_id, payload)
    created = await _require_engine().factory.reset_agents(application_id, analysis)
    return {"success": True, "applicationId": application_id, "agents": _created_summary(created)}


@app.post("/api/agents/{application_id}/review")
async def review_agents(application_id: str) -> dict:
    promoted = await _require_engine().factory.review_performance(application_id)
    return {
        "success": True,
        "applicationId": application_id,
        "promoted": [a.summary() for a in promoted],
    }


@app.get("/api/agents/{application_id}")
async def list_agents(
    application_id: str,
    include_inactive: bool = Query(False, alias="includeInactive"),
) -> dict:
    agents = await _require_engine().factory.list_agents(application_id, include_inactive)
    return {
        "success": True,
        "applicationId": application_id,
        "agentCount": len(agents),
        "agents": [a.summary() for a in agents],
    }


@app.get("/api/agents/{application_id}/ecosystem")
async def ecosystem(application_id: str) -> dict:
    snapshot = await _require_engine().factory.get_ecosystem(application_id)
    return {"success": True, "ecosystem": snapshot.model_dump(mode="json", by_alias=True)}


@app.get("/api/agents/{application_id}/{agent_id}/memory")
async def agent_memory(application_id: str, agent_id: str) -> dict:
    agent = await _require_engine().factory.get_agent(application_id, agent_id)
    return {
        "success": True,
        "agent": {
            "name": agent.name,
            "role": agent.role,
            "memory": agent.memory.model_dump(mode="json", by_alias=True),
            "performance": agent.performance.model_dump(by_alias=True),
            "specification": agent.specification.model_dump(by_alias=True),
        },
    }


@app.patch("/api/agents/{application_id}/{agent_id}")
async def update_agent(application_id: str, agent_id: str, changes: AgentUpdate) -> dict:
    agent = await _require_engine().factory.update_agent(application_id, agent_id, changes)
    return {"success": True, "agent": agent.summary()}


@app.delete("/api/agents/{application_id}/{agent_id}")
async def delete_agent(application_id: str, agent_id: str) -> dict:
    await _require_engine().factory.delete_agent(application_id, agent_id)
    return {"success": True, "deleted": agent_id}
