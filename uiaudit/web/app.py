from __future__ import annotations
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional
from fastapi import FastAPI, Request, Query
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel, Field
from ..config import Settings
from ..core.errors import (
    AlreadyComplete, AlreadyScored, AuditError, CorruptRecord, InvalidToken, MissingScores, NotFound,
)
from ..service import AuditService
from ..tools.logs import log_event

_LOGGER = logging.getLogger(__name__)

# ---------------- Corps de requêtes ----------------
class StepIn(BaseModel):
    description: str
    action_type: str = "screenshot"
    screenshot_ref: str
    coordinates: Optional[Dict[str, float]] = None
    expected_outcome: Optional[str] = None

class EvaluateIn(BaseModel):
    evaluationToken: Optional[str] = None
    score: Optional[float] = None
    reason: Optional[str] = None

class SessionIn(BaseModel):
    type: str = "screen"
    subject_name: Optional[str] = None
    screens: List[str] = Field(default_factory=list)

class ScoreIn(BaseModel):
    id: str
    score: float
    reason: str = ""
    suggestion: Optional[str] = None

class SubmitIn(BaseModel):
    scores: List[ScoreIn]

def _status_for(exc: Exception) -> int:
    if isinstance(exc, NotFound):
        return 404
    if isinstance(exc, (InvalidToken, AlreadyComplete, AlreadyScored)):
        return 409
    if isinstance(exc, CorruptRecord):
        return 500
    return 422

def create_app(settings: Settings, *, service: AuditService | None = None) -> FastAPI:
    app = FastAPI(title="UI-Audit", docs_url=None, redoc_url=None)

    tmpl_dir = Path(__file__).parent / "templates"
    templates = Jinja2Templates(directory=str(tmpl_dir))

    app.state.settings = settings
    app.state.service = service or AuditService(settings)
    svc: AuditService = app.state.service

    @app.exception_handler(AuditError)
    async def _audit_error(request: Request, exc: AuditError) -> JSONResponse:
        body: Dict[str, Any] = {"error": type(exc).__name__, "detail": str(exc)}
        if isinstance(exc, MissingScores):
            body["missing_ids"] = exc.missing_ids
            body["expected_ids"] = exc.expected_ids
        if isinstance(exc, CorruptRecord):
            _LOGGER.error("%s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=_status_for(exc), content=body)

    @app.exception_handler(ValueError)
    async def _value_error(request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"error": type(exc).__name__, "detail": str(exc)})

    @app.get("/api/health")
    def health() -> dict:
        return {"status": "ok", "profile": settings.general.profile}

    # -------- Étapes --------
    @app.post("/api/cases/{case_name}/steps/{step_index}")
    async def register_step(case_name: str, step_index: int, body: StepIn) -> dict:
        step = await svc.register_step(
            case_name, step_index, body.description, body.action_type, body.screenshot_ref,
            body.coordinates, body.expected_outcome,
        )
        log_event(settings, f"register case={case_name} step={step_index}", source="api")
        return step.to_dict()

    @app.get("/api/cases/{case_name}/steps/{step_index}/pending")
    async def pending(case_name: str, step_index: int) -> dict:
        return (await svc.get_pending_state(case_name, step_index)).as_dict()

    @app.post("/api/cases/{case_name}/steps/{step_index}/evaluate")
    async def evaluate(case_name: str, step_index: int, body: EvaluateIn) -> dict:
        res = await svc.evaluate(case_name, step_index, body.evaluationToken, body.score, body.reason)
        if body.evaluationToken is not None:
            log_event(settings, f"evaluate case={case_name} step={step_index}", source="api")
        return res.as_dict()

    # -------- Rapports --------
    @app.get("/api/cases")
    async def cases() -> list[dict]:
        return [s.as_dict() for s in await svc.case_statuses()]

    @app.get("/api/report", response_class=PlainTextResponse)
    async def report(case: List[str] = Query(default=[])):
        return PlainTextResponse(await svc.build_report(case or None), media_type="text/markdown")

    @app.get("/api/criteria")
    def criteria(dimension_id: Optional[str] = None) -> list[dict]:
        return [d.as_dict() for d in svc.get_criteria(dimension_id)]

    # -------- Sessions ad hoc --------
    @app.post("/api/sessions")
    async def create_session(body: SessionIn) -> dict:
        if body.type == "style":
            session = await svc.create_style_session(body.screens)
        else:
            session = await svc.create_session(body.type, body.subject_name)
        return session.as_dict()

    @app.post("/api/sessions/{session_id}/submit")
    async def submit_session(session_id: str, body: SubmitIn) -> dict:
        entry = await svc.submit_session(session_id, [s.model_dump() for s in body.scores])
        log_event(settings, f"submit session={session_id} passed={entry.passed}", source="api")
        return entry.to_dict()

    @app.get("/api/logs")
    async def logs(session_id: Optional[str] = None, limit: int = 10) -> dict:
        entries, summary = await svc.query_logs(session_id, max(1, min(500, limit)))
        return {"logs": [e.to_dict() for e in entries], "summary": summary.as_dict()}

    # -------- Tableau de bord --------
    @app.get("/", response_class=HTMLResponse)
    async def home(request: Request):
        statuses = await svc.case_statuses()
        entries, summary = await svc.query_logs(limit=10)
        return templates.TemplateResponse(
            request,
            "index.html",
            {
                "title": "UI-Audit",
                "profile": settings.general.profile,
                "threshold": svc.registries["step"].passing_score,
                "cases": statuses,
                "latest": entries,
                "summary": summary,
            },
        )

    return app
