"""FastAPI-based JSON interface for the production tracker."""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..clock import Clock
from ..config import TrackerConfig, configure_logging
from ..errors import (
    InvalidInputError,
    InvalidReferenceError,
    InvalidTransitionError,
    InvariantViolationError,
    SessionBusyError,
    SessionNotFoundError,
)
from ..services import TrackerService
from ..storage import TrackerDatabase

logger = logging.getLogger(__name__)


class StartSessionRequest(BaseModel):
    """Body for starting a production session"""
    employee_id: str
    machine_id: str
    mold_id: str
    material_id: Optional[str] = None
    notes: str = ""


class PauseSessionRequest(BaseModel):
    reason_id: Optional[str] = None
    note: Optional[str] = None


class ResumeSessionRequest(BaseModel):
    new_mold_id: Optional[str] = None
    new_material_id: Optional[str] = None


class EndSessionRequest(BaseModel):
    total_pieces: int = Field(..., ge=0)


def _as_json(record: Any) -> Dict[str, Any]:
    payload = asdict(record)
    for key, value in payload.items():
        if hasattr(value, "isoformat"):
            payload[key] = value.isoformat()
        elif hasattr(value, "value"):
            payload[key] = value.value
    return payload


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": message})


def create_app(
    database_path: Optional[str] = None,
    *,
    clock: Optional[Clock] = None,
    config: Optional[TrackerConfig] = None,
) -> FastAPI:
    config = config or TrackerConfig()
    configure_logging(config)
    database = TrackerDatabase(database_path or config.database_path)
    service = TrackerService(
        employee_repo=database.employees,
        machine_repo=database.machines,
        mold_repo=database.molds,
        raw_material_repo=database.raw_materials,
        mold_material_repo=database.mold_materials,
        pause_reason_repo=database.pause_reasons,
        session_repo=database.sessions,
        pause_repo=database.pauses,
        clock=clock,
        config=config,
    )

    app = FastAPI(title="Molding Production Tracker")
    app.state.tracker_service = service
    app.state.database = database

    @app.on_event("shutdown")
    async def shutdown_event() -> None:  # pragma: no cover - framework hook
        database.close()

    @app.exception_handler(InvalidReferenceError)
    async def invalid_reference(request: Request, exc: InvalidReferenceError):
        return _error(400, str(exc))

    @app.exception_handler(InvalidInputError)
    async def invalid_input(request: Request, exc: InvalidInputError):
        return _error(400, str(exc))

    @app.exception_handler(SessionNotFoundError)
    async def session_not_found(request: Request, exc: SessionNotFoundError):
        return _error(404, str(exc))

    @app.exception_handler(InvalidTransitionError)
    async def invalid_transition(request: Request, exc: InvalidTransitionError):
        return _error(409, str(exc))

    @app.exception_handler(SessionBusyError)
    async def session_busy(request: Request, exc: SessionBusyError):
        return _error(503, str(exc))

    @app.exception_handler(InvariantViolationError)
    async def invariant_violation(request: Request, exc: InvariantViolationError):
        logger.error(f"Internal failure on {request.url.path}: {exc}")
        return _error(500, "Internal production ledger error")

    # Sync handlers run in the threadpool, so the blocking session locks
    # never stall the event loop.
    @app.get("/api/production-sessions")
    def list_sessions(request: Request):
        service: TrackerService = request.app.state.tracker_service
        return [_as_json(session) for session in service.list_sessions()]

    @app.get("/api/production-sessions/active")
    def list_active_sessions(request: Request):
        service: TrackerService = request.app.state.tracker_service
        return [_as_json(session) for session in service.list_active_sessions()]

    @app.post("/api/production-sessions", status_code=201)
    def start_session(request: Request, body: StartSessionRequest):
        service: TrackerService = request.app.state.tracker_service
        session = service.start_session(
            body.employee_id,
            body.machine_id,
            body.mold_id,
            body.material_id,
            notes=body.notes,
        )
        return _as_json(session)

    @app.get("/api/production-sessions/{session_id}")
    def get_session(request: Request, session_id: str):
        service: TrackerService = request.app.state.tracker_service
        return _as_json(service.get_session(session_id))

    @app.put("/api/production-sessions/{session_id}/pause")
    def pause_session(request: Request, session_id: str, body: PauseSessionRequest):
        service: TrackerService = request.app.state.tracker_service
        pause = service.pause_session(session_id, body.reason_id, body.note)
        return {"message": "Production paused", "pause": _as_json(pause)}

    @app.put("/api/production-sessions/{session_id}/resume")
    def resume_session(request: Request, session_id: str, body: ResumeSessionRequest):
        service: TrackerService = request.app.state.tracker_service
        session = service.resume_session(
            session_id, body.new_mold_id, body.new_material_id
        )
        return {"message": "Production resumed", "session": _as_json(session)}

    @app.put("/api/production-sessions/{session_id}/end")
    def end_session(request: Request, session_id: str, body: EndSessionRequest):
        service: TrackerService = request.app.state.tracker_service
        session = service.end_session(session_id, body.total_pieces)
        return {"message": "Production finished", "session": _as_json(session)}

    @app.get("/api/production-sessions/{session_id}/pauses")
    def session_pauses(request: Request, session_id: str):
        service: TrackerService = request.app.state.tracker_service
        return [_as_json(pause) for pause in service.session_pauses(session_id)]

    @app.get("/api/production-sessions/{session_id}/metrics")
    def session_metrics(request: Request, session_id: str):
        service: TrackerService = request.app.state.tracker_service
        return service.session_metrics(session_id).to_dict()

    @app.get("/api/dashboard/stats")
    def dashboard_stats(request: Request):
        service: TrackerService = request.app.state.tracker_service
        return service.dashboard_stats()

    return app


__all__ = ["create_app"]
