from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from safety_map import config
from safety_map.errors import InvalidConfiguration, UnknownIncident
from safety_map.models import Coordinates, IncidentStatus, Severity
from safety_map.system import SituationalAwarenessSystem, build_default_system

logger = logging.getLogger(__name__)


class TargetIn(BaseModel):
    longitude: float = Field(..., ge=-180, le=180)
    latitude: float = Field(..., ge=-90, le=90)


class ProfileIn(BaseModel):
    profile: str
    speed: Optional[float] = None


class StatusIn(BaseModel):
    status: IncidentStatus


class SeverityIn(BaseModel):
    severity: Severity


class NoteIn(BaseModel):
    note: str = Field(..., min_length=1)


def create_app(system: Optional[SituationalAwarenessSystem] = None, start_background: bool = True) -> FastAPI:
    system = system or build_default_system()

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        if start_background:
            await system.start()
        try:
            yield
        finally:
            if start_background:
                await system.stop()

    app = FastAPI(title="Live Safety Map Simulation", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.system = system

    def _incident_or_404(incident_id: str):
        try:
            return system.engine.get(incident_id)
        except UnknownIncident as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/location")
    async def location():
        return {
            "coordinates": system.position.to_list(),
            "movement": system.simulator.snapshot(),
        }

    @app.get("/incidents")
    async def incidents(active: bool = False):
        return [incident.to_dict() for incident in system.incidents(active_only=active)]

    @app.get("/incidents/{incident_id}")
    async def incident_detail(incident_id: str):
        return _incident_or_404(incident_id).to_dict()

    @app.get("/safety")
    async def safety():
        return system.safety().to_dict()

    @app.get("/activity")
    async def activity():
        return [entry.to_dict() for entry in reversed(system.engine.activity())]

    @app.post("/target")
    async def set_target(payload: TargetIn):
        target = Coordinates(longitude=payload.longitude, latitude=payload.latitude)
        system.simulator.set_target(target)
        return {"ok": True, "target": target.to_list()}

    @app.delete("/target")
    async def clear_target():
        system.simulator.set_target(None)
        return {"ok": True, "target": None}

    @app.post("/profile")
    async def set_profile(payload: ProfileIn):
        try:
            system.simulator.set_profile(payload.profile, speed=payload.speed)
        except InvalidConfiguration as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        return {"ok": True, "movement": system.simulator.snapshot()}

    @app.patch("/incidents/{incident_id}/status")
    async def update_status(incident_id: str, payload: StatusIn):
        _incident_or_404(incident_id)
        return system.engine.set_status(incident_id, payload.status).to_dict()

    @app.patch("/incidents/{incident_id}/severity")
    async def update_severity(incident_id: str, payload: SeverityIn):
        _incident_or_404(incident_id)
        return system.engine.set_severity(incident_id, payload.severity).to_dict()

    @app.post("/incidents/{incident_id}/notes")
    async def add_note(incident_id: str, payload: NoteIn):
        _incident_or_404(incident_id)
        return system.engine.add_note(incident_id, payload.note).to_dict()

    return app


def run(host: str = config.HOST, port: int = config.PORT) -> None:
    logging.basicConfig(
        level=config.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Safety map simulation running on http://%s:%s", host, port)
    uvicorn.run(create_app(), host=host, port=port)


if __name__ == "__main__":
    run()
