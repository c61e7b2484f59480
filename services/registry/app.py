from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Query, Response

from clb import db
from clb.api_models import InstanceOut, RegisterInstanceRequest, ServiceOut
from clb.db import InstanceRow
from clb.errors import install_error_handlers
from clb.logging_config import setup_logging
from clb.settings import settings
from clb.validation import validate_instance_id, validate_service_name

log = logging.getLogger(__name__)


def _out(service: str, row: InstanceRow) -> InstanceOut:
    return InstanceOut(
        instance_id=row.instance_id,
        service=service,
        host=row.host,
        port=row.port,
        label=row.label,
        weight=row.weight,
        lease_duration_s=row.lease_duration_s,
        last_renewal=row.last_renewal,
    )


def _checked_name(name: str) -> str:
    try:
        validate_service_name(name)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return name


def create_app() -> FastAPI:
    setup_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db.init_db()
        db.log_event("INFO", "Registry started")
        yield
        db.log_event("INFO", "Registry stopped")

    app = FastAPI(title="Service Registry", lifespan=lifespan)
    install_error_handlers(app)

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "healthy"}

    @app.post("/services/{name}/instances", status_code=201, response_model=InstanceOut)
    def register(name: str, req: RegisterInstanceRequest) -> InstanceOut:
        _checked_name(name)
        instance_id = req.instance_id or f"{req.host}:{name}:{req.port}"
        try:
            validate_instance_id(instance_id)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e

        row = db.register_instance(
            service_name=name,
            instance_id=instance_id,
            host=req.host,
            port=req.port,
            label=req.label,
            weight=req.weight,
            lease_duration_s=req.lease_duration_s,
        )
        db.log_event("INFO", f"Registered at {req.host}:{req.port}", service_name=name, instance_id=instance_id)
        log.info("Registered %s under %s", instance_id, name)
        return _out(name, row)

    @app.put("/services/{name}/instances/{instance_id}/heartbeat")
    def heartbeat(name: str, instance_id: str) -> dict[str, str]:
        if not db.renew_lease(name, instance_id):
            db.log_event("WARN", "Heartbeat from unknown instance", service_name=name, instance_id=instance_id)
            raise HTTPException(status_code=404, detail=f"Instance '{instance_id}' is not registered under '{name}'.")
        return {"status": "renewed"}

    @app.delete("/services/{name}/instances/{instance_id}", status_code=204)
    def deregister(name: str, instance_id: str) -> Response:
        if not db.deregister_instance(name, instance_id):
            raise HTTPException(status_code=404, detail=f"Instance '{instance_id}' is not registered under '{name}'.")
        db.log_event("INFO", "Deregistered", service_name=name, instance_id=instance_id)
        log.info("Deregistered %s from %s", instance_id, name)
        return Response(status_code=204)

    @app.get("/services/{name}/instances", response_model=list[InstanceOut])
    def instances(name: str) -> list[InstanceOut]:
        _checked_name(name)
        if settings.evict_on_read:
            db.evict_expired()
        return [_out(name, r) for r in db.list_live_instances(name)]

    @app.get("/services", response_model=list[ServiceOut])
    def services() -> list[ServiceOut]:
        if settings.evict_on_read:
            db.evict_expired()
        return [ServiceOut(name=s.name, instances=len(db.list_live_instances(s.name))) for s in db.list_services()]

    @app.get("/events")
    def events(limit: int = Query(100, ge=1, le=1000)) -> list[dict]:
        return db.latest_events(limit)

    return app


app = create_app()
