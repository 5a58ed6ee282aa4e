# api.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from alerts import DEFAULT_MAX_ACTIVE, AlertBook
from config_utils import get_config
from fastapi import APIRouter, Body, Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from health import PlantHealthConfig, config_from_dict, overall_health
from helpers import make_engine
from ingest import UnknownPlantError, ingest
from notify import dispatch_alert
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from store import Store, UnknownStageError

logger = logging.getLogger(__name__)

DEFAULT_DB_URL = "sqlite:///plant_data.db"

router = APIRouter(prefix="/api")


class PlantIn(BaseModel):
    name: Optional[str] = None
    species: Optional[str] = None
    variety: Optional[str] = None
    planted_date: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None
    current_stage_id: Optional[int] = None


class PlantStageIn(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    duration_days: Optional[int] = None
    order_index: Optional[int] = None
    temperature_min: Optional[float] = None
    temperature_max: Optional[float] = None
    humidity_min: Optional[float] = None
    humidity_max: Optional[float] = None
    soil_moisture_min: Optional[float] = None
    soil_moisture_max: Optional[float] = None


class DismissIn(BaseModel):
    auto_dismissed: bool = False
    mark_as_read: bool = False


def get_store(request: Request) -> Store:
    return request.app.state.store


def get_alerts(request: Request) -> AlertBook:
    return request.app.state.alerts


def get_health_config(request: Request) -> PlantHealthConfig:
    return request.app.state.health_config


# -----------------------------
# Sensors
# -----------------------------


@router.post("/sensor-data", status_code=201)
def post_sensor_data(
    request: Request,
    body: Any = Body(None),
    store: Store = Depends(get_store),
    alerts: AlertBook = Depends(get_alerts),
    health_cfg: PlantHealthConfig = Depends(get_health_config),
):
    if not isinstance(body, dict):
        raise HTTPException(
            status_code=400, detail="Sensor payload must be a JSON object."
        )
    try:
        result = ingest(store, alerts, health_cfg, body)
    except UnknownPlantError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    for alert in result.alerts_created:
        dispatch_alert(request.app.state.cfg, alert)

    return {
        "message": "Sensor data received and saved successfully.",
        "saved": result.saved,
        "alerts_created": len(result.alerts_created),
        "auto_dismissed": result.auto_dismissed,
    }


@router.get("/latest-sensors")
def latest_sensors(store: Store = Depends(get_store)):
    return store.latest_readings()


@router.get("/sensor-history/{sensor_type}")
def sensor_history(
    sensor_type: str,
    days: Optional[float] = Query(None, ge=0),
    limit: int = Query(500, ge=1, le=100000),
    store: Store = Depends(get_store),
):
    return store.sensor_history(sensor_type, days=days, limit=limit)


@router.get("/health-summary")
def health_summary(
    store: Store = Depends(get_store),
    health_cfg: PlantHealthConfig = Depends(get_health_config),
):
    summary = overall_health(store.latest_readings(), health_cfg)
    return {
        "plant": health_cfg.name,
        "stage": health_cfg.stage,
        "score": summary.score,
        "status": summary.status,
        "sensors": summary.sensors,
    }


# -----------------------------
# Alerts / notification tray
# -----------------------------


@router.get("/alerts")
def active_alerts(alerts: AlertBook = Depends(get_alerts)):
    return [a.to_dict() for a in alerts.active()]


@router.get("/alerts/history")
def alert_history(
    request: Request,
    limit: Optional[int] = Query(None, ge=1, le=1000),
    alerts: AlertBook = Depends(get_alerts),
):
    if limit is None:
        limit = request.app.state.history_limit
    return [a.to_dict() for a in alerts.history(limit)]


@router.get("/alerts/latest")
def latest_alert(alerts: AlertBook = Depends(get_alerts)):
    alert = alerts.latest_active()
    return alert.to_dict() if alert else None


@router.post("/alerts/{alert_id}/dismiss")
def dismiss_alert(
    alert_id: int,
    body: Optional[DismissIn] = None,
    alerts: AlertBook = Depends(get_alerts),
):
    body = body or DismissIn()
    if not alerts.dismiss(alert_id, body.auto_dismissed, body.mark_as_read):
        raise HTTPException(
            status_code=404, detail="Alert not found or already dismissed."
        )
    return {"message": "Alert dismissed successfully."}


@router.get("/notifications/tray")
def notification_tray(alerts: AlertBook = Depends(get_alerts)):
    return [a.to_dict() for a in alerts.tray()]


@router.get("/notifications/unread-count")
def unread_count(alerts: AlertBook = Depends(get_alerts)):
    return {"count": alerts.unread_count()}


@router.post("/notifications/{alert_id}/mark-read")
def mark_read(alert_id: int, alerts: AlertBook = Depends(get_alerts)):
    if not alerts.mark_read(alert_id):
        raise HTTPException(status_code=404, detail="Notification not found.")
    return {"message": "Notification marked as read."}


# -----------------------------
# Plants
# -----------------------------


@router.get("/plants")
def list_plants(store: Store = Depends(get_store)):
    return store.list_plants()


@router.post("/plants", status_code=201)
def create_plant(body: PlantIn, store: Store = Depends(get_store)):
    if not body.name:
        raise HTTPException(status_code=400, detail="Plant name is required.")
    try:
        return store.create_plant(**body.model_dump())
    except UnknownStageError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.put("/plants/{plant_id}")
def update_plant(plant_id: int, body: PlantIn, store: Store = Depends(get_store)):
    if not body.name:
        raise HTTPException(status_code=400, detail="Plant name is required.")
    try:
        plant = store.update_plant(plant_id, **body.model_dump())
    except UnknownStageError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    if plant is None:
        raise HTTPException(status_code=404, detail="Plant not found.")
    return plant


@router.delete("/plants/{plant_id}")
def deactivate_plant(plant_id: int, store: Store = Depends(get_store)):
    if not store.deactivate_plant(plant_id):
        raise HTTPException(status_code=404, detail="Plant not found.")
    return {"message": "Plant deactivated successfully."}


@router.get("/plants/{plant_id}/sensor-data")
def plant_sensor_data(
    plant_id: int,
    sensorType: Optional[str] = Query(None),
    days: Optional[float] = Query(None, ge=0),
    limit: Optional[int] = Query(None, ge=1),
    store: Store = Depends(get_store),
):
    return store.plant_sensor_data(
        plant_id, sensor_type=sensorType, days=days, limit=limit
    )


@router.get("/plants/{plant_id}/stage-history")
def plant_stage_history(plant_id: int, store: Store = Depends(get_store)):
    if store.get_plant(plant_id) is None:
        raise HTTPException(status_code=404, detail="Plant not found.")
    return store.plant_stage_history(plant_id)


@router.get("/plant-stages")
def list_plant_stages(store: Store = Depends(get_store)):
    return store.list_stages()


@router.post("/plant-stages", status_code=201)
def create_plant_stage(body: PlantStageIn, store: Store = Depends(get_store)):
    if not body.name:
        raise HTTPException(status_code=400, detail="Stage name is required.")
    return store.create_stage(**body.model_dump())


# -----------------------------
# App factory
# -----------------------------


async def _db_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("Database error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=500,
        content={"message": "Database operation failed.", "error": str(exc)},
    )


def _cors_kwargs(origins: List[str]) -> Dict[str, Any]:
    plain = [o for o in origins if not o.startswith("^")]
    patterns = [o for o in origins if o.startswith("^")]
    kwargs: Dict[str, Any] = {"allow_origins": plain}
    if patterns:
        kwargs["allow_origin_regex"] = "|".join(f"(?:{p})" for p in patterns)
    return kwargs


def create_app(
    cfg: Optional[Dict[str, Any]] = None,
    store: Optional[Store] = None,
    alerts: Optional[AlertBook] = None,
) -> FastAPI:
    """
    Build the API. `store` and `alerts` may be injected (tests); otherwise an
    engine is created from cfg["app"]["db_url"].
    """
    cfg = cfg if cfg is not None else get_config()
    app_cfg = cfg.get("app", {}) or {}
    alert_cfg = cfg.get("alerts", {}) or {}

    if store is None or alerts is None:
        engine = make_engine(
            app_cfg.get("db_url", DEFAULT_DB_URL), echo=bool(app_cfg.get("echo"))
        )
        store = store or Store(engine)
        alerts = alerts or AlertBook(
            engine, max_active=int(alert_cfg.get("max_active", DEFAULT_MAX_ACTIVE))
        )

    app = FastAPI(title="Plant Monitor API", version="0.1.0")
    app.state.cfg = cfg
    app.state.store = store
    app.state.alerts = alerts
    app.state.health_config = config_from_dict(cfg.get("plant"))
    app.state.history_limit = int(alert_cfg.get("history_limit", 50))

    app.add_middleware(
        CORSMiddleware,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
        allow_credentials=True,
        **_cors_kwargs(app_cfg.get("cors_origins", ["http://localhost:3000"])),
    )
    app.add_exception_handler(SQLAlchemyError, _db_error_handler)
    app.include_router(router)
    return app
