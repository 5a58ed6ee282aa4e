# store.py
from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from models import Plant, PlantStage, PlantStageHistory, SensorReading
from sqlalchemy import func, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


class UnknownStageError(ValueError):
    pass


PLANT_FIELDS = ("name", "species", "variety", "planted_date", "location", "notes")
STAGE_FIELDS = (
    "name",
    "description",
    "duration_days",
    "order_index",
    "temperature_min",
    "temperature_max",
    "humidity_min",
    "humidity_max",
    "soil_moisture_min",
    "soil_moisture_max",
)


def _iso(ts: Optional[dt.datetime]) -> Optional[str]:
    return ts.isoformat(timespec="seconds") if ts else None


def reading_to_dict(r: SensorReading) -> Dict[str, Any]:
    return {
        "id": r.id,
        "timestamp": _iso(r.timestamp),
        "sensor_type": r.sensor_type,
        "value": r.value,
        "unit": r.unit,
        "plant_id": r.plant_id,
    }


def plant_to_dict(p: Plant, stage: Optional[PlantStage] = None) -> Dict[str, Any]:
    out = {f: getattr(p, f) for f in PLANT_FIELDS}
    out.update(
        id=p.id,
        current_stage_id=p.current_stage_id,
        active=p.active,
        created_at=_iso(p.created_at),
        updated_at=_iso(p.updated_at),
    )
    out["current_stage_name"] = stage.name if stage else None
    out["current_stage_description"] = stage.description if stage else None
    return out


def stage_to_dict(s: PlantStage) -> Dict[str, Any]:
    out = {f: getattr(s, f) for f in STAGE_FIELDS}
    out["id"] = s.id
    return out


class Store:
    def __init__(self, engine: Engine):
        self.engine = engine

    # -----------------------------
    # Sensor readings
    # -----------------------------

    def insert_readings(self, rows: Iterable[Mapping[str, Any]]) -> int:
        """Insert all rows in one transaction."""
        n = 0
        with Session(self.engine) as session:
            for row in rows:
                session.add(
                    SensorReading(
                        sensor_type=row["sensor_type"],
                        value=float(row["value"]),
                        unit=row.get("unit") or "",
                        plant_id=row.get("plant_id"),
                    )
                )
                n += 1
            session.commit()
        return n

    def latest_readings(self) -> List[Dict[str, Any]]:
        """Most recent reading per sensor_type, newest first."""
        latest_ids = (
            select(func.max(SensorReading.id).label("id"))
            .group_by(SensorReading.sensor_type)
            .subquery()
        )
        with Session(self.engine) as session:
            stmt = (
                select(SensorReading)
                .join(latest_ids, SensorReading.id == latest_ids.c.id)
                .order_by(SensorReading.timestamp.desc(), SensorReading.id.desc())
            )
            rows = session.execute(stmt).scalars().all()
            return [reading_to_dict(r) for r in rows]

    def sensor_history(
        self,
        sensor_type: str,
        days: Optional[float] = None,
        limit: Optional[int] = 500,
    ) -> List[Dict[str, Any]]:
        stmt = select(
            SensorReading.timestamp, SensorReading.value, SensorReading.unit
        ).where(SensorReading.sensor_type == sensor_type)
        if days is not None:
            cutoff = dt.datetime.now() - dt.timedelta(days=days)
            stmt = stmt.where(SensorReading.timestamp >= cutoff)
        stmt = stmt.order_by(SensorReading.timestamp.asc(), SensorReading.id.asc())
        if limit is not None:
            stmt = stmt.limit(limit)

        with Session(self.engine) as session:
            rows = session.execute(stmt).all()
        return [
            {"timestamp": _iso(ts), "value": float(v), "unit": u} for ts, v, u in rows
        ]

    def plant_sensor_data(
        self,
        plant_id: int,
        sensor_type: Optional[str] = None,
        days: Optional[float] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        stmt = select(
            SensorReading.timestamp,
            SensorReading.sensor_type,
            SensorReading.value,
            SensorReading.unit,
        ).where(SensorReading.plant_id == plant_id)
        if sensor_type:
            stmt = stmt.where(SensorReading.sensor_type == sensor_type)
        if days is not None:
            cutoff = dt.datetime.now() - dt.timedelta(days=days)
            stmt = stmt.where(SensorReading.timestamp >= cutoff)
        stmt = stmt.order_by(SensorReading.timestamp.desc(), SensorReading.id.desc())
        if limit is not None:
            stmt = stmt.limit(limit)

        with Session(self.engine) as session:
            rows = session.execute(stmt).all()
        return [
            {"timestamp": _iso(ts), "sensor_type": st, "value": float(v), "unit": u}
            for ts, st, v, u in rows
        ]

    # -----------------------------
    # Plants
    # -----------------------------

    def list_plants(self) -> List[Dict[str, Any]]:
        with Session(self.engine) as session:
            stmt = (
                select(Plant, PlantStage)
                .outerjoin(PlantStage, Plant.current_stage_id == PlantStage.id)
                .where(Plant.active.is_(True))
                .order_by(Plant.created_at.desc(), Plant.id.desc())
            )
            return [plant_to_dict(p, s) for p, s in session.execute(stmt).all()]

    def get_plant(self, plant_id: int) -> Optional[Dict[str, Any]]:
        with Session(self.engine) as session:
            plant = session.get(Plant, plant_id)
            if plant is None:
                return None
            stage = (
                session.get(PlantStage, plant.current_stage_id)
                if plant.current_stage_id
                else None
            )
            return plant_to_dict(plant, stage)

    def create_plant(self, **fields: Any) -> Dict[str, Any]:
        with Session(self.engine) as session:
            self._check_stage(session, fields.get("current_stage_id"))
            plant = Plant(**{f: fields.get(f) for f in PLANT_FIELDS})
            plant.current_stage_id = fields.get("current_stage_id")
            session.add(plant)
            session.flush()
            if plant.current_stage_id is not None:
                session.add(
                    PlantStageHistory(
                        plant_id=plant.id, stage_id=plant.current_stage_id
                    )
                )
            session.commit()
            plant_id = plant.id
        logger.info("Created plant %s (%s)", plant_id, fields.get("name"))
        return self.get_plant(plant_id)

    def update_plant(self, plant_id: int, **fields: Any) -> Optional[Dict[str, Any]]:
        """Replace editable fields; a stage change is appended to the history."""
        with Session(self.engine) as session:
            plant = session.get(Plant, plant_id)
            if plant is None:
                return None
            for f in PLANT_FIELDS:
                setattr(plant, f, fields.get(f))
            new_stage = fields.get("current_stage_id")
            self._check_stage(session, new_stage)
            if new_stage != plant.current_stage_id:
                plant.current_stage_id = new_stage
                session.add(PlantStageHistory(plant_id=plant.id, stage_id=new_stage))
                logger.info("Plant %s moved to stage %s", plant_id, new_stage)
            plant.updated_at = dt.datetime.now()
            session.commit()
        return self.get_plant(plant_id)

    def deactivate_plant(self, plant_id: int) -> bool:
        with Session(self.engine) as session:
            plant = session.get(Plant, plant_id)
            if plant is None:
                return False
            plant.active = False
            plant.updated_at = dt.datetime.now()
            session.commit()
        return True

    def plant_stage_history(self, plant_id: int) -> List[Dict[str, Any]]:
        with Session(self.engine) as session:
            stmt = (
                select(PlantStageHistory, PlantStage.name)
                .outerjoin(PlantStage, PlantStageHistory.stage_id == PlantStage.id)
                .where(PlantStageHistory.plant_id == plant_id)
                .order_by(
                    PlantStageHistory.changed_at.asc(), PlantStageHistory.id.asc()
                )
            )
            return [
                {
                    "id": h.id,
                    "plant_id": h.plant_id,
                    "stage_id": h.stage_id,
                    "stage_name": name,
                    "changed_at": _iso(h.changed_at),
                }
                for h, name in session.execute(stmt).all()
            ]

    # -----------------------------
    # Plant stages
    # -----------------------------

    def list_stages(self) -> List[Dict[str, Any]]:
        with Session(self.engine) as session:
            stmt = select(PlantStage).order_by(
                PlantStage.order_index.asc(), PlantStage.id.asc()
            )
            return [stage_to_dict(s) for s in session.execute(stmt).scalars().all()]

    def create_stage(self, **fields: Any) -> Dict[str, Any]:
        with Session(self.engine) as session:
            values = {f: fields.get(f) for f in STAGE_FIELDS}
            if values["order_index"] is None:
                values["order_index"] = 0
            stage = PlantStage(**values)
            session.add(stage)
            session.commit()
            return stage_to_dict(stage)

    @staticmethod
    def _check_stage(session: Session, stage_id: Optional[int]) -> None:
        if stage_id is not None and session.get(PlantStage, stage_id) is None:
            raise UnknownStageError(f"Plant stage {stage_id} does not exist")
