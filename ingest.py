# ingest.py
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from alerts import AlertBook
from health import PlantHealthConfig
from models import Alert
from store import Store

logger = logging.getLogger(__name__)

PLANT_ID_KEY = "plantId"
NESTED_KEY = "sensorData"


class UnknownPlantError(ValueError):
    pass


@dataclass
class IngestResult:
    saved: int
    alerts_created: List[Alert] = field(default_factory=list)
    auto_dismissed: int = 0


def _is_number(v: Any) -> bool:
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        return False
    # json accepts NaN, Infinity, 1e999 and ints too large for a float
    try:
        return math.isfinite(v)
    except OverflowError:
        return False


def parse_payload(
    body: Mapping[str, Any], config: PlantHealthConfig
) -> List[Dict[str, Any]]:
    """
    Turn a sensor payload into reading rows.

    Accepts {"temperature": 25.3, ..., "plantId": 1} or
    {"sensorData": {...}, "plantId": 1}. Non-numeric and non-finite values
    are skipped.
    """
    data = body.get(NESTED_KEY)
    if not isinstance(data, Mapping):
        data = body
    plant_id: Optional[int] = body.get(PLANT_ID_KEY) or None
    if plant_id is not None and (
        isinstance(plant_id, bool) or not isinstance(plant_id, int)
    ):
        raise UnknownPlantError(f"Invalid plantId: {plant_id!r}")

    rows: List[Dict[str, Any]] = []
    for sensor_type, value in data.items():
        if sensor_type in (PLANT_ID_KEY, NESTED_KEY):
            continue
        if not _is_number(value):
            logger.warning(
                "Skipping non-numeric sensor data for %s: %r (type: %s)",
                sensor_type,
                value,
                type(value).__name__,
            )
            continue
        rows.append(
            {
                "sensor_type": sensor_type,
                "value": float(value),
                "unit": config.unit_for(sensor_type),
                "plant_id": plant_id,
            }
        )
    return rows


def ingest(
    store: Store,
    alerts: AlertBook,
    config: PlantHealthConfig,
    body: Mapping[str, Any],
) -> IngestResult:
    rows = parse_payload(body, config)
    plant_id = rows[0]["plant_id"] if rows else None
    if plant_id is not None and store.get_plant(plant_id) is None:
        raise UnknownPlantError(f"Plant {plant_id} does not exist")

    saved = store.insert_readings(rows)
    created, evicted = alerts.record(rows, config)
    return IngestResult(saved=saved, alerts_created=created, auto_dismissed=evicted)
