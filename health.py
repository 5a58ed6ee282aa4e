# health.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

import numpy as np

IDEAL = "ideal"
OK = "ok"
DANGEROUS = "dangerous"

STATUS_SCORES = {IDEAL: 100.0, OK: 60.0, DANGEROUS: 20.0}


@dataclass(frozen=True)
class Band:
    min: float
    max: float

    def __contains__(self, value: float) -> bool:
        return self.min <= value <= self.max


@dataclass(frozen=True)
class HealthRange:
    ideal: Optional[Band] = None
    ok: Optional[Band] = None


@dataclass
class PlantHealthConfig:
    name: str
    stage: str
    ranges: Dict[str, HealthRange]
    units: Dict[str, str] = field(default_factory=dict)

    def unit_for(self, sensor_type: str) -> str:
        return self.units.get(sensor_type, "")


@dataclass
class HealthSummary:
    score: float
    status: str
    sensors: List[Dict[str, Any]]


DEFAULT_PLANT_CONFIG = PlantHealthConfig(
    name="General Houseplant",
    stage="vegetative",
    ranges={
        "temperature": HealthRange(ideal=Band(20, 26), ok=Band(18, 30)),
        "humidity": HealthRange(ideal=Band(50, 70), ok=Band(40, 80)),
        "soil_moisture": HealthRange(ideal=Band(40, 60), ok=Band(30, 80)),
        "illuminance": HealthRange(ideal=Band(200, 800), ok=Band(100, 1000)),
        "pressure": HealthRange(ideal=Band(1000, 1020), ok=Band(980, 1040)),
    },
    units={
        "temperature": "°C",
        "humidity": "%",
        "soil_moisture": "%",
        "illuminance": "lux",
        "pressure": "hPa",
        "light": "lux",
    },
)


def _band(raw: Optional[Mapping[str, Any]]) -> Optional[Band]:
    if not raw:
        return None
    return Band(min=float(raw["min"]), max=float(raw["max"]))


def config_from_dict(section: Optional[Mapping[str, Any]]) -> PlantHealthConfig:
    """
    Build a PlantHealthConfig from the `plant` section of config.yml.

    A sensor entry without an ideal or ok band only contributes its unit.
    """
    if not section or not section.get("sensors"):
        return DEFAULT_PLANT_CONFIG

    ranges: Dict[str, HealthRange] = {}
    units: Dict[str, str] = {}
    for sensor_type, spec in section["sensors"].items():
        spec = spec or {}
        if "unit" in spec:
            units[sensor_type] = str(spec["unit"])
        ideal, ok = _band(spec.get("ideal")), _band(spec.get("ok"))
        if ideal or ok:
            ranges[sensor_type] = HealthRange(ideal=ideal, ok=ok)

    return PlantHealthConfig(
        name=section.get("name", DEFAULT_PLANT_CONFIG.name),
        stage=section.get("stage", DEFAULT_PLANT_CONFIG.stage),
        ranges=ranges,
        units=units,
    )


def get_health_status(
    sensor_type: str, value: float, config: PlantHealthConfig = DEFAULT_PLANT_CONFIG
) -> str:
    rng = config.ranges.get(sensor_type)
    # display-only sensors
    if rng is None:
        return IDEAL

    if rng.ideal is not None and value in rng.ideal:
        return IDEAL
    if rng.ok is not None and value in rng.ok:
        return OK
    if rng.ideal is None and rng.ok is None:
        return IDEAL
    return DANGEROUS


def sensor_display_name(sensor_type: str) -> str:
    return " ".join(
        w[:1].upper() + w[1:] for w in sensor_type.replace("_", " ", 1).split(" ")
    )


def get_status_message(status: str, sensor_type: str) -> str:
    name = sensor_display_name(sensor_type)
    if status == IDEAL:
        return f"{name} is in the ideal range"
    if status == OK:
        return f"{name} is acceptable but could be better"
    if status == DANGEROUS:
        return f"{name} is in a dangerous range! Immediate attention needed"
    raise ValueError(f"Unknown health status '{status}'")


def dangerous_readings(
    readings: Iterable[Mapping[str, Any]],
    config: PlantHealthConfig = DEFAULT_PLANT_CONFIG,
) -> List[Mapping[str, Any]]:
    """Readings with a configured range whose value falls outside the ok band."""
    return [
        r
        for r in readings
        if r["sensor_type"] in config.ranges
        and get_health_status(r["sensor_type"], r["value"], config) == DANGEROUS
    ]


def overall_health(
    readings: Iterable[Mapping[str, Any]],
    config: PlantHealthConfig = DEFAULT_PLANT_CONFIG,
) -> HealthSummary:
    sensors = []
    for r in readings:
        status = get_health_status(r["sensor_type"], float(r["value"]), config)
        sensors.append(
            {
                "sensor_type": r["sensor_type"],
                "value": float(r["value"]),
                "unit": r.get("unit", ""),
                "status": status,
                "message": get_status_message(status, r["sensor_type"]),
            }
        )

    if not sensors:
        return HealthSummary(score=0.0, status="unknown", sensors=[])

    scores = np.asarray([STATUS_SCORES[s["status"]] for s in sensors], dtype=float)
    score = float(np.mean(scores))
    if score >= 80:
        status = "excellent"
    elif score >= 60:
        status = "good"
    elif score >= 40:
        status = "fair"
    else:
        status = "poor"

    return HealthSummary(score=score, status=status, sensors=sensors)
