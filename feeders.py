# feeders.py
"""
Sensor feeders that POST readings to the API's /api/sensor-data endpoint.

  python feeders.py mock      # random-walk mock Arduino, every ingest.interval_s
  python feeders.py serial    # JSON lines from the Arduino serial port
  python feeders.py trigger   # one extreme payload that raises alerts
"""
from __future__ import annotations

import argparse
import json
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import requests
import serial
from config_utils import get_config
from helpers import setup_logging

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "http://localhost:3001/api/sensor-data"


@dataclass(frozen=True)
class MockSensorSpec:
    start: float
    min: float
    max: float
    max_change: float
    ideal: Tuple[float, float]
    unit: str


MOCK_SENSORS: Dict[str, MockSensorSpec] = {
    "temperature": MockSensorSpec(22.5, 18.0, 32.0, 0.3, (20, 26), "°C"),
    "humidity": MockSensorSpec(65.0, 35.0, 85.0, 1.0, (55, 75), "%"),
    "soil_moisture": MockSensorSpec(72.0, 25.0, 90.0, 0.8, (65, 80), "%"),
    "illuminance": MockSensorSpec(450, 50, 1200, 25, (300, 800), "lux"),
    "pressure": MockSensorSpec(1013.25, 995.0, 1035.0, 0.5, (1005, 1025), "hPa"),
}

EXTREME_PAYLOAD: Dict[str, float] = {
    "temperature": 35.5,
    "humidity": 90.0,
    "soil_moisture": 20.0,
    "illuminance": 50,
    "pressure": 950.0,
}


class MockArduino:
    """
    Gradual random walk per sensor, clamped to its bounds, with an
    occasional pull toward the ideal midpoint.
    """

    def __init__(
        self,
        sensors: Optional[Dict[str, MockSensorSpec]] = None,
        rng: Optional[random.Random] = None,
        drift_chance: float = 0.1,
    ):
        self.sensors = sensors or MOCK_SENSORS
        self.rng = rng or random.Random()
        self.drift_chance = drift_chance
        self.values = {name: spec.start for name, spec in self.sensors.items()}

    def step(self) -> Dict[str, float]:
        out: Dict[str, float] = {}
        for name, spec in self.sensors.items():
            direction = self.rng.random() - 0.5
            change = direction * spec.max_change * (0.3 + self.rng.random() * 0.7)
            value = min(spec.max, max(spec.min, self.values[name] + change))

            if self.rng.random() < self.drift_chance:
                mid = (spec.ideal[0] + spec.ideal[1]) / 2
                value += (mid - value) * 0.1

            value = round(value) if name == "illuminance" else round(value, 1)
            self.values[name] = value
            out[name] = value
        return out


def post_readings(
    api_url: str, data: Dict[str, Any], timeout: float = 10
) -> Optional[requests.Response]:
    """POST one payload. Failures are logged and None is returned."""
    try:
        r = requests.post(api_url, json=data, timeout=timeout)
    except requests.RequestException as exc:
        logger.error("Error sending sensor data to %s: %s", api_url, exc)
        return None

    if r.ok:
        logger.info("Sensor data sent: %s", data)
    else:
        logger.error(
            "API rejected sensor data: %s %s (%s)", r.status_code, r.reason, r.text
        )
    return r


def run_mock(
    api_url: str, interval_s: float, timeout: float, count: Optional[int] = None
):
    board = MockArduino()
    logger.info("Mock Arduino sending to %s every %ss", api_url, interval_s)
    sent = 0
    while count is None or sent < count:
        post_readings(api_url, board.step(), timeout)
        sent += 1
        if count is None or sent < count:
            time.sleep(interval_s)


def parse_serial_line(raw: bytes) -> Optional[Dict[str, Any]]:
    line = raw.decode("utf-8", errors="ignore").strip()
    if not line:
        return None
    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        logger.warning("Bad JSON from serial port: %s", line[:120])
        return None
    if not isinstance(data, dict):
        logger.warning("Ignoring non-object serial payload: %s", line[:120])
        return None
    return data


def run_serial(api_url: str, port: str, baud: int, timeout: float):
    ser = serial.Serial(port, baud, timeout=2)
    logger.info("Listening on %s @ %s", port, baud)
    try:
        while True:
            data = parse_serial_line(ser.readline())
            if data is None:
                continue
            post_readings(api_url, data, timeout)
    finally:
        ser.close()
        logger.info("Serial port closed")


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Post sensor readings to the plant monitor API"
    )
    parser.add_argument("mode", choices=["mock", "serial", "trigger"])
    parser.add_argument("--config", default=None, help="path to config.yml")
    parser.add_argument(
        "--count", type=int, default=None, help="mock: stop after N payloads"
    )
    args = parser.parse_args(argv)

    cfg = get_config(args.config)
    setup_logging(cfg.get("app", {}).get("log_level", "INFO"))
    ingest_cfg = cfg.get("ingest", {}) or {}
    api_url = ingest_cfg.get("api_url", DEFAULT_API_URL)
    timeout = float(ingest_cfg.get("timeout_s", 10))

    try:
        if args.mode == "mock":
            interval = float(ingest_cfg.get("interval_s", 5))
            run_mock(api_url, interval, timeout, args.count)
        elif args.mode == "serial":
            run_serial(
                api_url,
                ingest_cfg.get("serial_port") or "/dev/ttyUSB0",
                int(ingest_cfg.get("serial_baud", 9600)),
                timeout,
            )
        else:
            logger.info("Sending extreme sensor data: %s", EXTREME_PAYLOAD)
            post_readings(api_url, EXTREME_PAYLOAD, timeout)
    except KeyboardInterrupt:
        logger.info("Feeder stopped")


if __name__ == "__main__":
    main()
