import logging

import pytest
from health import DEFAULT_PLANT_CONFIG
from ingest import UnknownPlantError, ingest, parse_payload


def test_parse_flat_payload_with_units():
    payload = {"temperature": 25.3, "humidity": 60, "light": 500}
    rows = parse_payload(payload, DEFAULT_PLANT_CONFIG)
    by_type = {r["sensor_type"]: r for r in rows}
    assert by_type["temperature"]["unit"] == "°C"
    assert by_type["humidity"]["unit"] == "%"
    assert by_type["humidity"]["value"] == 60.0
    assert by_type["light"]["unit"] == "lux"
    assert all(r["plant_id"] is None for r in rows)


def test_parse_nested_payload_with_plant_id():
    rows = parse_payload(
        {"sensorData": {"pressure": 1012.0}, "plantId": 7}, DEFAULT_PLANT_CONFIG
    )
    assert rows == [
        {"sensor_type": "pressure", "value": 1012.0, "unit": "hPa", "plant_id": 7}
    ]


def test_parse_skips_non_numeric(caplog):
    with caplog.at_level(logging.WARNING):
        rows = parse_payload(
            {"temperature": "hot", "humidity": None, "soil_moisture": True, "x": 1.5},
            DEFAULT_PLANT_CONFIG,
        )
    assert rows == [{"sensor_type": "x", "value": 1.5, "unit": "", "plant_id": None}]
    assert "Skipping non-numeric sensor data for temperature" in caplog.text


def test_parse_plant_id_not_a_reading():
    rows = parse_payload({"plantId": 3, "temperature": 20}, DEFAULT_PLANT_CONFIG)
    assert [r["sensor_type"] for r in rows] == ["temperature"]


def test_parse_rejects_bad_plant_id():
    with pytest.raises(UnknownPlantError):
        parse_payload({"plantId": "abc", "temperature": 20}, DEFAULT_PLANT_CONFIG)


def test_ingest_saves_and_alerts(store, alerts):
    result = ingest(
        store, alerts, DEFAULT_PLANT_CONFIG, {"temperature": 35.5, "humidity": 60}
    )
    assert result.saved == 2
    assert [a.sensor_type for a in result.alerts_created] == ["temperature"]
    assert result.auto_dismissed == 0
    assert {r["sensor_type"] for r in store.latest_readings()} == {
        "temperature",
        "humidity",
    }


def test_ingest_unknown_plant(store, alerts):
    with pytest.raises(UnknownPlantError):
        ingest(store, alerts, DEFAULT_PLANT_CONFIG, {"plantId": 99, "temperature": 20})
    assert store.latest_readings() == []


def test_ingest_tags_plant(store, alerts):
    plant = store.create_plant(name="Basil")
    result = ingest(
        store,
        alerts,
        DEFAULT_PLANT_CONFIG,
        {"sensorData": {"temperature": 40.0}, "plantId": plant["id"]},
    )
    assert result.alerts_created[0].plant_id == plant["id"]
    data = store.plant_sensor_data(plant["id"])
    assert data[0]["sensor_type"] == "temperature"


@pytest.mark.parametrize("value", [float("inf"), float("-inf"), float("nan"), 10**400])
def test_parse_skips_non_finite(value, caplog):
    with caplog.at_level(logging.WARNING):
        rows = parse_payload(
            {"temperature": value, "humidity": 60}, DEFAULT_PLANT_CONFIG
        )
    assert [r["sensor_type"] for r in rows] == ["humidity"]
    assert "Skipping non-numeric sensor data for temperature" in caplog.text


def test_ingest_non_finite_stores_nothing(store, alerts):
    result = ingest(store, alerts, DEFAULT_PLANT_CONFIG, {"temperature": float("inf")})
    assert result.saved == 0
    assert result.alerts_created == []
    assert store.latest_readings() == []
    assert alerts.active() == []
