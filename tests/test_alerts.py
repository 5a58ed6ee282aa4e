import threading

import pytest
from alerts import AlertBook
from health import DEFAULT_PLANT_CONFIG
from helpers import make_engine
from ingest import ingest
from models import Alert, AutomationLog
from sqlalchemy import select
from sqlalchemy.orm import Session
from store import Store

SENSORS = ["temperature", "humidity", "soil_moisture", "illuminance", "pressure"]
EXTREME = {
    "temperature": 35.5,
    "humidity": 90.0,
    "soil_moisture": 20.0,
    "illuminance": 50,
    "pressure": 950.0,
}


def _reading(sensor_type, value, unit=""):
    return {"sensor_type": sensor_type, "value": value, "unit": unit}


def _all_alerts(engine):
    with Session(engine) as session:
        return session.execute(select(Alert).order_by(Alert.id)).scalars().all()


def test_dangerous_reading_creates_alert(alerts):
    created = alerts.check_and_create([_reading("temperature", 35.5, "°C")])
    assert len(created) == 1
    alert = created[0]
    assert alert.sensor_type == "temperature"
    assert "dangerous" in alert.message
    assert alert.value == 35.5
    assert alert.unit == "°C"
    assert not alert.dismissed and not alert.read and not alert.auto_dismissed


def test_safe_reading_creates_nothing(alerts):
    assert alerts.check_and_create([_reading("temperature", 22.0)]) == []
    assert alerts.active() == []


def test_duplicate_active_alert_is_suppressed(alerts, engine):
    alerts.check_and_create([_reading("temperature", 35.5)])
    again = alerts.check_and_create([_reading("temperature", 36.0)])
    assert again == []
    assert len(_all_alerts(engine)) == 1


def test_new_alert_allowed_after_dismiss(alerts):
    (first,) = alerts.check_and_create([_reading("temperature", 35.5)])
    assert alerts.dismiss(first.id)
    created = alerts.check_and_create([_reading("temperature", 35.5)])
    assert len(created) == 1
    assert created[0].id != first.id


def test_one_active_alert_per_sensor_type_after_batches(store, alerts):
    for _ in range(3):
        ingest(store, alerts, DEFAULT_PLANT_CONFIG, {"temperature": 40.0})
    active = alerts.active()
    assert [a.sensor_type for a in active] == ["temperature"]


def test_auto_manage_keeps_three_newest(store, alerts, engine):
    for sensor_type in SENSORS:
        ingest(store, alerts, DEFAULT_PLANT_CONFIG, {sensor_type: EXTREME[sensor_type]})

    active = alerts.active()
    assert len(active) == 3
    assert {a.sensor_type for a in active} == {
        "soil_moisture",
        "illuminance",
        "pressure",
    }

    evicted = [a for a in _all_alerts(engine) if a.dismissed]
    assert [a.sensor_type for a in evicted] == ["temperature", "humidity"]
    for a in evicted:
        assert a.auto_dismissed
        assert a.dismissed_at is not None
        assert not a.read


def test_single_batch_of_five_evicts_two_oldest(store, alerts, engine):
    result = ingest(store, alerts, DEFAULT_PLANT_CONFIG, dict(EXTREME))
    assert len(result.alerts_created) == 5
    assert result.auto_dismissed == 2

    rows = _all_alerts(engine)
    assert [a.auto_dismissed for a in rows] == [True, True, False, False, False]
    assert len(alerts.active()) == 3


def test_auto_manage_noop_under_cap(alerts):
    alerts.check_and_create([_reading("temperature", 35.5)])
    assert alerts.auto_manage() == 0


def test_auto_manage_writes_automation_log(alerts, engine):
    alerts.check_and_create(
        [_reading(s, EXTREME[s]) for s in SENSORS]
    )
    assert alerts.auto_manage() == 2
    with Session(engine) as session:
        logs = session.execute(select(AutomationLog)).scalars().all()
    assert len(logs) == 1
    assert logs[0].action == "auto_dismiss_alerts"


def test_auto_manage_custom_cap(alerts):
    alerts.check_and_create([_reading(s, EXTREME[s]) for s in SENSORS])
    assert alerts.auto_manage(max_active=1) == 4
    assert len(alerts.active()) == 1


def test_dismiss_sets_flags(alerts):
    (alert,) = alerts.check_and_create([_reading("humidity", 95.0)])
    assert alerts.dismiss(alert.id, auto_dismissed=False, mark_as_read=True)
    stored = alerts.get(alert.id)
    assert stored.dismissed
    assert stored.read
    assert not stored.auto_dismissed
    assert stored.dismissed_at is not None


def test_dismiss_twice_fails_and_keeps_dismissed_at(alerts):
    (alert,) = alerts.check_and_create([_reading("humidity", 95.0)])
    assert alerts.dismiss(alert.id)
    first_ts = alerts.get(alert.id).dismissed_at
    assert not alerts.dismiss(alert.id, auto_dismissed=True)
    stored = alerts.get(alert.id)
    assert stored.dismissed_at == first_ts
    assert not stored.auto_dismissed


def test_dismiss_missing(alerts):
    assert not alerts.dismiss(12345)


def test_tray_and_unread_count(alerts):
    created = alerts.check_and_create(
        [_reading("temperature", 35.5), _reading("humidity", 95.0)]
    )
    assert alerts.tray() == []
    assert alerts.unread_count() == 0

    alerts.dismiss(created[0].id)
    alerts.dismiss(created[1].id, mark_as_read=True)
    tray = alerts.tray()
    assert [a.id for a in tray] == [created[0].id]
    assert alerts.unread_count() == 1


def test_mark_read_is_idempotent(alerts):
    (alert,) = alerts.check_and_create([_reading("temperature", 35.5)])
    alerts.dismiss(alert.id)
    assert alerts.unread_count() == 1
    assert alerts.mark_read(alert.id)
    assert alerts.mark_read(alert.id)
    assert alerts.unread_count() == 0
    assert alerts.tray() == []


def test_mark_read_on_active_alert(alerts):
    (alert,) = alerts.check_and_create([_reading("temperature", 35.5)])
    assert alerts.mark_read(alert.id)
    assert alerts.get(alert.id).read
    assert not alerts.get(alert.id).dismissed


def test_mark_read_missing(alerts):
    assert not alerts.mark_read(999)


def test_latest_active_and_history(alerts):
    assert alerts.latest_active() is None
    first, second = alerts.check_and_create(
        [_reading("temperature", 35.5), _reading("humidity", 95.0)]
    )
    assert alerts.latest_active().id == second.id

    alerts.dismiss(second.id)
    assert alerts.latest_active().id == first.id

    history = alerts.history(limit=10)
    assert [a.id for a in history] == [second.id, first.id]
    assert [a.id for a in alerts.history(limit=1)] == [second.id]


@pytest.fixture
def file_engine(tmp_path):
    # a real file so every thread gets its own connection
    eng = make_engine(f"sqlite:///{tmp_path / 'plants.db'}")
    yield eng
    eng.dispose()


def _ingest_together(store, book, payloads):
    barrier = threading.Barrier(len(payloads))
    errors = []

    def worker(payload):
        barrier.wait()
        try:
            ingest(store, book, DEFAULT_PLANT_CONFIG, payload)
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=worker, args=(p,)) for p in payloads]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    assert errors == []


def test_concurrent_ingests_create_one_alert_per_sensor(file_engine):
    store, book = Store(file_engine), AlertBook(file_engine, max_active=3)
    for _ in range(5):
        _ingest_together(store, book, [{"temperature": 40.0}] * 8)
        active = book.active()
        assert len(active) == 1
        assert active[0].sensor_type == "temperature"
        assert book.dismiss(active[0].id)


def test_concurrent_ingests_respect_the_cap(file_engine):
    store, book = Store(file_engine), AlertBook(file_engine, max_active=3)
    _ingest_together(store, book, [{s: v} for s, v in EXTREME.items()])

    active = book.active()
    assert len(active) == 3
    assert len({a.sensor_type for a in active}) == 3
    evicted = [a for a in _all_alerts(file_engine) if a.auto_dismissed]
    assert len(evicted) == 2
    newest_evicted = max((a.timestamp, a.id) for a in evicted)
    assert all((a.timestamp, a.id) > newest_evicted for a in active)
