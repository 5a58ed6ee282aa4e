# alerts.py
from __future__ import annotations

import datetime as dt
import logging
import threading
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from health import (
    DANGEROUS,
    DEFAULT_PLANT_CONFIG,
    PlantHealthConfig,
    dangerous_readings,
    get_status_message,
)
from models import Alert, AutomationLog
from sqlalchemy import func, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

DEFAULT_MAX_ACTIVE = 3


class AlertBook:
    """
    Alert lifecycle over the `alerts` table.

    An alert is active while dismissed is false. At most one active alert
    exists per sensor_type, and auto_manage() caps the number of active
    alerts by dismissing the oldest ones.

    SQLite takes no lock for the read half of a read-then-write, so the
    writes are serialised with a lock owned by the book. Run one book per
    database (a single server process).
    """

    def __init__(self, engine: Engine, max_active: int = DEFAULT_MAX_ACTIVE):
        self.engine = engine
        self.max_active = max_active
        self._lock = threading.RLock()

    def record(
        self,
        readings: Iterable[Mapping[str, Any]],
        config: PlantHealthConfig = DEFAULT_PLANT_CONFIG,
    ) -> Tuple[List[Alert], int]:
        """check_and_create followed by auto_manage, as one step."""
        with self._lock:
            created = self.check_and_create(readings, config)
            return created, self.auto_manage()

    def check_and_create(
        self,
        readings: Iterable[Mapping[str, Any]],
        config: PlantHealthConfig = DEFAULT_PLANT_CONFIG,
    ) -> List[Alert]:
        created: List[Alert] = []
        with self._lock, Session(self.engine, expire_on_commit=False) as session:
            stmt = (
                select(Alert.sensor_type)
                .where(Alert.dismissed.is_(False))
                .group_by(Alert.sensor_type)
            )
            active_types = set(session.execute(stmt).scalars().all())

            for r in dangerous_readings(readings, config):
                sensor_type = r["sensor_type"]
                if sensor_type in active_types:
                    continue
                alert = Alert(
                    sensor_type=sensor_type,
                    message=get_status_message(DANGEROUS, sensor_type),
                    value=float(r["value"]),
                    unit=r.get("unit") or "",
                    plant_id=r.get("plant_id"),
                )
                session.add(alert)
                # flush per alert so creation order is reflected in ids
                session.flush()
                active_types.add(sensor_type)
                created.append(alert)
                logger.info("Created alert for %s: %s", sensor_type, alert.message)

            session.commit()
        return created

    def auto_manage(self, max_active: Optional[int] = None) -> int:
        """Dismiss the oldest active alerts until at most `max_active` remain."""
        keep = self.max_active if max_active is None else max_active
        with self._lock, Session(self.engine) as session:
            count = session.execute(
                select(func.count(Alert.id)).where(Alert.dismissed.is_(False))
            ).scalar_one()
            if count <= keep:
                return 0

            excess = count - keep
            stmt = (
                select(Alert)
                .where(Alert.dismissed.is_(False))
                .order_by(Alert.timestamp.asc(), Alert.id.asc())
                .limit(excess)
            )
            now = dt.datetime.now()
            evicted = session.execute(stmt).scalars().all()
            for alert in evicted:
                alert.dismissed = True
                alert.dismissed_at = now
                alert.auto_dismissed = True

            session.add(
                AutomationLog(
                    action="auto_dismiss_alerts",
                    status="ok",
                    details=",".join(str(a.id) for a in evicted),
                )
            )
            session.commit()

        logger.info("Auto-dismissed %d oldest alerts", excess)
        return excess

    def dismiss(
        self, alert_id: int, auto_dismissed: bool = False, mark_as_read: bool = False
    ) -> bool:
        with self._lock, Session(self.engine) as session:
            alert = session.get(Alert, alert_id)
            if alert is None:
                logger.warning("Alert with ID %s not found", alert_id)
                return False
            if alert.dismissed:
                logger.warning("Alert with ID %s already dismissed", alert_id)
                return False

            alert.dismissed = True
            alert.dismissed_at = dt.datetime.now()
            alert.auto_dismissed = auto_dismissed
            alert.read = mark_as_read
            session.commit()

        logger.info(
            "Dismissed alert %s (auto: %s, read: %s)",
            alert_id,
            auto_dismissed,
            mark_as_read,
        )
        return True

    def mark_read(self, alert_id: int) -> bool:
        with self._lock, Session(self.engine) as session:
            alert = session.get(Alert, alert_id)
            if alert is None:
                return False
            alert.read = True
            session.commit()
        return True

    def active(self) -> List[Alert]:
        stmt = (
            select(Alert)
            .where(Alert.dismissed.is_(False))
            .order_by(Alert.timestamp.desc(), Alert.id.desc())
        )
        return self._all(stmt)

    def latest_active(self) -> Optional[Alert]:
        stmt = (
            select(Alert)
            .where(Alert.dismissed.is_(False))
            .order_by(Alert.timestamp.desc(), Alert.id.desc())
            .limit(1)
        )
        rows = self._all(stmt)
        return rows[0] if rows else None

    def history(self, limit: int = 50) -> List[Alert]:
        stmt = (
            select(Alert)
            .order_by(Alert.timestamp.desc(), Alert.id.desc())
            .limit(limit)
        )
        return self._all(stmt)

    def tray(self) -> List[Alert]:
        """Dismissed alerts that have not been read yet."""
        stmt = (
            select(Alert)
            .where(Alert.dismissed.is_(True))
            .where(Alert.read.is_(False))
            .order_by(Alert.timestamp.desc(), Alert.id.desc())
        )
        return self._all(stmt)

    def unread_count(self) -> int:
        with Session(self.engine) as session:
            return session.execute(
                select(func.count(Alert.id))
                .where(Alert.dismissed.is_(True))
                .where(Alert.read.is_(False))
            ).scalar_one()

    def get(self, alert_id: int) -> Optional[Alert]:
        with Session(self.engine, expire_on_commit=False) as session:
            return session.get(Alert, alert_id)

    def _all(self, stmt) -> List[Alert]:
        with Session(self.engine, expire_on_commit=False) as session:
            return list(session.execute(stmt).scalars().all())
