# models.py
from __future__ import annotations

import datetime as dt
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _now() -> dt.datetime:
    return dt.datetime.now()


class Base(DeclarativeBase):
    pass


class SensorReading(Base):
    __tablename__ = "sensor_readings"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    timestamp: Mapped[dt.datetime] = mapped_column(
        DateTime, nullable=False, default=_now, index=True
    )
    sensor_type: Mapped[str] = mapped_column(String, nullable=False, index=True)
    value: Mapped[float] = mapped_column(Float, nullable=False)
    unit: Mapped[str] = mapped_column(String, nullable=False, default="")
    plant_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("plants.id"), nullable=True, index=True
    )


class Alert(Base):
    __tablename__ = "alerts"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    timestamp: Mapped[dt.datetime] = mapped_column(
        DateTime, nullable=False, default=_now, index=True
    )
    sensor_type: Mapped[str] = mapped_column(String, nullable=False, index=True)
    message: Mapped[str] = mapped_column(String, nullable=False)
    value: Mapped[float] = mapped_column(Float, nullable=False)
    unit: Mapped[str] = mapped_column(String, nullable=False, default="")
    dismissed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    dismissed_at: Mapped[Optional[dt.datetime]] = mapped_column(DateTime)
    auto_dismissed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    plant_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("plants.id"), nullable=True
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(timespec="seconds"),
            "sensor_type": self.sensor_type,
            "message": self.message,
            "value": self.value,
            "unit": self.unit,
            "dismissed": self.dismissed,
            "dismissed_at": (
                self.dismissed_at.isoformat(timespec="seconds")
                if self.dismissed_at
                else None
            ),
            "auto_dismissed": self.auto_dismissed,
            "read": self.read,
            "plant_id": self.plant_id,
        }


class PlantStage(Base):
    __tablename__ = "plant_stages"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    duration_days: Mapped[Optional[int]] = mapped_column(Integer)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    temperature_min: Mapped[Optional[float]] = mapped_column(Float)
    temperature_max: Mapped[Optional[float]] = mapped_column(Float)
    humidity_min: Mapped[Optional[float]] = mapped_column(Float)
    humidity_max: Mapped[Optional[float]] = mapped_column(Float)
    soil_moisture_min: Mapped[Optional[float]] = mapped_column(Float)
    soil_moisture_max: Mapped[Optional[float]] = mapped_column(Float)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime, nullable=False, default=_now
    )


class Plant(Base):
    __tablename__ = "plants"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    species: Mapped[Optional[str]] = mapped_column(String)
    variety: Mapped[Optional[str]] = mapped_column(String)
    planted_date: Mapped[Optional[str]] = mapped_column(String)
    location: Mapped[Optional[str]] = mapped_column(String)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    current_stage_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("plant_stages.id"), nullable=True
    )
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime, nullable=False, default=_now
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime, nullable=False, default=_now, onupdate=_now
    )


class PlantStageHistory(Base):
    __tablename__ = "plant_stage_history"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    plant_id: Mapped[int] = mapped_column(
        ForeignKey("plants.id"), nullable=False, index=True
    )
    stage_id: Mapped[Optional[int]] = mapped_column(ForeignKey("plant_stages.id"))
    changed_at: Mapped[dt.datetime] = mapped_column(
        DateTime, nullable=False, default=_now
    )


class User(Base):
    __tablename__ = "users"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String, nullable=False)
    full_name: Mapped[Optional[str]] = mapped_column(String)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime, nullable=False, default=_now
    )


class UserSetting(Base):
    __tablename__ = "user_settings"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    setting_key: Mapped[str] = mapped_column(String, nullable=False)
    setting_value: Mapped[Optional[str]] = mapped_column(Text)
    setting_type: Mapped[str] = mapped_column(String, nullable=False, default="string")
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime, nullable=False, default=_now, onupdate=_now
    )

    __table_args__ = (
        UniqueConstraint("user_id", "setting_key", name="uq_user_settings_key"),
    )


class Setting(Base):
    __tablename__ = "settings"
    key: Mapped[str] = mapped_column(String, primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)


class AutomationLog(Base):
    __tablename__ = "automation_logs"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    timestamp: Mapped[dt.datetime] = mapped_column(
        DateTime, nullable=False, default=_now, index=True
    )
    action: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False)
    details: Mapped[Optional[str]] = mapped_column(Text)
