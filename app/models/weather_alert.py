"""Weather alert model and severity taxonomy."""

from sqlalchemy import Column, String, Boolean, DateTime, Text, JSON, Enum as SQLEnum
from app.db import Base
from app.utils.datetime import naive_utc_now
import uuid
import enum


class AlertSeverity(str, enum.Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MODERATE = "MODERATE"
    LOW = "LOW"

    @property
    def is_notifiable(self) -> bool:
        """Only CRITICAL and HIGH alerts are pushed to devices."""
        return self in (AlertSeverity.CRITICAL, AlertSeverity.HIGH)


class WeatherAlert(Base):
    """Canonical record of one external weather alert.

    ``alert_id`` is the feed's stable identifier and the dedup key; the unique
    constraint on it backs the insert-or-update in the alert store.
    """
    __tablename__ = "weather_alerts"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    alert_id = Column(String, nullable=False, unique=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    severity = Column(SQLEnum(AlertSeverity), nullable=False, default=AlertSeverity.MODERATE)
    alert_type = Column(String, nullable=False)
    source = Column(String, nullable=False, default="NOAA")
    location_city = Column(String, nullable=True, index=True)
    location_state = Column(String, nullable=True, index=True)
    start_time = Column(DateTime, nullable=True)
    end_time = Column(DateTime, nullable=True, index=True)
    # "metadata" is reserved on declarative classes
    alert_metadata = Column(JSON, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime, default=naive_utc_now, index=True)
    updated_at = Column(DateTime, default=naive_utc_now, onupdate=naive_utc_now)

    def __repr__(self):
        return f"<WeatherAlert {self.alert_id} severity={self.severity.value}>"
