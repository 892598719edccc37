from sqlalchemy import Column, String, DateTime, Boolean, Float
from sqlalchemy.orm import relationship
from datetime import datetime
from app.db import Base
import uuid

class User(Base):
    """Read-only user directory as seen by the alert engine.

    Location columns feed the Location Aggregator; the push flags gate
    weather-alert targeting (NULL means the user never opted out).
    """
    __tablename__ = "users"
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    location_city = Column(String, nullable=True, index=True)
    location_state = Column(String, nullable=True, index=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    is_admin = Column(Boolean, nullable=False, default=False)
    push_enabled = Column(Boolean, nullable=True, default=True)
    weather_alerts_enabled = Column(Boolean, nullable=True, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    device_tokens = relationship("DeviceToken", back_populates="user", cascade="all, delete-orphan")
    notification_logs = relationship("NotificationLog", back_populates="user", cascade="all, delete-orphan")
