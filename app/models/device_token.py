"""Device token model for push notifications."""

from sqlalchemy import Column, String, DateTime, ForeignKey, Boolean, JSON, Enum as SQLEnum
from sqlalchemy.orm import relationship
from app.db import Base
from app.utils.datetime import naive_utc_now
import uuid
import enum


class DevicePlatform(enum.Enum):
    ios = "ios"
    android = "android"
    web = "web"
    unknown = "unknown"

    @classmethod
    def from_value(cls, value) -> "DevicePlatform":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.unknown


class DeviceToken(Base):
    """Stores FCM device tokens for push notifications.

    One row per token value. A token can move between users (device resold,
    app reinstalled under a different account), so re-registration reassigns
    ``user_id`` instead of inserting. Rows are deactivated, never deleted, when
    the gateway reports them dead or they go unused too long.
    """
    __tablename__ = "device_tokens"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token = Column(String, nullable=False, unique=True, index=True)
    platform = Column(SQLEnum(DevicePlatform), nullable=False, default=DevicePlatform.unknown)
    device_info = Column(JSON, nullable=True)  # e.g. {"name": "Pixel 8", "app_version": "1.4.0"}
    created_at = Column(DateTime, default=naive_utc_now)
    last_used = Column(DateTime, default=naive_utc_now)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    user = relationship("User", back_populates="device_tokens")

    def __repr__(self):
        return f"<DeviceToken user={self.user_id} platform={self.platform.value}>"
