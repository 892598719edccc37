"""Pydantic schemas for push notification endpoints."""

from pydantic import BaseModel, Field
from typing import Optional
from enum import Enum
from datetime import datetime


class DevicePlatformEnum(str, Enum):
    ios = "ios"
    android = "android"
    web = "web"
    unknown = "unknown"


class RegisterDeviceRequest(BaseModel):
    """Request to register a device for push notifications."""
    token: str = Field(..., min_length=1, description="Firebase Cloud Messaging token")
    platform: DevicePlatformEnum = Field(DevicePlatformEnum.unknown, description="Device platform")
    device_info: Optional[dict] = Field(None, description="Free-form device metadata")

    model_config = {
        "json_schema_extra": {
            "example": {
                "token": "dKzH7v...:APA91b...",
                "platform": "ios",
                "device_info": {"name": "iPhone 15 Pro", "app_version": "1.4.0"}
            }
        }
    }


class RegisterDeviceResponse(BaseModel):
    """Response after registering a device."""
    id: str
    user_id: str
    platform: str
    action: str
    message: str = "Device registered successfully"


class UnregisterDeviceRequest(BaseModel):
    """Request to unregister a device (e.g., on logout)."""
    token: str = Field(..., description="Firebase Cloud Messaging token to deactivate")


class SendPushRequest(BaseModel):
    """Admin request to send a push notification (for testing/admin use)."""
    user_id: str = Field(..., description="Target user ID")
    title: str = Field(..., description="Notification title")
    body: str = Field(..., description="Notification body text")
    data: Optional[dict] = Field(None, description="Additional data payload for deep linking")


class SendTopicRequest(BaseModel):
    """Admin request to broadcast to an FCM topic."""
    topic: str = Field(..., min_length=1)
    title: str
    body: str
    data: Optional[dict] = None


class PushNotificationPayload(BaseModel):
    """Internal model for push notification content."""
    title: str
    body: str
    data: Optional[dict] = None
    image_url: Optional[str] = None
    # "high" wakes the device on Android; everything else is sent as normal
    priority: str = "normal"
    # iOS specific
    badge: Optional[int] = 1
    sound: Optional[str] = "default"
    # Android specific
    channel_id: Optional[str] = "default"


class DispatchResult(BaseModel):
    """Outcome of dispatching one notification to one user."""
    user_id: str
    success: bool
    sent: int = 0
    failed: int = 0
    pruned: int = 0
    reason: Optional[str] = None
    error: Optional[str] = None


class NotificationStats(BaseModel):
    period_days: int
    total: int
    successful: int
    failed: int
    unique_users: int
    success_rate: float
    since: datetime


class DeviceStats(BaseModel):
    total_devices: int
    active_devices: int
    inactive_devices: int
    by_platform: dict


class DeviceSummary(BaseModel):
    id: str
    platform: str
    device_info: Optional[dict]
    is_active: bool
    token_preview: str
    created_at: Optional[datetime]
    last_used: Optional[datetime]
