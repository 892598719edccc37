"""Push notification API endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import List
import logging

from app.db import get_db
from app.exceptions import PushGatewayError
from app.services.auth import get_current_user, require_admin
from app.models.user import User
from app.schemas.push_notification import (
    RegisterDeviceRequest,
    RegisterDeviceResponse,
    UnregisterDeviceRequest,
    SendPushRequest,
    SendTopicRequest,
    PushNotificationPayload,
    DispatchResult,
    DeviceStats,
    DeviceSummary,
    NotificationStats,
)
from app.services import device_registry
from app.services.audit import log_device_registration
from app.services.push_notification import NotificationDispatcher, get_notification_stats

logger = logging.getLogger(__name__)
router = APIRouter()

REGISTER_MESSAGES = {
    "created": "Device registered successfully",
    "updated": "Device token updated",
    "reassigned": "Device registered (reassigned from previous user)",
}


def get_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher()


@router.post("/register-device", response_model=RegisterDeviceResponse)
def register_device(
    request: RegisterDeviceRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Register a device for push notifications.

    Called by the mobile app after obtaining an FCM token and user permission.
    Re-registering a known token reactivates it and, if it belonged to another
    account, moves it to the current user.
    """
    device, action = device_registry.register_device(
        db,
        user_id=current_user.id,
        token=request.token,
        platform=request.platform.value,
        device_info=request.device_info,
    )
    log_device_registration(current_user.id, device.platform.value, action)
    return RegisterDeviceResponse(
        id=device.id,
        user_id=device.user_id,
        platform=device.platform.value,
        action=action,
        message=REGISTER_MESSAGES[action],
    )


@router.post("/unregister-device")
def unregister_device(
    request: UnregisterDeviceRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Deactivate a device (logout or notifications disabled).

    Unknown tokens, or tokens owned by someone else, are not an error.
    """
    found = device_registry.unregister_device(db, current_user.id, request.token)
    if found:
        logger.info(f"Unregistered device for user {current_user.id}")
    return {"message": "Device unregistered", "found": found}


@router.get("/my-devices", response_model=List[DeviceSummary])
def list_my_devices(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List all registered devices for the current user."""
    return [
        DeviceSummary(
            id=t.id,
            platform=t.platform.value,
            device_info=t.device_info,
            is_active=t.is_active,
            token_preview=device_registry.token_preview(t.token),
            created_at=t.created_at,
            last_used=t.last_used,
        )
        for t in device_registry.list_devices(db, current_user.id)
    ]


# Admin endpoints for testing and management

@router.post("/admin/send-test", response_model=DispatchResult)
def admin_send_test_notification(
    request: SendPushRequest,
    admin_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Send a test push notification to a specific user."""
    payload = PushNotificationPayload(
        title=request.title,
        body=request.body,
        data={**(request.data or {}), "sentBy": admin_user.id},
    )
    try:
        return dispatcher.send_to_user(db, request.user_id, payload)
    except PushGatewayError as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.post("/admin/send-topic")
def admin_send_topic_notification(
    request: SendTopicRequest,
    admin_user: User = Depends(require_admin),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Broadcast a notification to an FCM topic."""
    payload = PushNotificationPayload(title=request.title, body=request.body, data=request.data)
    try:
        message_id = dispatcher.send_to_topic(request.topic, payload)
    except PushGatewayError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {"message": "Topic notification sent", "topic": request.topic, "message_id": message_id}


@router.get("/admin/device-stats", response_model=DeviceStats)
def admin_device_stats(
    admin_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Get statistics about registered devices."""
    return device_registry.get_device_stats(db)


@router.get("/admin/notification-stats", response_model=NotificationStats)
def admin_notification_stats(
    days: int = Query(30, ge=1, le=365),
    admin_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Delivery statistics from the notification audit log."""
    return get_notification_stats(db, days)
