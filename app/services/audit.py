"""Audit logging helper functions for engine events.

Standard single-line key=value logs so they are easy to index.
"""
from __future__ import annotations
import logging
from typing import Optional, Any

from app.utils.datetime import utc_now

_logger = logging.getLogger("app.audit")


def _emit(event: str, user_id: Optional[str] = None, **data: Any):
    payload = {"ts": utc_now().isoformat(), "event": event}
    if user_id:
        payload["user_id"] = user_id
    payload.update(data)
    parts = [f"{k}={repr(v)}" for k, v in payload.items()]
    _logger.info("AUDIT " + " ".join(parts))

# Public convenience wrappers

def log_cycle_complete(result) -> None:
    sweep = result.sweep
    _emit(
        "weather_alerts.cycle",
        locations=result.locations,
        failed_locations=result.failed_locations,
        new=result.new_alerts,
        updated=result.updated_alerts,
        failed_alerts=result.failed_alerts,
        dispatched=result.notifications_dispatched,
        deactivated=sweep.deactivated_alerts if sweep else None,
        deleted=sweep.deleted_alerts if sweep else None,
        error=result.error,
    )

def log_scheduler_action(user_id: Optional[str], action: str, changed: bool):
    _emit("weather_alerts.scheduler", user_id=user_id, action=action, changed=changed)

def log_device_registration(user_id: str, platform: str, action: str):
    _emit("device.register", user_id=user_id, platform=platform, action=action)

def log_token_pruned(user_id: str, token_preview: str):
    _emit("device.pruned", user_id=user_id, token=token_preview)
