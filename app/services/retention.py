"""Retention sweep for weather alerts and stale device tokens.

All statements are set-based and idempotent. They take no table lock, so a
row touched by a concurrent upsert between statements simply waits for the
next cycle.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete, update
from sqlalchemy.orm import Session

from app.core.settings import settings
from app.models.weather_alert import WeatherAlert
from app.schemas.weather_alert import SweepResult
from app.services.device_registry import deactivate_stale_tokens
from app.utils.datetime import naive_utc_now

logger = logging.getLogger("app.weather_alerts.retention")


def deactivate_expired_alerts(db: Session, now: Optional[datetime] = None) -> int:
    """Deactivate active alerts whose ``end_time`` has passed."""
    now = now or naive_utc_now()
    result = db.execute(
        update(WeatherAlert)
        .where(
            WeatherAlert.is_active.is_(True),
            WeatherAlert.end_time.isnot(None),
            WeatherAlert.end_time < now,
        )
        .values(is_active=False, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount:
        logger.info(f"Deactivated {result.rowcount} expired weather alerts")
    return result.rowcount


def purge_inactive_alerts(db: Session, retention_days: int | None = None, now: Optional[datetime] = None) -> int:
    """Delete inactive alerts created more than ``retention_days`` ago."""
    retention_days = retention_days or settings.weather_alert_retention_days
    cutoff = (now or naive_utc_now()) - timedelta(days=retention_days)
    result = db.execute(
        delete(WeatherAlert)
        .where(
            WeatherAlert.is_active.is_(False),
            WeatherAlert.created_at < cutoff,
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount:
        logger.info(f"Deleted {result.rowcount} old weather alerts")
    return result.rowcount


def run_retention_sweep(db: Session) -> SweepResult:
    now = naive_utc_now()
    return SweepResult(
        deactivated_alerts=deactivate_expired_alerts(db, now=now),
        deleted_alerts=purge_inactive_alerts(db, now=now),
        stale_tokens=deactivate_stale_tokens(db, settings.device_token_stale_days),
    )
