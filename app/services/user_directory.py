"""Read-only queries against the user directory."""

import logging
from typing import List
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.models.user import User

logger = logging.getLogger("app.user_directory")


def get_weather_alert_recipients(db: Session, city: str, state: str) -> List[str]:
    """IDs of active users in ``city``/``state`` who accept weather-alert pushes.

    NULL preference columns count as opted in.
    """
    rows = db.query(User.id).filter(
        User.location_city == city,
        User.location_state == state,
        User.is_active.is_(True),
        or_(User.push_enabled.is_(None), User.push_enabled.is_(True)),
        or_(User.weather_alerts_enabled.is_(None), User.weather_alerts_enabled.is_(True)),
    ).order_by(User.id).all()
    user_ids = [row.id for row in rows]
    logger.debug(f"{len(user_ids)} weather alert recipients in {city}, {state}")
    return user_ids
