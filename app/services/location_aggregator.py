"""Derives the working set of locations to poll the alert feed for.

Locations are exact ``(city, state, latitude, longitude)`` groupings of active
users. There is deliberately no spatial clustering: two users 0.0001 degrees
apart are two locations. That costs some redundant nearby feed queries, and
the cap on the working set bounds the total per cycle.
"""

import logging
from typing import List
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.settings import settings
from app.models.user import User
from app.schemas.weather_alert import ActiveLocation

logger = logging.getLogger("app.weather_alerts.locations")


def get_active_locations(db: Session, limit: int | None = None) -> List[ActiveLocation]:
    """Top ``limit`` locations by subscriber count."""
    limit = limit or settings.weather_alert_max_locations
    user_count = func.count(User.id).label("user_count")

    rows = db.query(
        User.location_city,
        User.location_state,
        User.latitude,
        User.longitude,
        user_count,
    ).filter(
        User.is_active.is_(True),
        User.location_city.isnot(None),
        User.location_state.isnot(None),
        User.latitude.isnot(None),
        User.longitude.isnot(None),
    ).group_by(
        User.location_city,
        User.location_state,
        User.latitude,
        User.longitude,
    ).order_by(
        user_count.desc(),
        User.location_state,
        User.location_city,
    ).limit(limit).all()

    locations = [
        ActiveLocation(
            city=row.location_city,
            state=row.location_state,
            latitude=row.latitude,
            longitude=row.longitude,
            user_count=row.user_count,
        )
        for row in rows
    ]
    logger.info(f"Found {len(locations)} locations with active users")
    return locations
