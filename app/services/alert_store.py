"""Persistence for weather alerts.

``upsert_alert`` is the dedup point of the pipeline: it reports whether the
alert was inserted for the first time or updated, and only first inserts go
on to notification fan-out.
"""

import logging
import uuid
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.exc import DataError, IntegrityError
from sqlalchemy.orm import Session

from app.db import dialect_insert
from app.exceptions import AlertStoreError
from app.models.weather_alert import WeatherAlert
from app.schemas.weather_alert import UpsertResult, WeatherAlertRecord
from app.utils.datetime import naive_utc_now

logger = logging.getLogger("app.weather_alerts.store")


def upsert_alert(db: Session, record: WeatherAlertRecord) -> UpsertResult:
    """Insert ``record`` or update the existing row with the same ``alert_id``.

    Runs as one transaction: a conditional insert (ON CONFLICT DO NOTHING)
    whose RETURNING row tells us whether it inserted, followed by an update
    keyed on ``alert_id`` when it did not. Concurrent callers with the same
    id can never produce two rows.

    Integrity failures are raised as ``AlertStoreError`` for this alert only;
    connectivity errors propagate unchanged.
    """
    now = naive_utc_now()
    content = {
        "title": record.title,
        "description": record.description,
        "severity": record.severity,
        "alert_type": record.alert_type,
        "start_time": record.start_time,
        "end_time": record.end_time,
        "alert_metadata": record.metadata,
    }

    insert_stmt = dialect_insert(db, WeatherAlert).values(
        id=str(uuid.uuid4()),
        alert_id=record.alert_id,
        source=record.source,
        location_city=record.location_city,
        location_state=record.location_state,
        is_active=True,
        created_at=now,
        updated_at=now,
        **content,
    ).on_conflict_do_nothing(
        index_elements=["alert_id"]
    ).returning(WeatherAlert.id)

    try:
        inserted = db.execute(insert_stmt).first()
        if inserted is not None:
            result = UpsertResult(is_new=True, is_updated=False)
        else:
            still_valid = record.end_time is None or record.end_time > now
            db.execute(
                update(WeatherAlert)
                .where(WeatherAlert.alert_id == record.alert_id)
                .values(updated_at=now, is_active=still_valid, **content)
                .execution_options(synchronize_session=False)
            )
            result = UpsertResult(is_new=False, is_updated=True)
        db.commit()
    except (IntegrityError, DataError) as e:
        db.rollback()
        raise AlertStoreError(record.alert_id, str(e.orig) if e.orig else str(e)) from e
    except Exception:
        db.rollback()
        raise

    return result


def get_alert(db: Session, alert_id: str) -> Optional[WeatherAlert]:
    return db.query(WeatherAlert).filter(WeatherAlert.alert_id == alert_id).first()


def get_active_alerts(db: Session, city: str | None = None, state: str | None = None) -> List[WeatherAlert]:
    """Active alerts, newest first, optionally narrowed to one city/state."""
    query = db.query(WeatherAlert).filter(WeatherAlert.is_active.is_(True))
    if city:
        query = query.filter(WeatherAlert.location_city == city)
    if state:
        query = query.filter(WeatherAlert.location_state == state)
    return query.order_by(WeatherAlert.created_at.desc()).all()
