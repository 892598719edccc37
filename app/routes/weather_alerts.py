"""Read-only weather alert endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from app.db import get_db
from app.schemas.weather_alert import WeatherAlertOut
from app.services.alert_store import get_active_alerts, get_alert

router = APIRouter()


@router.get("/active", response_model=List[WeatherAlertOut])
def list_active_alerts(
    city: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    db: Session = Depends(get_db)
):
    return get_active_alerts(db, city=city, state=state)


@router.get("/{alert_id:path}", response_model=WeatherAlertOut)
def read_alert(alert_id: str, db: Session = Depends(get_db)):
    alert = get_alert(db, alert_id)
    if not alert:
        raise HTTPException(status_code=404, detail="Alert not found")
    return alert
