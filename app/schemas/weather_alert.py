"""Schemas for normalized alerts, poll cycle results and scheduler status."""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

from app.models.weather_alert import AlertSeverity


class WeatherAlertRecord(BaseModel):
    """Canonical alert produced by the normalizer and consumed by the store."""
    alert_id: str = Field(..., min_length=1)
    title: str
    description: str = ""
    severity: AlertSeverity = AlertSeverity.MODERATE
    alert_type: str
    source: str = "NOAA"
    location_city: Optional[str] = None
    location_state: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    metadata: dict = Field(default_factory=dict)


class ActiveLocation(BaseModel):
    city: str
    state: str
    latitude: float
    longitude: float
    user_count: int

    @property
    def label(self) -> str:
        return f"{self.city}, {self.state}"


class UpsertResult(BaseModel):
    is_new: bool
    is_updated: bool


class SweepResult(BaseModel):
    deactivated_alerts: int = 0
    deleted_alerts: int = 0
    stale_tokens: int = 0


class CycleResult(BaseModel):
    """Summary of one poll cycle, returned by run_once and kept for status."""
    started_at: datetime
    finished_at: Optional[datetime] = None
    skipped: bool = False
    locations: int = 0
    failed_locations: int = 0
    alerts_seen: int = 0
    new_alerts: int = 0
    updated_alerts: int = 0
    failed_alerts: int = 0
    notifications_dispatched: int = 0
    sweep: Optional[SweepResult] = None
    error: Optional[str] = None


class SchedulerStatus(BaseModel):
    is_running: bool
    cycle_in_progress: bool
    poll_interval_seconds: int
    next_scheduled_run: Optional[datetime] = None
    last_run_at: Optional[datetime] = None
    last_result: Optional[CycleResult] = None


class WeatherAlertOut(BaseModel):
    alert_id: str
    title: str
    severity: AlertSeverity
    alert_type: str
    location_city: Optional[str]
    location_state: Optional[str]
    start_time: Optional[datetime]
    end_time: Optional[datetime]
    is_active: bool

    model_config = {"from_attributes": True}
