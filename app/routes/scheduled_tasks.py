"""Operator endpoints for the weather alert poller.

Meant to be called by Cloud Scheduler or an operator with the cron secret,
e.g. to force a poll outside the regular interval.
"""

from fastapi import APIRouter, Depends, HTTPException, Header, Request
from typing import Optional
import logging

from app.core.settings import settings
from app.schemas.weather_alert import CycleResult, SchedulerStatus
from app.services.audit import log_scheduler_action
from app.services.scheduler import WeatherAlertScheduler

logger = logging.getLogger(__name__)
router = APIRouter()


def verify_cron_secret(x_cron_secret: Optional[str] = Header(None)):
    """Verify the cron secret header for scheduled job authentication."""
    if x_cron_secret != settings.cron_secret:
        raise HTTPException(status_code=403, detail="Invalid cron secret")
    return True


def get_scheduler(request: Request) -> WeatherAlertScheduler:
    scheduler = getattr(request.app.state, "weather_alert_scheduler", None)
    if scheduler is None:
        raise HTTPException(status_code=503, detail="Weather alert scheduler not initialized")
    return scheduler


@router.post("/weather-alerts/run", response_model=CycleResult)
async def trigger_weather_alert_cycle(
    scheduler: WeatherAlertScheduler = Depends(get_scheduler),
    _verified: bool = Depends(verify_cron_secret)
):
    """Run one poll cycle now, using the same code path as the timer."""
    logger.info("Manual weather alert cycle requested")
    return await scheduler.run_once()


@router.get("/weather-alerts/status", response_model=SchedulerStatus)
def weather_alert_status(
    scheduler: WeatherAlertScheduler = Depends(get_scheduler),
    _verified: bool = Depends(verify_cron_secret)
):
    return scheduler.status()


@router.post("/weather-alerts/start", response_model=SchedulerStatus)
async def start_weather_alerts(
    scheduler: WeatherAlertScheduler = Depends(get_scheduler),
    _verified: bool = Depends(verify_cron_secret)
):
    """Start the poller; already running is not an error."""
    changed = await scheduler.start()
    log_scheduler_action(None, "start", changed)
    return scheduler.status()


@router.post("/weather-alerts/stop", response_model=SchedulerStatus)
def stop_weather_alerts(
    scheduler: WeatherAlertScheduler = Depends(get_scheduler),
    _verified: bool = Depends(verify_cron_secret)
):
    changed = scheduler.stop()
    log_scheduler_action(None, "stop", changed)
    return scheduler.status()
