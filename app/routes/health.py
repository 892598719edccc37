"""
Health check and monitoring endpoints.
"""
import time
import logging
from fastapi import APIRouter, Request

from app.db import check_database_health
from app.core.settings import settings
from app.services.push_gateway import FirebasePushGateway

logger = logging.getLogger("app.health")
router = APIRouter()

@router.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": time.time(),
        "environment": settings.environment,
        "version": "1.0.0"
    }

@router.get("/health/detailed")
async def detailed_health_check(request: Request):
    """Detailed health check with service status."""
    start_time = time.time()

    health_status = {
        "status": "healthy",
        "timestamp": time.time(),
        "environment": settings.environment,
        "services": {}
    }

    # Check database
    try:
        db_health = await check_database_health()
        health_status["services"]["database"] = db_health
        if db_health["status"] != "healthy":
            health_status["status"] = "degraded"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        health_status["services"]["database"] = {
            "status": "unhealthy",
            "error": str(e)
        }
        health_status["status"] = "degraded"

    # Push gateway
    if FirebasePushGateway().is_available():
        health_status["services"]["push"] = {"status": "configured", "provider": "fcm"}
    else:
        health_status["services"]["push"] = {
            "status": "not_configured",
            "note": "Weather alert polling is paused until the gateway is configured"
        }

    # Weather alert poller
    scheduler = getattr(request.app.state, "weather_alert_scheduler", None)
    if scheduler is not None:
        status = scheduler.status()
        health_status["services"]["weather_alerts"] = {
            "status": "running" if status.is_running else "stopped",
            "next_scheduled_run": status.next_scheduled_run.isoformat() if status.next_scheduled_run else None,
            "last_error": status.last_result.error if status.last_result else None,
        }
    else:
        health_status["services"]["weather_alerts"] = {"status": "not_initialized"}

    health_status["response_time_ms"] = round((time.time() - start_time) * 1000, 2)
    return health_status

@router.get("/ready")
async def readiness_check():
    """Kubernetes-style readiness probe."""
    try:
        # Check if database is accessible
        db_health = await check_database_health()
        if db_health["status"] != "healthy":
            return {"status": "not_ready", "reason": "database_unavailable"}

        return {"status": "ready"}
    except Exception as e:
        logger.error(f"Readiness check failed: {e}")
        return {"status": "not_ready", "reason": str(e)}

@router.get("/live")
async def liveness_check():
    """Kubernetes-style liveness probe."""
    return {"status": "alive", "timestamp": time.time()}
