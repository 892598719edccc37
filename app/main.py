from fastapi import FastAPI
from contextlib import asynccontextmanager
from fastapi.middleware.cors import CORSMiddleware
import asyncio
import os
from dotenv import load_dotenv

# Load environment variables before settings are read
load_dotenv()

from app.core.logging_config import setup_logging
from app.core.settings import settings
from app.config import init_firebase
from app.routes import health, push_notifications, scheduled_tasks, weather_alerts
from app.services.scheduler import WeatherAlertScheduler
from app.services.weather_alerts import build_weather_alert_pipeline

# Set up logging first
logger = setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup logic
    logger.info("=" * 50)
    logger.info("🚀 Weather Alert API starting up")
    logger.info(f"📁 Environment: {settings.environment}")
    logger.info(f"⏱️ Poll interval: {settings.weather_alert_poll_interval}s, fetch batch size: {settings.weather_alert_fetch_batch_size}")
    logger.info("=" * 50)

    # Initialize Firebase (skip in test environment)
    if os.getenv("ENV") != "test":
        init_firebase()

    scheduler = WeatherAlertScheduler(build_weather_alert_pipeline())
    app.state.weather_alert_scheduler = scheduler
    start_task = None
    if settings.weather_alerts_enabled:
        # The first cycle runs inside start(); don't hold up startup for it
        start_task = asyncio.create_task(scheduler.start())
    else:
        logger.info("Weather alert poller disabled (WEATHER_ALERTS_ENABLED=false)")

    yield
    # Shutdown logic
    if start_task is not None and not start_task.done():
        await start_task
    scheduler.shutdown()
    logger.info("🛑 Weather Alert API shutting down gracefully")

app = FastAPI(
    title="Weather Alert API",
    description="Weather alert ingestion and push notification fan-out",
    version="1.0.0",
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(push_notifications.router, prefix="/push-notifications", tags=["Push Notifications"])
app.include_router(scheduled_tasks.router, prefix="/scheduled", tags=["Scheduled"])
app.include_router(weather_alerts.router, prefix="/weather-alerts", tags=["Weather Alerts"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        log_level="info" if settings.is_development else "warning"
    )
