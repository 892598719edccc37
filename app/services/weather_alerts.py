"""One poll cycle of the weather alert engine.

locations -> batched feed fetch -> normalize -> upsert -> (new and
CRITICAL/HIGH) dispatch, followed by the retention sweep.
"""

import asyncio
import logging
from typing import Callable, List

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from app.exceptions import PushGatewayNotConfigured
from app.schemas.weather_alert import ActiveLocation, CycleResult, SweepResult
from app.services.alert_fetcher import AlertFetcher, LocationFetchResult
from app.services.alert_normalizer import normalize_alert
from app.services.alert_store import upsert_alert
from app.services.audit import log_cycle_complete
from app.services.location_aggregator import get_active_locations
from app.services.push_notification import NotificationDispatcher, notify_weather_alert
from app.services.retention import run_retention_sweep
from app.utils.datetime import utc_now

logger = logging.getLogger("app.weather_alerts")


class WeatherAlertPipeline:
    """Runs poll cycles against injected collaborators.

    Database work happens in worker threads, each with its own session from
    ``session_factory``, so the event loop stays free while the cycle runs.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        fetcher: AlertFetcher | None = None,
        dispatcher: NotificationDispatcher | None = None,
        max_locations: int | None = None,
    ):
        self.session_factory = session_factory
        self.fetcher = fetcher or AlertFetcher()
        self.dispatcher = dispatcher or NotificationDispatcher()
        self.max_locations = max_locations

    async def run_cycle(self) -> CycleResult:
        """Run one full cycle. Never raises; fatal errors end up in ``result.error``."""
        result = CycleResult(started_at=utc_now())
        logger.info("Fetching weather alerts from NOAA...")

        try:
            # Alerts stored without a gateway would never be pushed: later
            # cycles only see them as updates.
            if not self.dispatcher.gateway.is_available():
                raise PushGatewayNotConfigured("push gateway is not configured; skipping alert ingestion")
            locations = await asyncio.to_thread(self._load_locations)
            result.locations = len(locations)
            fetched = await self.fetcher.fetch_all(locations)
            result.failed_locations = sum(1 for f in fetched if not f.ok)
            await asyncio.to_thread(self._store_and_notify, fetched, result)
        except PushGatewayNotConfigured as e:
            logger.error(f"Weather alert cycle aborted: {e}")
            result.error = str(e)
        except Exception as e:
            logger.exception(f"Weather alert cycle aborted: {e}")
            result.error = str(e)

        try:
            result.sweep = await asyncio.to_thread(self._sweep)
        except Exception as e:
            logger.exception(f"Error cleaning up old alerts: {e}")
            result.error = result.error or str(e)

        result.finished_at = utc_now()
        logger.info(
            f"Weather alert fetch completed: {result.new_alerts} new, "
            f"{result.updated_alerts} updated, {result.failed_locations}/{result.locations} locations failed"
        )
        log_cycle_complete(result)
        return result

    def _load_locations(self) -> List[ActiveLocation]:
        db = self.session_factory()
        try:
            return get_active_locations(db, self.max_locations)
        finally:
            db.close()

    def _sweep(self) -> SweepResult:
        db = self.session_factory()
        try:
            return run_retention_sweep(db)
        finally:
            db.close()

    def _store_and_notify(self, fetched: List[LocationFetchResult], result: CycleResult) -> None:
        db = self.session_factory()
        try:
            for location_result in fetched:
                if location_result.ok:
                    self._process_location(db, location_result, result)
        finally:
            db.close()

    def _process_location(self, db: Session, fetched: LocationFetchResult, result: CycleResult) -> None:
        location = fetched.location
        for feature in fetched.features:
            result.alerts_seen += 1
            try:
                record = normalize_alert(feature, location)
                upsert = upsert_alert(db, record)
            except OperationalError:
                # database unreachable; fatal for the cycle
                raise
            except Exception as e:
                db.rollback()
                result.failed_alerts += 1
                logger.error(f"Error processing individual alert {feature.get('id')} for {location.label}: {e}")
                continue

            if upsert.is_updated:
                result.updated_alerts += 1
                continue

            result.new_alerts += 1
            if not record.severity.is_notifiable:
                continue
            try:
                dispatched = notify_weather_alert(db, self.dispatcher, record)
            except PushGatewayNotConfigured:
                raise
            except Exception as e:
                # The alert is stored; it will not be re-sent on later cycles
                logger.error(f"Error sending alert notifications for {record.alert_id}: {e}")
                db.rollback()
                continue
            result.notifications_dispatched += len(dispatched)


def build_weather_alert_pipeline(session_factory=None, gateway=None, transport=None) -> WeatherAlertPipeline:
    """Pipeline wired from settings; collaborators can be swapped for tests."""
    if session_factory is None:
        from app.db import SessionLocal
        session_factory = SessionLocal
    return WeatherAlertPipeline(
        session_factory=session_factory,
        fetcher=AlertFetcher(transport=transport),
        dispatcher=NotificationDispatcher(gateway=gateway),
    )
