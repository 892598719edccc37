"""Fetches active alerts from the NOAA feed, one request per location.

Locations are fetched in fixed-size concurrent batches: every request in a
batch runs at once and the next batch starts only when the whole batch is
done. A failing location yields an empty result and never affects its
siblings.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from app.core.settings import settings
from app.exceptions import AlertFeedError
from app.schemas.weather_alert import ActiveLocation

logger = logging.getLogger("app.weather_alerts.fetcher")


@dataclass
class LocationFetchResult:
    location: ActiveLocation
    features: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _extract_features(payload: Any) -> List[Dict[str, Any]]:
    """Pull the GeoJSON feature list out of a feed response body."""
    if not isinstance(payload, dict):
        raise ValueError("response body is not a JSON object")
    features = payload.get("features")
    if features is None:
        return []
    if not isinstance(features, list):
        raise ValueError("'features' is not a list")
    return [f for f in features if isinstance(f, dict)]


class AlertFetcher:
    """Batched, timeout-bounded client for the external alert feed."""

    def __init__(
        self,
        base_url: str | None = None,
        user_agent: str | None = None,
        timeout: float | None = None,
        batch_size: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.noaa_api_base_url).rstrip("/")
        self.user_agent = user_agent or settings.weather_alert_user_agent
        self.timeout = timeout or settings.weather_alert_fetch_timeout
        self.batch_size = max(1, batch_size or settings.weather_alert_fetch_batch_size)
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        # api.weather.gov rejects requests without an identifying User-Agent
        return {
            "User-Agent": self.user_agent,
            "Accept": "application/geo+json",
        }

    async def _request(self, client: httpx.AsyncClient, location: ActiveLocation) -> List[Dict[str, Any]]:
        try:
            response = await client.get(
                f"{self.base_url}/alerts/active",
                params={"point": f"{location.latitude},{location.longitude}"},
            )
        except httpx.TimeoutException as e:
            raise AlertFeedError(location.label, f"timeout: {e}") from e
        except httpx.RequestError as e:
            raise AlertFeedError(location.label, f"network error: {e}") from e

        if not response.is_success:
            raise AlertFeedError(location.label, f"HTTP {response.status_code}")

        try:
            return _extract_features(response.json())
        except ValueError as e:
            raise AlertFeedError(location.label, f"malformed body: {e}") from e

    async def fetch_for_location(
        self, client: httpx.AsyncClient, location: ActiveLocation
    ) -> LocationFetchResult:
        """Fetch one location; any failure becomes an empty, errored result."""
        try:
            # httpx timeouts are per phase; this bounds the request as a whole
            features = await asyncio.wait_for(self._request(client, location), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"NOAA API timeout for {location.label} after {self.timeout}s")
            return LocationFetchResult(location=location, error="timeout")
        except AlertFeedError as e:
            logger.warning(f"NOAA API error for {e.location}: {e.reason}")
            return LocationFetchResult(location=location, error=e.reason)
        except Exception as e:
            logger.error(f"Unexpected error fetching alerts for {location.label}: {e}")
            return LocationFetchResult(location=location, error=str(e))

        logger.debug(f"{len(features)} alerts returned for {location.label}")
        return LocationFetchResult(location=location, features=features)

    async def fetch_all(self, locations: List[ActiveLocation]) -> List[LocationFetchResult]:
        """Fetch every location, ``batch_size`` at a time. Results keep input order."""
        results: List[LocationFetchResult] = []
        if not locations:
            return results

        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            headers=self._headers(),
            transport=self._transport,
        ) as client:
            for start in range(0, len(locations), self.batch_size):
                batch = locations[start:start + self.batch_size]
                outcomes = await asyncio.gather(
                    *(self.fetch_for_location(client, location) for location in batch),
                    return_exceptions=True,
                )
                for location, outcome in zip(batch, outcomes):
                    if isinstance(outcome, BaseException):
                        logger.error(f"Fetch task for {location.label} failed: {outcome}")
                        outcome = LocationFetchResult(location=location, error=str(outcome))
                    results.append(outcome)

        failed = sum(1 for r in results if not r.ok)
        if failed:
            logger.warning(f"{failed} of {len(results)} locations failed to fetch this cycle")
        return results
