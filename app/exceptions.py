"""Error taxonomy for the alert ingestion and notification engine.

Per-unit failures (one location, one user, one alert) are reported through
result objects; only configuration/dependency failures are expected to reach
the poll cycle as exceptions.
"""


class WeatherAlertError(Exception):
    """Base class for engine errors."""


class AlertFeedError(WeatherAlertError):
    """The alert feed could not be read for a single location."""

    def __init__(self, location: str, reason: str):
        self.location = location
        self.reason = reason
        super().__init__(f"{location}: {reason}")


class AlertStoreError(WeatherAlertError):
    """A single alert could not be persisted."""

    def __init__(self, alert_id: str, reason: str):
        self.alert_id = alert_id
        self.reason = reason
        super().__init__(f"alert {alert_id}: {reason}")


class PushGatewayError(WeatherAlertError):
    """Transient failure talking to the push provider."""


class PushGatewayNotConfigured(PushGatewayError):
    """The push provider has not been initialised; fatal for the current cycle."""
