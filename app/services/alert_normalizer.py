"""Maps raw NOAA alert features onto the canonical alert record."""

from typing import Any, Dict, Optional

from app.models.weather_alert import AlertSeverity
from app.schemas.weather_alert import ActiveLocation, WeatherAlertRecord
from app.utils.datetime import naive_utc_now, parse_feed_timestamp

SEVERITY_MAP: Dict[str, AlertSeverity] = {
    "extreme": AlertSeverity.CRITICAL,
    "severe": AlertSeverity.HIGH,
    "moderate": AlertSeverity.MODERATE,
    "minor": AlertSeverity.LOW,
    "unknown": AlertSeverity.MODERATE,
}


def normalize_severity(value: Any) -> AlertSeverity:
    """Total mapping from any feed severity to ``AlertSeverity``.

    Unrecognized, empty and non-string values map to MODERATE so an odd
    severity never blocks storage.
    """
    if not isinstance(value, str):
        return AlertSeverity.MODERATE
    return SEVERITY_MAP.get(value.strip().lower(), AlertSeverity.MODERATE)


def _text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def normalize_alert(feature: Dict[str, Any], location: ActiveLocation) -> WeatherAlertRecord:
    """Build a ``WeatherAlertRecord`` for ``feature`` as fetched for ``location``.

    Raises ``ValueError`` when the feature has no usable identifier or its
    ``properties`` is not an object.
    """
    properties: Dict[str, Any] = feature.get("properties") or {}
    if not isinstance(properties, dict):
        raise ValueError(f"alert properties must be an object, got {type(properties).__name__}")
    alert_id: Optional[str] = feature.get("id") or properties.get("id")
    if not alert_id:
        raise ValueError("alert feature has no id")

    return WeatherAlertRecord(
        alert_id=str(alert_id),
        title=_text(properties.get("headline"), "Weather Alert"),
        description=_text(properties.get("description")),
        severity=normalize_severity(properties.get("severity")),
        alert_type=_text(properties.get("event"), "Weather Alert"),
        source="NOAA",
        location_city=location.city,
        location_state=location.state,
        start_time=parse_feed_timestamp(properties.get("onset")) or naive_utc_now(),
        end_time=parse_feed_timestamp(properties.get("expires")),
        metadata={
            "urgency": properties.get("urgency"),
            "certainty": properties.get("certainty"),
            "areas": properties.get("areaDesc"),
            "instruction": properties.get("instruction"),
            "noaa_id": str(alert_id),
        },
    )
