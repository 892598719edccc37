"""Notification dispatch: resolve users to device tokens and fan out pushes."""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from typing import Any, Dict, List

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.settings import settings
from app.exceptions import PushGatewayNotConfigured
from app.models.notification import NotificationLog
from app.models.weather_alert import AlertSeverity
from app.schemas.push_notification import DispatchResult, PushNotificationPayload
from app.schemas.weather_alert import WeatherAlertRecord
from app.services import device_registry
from app.services.audit import log_token_pruned
from app.services.push_gateway import MAX_MULTICAST_TOKENS, FirebasePushGateway, MulticastResult
from app.services.user_directory import get_weather_alert_recipients
from app.utils.datetime import naive_utc_now

logger = logging.getLogger("app.push")

SEVERITY_EMOJI = {
    AlertSeverity.CRITICAL: "🔴",
    AlertSeverity.HIGH: "🟡",
    AlertSeverity.MODERATE: "🟠",
    AlertSeverity.LOW: "🟢",
}


def _chunks(items: List[Any], size: int) -> List[List[Any]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class NotificationDispatcher:
    """Sends one notification to a set of users, isolating failures per user.

    Database work stays on the caller's session and thread; only the gateway
    calls for a chunk of users run concurrently.
    """

    def __init__(self, gateway=None, batch_size: int | None = None):
        self.gateway = gateway or FirebasePushGateway()
        self.batch_size = max(1, batch_size or settings.push_dispatch_batch_size)

    def dispatch(
        self,
        db: Session,
        user_ids: List[str],
        payload: PushNotificationPayload,
    ) -> List[DispatchResult]:
        """Notify each user in ``user_ids``; one result and one audit record per user.

        ``PushGatewayNotConfigured`` is re-raised: without a gateway no user
        can be served and the caller's cycle should stop.
        """
        results: List[DispatchResult] = []
        unique_ids = list(dict.fromkeys(user_ids))

        for chunk in _chunks(unique_ids, self.batch_size):
            pending: Dict[str, List[str]] = {}
            for user_id in chunk:
                try:
                    tokens = device_registry.get_active_tokens(db, user_id)
                except Exception as e:
                    logger.error(f"Could not resolve device tokens for user {user_id}: {e}")
                    db.rollback()
                    results.append(self._finish(db, user_id, payload, DispatchResult(
                        user_id=user_id, success=False, reason="token_lookup_failed", error=str(e)
                    )))
                    continue
                if not tokens:
                    logger.info(f"No active device tokens for user {user_id}")
                    results.append(self._finish(db, user_id, payload, DispatchResult(
                        user_id=user_id, success=False, reason="no_tokens"
                    )))
                    continue
                pending[user_id] = tokens

            if not pending:
                continue

            with ThreadPoolExecutor(max_workers=min(self.batch_size, len(pending))) as pool:
                futures = {
                    user_id: pool.submit(self._send, tokens, payload)
                    for user_id, tokens in pending.items()
                }
                outcomes = {}
                for user_id, future in futures.items():
                    try:
                        outcomes[user_id] = future.result()
                    except PushGatewayNotConfigured:
                        raise
                    except Exception as e:
                        outcomes[user_id] = e

            for user_id, outcome in outcomes.items():
                if isinstance(outcome, Exception):
                    logger.error(f"Push to user {user_id} failed: {outcome}")
                    result = DispatchResult(
                        user_id=user_id, success=False, reason="gateway_error", error=str(outcome)
                    )
                else:
                    result = self._apply_outcome(db, user_id, outcome)
                results.append(self._finish(db, user_id, payload, result))

        delivered = sum(1 for r in results if r.success)
        logger.info(f"Dispatched '{payload.title}' to {delivered}/{len(results)} users")
        return results

    def _send(self, tokens: List[str], payload: PushNotificationPayload) -> MulticastResult:
        combined = MulticastResult()
        for batch in _chunks(tokens, MAX_MULTICAST_TOKENS):
            response = self.gateway.send_multicast(batch, payload)
            combined.success_count += response.success_count
            combined.failure_count += response.failure_count
            combined.results.extend(response.results)
        return combined

    def _apply_outcome(self, db: Session, user_id: str, outcome: MulticastResult) -> DispatchResult:
        pruned = 0
        # Prune each dead token as soon as the provider reports it
        for token in outcome.invalid_tokens:
            try:
                if device_registry.deactivate_token(db, token):
                    pruned += 1
                    log_token_pruned(user_id, device_registry.token_preview(token))
            except Exception as e:
                db.rollback()
                logger.error(f"Could not deactivate token {device_registry.token_preview(token)}: {e}")
        try:
            device_registry.touch_tokens(db, outcome.delivered_tokens)
        except Exception as e:
            db.rollback()
            logger.warning(f"Could not bump last_used for user {user_id}: {e}")

        success = outcome.success_count > 0
        return DispatchResult(
            user_id=user_id,
            success=success,
            sent=outcome.success_count,
            failed=outcome.failure_count,
            pruned=pruned,
            reason=None if success else "all_tokens_failed",
        )

    def _finish(
        self, db: Session, user_id: str, payload: PushNotificationPayload, result: DispatchResult
    ) -> DispatchResult:
        """Write the audit record for ``result``; audit failures never fail the send."""
        try:
            db.add(NotificationLog(
                user_id=user_id,
                title=payload.title,
                body=payload.body,
                data=payload.data or {},
                success=result.success,
                sent_at=naive_utc_now(),
            ))
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"Could not record notification audit for user {user_id}: {e}")
        return result

    def send_to_user(self, db: Session, user_id: str, payload: PushNotificationPayload) -> DispatchResult:
        return self.dispatch(db, [user_id], payload)[0]

    def send_to_topic(self, topic: str, payload: PushNotificationPayload) -> str:
        return self.gateway.send_to_topic(topic, payload)


def build_weather_alert_payload(alert: WeatherAlertRecord) -> PushNotificationPayload:
    """Notification content for a newly seen weather alert."""
    emoji = SEVERITY_EMOJI.get(alert.severity, "⚠️")
    return PushNotificationPayload(
        title=f"{emoji} Weather Alert for {alert.location_city}",
        body=f"{alert.severity.value}: {alert.title}",
        data={
            "type": "weather_alert",
            "alertId": alert.alert_id,
            "severity": alert.severity.value,
            "alertType": alert.alert_type,
            "actionUrl": "/weather/alerts",
        },
        priority="high" if alert.severity == AlertSeverity.CRITICAL else "normal",
        channel_id="weather_alert",
    )


def notify_weather_alert(
    db: Session,
    dispatcher: NotificationDispatcher,
    alert: WeatherAlertRecord,
) -> List[DispatchResult]:
    """Push ``alert`` to every opted-in user at the alert's location."""
    if not alert.severity.is_notifiable:
        return []
    user_ids = get_weather_alert_recipients(db, alert.location_city, alert.location_state)
    if not user_ids:
        logger.info(
            f"No users found in {alert.location_city}, {alert.location_state} for weather alert"
        )
        return []
    logger.info(
        f"Sending {alert.severity.value} alert {alert.alert_id} to {len(user_ids)} users in "
        f"{alert.location_city}, {alert.location_state}"
    )
    return dispatcher.dispatch(db, user_ids, build_weather_alert_payload(alert))


def get_notification_stats(db: Session, days: int = 30) -> Dict[str, Any]:
    """Delivery statistics over the audit log for the last ``days`` days."""
    if days < 1 or days > 365:
        raise ValueError("days must be between 1 and 365")
    since = naive_utc_now() - timedelta(days=days)
    base = db.query(NotificationLog).filter(NotificationLog.sent_at >= since)

    total = base.count()
    successful = base.filter(NotificationLog.success.is_(True)).count()
    unique_users = db.query(func.count(func.distinct(NotificationLog.user_id))).filter(
        NotificationLog.sent_at >= since
    ).scalar() or 0

    return {
        "period_days": days,
        "total": total,
        "successful": successful,
        "failed": total - successful,
        "unique_users": unique_users,
        "success_rate": round(successful / total * 100, 2) if total else 0.0,
        "since": since,
    }
