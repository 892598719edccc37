"""Push gateway backed by Firebase Cloud Messaging."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from app.exceptions import PushGatewayError, PushGatewayNotConfigured
from app.schemas.push_notification import PushNotificationPayload

logger = logging.getLogger("app.push.gateway")

# FCM rejects multicast messages addressed to more tokens than this
MAX_MULTICAST_TOKENS = 500


@dataclass
class TokenResult:
    token: str
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    # True when the provider says the token will never work again
    permanent: bool = False


@dataclass
class MulticastResult:
    success_count: int = 0
    failure_count: int = 0
    results: List[TokenResult] = field(default_factory=list)

    @property
    def invalid_tokens(self) -> List[str]:
        return [r.token for r in self.results if not r.success and r.permanent]

    @property
    def delivered_tokens(self) -> List[str]:
        return [r.token for r in self.results if r.success]


def _is_fcm_available() -> bool:
    """Check if Firebase Cloud Messaging is available."""
    try:
        import firebase_admin
        # Check if Firebase app is initialized
        firebase_admin.get_app()
        return True
    except (ImportError, ValueError):
        return False


def _convert_data_to_strings(data: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """Convert data payload values to strings (FCM requirement)."""
    if not data:
        return {}
    return {k: "" if v is None else str(v) for k, v in data.items()}


def is_permanent_failure(error: Optional[Exception]) -> bool:
    """Whether a per-token send error means the token should be pruned."""
    if error is None:
        return False
    from firebase_admin import exceptions, messaging

    if isinstance(error, (messaging.UnregisteredError, messaging.SenderIdMismatchError)):
        return True
    if isinstance(error, exceptions.InvalidArgumentError):
        return True
    # Older SDKs only surface the FCM error code in the message
    text = str(error).upper()
    return "UNREGISTERED" in text or "INVALID_REGISTRATION" in text


class FirebasePushGateway:
    """Thin wrapper over ``firebase_admin.messaging`` multicast and topic sends."""

    name = "fcm"

    def is_available(self) -> bool:
        return _is_fcm_available()

    def _require_app(self) -> None:
        if not _is_fcm_available():
            raise PushGatewayNotConfigured("Firebase app is not initialized")

    def _platform_configs(self, payload: PushNotificationPayload):
        from firebase_admin import messaging

        android_config = messaging.AndroidConfig(
            priority="high" if payload.priority == "high" else "normal",
            notification=messaging.AndroidNotification(
                sound=payload.sound or "default",
                channel_id=payload.channel_id or "default",
            )
        )

        apns_config = messaging.APNSConfig(
            payload=messaging.APNSPayload(
                aps=messaging.Aps(
                    sound=payload.sound or "default",
                    badge=payload.badge
                )
            )
        )
        return android_config, apns_config

    def _notification(self, payload: PushNotificationPayload):
        from firebase_admin import messaging

        return messaging.Notification(
            title=payload.title,
            body=payload.body,
            image=payload.image_url
        )

    def send_multicast(self, tokens: List[str], payload: PushNotificationPayload) -> MulticastResult:
        """Send ``payload`` to up to ``MAX_MULTICAST_TOKENS`` tokens.

        Raises ``PushGatewayNotConfigured`` when Firebase is not initialised and
        ``PushGatewayError`` when the whole request fails.
        """
        if not tokens:
            return MulticastResult()
        if len(tokens) > MAX_MULTICAST_TOKENS:
            raise ValueError(f"multicast is limited to {MAX_MULTICAST_TOKENS} tokens, got {len(tokens)}")
        self._require_app()

        from firebase_admin import messaging
        from firebase_admin.exceptions import FirebaseError

        android_config, apns_config = self._platform_configs(payload)
        message = messaging.MulticastMessage(
            tokens=tokens,
            notification=self._notification(payload),
            data=_convert_data_to_strings(payload.data),
            android=android_config,
            apns=apns_config
        )

        try:
            response = messaging.send_each_for_multicast(message)
        except FirebaseError as e:
            logger.error(f"Multicast send failed: {e}")
            raise PushGatewayError(str(e)) from e

        results = []
        for token, send_response in zip(tokens, response.responses):
            error = send_response.exception
            results.append(TokenResult(
                token=token,
                success=send_response.success,
                message_id=send_response.message_id,
                error=str(error) if error else None,
                permanent=not send_response.success and is_permanent_failure(error),
            ))

        logger.info(
            f"Multicast result: {response.success_count} success, "
            f"{response.failure_count} failures"
        )
        return MulticastResult(
            success_count=response.success_count,
            failure_count=response.failure_count,
            results=results,
        )

    def send_to_topic(self, topic: str, payload: PushNotificationPayload) -> str:
        """Send ``payload`` to every device subscribed to ``topic``; returns the message id."""
        self._require_app()

        from firebase_admin import messaging
        from firebase_admin.exceptions import FirebaseError

        android_config, apns_config = self._platform_configs(payload)
        message = messaging.Message(
            topic=topic,
            notification=self._notification(payload),
            data=_convert_data_to_strings(payload.data),
            android=android_config,
            apns=apns_config
        )
        try:
            message_id = messaging.send(message)
        except FirebaseError as e:
            logger.error(f"Topic send to '{topic}' failed: {e}")
            raise PushGatewayError(str(e)) from e
        logger.info(f"Sent topic message to '{topic}': {message_id}")
        return message_id
