"""Tests for notification dispatch, the device registry and push endpoints."""

import uuid
from datetime import timedelta
from types import SimpleNamespace

import pytest

from app.main import app
from app.exceptions import PushGatewayNotConfigured
from app.models.device_token import DevicePlatform, DeviceToken
from app.models.notification import NotificationLog
from app.models.weather_alert import AlertSeverity
from app.routes.push_notifications import get_dispatcher
from app.schemas.push_notification import PushNotificationPayload
from app.schemas.weather_alert import WeatherAlertRecord
from app.services import device_registry
from app.services.auth import get_current_user
from app.services.push_notification import (
    NotificationDispatcher,
    build_weather_alert_payload,
    get_notification_stats,
    notify_weather_alert,
)
from app.utils.datetime import naive_utc_now
from conftest import FakePushGateway


PAYLOAD = PushNotificationPayload(title="Test", body="Hello", data={"type": "test"})


def logs_for(db_session, user_id):
    return db_session.query(NotificationLog).filter(NotificationLog.user_id == user_id).all()


class TestDispatcher:

    def test_user_without_tokens_is_recorded_not_sent(self, db_session, make_user, fake_gateway):
        user = make_user()

        results = NotificationDispatcher(gateway=fake_gateway).dispatch(db_session, [user.id], PAYLOAD)

        assert len(results) == 1
        assert results[0].success is False
        assert results[0].reason == "no_tokens"
        assert fake_gateway.calls == []
        logs = logs_for(db_session, user.id)
        assert len(logs) == 1
        assert logs[0].success is False
        assert logs[0].title == "Test"
        assert logs[0].data == {"type": "test"}

    def test_inactive_tokens_are_not_targeted(self, db_session, make_user, add_token, fake_gateway):
        user = make_user()
        add_token(user, token="inactive-token", is_active=False)
        add_token(user, token="active-token")

        NotificationDispatcher(gateway=fake_gateway).dispatch(db_session, [user.id], PAYLOAD)

        assert fake_gateway.sent_tokens == ["active-token"]

    def test_dead_token_is_pruned_and_can_be_reregistered(self, db_session, make_user, add_token):
        user = make_user()
        add_token(user, token="good-token")
        dead = add_token(user, token="dead-token")
        gateway = FakePushGateway(invalid_tokens={"dead-token"})

        result = NotificationDispatcher(gateway=gateway).send_to_user(db_session, user.id, PAYLOAD)

        assert result.success is True
        assert (result.sent, result.failed, result.pruned) == (1, 1, 1)
        db_session.expire_all()
        assert db_session.get(DeviceToken, dead.id).is_active is False
        assert device_registry.get_active_tokens(db_session, user.id) == ["good-token"]

        device, action = device_registry.register_device(db_session, user.id, "dead-token", "ios")
        assert action == "updated"
        assert device.is_active is True
        assert device.platform is DevicePlatform.ios

    def test_transient_failures_keep_tokens(self, db_session, make_user, add_token):
        user = make_user()
        add_token(user, token="flaky-token")
        gateway = FakePushGateway(transient_tokens={"flaky-token"})

        result = NotificationDispatcher(gateway=gateway).send_to_user(db_session, user.id, PAYLOAD)

        assert result.success is False
        assert result.reason == "all_tokens_failed"
        assert result.pruned == 0
        assert device_registry.get_active_tokens(db_session, user.id) == ["flaky-token"]
        assert logs_for(db_session, user.id)[0].success is False

    def test_one_users_failure_does_not_affect_others(self, db_session, make_user, add_token):
        broken = make_user()
        add_token(broken, token="broken-token")
        healthy = make_user()
        add_token(healthy, token="healthy-token")
        gateway = FakePushGateway(error_tokens={"broken-token"})

        results = NotificationDispatcher(gateway=gateway).dispatch(
            db_session, [broken.id, healthy.id], PAYLOAD
        )

        by_user = {r.user_id: r for r in results}
        assert by_user[broken.id].success is False
        assert by_user[broken.id].reason == "gateway_error"
        assert by_user[healthy.id].success is True
        assert logs_for(db_session, broken.id)[0].success is False
        assert logs_for(db_session, healthy.id)[0].success is True

    def test_every_user_gets_exactly_one_audit_record(self, db_session, make_user, add_token, fake_gateway):
        users = [make_user() for _ in range(12)]
        for user in users[::2]:
            add_token(user)

        results = NotificationDispatcher(gateway=fake_gateway, batch_size=5).dispatch(
            db_session, [u.id for u in users] + [users[0].id], PAYLOAD
        )

        assert len(results) == 12
        assert db_session.query(NotificationLog).count() == 12
        assert sum(1 for r in results if r.success) == 6

    def test_large_token_sets_are_split_into_multicast_batches(self, db_session, make_user, fake_gateway):
        user = make_user()
        db_session.add_all([
            DeviceToken(user_id=user.id, token=f"bulk-{i:04d}") for i in range(501)
        ])
        db_session.commit()

        result = NotificationDispatcher(gateway=fake_gateway).send_to_user(db_session, user.id, PAYLOAD)

        assert sorted(len(tokens) for tokens, _ in fake_gateway.calls) == [1, 500]
        assert result.sent == 501

    def test_unconfigured_gateway_is_fatal(self, db_session, make_user, add_token):
        user = make_user()
        add_token(user)
        dispatcher = NotificationDispatcher(gateway=FakePushGateway(configured=False))

        with pytest.raises(PushGatewayNotConfigured):
            dispatcher.dispatch(db_session, [user.id], PAYLOAD)


class TestWeatherAlertNotifications:

    def make_alert(self, severity=AlertSeverity.CRITICAL, city="Norman"):
        return WeatherAlertRecord(
            alert_id=f"alert-{uuid.uuid4().hex[:6]}",
            title="Tornado Warning issued for Cleveland County",
            severity=severity,
            alert_type="Tornado Warning",
            location_city=city,
            location_state="OK",
        )

    def test_payload_content(self):
        alert = self.make_alert()

        payload = build_weather_alert_payload(alert)

        assert payload.title == "🔴 Weather Alert for Norman"
        assert payload.body == "CRITICAL: Tornado Warning issued for Cleveland County"
        assert payload.priority == "high"
        assert payload.channel_id == "weather_alert"
        assert payload.data["type"] == "weather_alert"
        assert payload.data["alertId"] == alert.alert_id
        assert payload.data["severity"] == "CRITICAL"

    def test_high_alerts_are_normal_priority(self):
        payload = build_weather_alert_payload(self.make_alert(AlertSeverity.HIGH))
        assert payload.priority == "normal"
        assert payload.title.startswith("🟡")

    def test_only_opted_in_users_at_the_location_are_notified(self, db_session, make_user, add_token, fake_gateway):
        subscriber = make_user()
        add_token(subscriber, token="subscriber-token")
        push_off = make_user(push_enabled=False)
        add_token(push_off, token="push-off-token")
        alerts_off = make_user(weather_alerts_enabled=False)
        add_token(alerts_off, token="alerts-off-token")
        elsewhere = make_user(city="Tulsa")
        add_token(elsewhere, token="elsewhere-token")

        results = notify_weather_alert(
            db_session, NotificationDispatcher(gateway=fake_gateway), self.make_alert()
        )

        assert [r.user_id for r in results] == [subscriber.id]
        assert fake_gateway.sent_tokens == ["subscriber-token"]

    def test_low_severity_is_never_dispatched(self, db_session, make_user, add_token, fake_gateway):
        add_token(make_user())
        dispatcher = NotificationDispatcher(gateway=fake_gateway)

        assert notify_weather_alert(db_session, dispatcher, self.make_alert(AlertSeverity.MODERATE)) == []
        assert notify_weather_alert(db_session, dispatcher, self.make_alert(AlertSeverity.LOW)) == []
        assert fake_gateway.calls == []


class TestNotificationStats:

    def test_counts_within_window(self, db_session, make_user):
        user = make_user()
        other = make_user()
        now = naive_utc_now()
        db_session.add_all([
            NotificationLog(user_id=user.id, title="a", body="a", success=True, sent_at=now),
            NotificationLog(user_id=user.id, title="b", body="b", success=False, sent_at=now),
            NotificationLog(user_id=other.id, title="c", body="c", success=True, sent_at=now),
            NotificationLog(user_id=other.id, title="d", body="d", success=True, sent_at=now - timedelta(days=40)),
        ])
        db_session.commit()

        stats = get_notification_stats(db_session, days=30)

        assert stats["total"] == 3
        assert stats["successful"] == 2
        assert stats["failed"] == 1
        assert stats["unique_users"] == 2
        assert stats["success_rate"] == 66.67

    @pytest.mark.parametrize("days", [0, 366])
    def test_window_is_bounded(self, db_session, days):
        with pytest.raises(ValueError):
            get_notification_stats(db_session, days=days)


@pytest.fixture
def as_user():
    def _login(user, is_admin=False):
        current = SimpleNamespace(id=user.id, is_admin=is_admin, is_active=True)
        app.dependency_overrides[get_current_user] = lambda: current
        return current
    yield _login
    app.dependency_overrides.pop(get_current_user, None)
    app.dependency_overrides.pop(get_dispatcher, None)


class TestPushEndpoints:

    def test_register_then_reregister_then_reassign(self, client, db_session, make_user, as_user):
        first = make_user()
        second = make_user()
        body = {"token": "fcm-token-1", "platform": "android", "device_info": {"name": "Pixel 8"}}

        as_user(first)
        created = client.post("/push-notifications/register-device", json=body)
        again = client.post("/push-notifications/register-device", json=body)
        as_user(second)
        moved = client.post("/push-notifications/register-device", json=body)

        assert created.status_code == 200
        assert created.json()["action"] == "created"
        assert created.json()["platform"] == "android"
        assert again.json()["action"] == "updated"
        assert moved.json()["action"] == "reassigned"
        assert moved.json()["user_id"] == second.id
        assert db_session.query(DeviceToken).count() == 1

    def test_unregister_and_list_devices(self, client, db_session, make_user, add_token, as_user):
        user = make_user()
        add_token(user, token="token-to-remove-0123456789")
        as_user(user)

        response = client.post("/push-notifications/unregister-device", json={"token": "token-to-remove-0123456789"})
        devices = client.get("/push-notifications/my-devices").json()

        assert response.json()["found"] is True
        assert len(devices) == 1
        assert devices[0]["is_active"] is False
        assert devices[0]["token_preview"] == "token-to-remove-0123..."

    def test_unregister_unknown_token_is_not_an_error(self, client, make_user, as_user):
        as_user(make_user())
        response = client.post("/push-notifications/unregister-device", json={"token": "nope"})
        assert response.status_code == 200
        assert response.json()["found"] is False

    def test_admin_endpoints_require_admin(self, client, make_user, as_user):
        as_user(make_user())
        assert client.get("/push-notifications/admin/device-stats").status_code == 403

    def test_admin_send_test(self, client, make_user, add_token, as_user, fake_gateway):
        target = make_user()
        add_token(target, token="target-token")
        as_user(make_user(), is_admin=True)
        app.dependency_overrides[get_dispatcher] = lambda: NotificationDispatcher(gateway=fake_gateway)

        response = client.post(
            "/push-notifications/admin/send-test",
            json={"user_id": target.id, "title": "Hi", "body": "Test push"},
        )

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert fake_gateway.sent_tokens == ["target-token"]

    def test_admin_send_topic_without_gateway(self, client, make_user, as_user):
        as_user(make_user(), is_admin=True)
        app.dependency_overrides[get_dispatcher] = lambda: NotificationDispatcher(
            gateway=FakePushGateway(configured=False)
        )

        response = client.post(
            "/push-notifications/admin/send-topic",
            json={"topic": "weather", "title": "Hi", "body": "Broadcast"},
        )

        assert response.status_code == 503

    def test_admin_stats(self, client, make_user, add_token, as_user):
        user = make_user()
        add_token(user, platform=DevicePlatform.ios)
        add_token(user, platform=DevicePlatform.android, is_active=False)
        as_user(user, is_admin=True)

        devices = client.get("/push-notifications/admin/device-stats").json()
        stats = client.get("/push-notifications/admin/notification-stats", params={"days": 7})
        bad = client.get("/push-notifications/admin/notification-stats", params={"days": 0})

        assert devices == {
            "total_devices": 2,
            "active_devices": 1,
            "inactive_devices": 1,
            "by_platform": {"ios": 1},
        }
        assert stats.status_code == 200
        assert stats.json()["period_days"] == 7
        assert bad.status_code == 422
