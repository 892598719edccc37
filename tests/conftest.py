import os

os.environ["ENV"] = "test"
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("CRON_SECRET", "test-secret")

import uuid
import pytest
import httpx
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.db import Base, get_db
from app.exceptions import PushGatewayError, PushGatewayNotConfigured
from app.models.user import User
from app.models.device_token import DeviceToken
from app.models.notification import NotificationLog
from app.models.weather_alert import WeatherAlert
from app.services.alert_fetcher import AlertFetcher
from app.services.push_gateway import MulticastResult, TokenResult
from app.services.push_notification import NotificationDispatcher
from app.services.weather_alerts import WeatherAlertPipeline

# Use SQLite in-memory for test DB
TEST_DATABASE_URL = "sqlite+pysqlite:///:memory:"
# For in-memory SQLite we must use a StaticPool so multiple connections share the
# same in-memory database during the test run. Otherwise each connection gets
# an isolated empty in-memory DB which breaks tests that use separate sessions
# (e.g. TestClient requests or pipeline worker threads vs test DB setup).
engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Dependency override
def override_get_db():
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db

@pytest.fixture(autouse=True)
def setup_test_db():
    # recreate schema for each test to ensure isolation
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)

@pytest.fixture
def client():
    return TestClient(app)

@pytest.fixture
def db_session():
    # use the testing session factory bound to the in-memory SQLite engine
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.rollback()
        db.close()

@pytest.fixture
def session_factory():
    return TestingSessionLocal


class FakePushGateway:
    """In-memory stand-in for FCM with scripted per-token outcomes."""

    def __init__(self, invalid_tokens=(), transient_tokens=(), error_tokens=(), configured=True):
        self.invalid_tokens = set(invalid_tokens)
        self.transient_tokens = set(transient_tokens)
        self.error_tokens = set(error_tokens)
        self.configured = configured
        self.calls = []
        self.topic_calls = []

    def is_available(self):
        return self.configured

    def send_multicast(self, tokens, payload):
        if not self.configured:
            raise PushGatewayNotConfigured("Firebase app is not initialized")
        self.calls.append((list(tokens), payload))
        if self.error_tokens.intersection(tokens):
            raise PushGatewayError("UNAVAILABLE: backend error")
        results = []
        for token in tokens:
            if token in self.invalid_tokens:
                results.append(TokenResult(token=token, success=False, error="UNREGISTERED", permanent=True))
            elif token in self.transient_tokens:
                results.append(TokenResult(token=token, success=False, error="UNAVAILABLE"))
            else:
                results.append(TokenResult(token=token, success=True, message_id=f"msg-{token}"))
        success = sum(1 for r in results if r.success)
        return MulticastResult(success_count=success, failure_count=len(results) - success, results=results)

    def send_to_topic(self, topic, payload):
        if not self.configured:
            raise PushGatewayNotConfigured("Firebase app is not initialized")
        self.topic_calls.append((topic, payload))
        return f"projects/test/messages/{len(self.topic_calls)}"

    @property
    def sent_tokens(self):
        return [token for tokens, _ in self.calls for token in tokens]


@pytest.fixture
def fake_gateway():
    return FakePushGateway()


@pytest.fixture
def make_user(db_session):
    def _make(city="Norman", state="OK", latitude=35.2226, longitude=-97.4395, **overrides):
        user = User(
            id=overrides.pop("id", str(uuid.uuid4())),
            name=overrides.pop("name", "Test User"),
            email=overrides.pop("email", f"user+{uuid.uuid4().hex[:8]}@example.com"),
            location_city=city,
            location_state=state,
            latitude=latitude,
            longitude=longitude,
            **overrides,
        )
        db_session.add(user)
        db_session.commit()
        return user
    return _make


@pytest.fixture
def add_token(db_session):
    def _add(user, token=None, is_active=True, **overrides):
        device = DeviceToken(
            user_id=user.id,
            token=token or f"tok-{uuid.uuid4().hex}",
            is_active=is_active,
            **overrides,
        )
        db_session.add(device)
        db_session.commit()
        return device
    return _add


def nws_feature(alert_id, severity="Severe", event="Tornado Warning", headline=None,
                onset="2026-05-01T18:00:00-05:00", expires="2099-05-01T19:00:00-05:00", **properties):
    """A feature as returned by api.weather.gov/alerts/active."""
    return {
        "id": alert_id,
        "type": "Feature",
        "properties": {
            "id": alert_id,
            "headline": headline or f"{event} issued for test county",
            "description": "Take shelter now.",
            "severity": severity,
            "event": event,
            "onset": onset,
            "expires": expires,
            "urgency": "Immediate",
            "certainty": "Observed",
            "areaDesc": "Cleveland, OK",
            "instruction": "Move to an interior room.",
            **properties,
        },
    }


def feed_transport(responses, requests=None):
    """MockTransport keyed by the ``point`` query param.

    Values are a list of features, an int status code, an Exception to raise,
    or a callable taking the request.
    """
    def handler(request):
        if requests is not None:
            requests.append(request)
        outcome = responses.get(request.url.params.get("point"), [])
        if callable(outcome):
            return outcome(request)
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, int):
            return httpx.Response(outcome, json={"title": "error"})
        return httpx.Response(200, json={"type": "FeatureCollection", "features": outcome})
    return httpx.MockTransport(handler)


@pytest.fixture
def build_pipeline(session_factory):
    def _build(responses=None, gateway=None, batch_size=5, timeout=2.0, requests=None):
        fetcher = AlertFetcher(
            base_url="https://api.weather.test",
            user_agent="WeatherAlertEngine/test",
            timeout=timeout,
            batch_size=batch_size,
            transport=feed_transport(responses or {}, requests),
        )
        return WeatherAlertPipeline(
            session_factory=session_factory,
            fetcher=fetcher,
            dispatcher=NotificationDispatcher(gateway=gateway or FakePushGateway()),
        )
    return _build
