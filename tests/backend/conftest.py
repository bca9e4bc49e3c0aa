"""Shared fixtures: a throwaway SQLite database and a few domain builders."""

import os
import tempfile
from datetime import datetime, timedelta, timezone

import pytest

# Must be set before windalert.config is imported anywhere
_TMP_DIR = tempfile.mkdtemp(prefix="windalert-tests-")
os.environ["DB_PATH"] = os.path.join(_TMP_DIR, "test.db")
os.environ.setdefault("USE_MOCK_WEATHER", "true")

from windalert.config import Settings  # noqa: E402
from windalert.models.database import SessionLocal, engine, init_database  # noqa: E402
from windalert.models.alert_log import AlertLogModel  # noqa: E402
from windalert.models.rate_limit import RateLimitModel  # noqa: E402
from windalert.models.subscriber import SubscriberModel  # noqa: E402
from windalert.schemas.weather import ForecastPoint  # noqa: E402

NOW = datetime(2025, 11, 3, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def db():
    init_database()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        with engine.begin() as conn:
            conn.execute(AlertLogModel.__table__.delete())
            conn.execute(SubscriberModel.__table__.delete())
            conn.execute(RateLimitModel.__table__.delete())


@pytest.fixture
def cfg():
    """Settings with every provider credential filled in and no delays."""
    return Settings(
        _env_file=None,
        alert_channels=["email", "sms", "push"],
        resend_api_key="re_test",
        email_from_address="alerts@example.com",
        twilio_account_sid="AC123",
        twilio_auth_token="secret",
        twilio_phone_from="+15550000000",
        onesignal_app_id="app-id",
        onesignal_rest_api_key="os-key",
        bulk_batch_delay_sec=0,
        use_mock_weather=True,
        timezone="UTC",
        anthropic_api_key="",
        alert_webhook_url="",
    )


def make_subscriber(db, **fields) -> SubscriberModel:
    channels = fields.pop("channels", ["email", "sms", "push"])
    row = SubscriberModel(
        email=fields.pop("email", "ana@example.com"),
        phone=fields.pop("phone", "+40700000001"),
        push_handle=fields.pop("push_handle", "player-1"),
        wind_threshold=fields.pop("wind_threshold", 50.0),
        active=fields.pop("active", True),
        **fields,
    )
    row.channels = channels
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def point(hours_from_now: float, speed: float, gust: float | None = None, start=NOW) -> ForecastPoint:
    return ForecastPoint(
        time=start + timedelta(hours=hours_from_now),
        temperature=10.0,
        wind_speed=speed,
        wind_gust=speed if gust is None else gust,
        wind_direction=270,
    )


class FakeAdapter:
    """Channel adapter double. outcome is True, False, or an exception to raise."""

    def __init__(self, channel, outcome=True):
        self.channel = channel
        self.outcome = outcome
        self.sent: list[str] = []

    def render(self, event):
        return f"{event.level.value}:{event.wind_speed:.0f}"

    async def send(self, contact, content):
        self.sent.append(contact)
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome
