"""Tests for the notification dispatcher and bulk sending."""

import asyncio

from windalert.config import Channel, PushProvider, Settings
from windalert.schemas.alerts import AlertEvent, AlertLevel
from windalert.schemas.subscriber import Subscriber
from windalert.services.channels.email import ResendEmailAdapter
from windalert.services.channels.push import OneSignalPushAdapter, WebPushAdapter
from windalert.services.channels.sms import TwilioSmsAdapter
from windalert.services.dispatcher import build_adapters, dispatch, send_bulk_alerts

from conftest import FakeAdapter


def _event(subscriber_id: int = 1) -> AlertEvent:
    return AlertEvent(
        level=AlertLevel.WARNING, wind_speed=62, message="Strong wind",
        subscriber_id=subscriber_id, place="Somesul Cald", threshold=50,
    )


def _sub(subscriber_id: int = 1, **overrides) -> Subscriber:
    fields = dict(
        id=subscriber_id,
        email=f"user{subscriber_id}@example.com",
        phone="+40700000001",
        push_handle=f"player-{subscriber_id}",
        wind_threshold=50,
        enabled_channels=["email", "sms", "push"],
    )
    fields.update(overrides)
    return Subscriber(**fields)


def _adapters(email=True, sms=True, push=True):
    return {
        Channel.EMAIL: FakeAdapter(Channel.EMAIL, email),
        Channel.SMS: FakeAdapter(Channel.SMS, sms),
        Channel.PUSH: FakeAdapter(Channel.PUSH, push),
    }


class TestDispatch:
    def test_all_channels_delivered(self):
        adapters = _adapters()
        result = asyncio.run(dispatch(_event(), _sub(), adapters))
        assert (result.email, result.sms, result.push) == (True, True, True)

    def test_email_only_subscriber(self):
        """Channels without contact info are never attempted."""
        adapters = _adapters()
        sub = _sub(phone=None, push_handle=None, enabled_channels=["email"])
        result = asyncio.run(dispatch(_event(), sub, adapters))
        assert result.email is True
        assert result.sms is False and result.push is False
        assert adapters[Channel.SMS].sent == []
        assert adapters[Channel.PUSH].sent == []

    def test_disabled_channel_not_attempted(self):
        adapters = _adapters()
        result = asyncio.run(dispatch(_event(), _sub(enabled_channels=["sms"]), adapters))
        assert result.sms is True
        assert adapters[Channel.EMAIL].sent == []

    def test_failing_channel_isolated(self):
        adapters = _adapters(sms=RuntimeError("twilio down"), push=False)
        result = asyncio.run(dispatch(_event(), _sub(), adapters))
        assert result.email is True
        assert result.sms is False
        assert result.push is False
        assert adapters[Channel.PUSH].sent == ["player-1"]

    def test_channel_without_server_adapter(self):
        adapters = {Channel.EMAIL: FakeAdapter(Channel.EMAIL)}
        result = asyncio.run(dispatch(_event(), _sub(), adapters))
        assert result.email is True and result.sms is False and result.push is False


class TestSendBulk:
    def test_counts_success_and_failure(self):
        adapters = _adapters()
        jobs = [(_event(i), _sub(i)) for i in range(1, 4)]
        jobs.append((_event(4), _sub(4, email=None, phone=None, push_handle=None)))
        bulk = asyncio.run(send_bulk_alerts(jobs, adapters, batch_size=2, batch_delay=0))
        assert bulk.success == 3
        assert bulk.failed == 1
        assert set(bulk.results) == {1, 2, 3, 4}
        assert not bulk.results[4].any_sent

    def test_every_job_dispatched_across_batches(self):
        adapters = _adapters()
        jobs = [(_event(i), _sub(i)) for i in range(1, 13)]
        bulk = asyncio.run(send_bulk_alerts(jobs, adapters, batch_size=5, batch_delay=0))
        assert bulk.success == 12
        assert len(adapters[Channel.EMAIL].sent) == 12

    def test_partial_delivery_counts_as_success(self):
        adapters = _adapters(email=False, sms=False)
        bulk = asyncio.run(send_bulk_alerts([(_event(), _sub())], adapters, batch_delay=0))
        assert bulk.success == 1
        assert bulk.results[1].push is True

    def test_empty(self):
        bulk = asyncio.run(send_bulk_alerts([], _adapters(), batch_delay=0))
        assert bulk.success == 0 and bulk.failed == 0


class TestBuildAdapters:
    def test_onesignal_default(self):
        cfg = Settings(_env_file=None, alert_channels=["email", "sms", "push"])
        adapters = build_adapters(cfg)
        assert isinstance(adapters[Channel.EMAIL], ResendEmailAdapter)
        assert isinstance(adapters[Channel.SMS], TwilioSmsAdapter)
        assert isinstance(adapters[Channel.PUSH], OneSignalPushAdapter)

    def test_webpush_provider(self):
        cfg = Settings(_env_file=None, alert_channels=["push"], push_provider=PushProvider.WEBPUSH)
        adapters = build_adapters(cfg)
        assert set(adapters) == {Channel.PUSH}
        assert isinstance(adapters[Channel.PUSH], WebPushAdapter)
