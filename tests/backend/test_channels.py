"""Tests for the email, SMS and push channel adapters (HTTP faked with MockTransport)."""

import asyncio
import json
from datetime import datetime, timezone

import httpx
from pywebpush import WebPushException

from windalert.schemas.alerts import AlertEvent, AlertLevel
from windalert.services.channels import push as push_channel
from windalert.services.channels.email import RESEND_URL, ResendEmailAdapter
from windalert.services.channels.push import (
    ONESIGNAL_URL,
    OneSignalPushAdapter,
    WebPushAdapter,
    is_valid_subscription,
    render_push,
)
from windalert.services.channels.sms import (
    SMS_MAX_CHARS,
    TwilioSmsAdapter,
    fit_sms,
    is_stop_message,
)


def _event(level=AlertLevel.DANGER, message="Dangerous wind expected. Stay indoors.") -> AlertEvent:
    return AlertEvent(
        level=level,
        wind_speed=82.4,
        time=datetime(2025, 11, 3, 15, 0, tzinfo=timezone.utc),
        message=message,
        subscriber_id=7,
        place="Aleea Somesul Cald",
        threshold=50,
    )


def _recording(handler):
    """Wrap a handler so every request is kept for inspection."""
    requests: list[httpx.Request] = []

    def wrapped(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    return httpx.MockTransport(wrapped), requests


class TestResendEmail:
    def test_send_success(self):
        transport, requests = _recording(lambda r: httpx.Response(200, json={"id": "em_1"}))
        adapter = ResendEmailAdapter("re_key", "alerts@example.com", transport=transport)
        content = adapter.render(_event())
        assert asyncio.run(adapter.send("ana@example.com", content)) is True

        req = requests[0]
        assert str(req.url) == RESEND_URL
        assert req.headers["Authorization"] == "Bearer re_key"
        body = json.loads(req.content)
        assert body["to"] == ["ana@example.com"]
        assert body["from"] == "Wind Alert <alerts@example.com>"
        assert "[DANGER]" in body["subject"]

    def test_render_contains_details(self):
        adapter = ResendEmailAdapter("k", "a@example.com", app_url="https://wind.example")
        content = adapter.render(_event())
        assert "82.4 km/h" in content.text
        assert "Your threshold: 50 km/h" in content.text
        assert "https://wind.example/unsubscribe" in content.html
        assert "Aleea Somesul Cald" in content.html

    def test_provider_error_returns_false(self):
        transport, _ = _recording(lambda r: httpx.Response(422, json={"message": "bad"}))
        adapter = ResendEmailAdapter("k", "a@example.com", tries=1, transport=transport)
        assert asyncio.run(adapter.send("ana@example.com", adapter.render(_event()))) is False

    def test_missing_id_returns_false(self):
        transport, _ = _recording(lambda r: httpx.Response(200, json={}))
        adapter = ResendEmailAdapter("k", "a@example.com", transport=transport)
        assert asyncio.run(adapter.send("ana@example.com", adapter.render(_event()))) is False


class TestTwilioSms:
    def test_send_success(self):
        transport, requests = _recording(lambda r: httpx.Response(201, json={"sid": "SM1"}))
        adapter = TwilioSmsAdapter("AC1", "token", "+15550000000", transport=transport)
        content = adapter.render(_event())
        assert asyncio.run(adapter.send("+40700000001", content)) is True

        req = requests[0]
        assert req.url.path == "/2010-04-01/Accounts/AC1/Messages.json"
        assert req.headers["Authorization"].startswith("Basic ")
        form = dict(httpx.QueryParams(req.content.decode()))
        assert form["To"] == "+40700000001"
        assert form["From"] == "+15550000000"

    def test_body_fits_one_segment(self):
        adapter = TwilioSmsAdapter("AC1", "token", "+1")
        content = adapter.render(_event(message="x" * 500))
        assert len(content.body) <= SMS_MAX_CHARS
        assert content.body.startswith("WIND DANGER 82 km/h")
        assert content.body.endswith("Reply STOP to unsubscribe.")

    def test_short_message_untouched(self):
        assert fit_sms("P: ", "hello", " S", limit=20) == "P: hello S"

    def test_truncation_stays_gsm7(self):
        body = fit_sms("P: ", "y" * 50, " S", limit=20)
        assert body == "P: yyyyyyyyyyyy... S"
        assert len(body) == 20
        assert body.isascii()

    def test_failure_returns_false(self):
        transport, _ = _recording(lambda r: httpx.Response(400, json={"code": 21211}))
        adapter = TwilioSmsAdapter("AC1", "token", "+1", tries=1, transport=transport)
        assert asyncio.run(adapter.send("+40", adapter.render(_event()))) is False

    def test_stop_keywords(self):
        assert is_stop_message("STOP")
        assert is_stop_message("  Unsubscribe please ")
        assert is_stop_message("opreste")
        assert is_stop_message("Stop!")
        assert not is_stop_message("thanks")

    def test_stop_inside_a_sentence_ignored(self):
        assert not is_stop_message("I'll stop by later")
        assert not is_stop_message("unstoppable")
        assert not is_stop_message("please don't stop")
        assert not is_stop_message("")


class TestOneSignalPush:
    def test_send_success(self):
        transport, requests = _recording(lambda r: httpx.Response(200, json={"id": "n1", "recipients": 1}))
        adapter = OneSignalPushAdapter("app", "key", transport=transport)
        assert asyncio.run(adapter.send("player-1", adapter.render(_event()))) is True
        body = json.loads(requests[0].content)
        assert str(requests[0].url) == ONESIGNAL_URL
        assert body["include_player_ids"] == ["player-1"]
        assert body["data"]["level"] == "danger"
        assert adapter.drain_expired() == []

    def test_gone_subscription_flagged(self):
        transport, _ = _recording(lambda r: httpx.Response(410, json={"errors": ["gone"]}))
        adapter = OneSignalPushAdapter("app", "key", tries=1, transport=transport)
        assert asyncio.run(adapter.send("player-9", adapter.render(_event()))) is False
        assert adapter.drain_expired() == ["player-9"]
        assert adapter.drain_expired() == []

    def test_invalid_player_id_flagged(self):
        transport, _ = _recording(
            lambda r: httpx.Response(200, json={"errors": {"invalid_player_ids": ["player-3"]}})
        )
        adapter = OneSignalPushAdapter("app", "key", transport=transport)
        assert asyncio.run(adapter.send("player-3", adapter.render(_event()))) is False
        assert adapter.drain_expired() == ["player-3"]

    def test_render(self):
        content = render_push(_event(AlertLevel.WARNING), "https://wind.example")
        assert content.title.endswith("Wind alert - WARNING")
        assert content.body.startswith("82 km/h in Aleea Somesul Cald")
        assert content.data["url"] == "https://wind.example"


class TestSubscriptionValidation:
    def test_valid(self):
        raw = json.dumps({"endpoint": "https://push.example/1", "keys": {"p256dh": "p", "auth": "a"}})
        assert is_valid_subscription(raw)

    def test_missing_keys(self):
        assert not is_valid_subscription(json.dumps({"endpoint": "https://push.example/1"}))
        assert not is_valid_subscription(json.dumps({"endpoint": "x", "keys": {"auth": "a"}}))

    def test_not_json(self):
        assert not is_valid_subscription("player-1")


SUBSCRIPTION = json.dumps({
    "endpoint": "https://fcm.googleapis.com/fcm/send/abc",
    "keys": {"p256dh": "p256", "auth": "auth"},
})


class TestWebPush:
    def _adapter(self) -> WebPushAdapter:
        return WebPushAdapter("vapid-private", "mailto:ops@example.com", app_url="https://wind.example")

    def test_send_success(self, monkeypatch):
        calls = []
        monkeypatch.setattr(push_channel, "webpush", lambda **kwargs: calls.append(kwargs))
        adapter = self._adapter()
        assert asyncio.run(adapter.send(SUBSCRIPTION, adapter.render(_event()))) is True

        sent = calls[0]
        assert sent["subscription_info"]["endpoint"] == "https://fcm.googleapis.com/fcm/send/abc"
        assert sent["vapid_private_key"] == "vapid-private"
        assert sent["vapid_claims"] == {"sub": "mailto:ops@example.com"}
        payload = json.loads(sent["data"])
        assert payload["title"].endswith("Wind alert - DANGER")
        assert payload["data"]["url"] == "https://wind.example"
        assert adapter.drain_expired() == []

    def test_gone_subscription_flagged(self, monkeypatch):
        def gone(**kwargs):
            raise WebPushException("Push failed: 410 Gone", response=httpx.Response(410))

        monkeypatch.setattr(push_channel, "webpush", gone)
        adapter = self._adapter()
        assert asyncio.run(adapter.send(SUBSCRIPTION, adapter.render(_event()))) is False
        assert adapter.drain_expired() == [SUBSCRIPTION]

    def test_other_failure_not_flagged(self, monkeypatch):
        def unavailable(**kwargs):
            raise WebPushException("Push failed: 503", response=httpx.Response(503))

        monkeypatch.setattr(push_channel, "webpush", unavailable)
        adapter = self._adapter()
        assert asyncio.run(adapter.send(SUBSCRIPTION, adapter.render(_event()))) is False
        assert adapter.drain_expired() == []

    def test_malformed_subscription(self, monkeypatch):
        calls = []
        monkeypatch.setattr(push_channel, "webpush", lambda **kwargs: calls.append(kwargs))
        adapter = self._adapter()
        assert asyncio.run(adapter.send("{not json", adapter.render(_event()))) is False
        assert calls == []
