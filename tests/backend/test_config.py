"""Tests for settings and the subscriber input schema."""

import pytest
from pydantic import ValidationError

from windalert.config import Settings, SuppressionBypass
from windalert.schemas.subscriber import SubscriberCreate


class TestMissingChannelKeys:
    def test_all_configured(self, cfg):
        assert cfg.missing_channel_keys() == []

    def test_only_enabled_channels_checked(self):
        cfg = Settings(_env_file=None, alert_channels=["email"], resend_api_key="", email_from_address="a@b.c")
        assert cfg.missing_channel_keys() == ["RESEND_API_KEY"]

    def test_webpush_keys(self):
        cfg = Settings(
            _env_file=None, alert_channels=["push"], push_provider="webpush",
            vapid_public_key="", vapid_private_key="",
        )
        assert cfg.missing_channel_keys() == ["VAPID_PUBLIC_KEY", "VAPID_PRIVATE_KEY"]


class TestSettingsValidation:
    def test_invalid_enum_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, suppression_bypass="sometimes")

    def test_bypass_parsed(self):
        assert Settings(_env_file=None, suppression_bypass="danger").suppression_bypass == SuppressionBypass.DANGER

    def test_db_path_made_absolute(self):
        assert Settings(_env_file=None, db_path="x.db").db_path.endswith("x.db")
        assert Settings(_env_file=None, db_path="x.db").db_path.startswith("/")


class TestSubscriberCreate:
    def test_defaults(self):
        body = SubscriberCreate(email="a@example.com")
        assert body.wind_threshold == 50
        assert body.enabled_channels == []

    def test_camel_case_input(self):
        body = SubscriberCreate.model_validate({"windThreshold": 35, "quietHoursStart": "23:00"})
        assert body.wind_threshold == 35
        assert body.quiet_hours_start == "23:00"

    @pytest.mark.parametrize("field,value", [
        ("email", "not-an-email"),
        ("phone", "abc"),
        ("quiet_hours_start", "25:00"),
        ("wind_threshold", -1),
    ])
    def test_rejected(self, field, value):
        with pytest.raises(ValidationError):
            SubscriberCreate(**{field: value})
