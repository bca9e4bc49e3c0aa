"""Application configuration using Pydantic Settings."""

from enum import Enum
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings

# Resolve config: prefer system config (installed), fall back to repo .env (dev)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_SYSTEM_CONF = Path("/etc/windalert/windalert.conf")
_ENV_FILE = _SYSTEM_CONF if _SYSTEM_CONF.exists() else _PROJECT_ROOT / ".env"


class Channel(str, Enum):
    PUSH = "push"
    SMS = "sms"
    EMAIL = "email"


class WeatherProvider(str, Enum):
    OPENWEATHER = "openweather"
    OPEN_METEO = "open-meteo"


class PushProvider(str, Enum):
    ONESIGNAL = "onesignal"
    WEBPUSH = "webpush"


class SuppressionBypass(str, Enum):
    """Which alerts may skip the per-subscriber suppression window."""
    NONE = "none"
    DANGER = "danger"
    ESCALATION = "escalation"


class RateLimitBackend(str, Enum):
    MEMORY = "memory"
    DATABASE = "database"


class UrbanDensity(str, Enum):
    OPEN = "open"
    SUBURBAN = "suburban"
    URBAN = "urban"
    DENSE_URBAN = "dense-urban"


# Env keys each channel needs, per provider where it matters.
_CHANNEL_KEYS: dict[str, tuple[str, ...]] = {
    "email": ("RESEND_API_KEY", "EMAIL_FROM_ADDRESS"),
    "sms": ("TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_PHONE_FROM"),
    "push:onesignal": ("ONESIGNAL_APP_ID", "ONESIGNAL_REST_API_KEY"),
    "push:webpush": ("VAPID_PUBLIC_KEY", "VAPID_PRIVATE_KEY"),
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    # Location
    latitude: float = 44.68
    longitude: float = 26.40
    location_name: str = "Aleea Somesul Cald"
    timezone: str = "Europe/Bucharest"

    # Weather providers
    openweather_api_key: str = ""
    weather_primary_provider: WeatherProvider = WeatherProvider.OPENWEATHER
    use_mock_weather: bool = False
    weather_cache_ttl: int = 120
    weather_timeout_sec: float = 10.0

    # Urban calibration (None = raw provider values)
    urban_density: UrbanDensity | None = None
    urban_factors: dict[str, float] = {}

    # Alert evaluation
    lookahead_hours: int = 8
    suppression_window_min: int = 30
    suppression_bypass: SuppressionBypass = SuppressionBypass.NONE

    # Notification channels enabled on this server
    alert_channels: list[Channel] = [Channel.PUSH, Channel.SMS, Channel.EMAIL]
    push_provider: PushProvider = PushProvider.ONESIGNAL
    bulk_batch_size: int = 5
    bulk_batch_delay_sec: float = 1.0

    # OneSignal
    onesignal_app_id: str = ""
    onesignal_rest_api_key: str = ""

    # Twilio
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_phone_from: str = ""

    # Resend
    resend_api_key: str = ""
    email_from_name: str = "Wind Alert"
    email_from_address: str = ""

    # Web push (VAPID)
    vapid_public_key: str = ""
    vapid_private_key: str = ""
    vapid_subject: str = "mailto:admin@windalert.app"

    # Optional forward of every manual alert to an automation webhook
    alert_webhook_url: str = ""
    alert_webhook_token: str = ""

    # Optional AI-written alert text
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-haiku-4-5-20251001"

    # HTTP surface
    allowed_origin: str = "*"
    app_url: str = ""
    rate_limit_requests: int = 5
    rate_limit_window_sec: int = 60
    rate_limit_backend: RateLimitBackend = RateLimitBackend.MEMORY

    # Background monitor
    monitor_enabled: bool = False
    poll_interval_sec: int = 300

    # Database
    db_path: str = "windalert.db"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    @model_validator(mode="after")
    def _resolve_db_path(self) -> "Settings":
        """Make db_path absolute: relative to /var/lib/windalert if installed, else project root."""
        p = Path(self.db_path)
        if not p.is_absolute():
            if _ENV_FILE == _SYSTEM_CONF:
                self.db_path = str(Path("/var/lib/windalert") / p)
            else:
                self.db_path = str(_PROJECT_ROOT / p)
        return self

    @property
    def database_url(self) -> str:
        return f"sqlite:///{self.db_path}"

    def missing_channel_keys(self) -> list[str]:
        """Return env keys required by the enabled channels but not set."""
        missing: list[str] = []
        for channel in self.alert_channels:
            key = channel.value
            if channel == Channel.PUSH:
                key = f"push:{self.push_provider.value}"
            for env_key in _CHANNEL_KEYS[key]:
                if not getattr(self, env_key.lower()) and env_key not in missing:
                    missing.append(env_key)
        return missing

    model_config = {"env_file": str(_ENV_FILE), "extra": "ignore"}


settings = Settings()
