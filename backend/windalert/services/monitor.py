"""Periodic alert monitor.

Fetches the weather, runs one alert cycle, sleeps, repeats. Used by the web
app lifespan when MONITOR_ENABLED is set, and by monitor_main.py.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Mapping, Optional

from ..config import Channel, Settings
from ..models.database import SessionLocal
from ..schemas.alerts import CycleSummary
from .channels.base import ChannelAdapter
from .pipeline import run_alert_cycle
from .weather import WeatherUnavailableError, weather_cache

logger = logging.getLogger(__name__)


class AlertMonitor:
    """Manages the poll/evaluate/dispatch loop."""

    def __init__(
        self,
        settings: Settings,
        adapters: Mapping[Channel, ChannelAdapter],
        poll_interval: Optional[int] = None,
    ):
        self.settings = settings
        self.adapters = adapters
        self.poll_interval = poll_interval or settings.poll_interval_sec
        self._running = False
        self._last_cycle: Optional[datetime] = None
        self._last_summary: Optional[CycleSummary] = None
        self._weather_failures = 0
        self._cycle_errors = 0
        self._start_time = time.time()

    @property
    def stats(self) -> dict:
        return {
            "last_cycle": self._last_cycle.isoformat() if self._last_cycle else None,
            "last_summary": self._last_summary.model_dump(mode="json") if self._last_summary else None,
            "weather_failures": self._weather_failures,
            "cycle_errors": self._cycle_errors,
            "uptime_seconds": int(time.time() - self._start_time),
        }

    async def run_once(self) -> Optional[CycleSummary]:
        """One cycle. Returns None when no weather data could be fetched."""
        try:
            bundle, _ = await weather_cache.fetch(self.settings)
        except WeatherUnavailableError as exc:
            self._weather_failures += 1
            logger.error("Alert cycle skipped, no weather data: %s", exc)
            return None

        db = SessionLocal()
        try:
            summary = await run_alert_cycle(db, self.settings, self.adapters, bundle)
        finally:
            db.close()
        self._last_cycle = datetime.now(timezone.utc)
        self._last_summary = summary
        return summary

    async def run(self) -> None:
        """Main loop. Runs until cancelled or stopped."""
        self._running = True
        self._start_time = time.time()
        logger.info("Alert monitor starting with %ds interval", self.poll_interval)

        while self._running:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                if not self._running:
                    break
                self._cycle_errors += 1
                logger.error("Alert cycle error: %s", e, exc_info=True)

            try:
                await asyncio.sleep(self.poll_interval)
            except asyncio.CancelledError:
                break

    def stop(self) -> None:
        self._running = False
