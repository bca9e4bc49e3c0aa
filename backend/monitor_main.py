#!/usr/bin/env python3
"""Wind alert monitor daemon.

Runs the fetch/evaluate/dispatch cycle every POLL_INTERVAL_SEC seconds
without the web application. Use it when the API runs with
MONITOR_ENABLED unset, or to drive alerts from a separate host that shares
the database.

Start:  python monitor_main.py
        python monitor_main.py --once      (single cycle, e.g. from cron)
Stop:   Ctrl-C or SIGTERM
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

# Ensure the backend package is importable when running from the backend/ dir
sys.path.insert(0, str(Path(__file__).resolve().parent))

from windalert.config import settings
from windalert.models.database import init_database
from windalert.services.dispatcher import build_adapters
from windalert.services.monitor import AlertMonitor
from windalert.services.weather import weather_cache

logger = logging.getLogger("windalert.monitor")


class MonitorDaemon:
    """Owns the AlertMonitor task and stops it on SIGTERM / SIGINT."""

    def __init__(self) -> None:
        self.monitor = AlertMonitor(settings, build_adapters(settings))

    async def run_once(self) -> None:
        summary = await self.monitor.run_once()
        if summary is None:
            logger.error("Cycle failed: no weather data")
        else:
            logger.info("Cycle done: %s", summary.model_dump(mode="json"))

    async def run(self) -> None:
        """Initialise and run until SIGTERM / SIGINT."""
        task = asyncio.create_task(self.monitor.run())

        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        if sys.platform != "win32":
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, stop_event.set)
        else:
            signal.signal(signal.SIGINT, lambda *_: stop_event.set())
            signal.signal(signal.SIGTERM, lambda *_: stop_event.set())

        logger.info("Monitor daemon ready (%s, every %ds)", settings.location_name, self.monitor.poll_interval)
        await stop_event.wait()

        logger.info("Shutting down monitor daemon...")
        self.monitor.stop()
        task.cancel()
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=6.0)
        except (asyncio.CancelledError, asyncio.TimeoutError):
            pass
        logger.info("Monitor daemon stopped")


# --------------- Entry point ---------------

def main() -> None:
    parser = argparse.ArgumentParser(description="Wind alert monitor daemon")
    parser.add_argument("--once", action="store_true", help="run a single cycle and exit")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(levelname)s:     %(name)s - %(message)s",
    )
    init_database()
    weather_cache.ttl_seconds = settings.weather_cache_ttl

    missing = settings.missing_channel_keys()
    if missing:
        logger.error("Alert channels not configured, missing: %s", ", ".join(missing))
        sys.exit(1)

    daemon = MonitorDaemon()
    try:
        asyncio.run(daemon.run_once() if args.once else daemon.run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
