"""FastAPI application factory and lifespan for the wind alert service."""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import Response

from .config import settings
from .models.database import init_database
from .services.dispatcher import build_adapters
from .services.monitor import AlertMonitor
from .services.weather import weather_cache
from .api.router import api_router
from .api import health as health_api
from .api.errors import validation_exception_handler

# Configure logging for our app (uvicorn only configures its own loggers)
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:     %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

CORS_METHODS = "GET, POST, PUT, DELETE, OPTIONS"
CORS_HEADERS = "Content-Type, Authorization, X-Webhook-Token"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: database, weather cache TTL, optional monitor."""
    logger.info("Database: %s", settings.db_path)
    init_database()
    weather_cache.ttl_seconds = settings.weather_cache_ttl

    missing = settings.missing_channel_keys()
    if missing:
        logger.warning("Alert channels not fully configured, missing: %s", ", ".join(missing))

    monitor = None
    monitor_task = None
    if settings.monitor_enabled:
        monitor = AlertMonitor(settings, build_adapters(settings))
        monitor_task = asyncio.create_task(monitor.run())
        health_api.set_monitor(monitor)
        logger.info("Alert monitor started (%ds interval)", monitor.poll_interval)

    yield

    logger.info("Shutting down...")
    if monitor:
        monitor.stop()
    if monitor_task:
        monitor_task.cancel()
        try:
            await asyncio.wait_for(asyncio.shield(monitor_task), timeout=6.0)
        except (asyncio.CancelledError, asyncio.TimeoutError):
            pass
    health_api.set_monitor(None)
    logger.info("Application shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Wind Alert",
        version="0.1.0",
        lifespan=lifespan,
    )

    @app.middleware("http")
    async def cors(request: Request, call_next):
        origin = settings.allowed_origin
        if request.method == "OPTIONS" and request.url.path.startswith("/api"):
            return Response(
                status_code=204,
                headers={
                    "Access-Control-Allow-Origin": origin,
                    "Access-Control-Allow-Methods": CORS_METHODS,
                    "Access-Control-Allow-Headers": CORS_HEADERS,
                    "Access-Control-Max-Age": "86400",
                },
            )
        response = await call_next(request)
        response.headers["Access-Control-Allow-Origin"] = origin
        return response

    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    # API routes
    app.include_router(api_router)

    return app


# Application instance
app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port)
