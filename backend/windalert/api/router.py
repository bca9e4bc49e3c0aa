"""Top-level API router aggregation."""

from fastapi import APIRouter

from . import alerts, health, subscribers, weather

api_router = APIRouter(prefix="/api")

api_router.include_router(weather.router)
api_router.include_router(alerts.router)
api_router.include_router(subscribers.router)
api_router.include_router(health.router)
