"""POST /api/send-alerts, POST /api/check-alerts, GET /api/alerts/history."""

import json
import logging
from datetime import datetime, timezone
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from ..config import Channel, Settings
from ..models.alert_log import AlertLogModel
from ..models.database import get_db
from ..schemas.alerts import AlertLevel, SendAlertRequest
from ..services.channels.base import ChannelAdapter
from ..services.http_retry import UpstreamError, post_with_retry
from ..services.pipeline import broadcast_alert, run_alert_cycle
from ..services.ratelimit import client_ip
from ..services.weather import WeatherCache, WeatherUnavailableError
from .deps import RateLimiter, get_adapters, get_rate_limiter, get_settings, get_weather_cache
from .errors import bad_request, field_errors

logger = logging.getLogger(__name__)
router = APIRouter()


def _missing_config(cfg: Settings, headers: Optional[dict] = None) -> Optional[JSONResponse]:
    missing = cfg.missing_channel_keys()
    if not missing:
        return None
    logger.error("Notification providers not configured, missing: %s", ", ".join(missing))
    return JSONResponse(
        status_code=500,
        content={
            "ok": False,
            "error": f"Notification providers not configured: missing {', '.join(missing)}",
            "missing": missing,
        },
        headers=headers,
    )


def _parse_time(raw: str) -> Optional[datetime]:
    try:
        t = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None
    return t if t.tzinfo is not None else t.replace(tzinfo=timezone.utc)


async def _forward_to_webhook(cfg: Settings, req: SendAlertRequest, level: AlertLevel) -> None:
    """POST the normalized alert to the automation webhook. Raises UpstreamError."""
    label = level.value.upper()
    message = req.message or f"Wind {label}: {req.wind_speed:.0f} km/h ({req.time})"
    payload = {
        "level": level.value,
        "windSpeed": req.wind_speed,
        "time": req.time,
        "place": req.place or cfg.location_name,
        "subject": f"[WIND MONITOR] {label} - wind {req.wind_speed:.0f} km/h @ {req.time}",
        "message": message,
    }
    headers = {"X-Webhook-Token": cfg.alert_webhook_token} if cfg.alert_webhook_token else {}
    async with httpx.AsyncClient(timeout=cfg.weather_timeout_sec) as client:
        await post_with_retry(client, cfg.alert_webhook_url, json=payload, headers=headers)


@router.post("/send-alerts")
async def send_alerts(
    request: Request,
    db: Session = Depends(get_db),
    cfg: Settings = Depends(get_settings),
    adapters: dict[Channel, ChannelAdapter] = Depends(get_adapters),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    """Validate a manual alert and fan it out to all active subscribers."""
    limit = limiter.hit(client_ip(request))
    headers = limit.headers
    if not limit.success:
        return JSONResponse(
            status_code=429,
            content={
                "error": "Too many requests",
                "limit": limit.limit,
                "remaining": limit.remaining,
                "reset": datetime.fromtimestamp(limit.reset, tz=timezone.utc).isoformat(),
            },
            headers=headers,
        )

    misconfigured = _missing_config(cfg, headers)
    if misconfigured is not None:
        return misconfigured

    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return bad_request(
            "Invalid JSON body",
            [{"field": "body", "message": "body must be valid JSON"}],
            headers,
        )

    try:
        req = SendAlertRequest.model_validate(body)
    except ValidationError as exc:
        return bad_request("Invalid request body", field_errors(exc.errors()), headers)

    level = req.level or AlertLevel.CAUTION
    place = req.place or cfg.location_name
    summary = await broadcast_alert(
        db, cfg, adapters,
        level=level,
        wind_speed=req.wind_speed,
        when=_parse_time(req.time),
        message=req.message,
        place=place,
    )

    if cfg.alert_webhook_url:
        try:
            await _forward_to_webhook(cfg, req, level)
        except UpstreamError as exc:
            logger.error("Forward to alert webhook failed: %s", exc)
            return JSONResponse(
                status_code=502,
                content={"ok": False, "error": "Forward to alert webhook failed"},
                headers=headers,
            )

    return JSONResponse(
        content={
            "ok": True,
            "sent": summary.alerts_sent,
            "skipped": summary.alerts_skipped,
            "failed": summary.alerts_failed,
        },
        headers=headers,
    )


@router.post("/check-alerts")
async def check_alerts(
    db: Session = Depends(get_db),
    cfg: Settings = Depends(get_settings),
    adapters: dict[Channel, ChannelAdapter] = Depends(get_adapters),
    cache: WeatherCache = Depends(get_weather_cache),
):
    """Run one evaluate-and-dispatch cycle now (cron hook)."""
    misconfigured = _missing_config(cfg)
    if misconfigured is not None:
        return misconfigured

    try:
        bundle, _ = await cache.fetch(cfg)
    except WeatherUnavailableError as exc:
        return JSONResponse(
            status_code=500,
            content={"ok": False, "error": "Failed to fetch weather data", "details": str(exc)},
        )

    summary = await run_alert_cycle(db, cfg, adapters, bundle)
    return {"ok": True, "summary": summary.model_dump(mode="json")}


@router.get("/alerts/history")
def alert_history(limit: int = Query(50, ge=1, le=500), db: Session = Depends(get_db)):
    """Most recent alert log rows, newest first."""
    rows = (
        db.query(AlertLogModel)
        .order_by(AlertLogModel.created_at.desc(), AlertLogModel.id.desc())
        .limit(limit)
        .all()
    )
    return [
        {
            "id": r.id,
            "createdAt": r.created_at.isoformat() if r.created_at else None,
            "subscriberId": r.subscriber_id,
            "level": r.level,
            "windSpeed": r.wind_speed,
            "triggerTime": r.trigger_time.isoformat() if r.trigger_time else None,
            "message": r.message,
            "source": r.source,
            "channels": {"email": r.email_sent, "sms": r.sms_sent, "push": r.push_sent},
        }
        for r in rows
    ]
