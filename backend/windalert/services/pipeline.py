"""Alert pipeline: weather -> evaluation -> dedup gate -> dispatch -> log.

Two entry points share the gate, dispatcher and alert log:

- run_alert_cycle(): the periodic check. Each active subscriber's threshold is
  evaluated against the forecast window.
- broadcast_alert(): a manually triggered alert (POST /api/send-alerts) sent
  at a fixed level to every active subscriber.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Mapping, Optional, Sequence
from zoneinfo import ZoneInfo

from sqlalchemy import update
from sqlalchemy.orm import Session

from ..config import Channel, Settings
from ..models.alert_log import AlertLogModel
from ..models.subscriber import SubscriberModel
from ..schemas.alerts import AlertEvent, AlertLevel, BulkResult, CycleSummary
from ..schemas.subscriber import Subscriber
from ..schemas.weather import WeatherBundle
from .alert_gate import claim_alert_slot, should_send
from .alert_message import compose_message
from .channels.base import ChannelAdapter
from .dispatcher import send_bulk_alerts
from .evaluator import InvalidThresholdError, evaluate

logger = logging.getLogger(__name__)

Job = tuple[AlertEvent, Subscriber]


def active_subscribers(db: Session) -> list[Subscriber]:
    rows = (
        db.query(SubscriberModel)
        .filter(SubscriberModel.active.is_(True))
        .order_by(SubscriberModel.id)
        .all()
    )
    return [Subscriber.from_row(row) for row in rows]


def _gate(
    db: Session,
    subscriber: Subscriber,
    level: AlertLevel,
    now: datetime,
    settings: Settings,
) -> bool:
    window = timedelta(minutes=settings.suppression_window_min)
    local_now = now.astimezone(ZoneInfo(settings.timezone))
    if not should_send(subscriber, level, now, window, settings.suppression_bypass, local_now):
        return False
    return claim_alert_slot(db, subscriber.id, level, now, window, settings.suppression_bypass)


def _utc(t: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo; the log stores UTC
    return t.astimezone(timezone.utc) if t is not None and t.tzinfo is not None else t


def record_alerts(db: Session, jobs: Sequence[Job], bulk: BulkResult, source: str) -> None:
    """Write one alert_logs row per dispatched job."""
    for event, subscriber in jobs:
        result = bulk.results.get(subscriber.id)
        db.add(AlertLogModel(
            subscriber_id=subscriber.id,
            level=event.level.value,
            wind_speed=event.wind_speed,
            trigger_time=_utc(event.time),
            message=event.message,
            source=source,
            email_sent=bool(result and result.email),
            sms_sent=bool(result and result.sms),
            push_sent=bool(result and result.push),
        ))
    db.commit()


def flag_expired_push(db: Session, adapters: Mapping[Channel, ChannelAdapter]) -> int:
    """Mark push handles reported expired by the push adapter; returns rows flagged."""
    adapter = adapters.get(Channel.PUSH)
    drain = getattr(adapter, "drain_expired", None)
    if drain is None:
        return 0
    handles = drain()
    if not handles:
        return 0
    result = db.execute(
        update(SubscriberModel)
        .where(SubscriberModel.push_handle.in_(handles))
        .values(push_expired=True)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    logger.info("Flagged %d expired push subscriptions", result.rowcount)
    return result.rowcount


async def _deliver(
    db: Session,
    jobs: list[Job],
    adapters: Mapping[Channel, ChannelAdapter],
    settings: Settings,
    source: str,
) -> BulkResult:
    bulk = await send_bulk_alerts(
        jobs, adapters,
        batch_size=settings.bulk_batch_size,
        batch_delay=settings.bulk_batch_delay_sec,
    )
    record_alerts(db, jobs, bulk, source)
    flag_expired_push(db, adapters)
    return bulk


async def run_alert_cycle(
    db: Session,
    settings: Settings,
    adapters: Mapping[Channel, ChannelAdapter],
    bundle: WeatherBundle,
    now: Optional[datetime] = None,
) -> CycleSummary:
    """Evaluate every active subscriber against the forecast and send what passes the gate."""
    now = now or datetime.now(timezone.utc)
    subscribers = active_subscribers(db)
    summary = CycleSummary(provider=bundle.provider, subscribers=len(subscribers))
    tz = ZoneInfo(settings.timezone)

    jobs: list[Job] = []
    for sub in subscribers:
        try:
            result = evaluate(bundle.forecast, sub.wind_threshold, settings.lookahead_hours, now)
        except InvalidThresholdError as exc:
            logger.error("Subscriber %s has an invalid threshold: %s", sub.id, exc)
            continue
        summary.evaluated += 1
        if result is None:
            continue

        summary.levels[sub.id] = result.level
        if not _gate(db, sub, result.level, now, settings):
            summary.alerts_skipped += 1
            continue

        message = await compose_message(
            result.level, result.max_wind, sub.wind_threshold, settings.location_name,
            result.trigger_time, settings.anthropic_api_key, settings.anthropic_model, tz,
        )
        jobs.append((AlertEvent(
            level=result.level,
            wind_speed=result.max_wind,
            time=result.trigger_time.astimezone(tz),
            message=message,
            subscriber_id=sub.id,
            place=settings.location_name,
            threshold=sub.wind_threshold,
        ), sub))

    if jobs:
        bulk = await _deliver(db, jobs, adapters, settings, source="monitor")
        summary.alerts_sent = bulk.success
        summary.alerts_failed = bulk.failed

    logger.info(
        "Alert cycle (%s): %d subscribers, %d sent, %d skipped, %d failed",
        bundle.provider, summary.subscribers, summary.alerts_sent,
        summary.alerts_skipped, summary.alerts_failed,
    )
    return summary


async def broadcast_alert(
    db: Session,
    settings: Settings,
    adapters: Mapping[Channel, ChannelAdapter],
    level: AlertLevel,
    wind_speed: float,
    when: Optional[datetime],
    message: Optional[str],
    place: str,
    now: Optional[datetime] = None,
) -> CycleSummary:
    """Send one alert at a fixed level to every active subscriber that passes the gate."""
    now = now or datetime.now(timezone.utc)
    subscribers = active_subscribers(db)
    summary = CycleSummary(subscribers=len(subscribers))
    tz = ZoneInfo(settings.timezone)
    local_when = when.astimezone(tz) if when is not None and when.tzinfo is not None else when

    jobs: list[Job] = []
    for sub in subscribers:
        summary.evaluated += 1
        if not _gate(db, sub, level, now, settings):
            summary.alerts_skipped += 1
            continue
        text = message or await compose_message(
            level, wind_speed, sub.wind_threshold, place, local_when,
            settings.anthropic_api_key, settings.anthropic_model, tz,
        )
        summary.levels[sub.id] = level
        jobs.append((AlertEvent(
            level=level,
            wind_speed=wind_speed,
            time=local_when,
            message=text,
            subscriber_id=sub.id,
            place=place,
            threshold=sub.wind_threshold,
        ), sub))

    if jobs:
        bulk = await _deliver(db, jobs, adapters, settings, source="manual")
        summary.alerts_sent = bulk.success
        summary.alerts_failed = bulk.failed
    return summary
