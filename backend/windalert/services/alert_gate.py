"""Alert deduplication gate.

Decides whether a subscriber may receive an alert now, and claims the send
slot atomically in the shared database so that two server instances (or two
overlapping cycles) cannot both send inside the same suppression window.
"""

import logging
from datetime import datetime, time, timedelta
from typing import Optional

from sqlalchemy import and_, or_, update
from sqlalchemy.orm import Session

from ..config import SuppressionBypass
from ..models.subscriber import SubscriberModel
from ..schemas.alerts import AlertLevel
from ..schemas.subscriber import Subscriber

logger = logging.getLogger(__name__)

DEFAULT_SUPPRESSION_WINDOW = timedelta(minutes=30)


def _parse_hhmm(value: str) -> time:
    hour, minute = value.split(":")
    return time(int(hour), int(minute))


def in_quiet_hours(start: Optional[str], end: Optional[str], local_now: datetime) -> bool:
    """True when local_now falls inside [start, end]; handles overnight ranges like 22:00-06:00."""
    if not start or not end:
        return False
    t = local_now.time().replace(second=0, microsecond=0)
    t_start, t_end = _parse_hhmm(start), _parse_hhmm(end)
    if t_start > t_end:
        return t >= t_start or t <= t_end
    return t_start <= t <= t_end


def _bypasses_window(
    candidate: AlertLevel,
    last_level: Optional[AlertLevel],
    bypass: SuppressionBypass,
) -> bool:
    if bypass == SuppressionBypass.DANGER:
        return candidate == AlertLevel.DANGER
    if bypass == SuppressionBypass.ESCALATION:
        return last_level is None or candidate > last_level
    return False


def should_send(
    subscriber: Subscriber,
    candidate_level: AlertLevel,
    now: datetime,
    window: timedelta = DEFAULT_SUPPRESSION_WINDOW,
    bypass: SuppressionBypass = SuppressionBypass.NONE,
    local_now: Optional[datetime] = None,
) -> bool:
    """Pure pre-check; the caller must still win claim_alert_slot() before sending."""
    if candidate_level == AlertLevel.NORMAL:
        return False
    if not subscriber.active or not subscriber.enabled_channels:
        return False
    if in_quiet_hours(subscriber.quiet_hours_start, subscriber.quiet_hours_end, local_now or now):
        logger.debug("Subscriber %s in quiet hours", subscriber.id)
        return False

    last = subscriber.last_alert_at
    if last is not None and now - last < window:
        if _bypasses_window(candidate_level, subscriber.last_alert_level, bypass):
            logger.info(
                "Subscriber %s: %s bypasses suppression (last %s at %s)",
                subscriber.id, candidate_level.value,
                subscriber.last_alert_level.value if subscriber.last_alert_level else None,
                last.isoformat(),
            )
            return True
        return False
    return True


def claim_alert_slot(
    db: Session,
    subscriber_id: int,
    level: AlertLevel,
    now: datetime,
    window: timedelta = DEFAULT_SUPPRESSION_WINDOW,
    bypass: SuppressionBypass = SuppressionBypass.NONE,
) -> bool:
    """Record the alert on the subscriber row if the window allows it.

    A single conditional UPDATE: it only matches when the row is outside the
    suppression window (or the bypass policy applies), so concurrent callers
    race on the database and exactly one of them sees rowcount == 1.
    """
    S = SubscriberModel
    cutoff = now - window
    allowed = or_(S.last_alert_at.is_(None), S.last_alert_at <= cutoff)

    if bypass == SuppressionBypass.DANGER and level == AlertLevel.DANGER:
        # Still refuse an exact duplicate from a concurrent cycle
        allowed = or_(allowed, S.last_alert_at < now)
    elif bypass == SuppressionBypass.ESCALATION:
        lower = [lvl.value for lvl in AlertLevel if lvl < level]
        allowed = or_(allowed, S.last_alert_level.is_(None), S.last_alert_level.in_(lower))

    stmt = (
        update(S)
        .where(and_(S.id == subscriber_id, S.active.is_(True), allowed))
        .values(last_alert_at=now, last_alert_level=level.value)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    db.commit()
    claimed = result.rowcount == 1
    if not claimed:
        logger.info("Alert slot for subscriber %s already taken, suppressing %s", subscriber_id, level.value)
    return claimed
