"""Subscriber management and inbound SMS opt-out.

POST   /api/subscribers            - register
GET    /api/subscribers            - list active subscribers
GET    /api/subscribers/{id}       - fetch one
PUT    /api/subscribers/{id}       - update preferences
DELETE /api/subscribers/{id}       - deactivate (soft delete)
POST   /api/sms/inbound            - Twilio inbound webhook (STOP keywords)
"""

import logging
from urllib.parse import parse_qs

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session

from ..config import Channel, PushProvider, Settings
from ..models.database import get_db
from ..models.subscriber import SubscriberModel
from ..schemas.subscriber import Subscriber, SubscriberCreate, SubscriberUpdate
from ..services.channels.push import is_valid_subscription
from ..services.channels.sms import is_stop_message
from .deps import get_settings
from .errors import bad_request

logger = logging.getLogger(__name__)
router = APIRouter()

TWIML_EMPTY = '<?xml version="1.0" encoding="UTF-8"?><Response></Response>'


def _serialize(row: SubscriberModel) -> dict:
    data = Subscriber.from_row(row).model_dump(mode="json", by_alias=True)
    data["pushHandle"] = row.push_handle
    data["pushExpired"] = bool(row.push_expired)
    return data


def _get_or_404(db: Session, subscriber_id: int) -> SubscriberModel:
    row = db.get(SubscriberModel, subscriber_id)
    if row is None or not row.active:
        raise HTTPException(status_code=404, detail="Subscriber not found")
    return row


def _contact_problems(
    cfg: Settings,
    channels: list[Channel],
    email: str | None,
    phone: str | None,
    push_handle: str | None,
) -> list[dict[str, str]]:
    """Each enabled channel needs its contact field."""
    problems = []
    if Channel.EMAIL in channels and not email:
        problems.append({"field": "email", "message": "required when email alerts are enabled"})
    if Channel.SMS in channels and not phone:
        problems.append({"field": "phone", "message": "required when sms alerts are enabled"})
    if Channel.PUSH in channels:
        if not push_handle:
            problems.append({"field": "pushHandle", "message": "required when push alerts are enabled"})
        elif cfg.push_provider == PushProvider.WEBPUSH and not is_valid_subscription(push_handle):
            problems.append({"field": "pushHandle", "message": "invalid push subscription"})
    return problems


@router.post("/subscribers", status_code=201)
def create_subscriber(
    body: SubscriberCreate,
    db: Session = Depends(get_db),
    cfg: Settings = Depends(get_settings),
):
    problems = _contact_problems(cfg, body.enabled_channels, body.email, body.phone, body.push_handle)
    if problems:
        return bad_request("Invalid subscriber", problems)

    row = SubscriberModel(
        email=body.email,
        phone=body.phone,
        push_handle=body.push_handle,
        wind_threshold=body.wind_threshold,
        quiet_hours_start=body.quiet_hours_start,
        quiet_hours_end=body.quiet_hours_end,
        active=True,
    )
    row.channels = [c.value for c in body.enabled_channels]
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info("Subscriber %d registered (%s)", row.id, ", ".join(row.channels) or "no channels")
    return _serialize(row)


@router.get("/subscribers")
def list_subscribers(db: Session = Depends(get_db)):
    rows = (
        db.query(SubscriberModel)
        .filter(SubscriberModel.active.is_(True))
        .order_by(SubscriberModel.id)
        .all()
    )
    return [_serialize(r) for r in rows]


@router.get("/subscribers/{subscriber_id}")
def get_subscriber(subscriber_id: int, db: Session = Depends(get_db)):
    return _serialize(_get_or_404(db, subscriber_id))


@router.put("/subscribers/{subscriber_id}")
def update_subscriber(
    subscriber_id: int,
    body: SubscriberUpdate,
    db: Session = Depends(get_db),
    cfg: Settings = Depends(get_settings),
):
    """Apply only the fields present in the request body."""
    row = _get_or_404(db, subscriber_id)
    changes = body.model_dump(exclude_unset=True)
    if changes.get("wind_threshold", 0) is None:
        del changes["wind_threshold"]

    channels = changes.pop("enabled_channels", None)
    if channels is None:
        channels = [Channel(c) for c in row.channels]
    email = changes.get("email", row.email)
    phone = changes.get("phone", row.phone)
    push_handle = changes.get("push_handle", row.push_handle)

    problems = _contact_problems(cfg, channels, email, phone, push_handle)
    if problems:
        return bad_request("Invalid subscriber", problems)

    if "push_handle" in changes and changes["push_handle"] != row.push_handle:
        row.push_expired = False
    for field, value in changes.items():
        setattr(row, field, value)
    row.channels = [Channel(c).value for c in channels]
    db.commit()
    db.refresh(row)
    return _serialize(row)


@router.delete("/subscribers/{subscriber_id}")
def delete_subscriber(subscriber_id: int, db: Session = Depends(get_db)):
    row = _get_or_404(db, subscriber_id)
    row.active = False
    db.commit()
    logger.info("Subscriber %d deactivated", subscriber_id)
    return {"ok": True}


@router.post("/sms/inbound")
async def sms_inbound(request: Request, db: Session = Depends(get_db)):
    """Handle replies to alert SMS. STOP-type keywords disable the sms channel."""
    form = parse_qs((await request.body()).decode("utf-8", errors="replace"))
    sender = (form.get("From") or [""])[0].strip()
    text = (form.get("Body") or [""])[0]

    if sender and is_stop_message(text):
        rows = (
            db.query(SubscriberModel)
            .filter(SubscriberModel.phone == sender)
            .all()
        )
        for row in rows:
            row.channels = [c for c in row.channels if c != Channel.SMS.value]
        db.commit()
        logger.info("SMS opt-out from %s (%d subscriber(s))", sender, len(rows))

    return Response(content=TWIML_EMPTY, media_type="application/xml")


@router.get("/push/public-key")
def push_public_key(cfg: Settings = Depends(get_settings)):
    """VAPID public key for browser subscription (web push provider only)."""
    if cfg.push_provider != PushProvider.WEBPUSH or not cfg.vapid_public_key:
        return JSONResponse(status_code=404, content={"error": "Web push not configured"})
    return {"publicKey": cfg.vapid_public_key}
