"""GET /api/health - liveness plus configuration summary."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..config import Settings
from ..models.database import get_db
from ..models.subscriber import SubscriberModel
from .deps import get_settings

router = APIRouter()

# Set by main.py when the in-process monitor is running
_monitor = None


def set_monitor(monitor):
    global _monitor
    _monitor = monitor


@router.get("/health")
def get_health(db: Session = Depends(get_db), cfg: Settings = Depends(get_settings)):
    active = (
        db.query(func.count(SubscriberModel.id))
        .filter(SubscriberModel.active.is_(True))
        .scalar()
    )
    missing = cfg.missing_channel_keys()
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "location": cfg.location_name,
        "channels": [c.value for c in cfg.alert_channels],
        "missing": missing,
        "subscribers": active or 0,
        "monitor": _monitor.stats if _monitor is not None else None,
    }
