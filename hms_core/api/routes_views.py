# FILE: hms_core/api/routes_views.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from hms_core.api.deps import get_db, get_notification_sink
from hms_core.api.response import ok
from hms_core.schemas.common import InconsistencyOut, NotificationOut
from hms_core.services import read_views
from hms_core.services.notifications import NotificationSink

router = APIRouter(tags=["Views"])


@router.get("/views/inconsistencies")
def list_inconsistencies(db: Session = Depends(get_db)):
    items = [InconsistencyOut(**d) for d in read_views.inconsistency_dicts(db)]
    return ok(items, meta={"count": len(items)})


@router.get("/notifications")
def list_notifications(
        unread_only: bool = Query(False),
        limit: int = Query(50, ge=1, le=500),
        sink: NotificationSink = Depends(get_notification_sink),
):
    items = [
        NotificationOut(**n.to_dict())
        for n in sink.list(unread_only=unread_only, limit=limit)
    ]
    return ok(items, meta={"unread": sink.unread_count()})


@router.post("/notifications/read-all")
def mark_notifications_read(
        sink: NotificationSink = Depends(get_notification_sink)):
    return ok({"marked": sink.mark_all_read()})
