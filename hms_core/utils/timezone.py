# FILE: hms_core/utils/timezone.py
from __future__ import annotations

from datetime import datetime, date
from zoneinfo import ZoneInfo

from hms_core.core.config import settings


def now_local() -> datetime:
    """
    Returns a *naive* datetime in the configured TIMEZONE.
    All DateTime columns are naive, so every timestamp written by the
    lifecycle goes through here.
    """
    return datetime.now(ZoneInfo(settings.TIMEZONE)).replace(tzinfo=None)


def today_local() -> date:
    return now_local().date()
