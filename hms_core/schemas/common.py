# FILE: hms_core/schemas/common.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel


class ApiError(BaseModel):
    msg: str
    code: Optional[str] = None
    details: Optional[Any] = None


class InconsistencyOut(BaseModel):
    code: str
    msg: str
    bed_id: Optional[int] = None
    admission_id: Optional[int] = None
    invoice_id: Optional[int] = None


class NotificationOut(BaseModel):
    id: int
    type: str
    title: str
    body: str
    read: bool = False
    timestamp: datetime
    payload: Dict[str, Any] = {}
