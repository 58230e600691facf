# File: hms_core/services/notifications.py
from __future__ import annotations

import itertools
import threading
from collections import deque
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional

from hms_core.utils.timezone import now_local


@dataclass
class Notification:
    id: int
    type: str
    title: str
    body: str
    read: bool = False
    timestamp: datetime = field(default_factory=now_local)
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class NotificationSink:
    """
    Fire-and-forget feed for dashboard views.

    Bounded and in-memory: one instance lives on the application object
    for the life of the process, nothing is persisted.
    """

    def __init__(self, maxlen: int = 200):
        self._items: Deque[Notification] = deque(maxlen=maxlen)
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def push(self, *, type: str, title: str, body: str,
             **payload: Any) -> Notification:
        with self._lock:
            n = Notification(id=next(self._ids),
                             type=type,
                             title=title,
                             body=body,
                             payload=payload)
            self._items.appendleft(n)
        return n

    def list(self, *, unread_only: bool = False,
             limit: Optional[int] = None) -> List[Notification]:
        with self._lock:
            items = [n for n in self._items if not (unread_only and n.read)]
        return items[:limit] if limit else items

    def unread_count(self) -> int:
        with self._lock:
            return sum(1 for n in self._items if not n.read)

    def mark_all_read(self) -> int:
        with self._lock:
            changed = 0
            for n in self._items:
                if not n.read:
                    n.read = True
                    changed += 1
        return changed
