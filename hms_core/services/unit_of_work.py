# File: hms_core/services/unit_of_work.py
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from hms_core.core.config import settings
from hms_core.services.errors import ConflictError, StoreUnavailableError

logger = logging.getLogger(__name__)


class UnitOfWork:
    """
    One atomic unit against the backing store.

    Wraps a single Session/transaction: commits when the ``with`` block
    exits cleanly, rolls back on any exception. Every store call goes
    through ``execute``/``scalar``/``flush`` so the deadline is checked
    and driver failures surface as StoreUnavailableError. Rollback is the
    database's job; nothing here compensates by hand.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._session_factory = session_factory
        self.timeout = settings.STORE_TIMEOUT_SECONDS if timeout is None else timeout
        self._clock = clock
        self._deadline: Optional[float] = None
        self.session: Optional[Session] = None

    # ------------------------------------------------------------
    # context manager
    # ------------------------------------------------------------
    def __enter__(self) -> "UnitOfWork":
        self.session = self._session_factory()
        self._deadline = self._clock() + float(self.timeout)
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        db = self.session
        try:
            if exc_type is not None:
                db.rollback()
                if isinstance(exc, IntegrityError):
                    raise ConflictError("Conflicting write rejected by the store") from exc
                if isinstance(exc, DBAPIError):
                    raise StoreUnavailableError("Backing store failed mid-transaction") from exc
                return False
            self.check_deadline("commit")
            try:
                db.commit()
            except IntegrityError as e:
                db.rollback()
                raise ConflictError("Conflicting write rejected by the store") from e
            except DBAPIError as e:
                db.rollback()
                raise StoreUnavailableError("Backing store failed at commit") from e
            except Exception:
                db.rollback()
                raise
            return False
        finally:
            db.close()
            self.session = None

    # ------------------------------------------------------------
    # guarded store access
    # ------------------------------------------------------------
    def check_deadline(self, op: str = "store call") -> None:
        if self._deadline is not None and self._clock() > self._deadline:
            if self.session is not None:
                self.session.rollback()
            logger.warning("Atomic unit exceeded %.2fs during %s", self.timeout, op)
            raise StoreUnavailableError(
                f"Store call exceeded {self.timeout:g}s timeout ({op})",
                timeout=self.timeout,
            )

    def _guard(self, op: str, fn: Callable[[], Any]) -> Any:
        self.check_deadline(op)
        try:
            result = fn()
        except IntegrityError:
            raise
        except DBAPIError as e:
            logger.warning("Store call failed during %s: %s", op, e)
            raise StoreUnavailableError(f"Backing store unavailable ({op})") from e
        self.check_deadline(op)
        return result

    def execute(self, stmt, op: str = "execute"):
        return self._guard(op, lambda: self.session.execute(stmt))

    def scalar(self, stmt, op: str = "select"):
        return self._guard(op, lambda: self.session.execute(stmt).scalars().first())

    def scalars(self, stmt, op: str = "select"):
        return self._guard(op, lambda: self.session.execute(stmt).scalars().all())

    def add(self, obj: Any, op: str = "insert") -> Any:
        self.session.add(obj)
        self._guard(op, self.session.flush)
        return obj

    def flush(self, op: str = "flush") -> None:
        self._guard(op, self.session.flush)

    def refresh(self, obj: Any, op: str = "refresh") -> Any:
        self._guard(op, lambda: self.session.refresh(obj))
        return obj
