# File: hms_core/services/errors.py
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Dict, Optional


class ErrorKind(str, enum.Enum):
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    ALREADY_DISCHARGED = "already_discharged"
    ALREADY_PAID = "already_paid"
    STORE_UNAVAILABLE = "store_unavailable"
    INVALID_INPUT = "validation"
    DEGRADED_SUCCESS = "degraded_success"


# ============================================================
# Errors
# ============================================================
class LifecycleError(RuntimeError):
    """
    Base for every expected failure of the admission lifecycle.
    Callers branch on ``kind``; the API layer maps it to a status code.
    """
    kind: ErrorKind = ErrorKind.CONFLICT
    status_code: int = 409
    retryable: bool = False

    def __init__(self, msg: str, **details: Any):
        super().__init__(msg)
        self.msg = msg
        self.details: Dict[str, Any] = details

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "msg": self.msg,
            "retryable": self.retryable,
            **self.details,
        }


class ConflictError(LifecycleError):
    kind = ErrorKind.CONFLICT
    status_code = 409


class NotFoundError(LifecycleError):
    kind = ErrorKind.NOT_FOUND
    status_code = 404


class AlreadyDischargedError(LifecycleError):
    kind = ErrorKind.ALREADY_DISCHARGED
    status_code = 409


class AlreadyPaidError(LifecycleError):
    kind = ErrorKind.ALREADY_PAID
    status_code = 409


class InvalidInputError(LifecycleError):
    kind = ErrorKind.INVALID_INPUT
    status_code = 422


class StoreUnavailableError(LifecycleError):
    kind = ErrorKind.STORE_UNAVAILABLE
    status_code = 503
    retryable = True


@dataclass
class DegradedSuccessWarning:
    """
    A best-effort step failed after the core commit. Reported, never raised.
    """
    step: str
    msg: str
    follow_up_id: Optional[int] = None
    kind: ErrorKind = ErrorKind.DEGRADED_SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "step": self.step,
            "msg": self.msg,
            "follow_up_id": self.follow_up_id,
        }
