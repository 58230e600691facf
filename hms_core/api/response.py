# FILE: hms_core/api/response.py
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from hms_core.schemas.common import ApiError
from hms_core.services.errors import LifecycleError


def _envelope(ok_: bool, status_code: int, **body: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code,
                        content=jsonable_encoder({"ok": ok_, **body}))


def ok(data: Any = None,
       *,
       meta: Optional[Dict[str, Any]] = None,
       status_code: int = 200) -> JSONResponse:
    """{"ok": true, "data": ..., "meta": {...}}; meta only when given."""
    if meta is None:
        return _envelope(True, status_code, data=data)
    return _envelope(True, status_code, data=data, meta=meta)


def err(msg: str,
        *,
        status_code: int = 400,
        code: Optional[str] = None,
        details: Any = None) -> JSONResponse:
    """{"ok": false, "error": {"msg", "code", "details"}}"""
    return _envelope(False,
                     status_code,
                     error=ApiError(msg=msg, code=code, details=details))


def lifecycle_err(exc: LifecycleError) -> JSONResponse:
    # callers branch on error.code (the kind) and details.retryable
    details = {**exc.details, "retryable": exc.retryable}
    return err(exc.msg,
               status_code=exc.status_code,
               code=exc.kind.value,
               details=details)
