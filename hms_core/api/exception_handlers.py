# FILE: hms_core/api/exception_handlers.py
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from hms_core.api.response import err, lifecycle_err
from hms_core.services.errors import LifecycleError

logger = logging.getLogger(__name__)

_HTTP_CODES = {404: "not_found", 405: "method_not_allowed", 409: "conflict"}


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(LifecycleError)
    async def lifecycle_exception_handler(request: Request, exc: LifecycleError) -> JSONResponse:
        return lifecycle_err(exc)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        # unknown routes and framework level errors; detail may be str or dict
        if isinstance(exc.detail, str):
            return err(exc.detail, status_code=exc.status_code, code=_HTTP_CODES.get(exc.status_code))
        return err("Request failed", status_code=exc.status_code,
                   code=_HTTP_CODES.get(exc.status_code), details=exc.detail)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return err(msg="Validation error", status_code=422, code="validation", details=exc.errors())

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return err(msg="Internal server error", status_code=500)
