# hms_core/main.py
from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import sessionmaker

from hms_core.api.exception_handlers import register_exception_handlers
from hms_core.api.router import api_router
from hms_core.core.config import settings
from hms_core.db.session import SessionLocal
from hms_core.services.notifications import NotificationSink

logger = logging.getLogger(__name__)


def create_app(
    session_factory: Optional[sessionmaker] = None,
    notifications: Optional[NotificationSink] = None,
) -> FastAPI:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title=settings.PROJECT_NAME,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # one sink per process; the feed lives as long as the app object
    app.state.session_factory = session_factory or SessionLocal
    app.state.notifications = notifications or NotificationSink(
        maxlen=settings.NOTIFICATION_FEED_SIZE)

    app.include_router(api_router, prefix=settings.API_V1_STR)

    # Health
    @app.get("/")
    def root():
        return {"message": "HMS admissions API running", "version": "v1"}

    return app


app = create_app()
