# hms_core/api/deps.py
from __future__ import annotations

from typing import Generator

from fastapi import Depends, Request
from sqlalchemy.orm import Session, sessionmaker

from hms_core.services.admission_coordinator import AdmissionCoordinator
from hms_core.services.billing_cascade import BillingCascade
from hms_core.services.follow_up import FollowUpRunner
from hms_core.services.invoicing import InvoiceService
from hms_core.services.notifications import NotificationSink


# =========================================================
# DB (per request, read side)
# =========================================================
def get_session_factory(request: Request) -> sessionmaker:
    return request.app.state.session_factory


def get_db(
    factory: sessionmaker = Depends(get_session_factory),
) -> Generator[Session, None, None]:
    db = factory()
    try:
        yield db
    finally:
        db.close()


# =========================================================
# Lifecycle services (write side)
# =========================================================
def get_notification_sink(request: Request) -> NotificationSink:
    return request.app.state.notifications


def get_follow_ups(
    factory: sessionmaker = Depends(get_session_factory),
    sink: NotificationSink = Depends(get_notification_sink),
) -> FollowUpRunner:
    return FollowUpRunner(factory, sink)


def get_coordinator(
    factory: sessionmaker = Depends(get_session_factory),
    follow_ups: FollowUpRunner = Depends(get_follow_ups),
) -> AdmissionCoordinator:
    return AdmissionCoordinator(factory, follow_ups=follow_ups)


def get_cascade(
    coordinator: AdmissionCoordinator = Depends(get_coordinator),
    follow_ups: FollowUpRunner = Depends(get_follow_ups),
) -> BillingCascade:
    return BillingCascade(coordinator, follow_ups)


def get_invoice_service(
    factory: sessionmaker = Depends(get_session_factory),
) -> InvoiceService:
    return InvoiceService(factory)
