from __future__ import annotations

import os

# module level engines are built at import time; keep them off MySQL
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from datetime import datetime
from pathlib import Path
from types import SimpleNamespace
from typing import Iterable, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

from hms_core.db.base import Base
from hms_core.db.session import make_engine, make_session_factory
from hms_core.main import create_app
from hms_core.models import Admission, Bed, Clinician, Patient, Ward
from hms_core.services.admission_coordinator import AdmissionCoordinator
from hms_core.services.billing_cascade import BillingCascade
from hms_core.services.follow_up import FollowUpRunner
from hms_core.services.invoicing import InvoiceService
from hms_core.services.notifications import NotificationSink


class BrokenSink(NotificationSink):
    """Notification sink that is down."""

    def push(self, **kwargs):
        raise ConnectionError("notification service unreachable")


@pytest.fixture()
def engine(tmp_path: Path):
    eng = make_engine(f"sqlite:///{tmp_path / 'hms.db'}")
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture()
def seed(session_factory) -> SimpleNamespace:
    with session_factory() as db:
        db.add_all([
            Ward(code="GW", name="General Ward", label="General", rate_per_day=180),
            Ward(code="ICU", name="Intensive Care Unit", label="Critical",
                 rate_per_day=950),
        ])
        db.flush()
        beds = [
            Bed(code="GW-01", ward_code="GW"),
            Bed(code="GW-02", ward_code="GW"),
            Bed(code="ICU-01", ward_code="ICU"),
        ]
        doctors = [
            Clinician(name="Dr. Sarah Chen", specialty="Cardiology"),
            Clinician(name="Dr. James Okafor", specialty="Internal Medicine"),
        ]
        patients = [
            Patient(first_name="Ada", last_name="Lovelace", phone="555-0101"),
            Patient(first_name="Alan", last_name="Turing", phone="555-0102"),
            Patient(first_name="Grace", last_name="Hopper", phone="555-0103"),
        ]
        db.add_all(beds + doctors + patients)
        db.commit()
        return SimpleNamespace(
            gw1=beds[0].id,
            gw2=beds[1].id,
            icu1=beds[2].id,
            dr_chen=doctors[0].id,
            dr_okafor=doctors[1].id,
            ada=patients[0].id,
            alan=patients[1].id,
            grace=patients[2].id,
        )


@pytest.fixture()
def sink() -> NotificationSink:
    return NotificationSink(maxlen=50)


@pytest.fixture()
def broken_sink() -> NotificationSink:
    return BrokenSink()


@pytest.fixture()
def coordinator(session_factory) -> AdmissionCoordinator:
    return AdmissionCoordinator(session_factory)


@pytest.fixture()
def follow_ups(session_factory, sink) -> FollowUpRunner:
    return FollowUpRunner(session_factory, sink)


@pytest.fixture()
def cascade(coordinator, follow_ups) -> BillingCascade:
    return BillingCascade(coordinator, follow_ups)


@pytest.fixture()
def client(session_factory, sink):
    app = create_app(session_factory=session_factory, notifications=sink)
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def load(session_factory):
    """Fresh committed copy of one row."""

    def _load(model, pk):
        with session_factory() as db:
            return db.get(model, pk)

    return _load


@pytest.fixture()
def backdate(session_factory):

    def _backdate(admission_id: int, admit_date: datetime) -> None:
        with session_factory() as db:
            db.get(Admission, admission_id).admit_date = admit_date
            db.commit()

    return _backdate


@pytest.fixture()
def invoices(session_factory) -> InvoiceService:
    return InvoiceService(session_factory)


@pytest.fixture()
def make_invoice(invoices):

    def _make(patient_id: int,
              admission_id: Optional[int] = None,
              items: Iterable[Tuple[str, int, int]] = (),
              discount_pct=0) -> int:
        inv = invoices.create_invoice(patient_id,
                                      admission_id,
                                      discount_pct=discount_pct)
        for label, qty, rate in items:
            invoices.add_line_item(inv.id, label, qty=qty, unit_rate=rate)
        return inv.id

    return _make
