from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest
from openpyxl import load_workbook

from hms_core.models import Admission, Bed, Invoice
from hms_core.models.ipd import ADMISSION_ACTIVE, ADMISSION_DISCHARGED
from hms_core.services import read_views
from hms_core.services.billing_cascade import live_totals
from hms_core.services.errors import NotFoundError
from hms_core.services.stores import InvoiceStore
from hms_core.services.unit_of_work import UnitOfWork
from hms_core.utils.timezone import now_local


@pytest.fixture()
def history(coordinator, seed):
    first = coordinator.admit(seed.ada, seed.gw1, seed.dr_chen, "Flu")
    coordinator.discharge(first.id)
    second = coordinator.admit(seed.alan, seed.icu1, seed.dr_okafor, "Sepsis")
    return first.id, second.id


def test_list_admissions_joins_names(history, session_factory) -> None:
    first_id, second_id = history
    with session_factory() as db:
        data = read_views.list_admissions(db)

    assert data["total"] == 2
    by_id = {item["id"]: item for item in data["items"]}
    assert by_id[second_id]["patient_name"] == "Alan Turing"
    assert by_id[second_id]["bed_code"] == "ICU-01"
    assert by_id[second_id]["ward_name"] == "Intensive Care Unit"
    assert by_id[second_id]["doctor_name"] == "Dr. James Okafor"
    assert by_id[second_id]["bed_occupied"] is True
    assert by_id[first_id]["status"] == ADMISSION_DISCHARGED
    assert by_id[first_id]["display_code"] == f"ADM-{first_id:06d}"


def test_list_admissions_filters_and_pages(history, seed,
                                           session_factory) -> None:
    with session_factory() as db:
        active = read_views.list_admissions(db, status=ADMISSION_ACTIVE)
        ada = read_views.list_admissions(db, patient_id=seed.ada)
        page = read_views.list_admissions(db, limit=1, offset=1)

    assert [i["patient_name"] for i in active["items"]] == ["Alan Turing"]
    assert ada["total"] == 1
    assert page["total"] == 2
    assert len(page["items"]) == 1


def test_get_admission_view(history, session_factory) -> None:
    _, second_id = history
    with session_factory() as db:
        view = read_views.get_admission_view(db, second_id)
        assert view["diagnosis"] == "Sepsis"
        with pytest.raises(NotFoundError):
            read_views.get_admission_view(db, 999)


def test_export_admissions_xlsx(history, session_factory) -> None:
    with session_factory() as db:
        bio = read_views.export_admissions_xlsx(db)

    ws = load_workbook(bio).active
    rows = list(ws.iter_rows(values_only=True))
    assert rows[0][0] == "Admission Code"
    assert len(rows) == 3
    assert {r[1] for r in rows[1:]} == {"Ada Lovelace", "Alan Turing"}


def test_inconsistencies_empty_for_clean_state(history,
                                               session_factory) -> None:
    with session_factory() as db:
        assert read_views.find_inconsistencies(db) == []


def test_inconsistencies_report_bed_drift(history, seed,
                                          session_factory) -> None:
    with session_factory() as db:
        # hand edits that bypass the coordinator
        db.get(Bed, seed.gw2).is_occupied = True
        db.get(Bed, seed.icu1).is_occupied = False
        db.add(
            Admission(patient_id=seed.grace,
                      bed_id=seed.icu1,
                      admit_date=now_local(),
                      status=ADMISSION_ACTIVE))
        db.commit()

        found = read_views.find_inconsistencies(db)

    codes = sorted((i.code, i.bed_id) for i in found)
    assert codes == sorted([
        ("occupied_bed_without_admission", seed.gw2),
        ("active_admission_bed_free", seed.icu1),
        ("bed_multiple_active_admissions", seed.icu1),
    ])


def test_invoice_views_and_stats(coordinator, cascade, seed, make_invoice,
                                 session_factory) -> None:
    adm = coordinator.admit(seed.ada, seed.gw1)
    pending_id = make_invoice(seed.ada, adm.id, items=[("Meds", 1, 100)])
    paid_id = make_invoice(seed.grace, items=[("Consultation", 1, 100)])
    cascade.settle_and_discharge(paid_id, "cash")

    with session_factory() as db:
        rows = {r["id"]: r for r in read_views.list_invoices(db)}
        stats = read_views.billing_stats(db)
        only_paid = read_views.list_invoices(db, status="paid")

    # pending: live room charge, one day at 180
    assert rows[pending_id]["frozen"] is False
    assert rows[pending_id]["totals"]["room_days"] == 1
    assert rows[pending_id]["totals"]["grand_total"] == Decimal("304")
    assert rows[paid_id]["frozen"] is True
    assert rows[paid_id]["patient_name"] == "Grace Hopper"
    assert [r["id"] for r in only_paid] == [paid_id]

    assert stats["total_invoices"] == 2
    assert stats["pending_count"] == 1
    assert stats["paid_count"] == 1
    assert stats["pending_revenue"] == Decimal("304")
    assert stats["collected_revenue"] == Decimal("109")
    assert stats["today_revenue"] == Decimal("109")


def test_displayed_totals_match_settlement_pricing(coordinator, seed,
                                                   make_invoice, backdate,
                                                   session_factory) -> None:
    adm = coordinator.admit(seed.alan, seed.icu1)
    backdate(adm.id, now_local() - timedelta(hours=30))
    invoice_id = make_invoice(seed.alan,
                              adm.id,
                              items=[("Ventilator", 1, 400)],
                              discount_pct=5)

    with session_factory() as db:
        shown = read_views.invoice_totals(db, db.get(Invoice, invoice_id))
    with UnitOfWork(session_factory) as uow:
        priced = live_totals(uow, InvoiceStore(uow).get(invoice_id))

    assert shown == priced
    assert shown.room_days == 2
    assert shown.room_rate == Decimal("950")
