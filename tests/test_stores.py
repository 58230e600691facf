from __future__ import annotations

from decimal import Decimal

import pytest

from hms_core.models import Bed, Clinician, Invoice, Patient
from hms_core.models.clinician import CLINICIAN_OFF_SHIFT
from hms_core.models.ipd import BED_EMPTY, BED_MAINTENANCE
from hms_core.models.patient import PATIENT_WAITING
from hms_core.services.errors import (
    AlreadyPaidError,
    ConflictError,
    InvalidInputError,
    NotFoundError,
)
from hms_core.services.stores import (
    BedStore,
    ClinicianStore,
    InvoiceStore,
    PatientStore,
)
from hms_core.services.unit_of_work import UnitOfWork


def test_register_patient(session_factory, load) -> None:
    with UnitOfWork(session_factory) as uow:
        p = PatientStore(uow).register("Katherine", "Johnson", "555-0199")

    saved = load(Patient, p.id)
    assert saved.full_name == "Katherine Johnson"
    assert saved.status == PATIENT_WAITING
    assert saved.version == 1


def test_invoice_line_items_while_pending(session_factory, seed, make_invoice,
                                          load) -> None:
    invoice_id = make_invoice(seed.grace, items=[("X-ray", 1, 120)])

    with UnitOfWork(session_factory) as uow:
        invoices = InvoiceStore(uow)
        extra = invoices.add_line_item(invoice_id, "Dressing", qty=3,
                                       unit_rate=15, category="nursing")
        assert extra.amount == Decimal("45")
        assert extra.position == 1
        invoices.set_discount(invoice_id, 5)

    with UnitOfWork(session_factory) as uow:
        invoices = InvoiceStore(uow)
        invoices.remove_line_item(invoice_id, extra.id)
        assert [li.label for li in invoices.line_items(invoice_id)] == ["X-ray"]
        with pytest.raises(NotFoundError):
            invoices.remove_line_item(invoice_id, extra.id)

    assert load(Invoice, invoice_id).discount_pct == Decimal("5")


def test_invoice_edits_refused_after_settlement(session_factory, seed,
                                                make_invoice, cascade) -> None:
    invoice_id = make_invoice(seed.grace, items=[("X-ray", 1, 120)])
    cascade.settle_and_discharge(invoice_id, "cash")

    with pytest.raises(AlreadyPaidError):
        with UnitOfWork(session_factory) as uow:
            InvoiceStore(uow).add_line_item(invoice_id, "Late charge", 1, 10)
    with pytest.raises(AlreadyPaidError):
        with UnitOfWork(session_factory) as uow:
            InvoiceStore(uow).set_discount(invoice_id, 50)


def test_discount_out_of_range(session_factory, seed, make_invoice) -> None:
    invoice_id = make_invoice(seed.grace)
    with pytest.raises(InvalidInputError):
        with UnitOfWork(session_factory) as uow:
            InvoiceStore(uow).set_discount(invoice_id, 120)


def test_bed_staff_states(session_factory, seed, coordinator, load) -> None:
    with UnitOfWork(session_factory) as uow:
        beds = BedStore(uow)
        beds.set_state(seed.gw2, BED_MAINTENANCE, note="leaking valve")
        assert [b.code for b in beds.available()] == ["GW-01", "ICU-01"]
        beds.set_state(seed.gw2, BED_EMPTY)

    coordinator.admit(seed.ada, seed.gw1)
    with pytest.raises(ConflictError, match="Bed is occupied"):
        with UnitOfWork(session_factory) as uow:
            BedStore(uow).set_state(seed.gw1, BED_MAINTENANCE)
    with pytest.raises(InvalidInputError):
        with UnitOfWork(session_factory) as uow:
            BedStore(uow).set_state(seed.gw2, "occupied")

    bed = load(Bed, seed.gw1)
    assert bed.is_occupied is True


def test_versioned_clinician_update(session_factory, seed, load) -> None:
    version = load(Clinician, seed.dr_okafor).version

    with UnitOfWork(session_factory) as uow:
        ClinicianStore(uow).set_availability(seed.dr_okafor,
                                             CLINICIAN_OFF_SHIFT,
                                             expected_version=version)

    with pytest.raises(ConflictError):
        with UnitOfWork(session_factory) as uow:
            ClinicianStore(uow).set_availability(seed.dr_okafor,
                                                 CLINICIAN_OFF_SHIFT,
                                                 expected_version=version)

    doc = load(Clinician, seed.dr_okafor)
    assert doc.availability == CLINICIAN_OFF_SHIFT
    assert doc.version == version + 1
