# File: hms_core/services/stores.py
"""
Entity stores.

Each store owns exactly one table and knows nothing about the others.
Writes that the lifecycle depends on are conditional UPDATEs (compare and
set on the guarded columns, bumping ``version``), checked by rowcount, so
two concurrent callers can never both win the same bed, admission or
invoice.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func, select, update

from hms_core.models.billing import (
    INVOICE_PAID,
    INVOICE_PENDING,
    Invoice,
    InvoiceLineItem,
)
from hms_core.models.clinician import CLINICIAN_AVAILABILITY, Clinician
from hms_core.models.ipd import (
    ADMISSION_ACTIVE,
    ADMISSION_DISCHARGED,
    BED_EMPTY,
    BED_OCCUPIED,
    BED_STAFF_STATES,
    Admission,
    Bed,
    Ward,
)
from hms_core.models.patient import (
    PATIENT_ADMITTED,
    PATIENT_DISCHARGED,
    Patient,
)
from hms_core.services.billing_math import D, money0
from hms_core.services.errors import (
    AlreadyDischargedError,
    AlreadyPaidError,
    ConflictError,
    InvalidInputError,
    NotFoundError,
)
from hms_core.services.unit_of_work import UnitOfWork


class _Store:
    model: Any = None
    label: str = "Row"

    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    def find(self, pk: int, *, for_update: bool = False):
        stmt = (select(self.model).where(self.model.id == pk).execution_options(
            populate_existing=True))
        if for_update:
            stmt = stmt.with_for_update()
        return self.uow.scalar(stmt, op=f"get {self.model.__tablename__}")

    def get(self, pk: int, *, for_update: bool = False):
        obj = self.find(pk, for_update=for_update)
        if obj is None:
            raise NotFoundError(f"{self.label} not found",
                                entity=self.model.__tablename__,
                                id=pk)
        return obj

    def create(self, **values: Any):
        return self.uow.add(self.model(**values),
                            op=f"insert {self.model.__tablename__}")

    def update(self,
               pk: int,
               *,
               expected_version: Optional[int] = None,
               where: Iterable[Any] = (),
               **values: Any) -> int:
        """
        Conditional update by primary key. Returns the matched row count
        (0 or 1); callers decide what a miss means.
        """
        conds = [self.model.id == pk, *where]
        if expected_version is not None:
            conds.append(self.model.version == expected_version)
        stmt = (update(self.model).where(*conds).values(
            version=self.model.version + 1,
            **values).execution_options(synchronize_session=False))
        res = self.uow.execute(stmt, op=f"update {self.model.__tablename__}")
        if res.rowcount:
            key = self.uow.session.identity_key(self.model, pk)
            obj = self.uow.session.identity_map.get(key)
            if obj is not None:
                self.uow.session.expire(obj)
        return res.rowcount or 0

    def update_versioned(self, pk: int, expected_version: int,
                         **values: Any) -> None:
        if self.update(pk, expected_version=expected_version, **values) != 1:
            self.get(pk)
            raise ConflictError(f"{self.label} was modified concurrently",
                                id=pk,
                                expected_version=expected_version)


# ============================================================
# Patient
# ============================================================
class PatientStore(_Store):
    model = Patient
    label = "Patient"

    def register(self, first_name: str, last_name: Optional[str] = None,
                 phone: Optional[str] = None) -> Patient:
        return self.create(first_name=first_name,
                           last_name=last_name,
                           phone=phone)

    def mark_admitted(self, patient_id: int) -> None:
        n = self.update(patient_id,
                        where=[Patient.status != PATIENT_ADMITTED],
                        status=PATIENT_ADMITTED)
        if n != 1:
            self.get(patient_id)
            raise ConflictError("Patient already admitted",
                                patient_id=patient_id)

    def mark_discharged(self, patient_id: int) -> None:
        n = self.update(patient_id,
                        where=[Patient.status == PATIENT_ADMITTED],
                        status=PATIENT_DISCHARGED)
        if n != 1:
            p = self.get(patient_id)
            raise ConflictError(f"Patient is {p.status}, not Admitted",
                                patient_id=patient_id)


# ============================================================
# Bed
# ============================================================
class BedStore(_Store):
    model = Bed
    label = "Bed"

    def occupy(self, bed_id: int) -> None:
        n = self.update(bed_id,
                        where=[
                            Bed.is_occupied.is_(False),
                            Bed.state == BED_EMPTY,
                        ],
                        is_occupied=True,
                        state=BED_OCCUPIED)
        if n != 1:
            bed = self.get(bed_id)
            if bed.is_occupied:
                raise ConflictError("Bed already occupied", bed_id=bed_id)
            raise ConflictError(f"Bed is {bed.state}", bed_id=bed_id)

    def release(self, bed_id: int) -> None:
        n = self.update(bed_id,
                        where=[Bed.is_occupied.is_(True)],
                        is_occupied=False,
                        state=BED_EMPTY)
        if n != 1:
            self.get(bed_id)
            raise ConflictError("Bed is not occupied", bed_id=bed_id)

    def set_state(self, bed_id: int, state: str, note: str = "") -> None:
        """
        Ward staff hook for reserved/maintenance. Never touches
        ``is_occupied`` and refuses occupied beds.
        """
        if state not in BED_STAFF_STATES:
            raise InvalidInputError(f"Invalid bed state: {state}", bed_id=bed_id)
        n = self.update(bed_id,
                        where=[Bed.is_occupied.is_(False)],
                        state=state,
                        note=note or "")
        if n != 1:
            self.get(bed_id)
            raise ConflictError("Bed is occupied", bed_id=bed_id)

    def available(self) -> List[Bed]:
        stmt = (select(Bed).where(Bed.is_occupied.is_(False),
                                  Bed.state == BED_EMPTY).order_by(Bed.code))
        return self.uow.scalars(stmt, op="list beds")

    def ward_rate(self, bed: Bed) -> Optional[Decimal]:
        ward = self.uow.scalar(select(Ward).where(Ward.code == bed.ward_code),
                               op="get ward")
        if ward is None or not ward.rate_per_day:
            return None
        return D(ward.rate_per_day)


# ============================================================
# Clinician
# ============================================================
class ClinicianStore(_Store):
    model = Clinician
    label = "Clinician"

    def set_availability(self,
                         clinician_id: int,
                         availability: str,
                         expected_version: Optional[int] = None) -> None:
        if availability not in CLINICIAN_AVAILABILITY:
            raise InvalidInputError(f"Invalid availability: {availability}",
                                    clinician_id=clinician_id)
        n = self.update(clinician_id,
                        expected_version=expected_version,
                        availability=availability)
        if n != 1:
            self.get(clinician_id)
            raise ConflictError("Clinician was modified concurrently",
                                clinician_id=clinician_id)


# ============================================================
# Admission
# ============================================================
class AdmissionStore(_Store):
    model = Admission
    label = "Admission"

    def _active(self, *conds) -> List[Admission]:
        stmt = (select(Admission).where(Admission.status == ADMISSION_ACTIVE,
                                        *conds).order_by(Admission.id))
        return self.uow.scalars(stmt, op="select active admissions")

    def active_for_patient(self, patient_id: int) -> Optional[Admission]:
        rows = self._active(Admission.patient_id == patient_id)
        return rows[0] if rows else None

    def active_for_bed(self, bed_id: int) -> Optional[Admission]:
        rows = self._active(Admission.bed_id == bed_id)
        return rows[0] if rows else None

    def count_active_for_clinician(self,
                                   clinician_id: int,
                                   exclude_id: Optional[int] = None) -> int:
        stmt = select(func.count(Admission.id)).where(
            Admission.status == ADMISSION_ACTIVE,
            Admission.clinician_id == clinician_id,
        )
        if exclude_id is not None:
            stmt = stmt.where(Admission.id != exclude_id)
        return int(self.uow.scalar(stmt, op="count clinician admissions") or 0)

    def close(self, admission_id: int, discharge_date) -> None:
        n = self.update(admission_id,
                        where=[Admission.status == ADMISSION_ACTIVE],
                        status=ADMISSION_DISCHARGED,
                        discharge_date=discharge_date)
        if n != 1:
            self.get(admission_id)
            raise AlreadyDischargedError("Admission already discharged",
                                         admission_id=admission_id)


# ============================================================
# Invoice
# ============================================================
class InvoiceStore(_Store):
    model = Invoice
    label = "Invoice"

    def _require_pending(self, inv: Invoice) -> None:
        if inv.status != INVOICE_PENDING:
            raise AlreadyPaidError(f"Invoice is already {inv.status}",
                                   invoice_id=inv.id,
                                   status=inv.status)

    def create_invoice(self,
                     patient_id: int,
                     admission_id: Optional[int] = None,
                     discount_pct: Any = 0,
                     notes: Optional[str] = None) -> Invoice:
        return self.create(patient_id=patient_id,
                           admission_id=admission_id,
                           discount_pct=D(discount_pct),
                           status=INVOICE_PENDING,
                           notes=notes)

    def line_items(self, invoice_id: int) -> List[InvoiceLineItem]:
        stmt = (select(InvoiceLineItem).where(
            InvoiceLineItem.invoice_id == invoice_id).order_by(
                InvoiceLineItem.position, InvoiceLineItem.id))
        return self.uow.scalars(stmt, op="select line items")

    def add_line_item(self,
                      invoice_id: int,
                      label: str,
                      qty: Any = 1,
                      unit_rate: Any = 0,
                      category: Optional[str] = None) -> InvoiceLineItem:
        inv = self.get(invoice_id)
        self._require_pending(inv)
        position = len(self.line_items(invoice_id))
        amount = money0(D(qty) * D(unit_rate))
        return self.uow.add(
            InvoiceLineItem(invoice_id=invoice_id,
                            position=position,
                            category=category,
                            label=label,
                            qty=D(qty),
                            unit_rate=D(unit_rate),
                            amount=amount),
            op="insert line item",
        )

    def remove_line_item(self, invoice_id: int, item_id: int) -> None:
        inv = self.get(invoice_id)
        self._require_pending(inv)
        item = self.uow.scalar(
            select(InvoiceLineItem).where(InvoiceLineItem.id == item_id,
                                          InvoiceLineItem.invoice_id ==
                                          invoice_id),
            op="get line item",
        )
        if item is None:
            raise NotFoundError("Line item not found",
                                invoice_id=invoice_id,
                                id=item_id)
        self.uow.session.delete(item)
        self.uow.flush(op="delete line item")

    def set_discount(self, invoice_id: int, pct: Any) -> None:
        pct = D(pct)
        if pct < 0 or pct > 100:
            raise InvalidInputError("Discount must be between 0 and 100",
                                    invoice_id=invoice_id)
        self._guarded(invoice_id, discount_pct=pct)

    def set_insurance(self, invoice_id: int, provider: Optional[str],
                      claim: Optional[str] = None) -> None:
        provider = (provider or "").strip() or None
        claim = (claim or "").strip() or None
        if claim and not provider:
            raise InvalidInputError("Insurance claim needs a provider",
                                    invoice_id=invoice_id)
        self._guarded(invoice_id,
                      insurance_provider=provider,
                      insurance_claim=claim)

    def freeze_totals(self, invoice_id: int, totals: Dict[str, Any]) -> None:
        self._guarded(invoice_id, **totals)

    def mark_paid(self, invoice_id: int, *, payment_method: str, paid_at,
                  notes: Optional[str] = None) -> None:
        values: Dict[str, Any] = {
            "status": INVOICE_PAID,
            "payment_method": payment_method,
            "paid_at": paid_at,
            "discharge_date": paid_at,
        }
        if notes is not None:
            values["notes"] = notes
        self._guarded(invoice_id, **values)

    def transition(self, invoice_id: int, from_status: str, to_status: str,
                   **values: Any) -> None:
        n = self.update(invoice_id,
                        where=[Invoice.status == from_status],
                        status=to_status,
                        **values)
        if n != 1:
            inv = self.get(invoice_id)
            raise ConflictError(
                f"Invoice is {inv.status}, expected {from_status}",
                invoice_id=invoice_id)

    def _guarded(self, invoice_id: int, **values: Any) -> None:
        n = self.update(invoice_id,
                        where=[Invoice.status == INVOICE_PENDING],
                        **values)
        if n != 1:
            self._require_pending(self.get(invoice_id))
            raise AlreadyPaidError("Invoice is no longer pending",
                                   invoice_id=invoice_id)
