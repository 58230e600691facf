# File: hms_core/services/read_views.py
"""
Read side. Plain joins over committed rows; nothing here writes.

Each function takes its own Session (never the one inside a cascade), so
a view sees either the state before a cascade or after its commit.
"""
from __future__ import annotations

import io
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

from openpyxl import Workbook
from openpyxl.utils import get_column_letter
from sqlalchemy import func
from sqlalchemy.orm import Session

from hms_core.core.config import settings
from hms_core.models.billing import INVOICE_PAID, INVOICE_PENDING, Invoice, InvoiceLineItem
from hms_core.models.clinician import Clinician
from hms_core.models.ipd import (
    ADMISSION_ACTIVE,
    ADMISSION_DISCHARGED,
    BED_EMPTY,
    Admission,
    Bed,
    Ward,
)
from hms_core.models.patient import Patient
from hms_core.services.billing_math import (
    D,
    InvoiceTotals,
    live_invoice_totals,
)
from hms_core.services.errors import NotFoundError
from hms_core.utils.timezone import now_local, today_local


def _safe_trim(s: Optional[str]) -> str:
    return (s or "").strip()


def _patient_name_expr():
    return func.trim(
        func.coalesce(Patient.first_name, "") + " " +
        func.coalesce(Patient.last_name, ""))


# ---------------------------------------------------------------------
# Admissions
# ---------------------------------------------------------------------
def _admission_query(db: Session):
    PNAME = _patient_name_expr()
    return (db.query(
        Admission.id.label("id"),
        Admission.status.label("status"),
        Admission.admit_date.label("admit_date"),
        Admission.discharge_date.label("discharge_date"),
        Admission.diagnosis.label("diagnosis"),
        Patient.id.label("patient_id"),
        PNAME.label("patient_name"),
        Patient.status.label("patient_status"),
        Bed.id.label("bed_id"),
        Bed.code.label("bed_code"),
        Bed.is_occupied.label("bed_occupied"),
        Ward.name.label("ward_name"),
        Clinician.id.label("clinician_id"),
        Clinician.name.label("doctor_name"),
    ).outerjoin(Patient, Patient.id == Admission.patient_id).outerjoin(
        Bed, Bed.id == Admission.bed_id).outerjoin(
            Ward, Ward.code == Bed.ward_code).outerjoin(
                Clinician, Clinician.id == Admission.clinician_id))


def _admission_row(row) -> Dict[str, Any]:
    return {
        "id": int(row.id),
        "display_code": f"ADM-{int(row.id):06d}",
        "status": row.status,
        "admit_date": row.admit_date,
        "discharge_date": row.discharge_date,
        "diagnosis": row.diagnosis,
        "patient_id": int(row.patient_id) if row.patient_id else 0,
        "patient_name": _safe_trim(row.patient_name) or "—",
        "patient_status": row.patient_status,
        "bed_id": row.bed_id,
        "bed_code": row.bed_code,
        "bed_occupied": bool(row.bed_occupied),
        "ward_name": row.ward_name,
        "clinician_id": row.clinician_id,
        "doctor_name": _safe_trim(row.doctor_name) or None,
    }


def list_admissions(db: Session,
                    *,
                    status: str = "",
                    patient_id: Optional[int] = None,
                    limit: int = 100,
                    offset: int = 0) -> Dict[str, Any]:
    qry = _admission_query(db)
    if status:
        qry = qry.filter(Admission.status == status)
    if patient_id:
        qry = qry.filter(Admission.patient_id == patient_id)

    total = (qry.order_by(None).with_entities(func.count(Admission.id)).scalar()
             or 0)
    rows = (qry.order_by(Admission.admit_date.desc(),
                         Admission.id.desc()).limit(limit).offset(offset).all())
    return {
        "items": [_admission_row(r) for r in rows],
        "total": int(total),
        "limit": limit,
        "offset": offset,
    }


def get_admission_view(db: Session, admission_id: int) -> Dict[str, Any]:
    row = _admission_query(db).filter(Admission.id == admission_id).first()
    if not row:
        raise NotFoundError("Admission not found", id=admission_id)
    return _admission_row(row)


def export_admissions_xlsx(db: Session, *, status: str = "") -> io.BytesIO:
    data = list_admissions(db, status=status, limit=100000)

    wb = Workbook()
    ws = wb.active
    ws.title = "Admissions"

    headers = [
        "Admission Code",
        "Patient Name",
        "Doctor Name",
        "Ward",
        "Bed",
        "Status",
        "Admitted At",
        "Discharged At",
    ]
    ws.append(headers)

    for item in data["items"]:
        ws.append([
            item["display_code"],
            item["patient_name"],
            item["doctor_name"] or "",
            item["ward_name"] or "",
            item["bed_code"] or "",
            item["status"],
            item["admit_date"].isoformat(sep=" ") if item["admit_date"] else "",
            item["discharge_date"].isoformat(sep=" ")
            if item["discharge_date"] else "",
        ])

    for col in range(1, len(headers) + 1):
        ws.column_dimensions[get_column_letter(col)].width = 18
    ws.column_dimensions["B"].width = 26
    ws.column_dimensions["C"].width = 22

    bio = io.BytesIO()
    wb.save(bio)
    bio.seek(0)
    return bio


# ---------------------------------------------------------------------
# Beds
# ---------------------------------------------------------------------
def list_beds(db: Session, *, available_only: bool = False) -> List[Dict[str, Any]]:
    qry = db.query(Bed, Ward.name.label("ward_name")).outerjoin(
        Ward, Ward.code == Bed.ward_code)
    if available_only:
        qry = qry.filter(Bed.is_occupied.is_(False), Bed.state == BED_EMPTY)
    return [{
        "id": bed.id,
        "code": bed.code,
        "ward_code": bed.ward_code,
        "ward_name": ward_name,
        "state": bed.state,
        "is_occupied": bool(bed.is_occupied),
        "note": bed.note or "",
    } for bed, ward_name in qry.order_by(Bed.code).all()]


# ---------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------
def _frozen_totals(inv: Invoice) -> Optional[InvoiceTotals]:
    if inv.grand_total is None:
        return None
    return InvoiceTotals(
        room_days=int(inv.room_days or 0),
        room_rate=D(inv.room_rate),
        room_charge=D(inv.room_charge),
        treatment_total=D(inv.treatment_total),
        subtotal=D(inv.subtotal),
        discount_amount=D(inv.discount_amount),
        tax_amount=D(inv.tax_amount),
        grand_total=D(inv.grand_total),
    )


def invoice_totals(db: Session, inv: Invoice) -> InvoiceTotals:
    """Frozen totals when settled, otherwise computed as of now."""
    frozen = _frozen_totals(inv)
    if frozen is not None:
        return frozen

    stay: Dict[str, Any] = {}
    adm = db.get(Admission, inv.admission_id) if inv.admission_id else None
    if adm is not None:
        ward = (db.query(Ward).join(Bed, Bed.ward_code == Ward.code).filter(
            Bed.id == adm.bed_id).first())
        stay = dict(admit_date=adm.admit_date,
                    discharge_date=adm.discharge_date,
                    ward_rate=ward.rate_per_day if ward else None)

    amounts = [
        a for (a, ) in db.query(InvoiceLineItem.amount).filter(
            InvoiceLineItem.invoice_id == inv.id)
    ]
    return live_invoice_totals(amounts,
                               discount_pct=inv.discount_pct,
                               tax_rate=settings.TAX_RATE,
                               default_ward_rate=settings.DEFAULT_WARD_RATE,
                               now=now_local(),
                               **stay)


def _line_item_row(li: InvoiceLineItem) -> Dict[str, Any]:
    return {
        "id": li.id,
        "position": li.position,
        "category": li.category,
        "label": li.label,
        "qty": li.qty,
        "unit_rate": li.unit_rate,
        "amount": li.amount,
    }


def _invoice_row(db: Session, inv: Invoice,
                 patient_name: Optional[str]) -> Dict[str, Any]:
    return {
        "id": inv.id,
        "patient_id": inv.patient_id,
        "patient_name": _safe_trim(patient_name) or "—",
        "admission_id": inv.admission_id,
        "status": inv.status,
        "payment_method": inv.payment_method,
        "paid_at": inv.paid_at,
        "discount_pct": inv.discount_pct,
        "insurance_provider": inv.insurance_provider,
        "insurance_claim": inv.insurance_claim,
        "frozen": inv.grand_total is not None,
        "totals": asdict(invoice_totals(db, inv)),
    }


def get_invoice_view(db: Session, invoice_id: int) -> Dict[str, Any]:
    row = (db.query(Invoice, _patient_name_expr().label("patient_name")).outerjoin(
        Patient, Patient.id == Invoice.patient_id).filter(
            Invoice.id == invoice_id).first())
    if not row:
        raise NotFoundError("Invoice not found", entity="invoices", id=invoice_id)
    inv, patient_name = row
    items = (db.query(InvoiceLineItem).filter(
        InvoiceLineItem.invoice_id == invoice_id).order_by(
            InvoiceLineItem.position, InvoiceLineItem.id).all())
    return {
        **_invoice_row(db, inv, patient_name),
        "notes": inv.notes,
        "line_items": [_line_item_row(li) for li in items],
    }


def list_invoices(db: Session,
                  *,
                  status: str = "",
                  patient_id: Optional[int] = None) -> List[Dict[str, Any]]:
    qry = db.query(Invoice, _patient_name_expr().label("patient_name")).outerjoin(
        Patient, Patient.id == Invoice.patient_id)
    if status:
        qry = qry.filter(Invoice.status == status)
    if patient_id:
        qry = qry.filter(Invoice.patient_id == patient_id)

    return [
        _invoice_row(db, inv, patient_name)
        for inv, patient_name in qry.order_by(Invoice.created_at.desc(),
                                              Invoice.id.desc()).all()
    ]


def billing_stats(db: Session) -> Dict[str, Any]:
    invoices = db.query(Invoice).all()
    pending = [i for i in invoices if i.status == INVOICE_PENDING]
    paid = [i for i in invoices if i.status == INVOICE_PAID]
    today = today_local()

    def _sum(rows) -> Any:
        return sum((invoice_totals(db, i).grand_total for i in rows), D(0))

    return {
        "total_invoices": len(invoices),
        "pending_count": len(pending),
        "paid_count": len(paid),
        "pending_revenue": _sum(pending),
        "collected_revenue": _sum(paid),
        "today_revenue": _sum(
            [i for i in paid if i.paid_at and i.paid_at.date() == today]),
    }


# ---------------------------------------------------------------------
# Consistency validator
# ---------------------------------------------------------------------
@dataclass
class Inconsistency:
    code: str
    msg: str
    bed_id: Optional[int] = None
    admission_id: Optional[int] = None
    invoice_id: Optional[int] = None


def find_inconsistencies(db: Session) -> List[Inconsistency]:
    """
    Cross-entity checks over committed state:
    - a bed is occupied iff exactly one Active admission points at it
    - a paid invoice is not linked to a still-Active admission (the
      manual status toggle can produce this)
    - a pending invoice is not linked to an already Discharged
      admission (toggling a settled invoice back can produce this)
    """
    found: List[Inconsistency] = []

    active_per_bed = dict(
        db.query(Admission.bed_id, func.count(Admission.id)).filter(
            Admission.status == ADMISSION_ACTIVE).group_by(
                Admission.bed_id).all())

    for bed in db.query(Bed).order_by(Bed.id).all():
        n = int(active_per_bed.get(bed.id, 0))
        if bed.is_occupied and n == 0:
            found.append(
                Inconsistency(
                    code="occupied_bed_without_admission",
                    msg=f"Bed {bed.code} is occupied with no active admission",
                    bed_id=bed.id))
        elif not bed.is_occupied and n > 0:
            found.append(
                Inconsistency(
                    code="active_admission_bed_free",
                    msg=f"Bed {bed.code} is free but has an active admission",
                    bed_id=bed.id))
        if n > 1:
            found.append(
                Inconsistency(
                    code="bed_multiple_active_admissions",
                    msg=f"Bed {bed.code} has {n} active admissions",
                    bed_id=bed.id))

    rows = (db.query(Invoice, Admission, Bed).join(
        Admission, Admission.id == Invoice.admission_id).outerjoin(
            Bed, Bed.id == Admission.bed_id).filter(
                Invoice.status == INVOICE_PAID,
                Admission.status == ADMISSION_ACTIVE).all())
    for inv, adm, bed in rows:
        bed_note = (f"bed {bed.code} still occupied"
                    if bed is not None and bed.is_occupied else "bed state unknown")
        found.append(
            Inconsistency(
                code="paid_invoice_active_admission",
                msg=(f"Invoice {inv.id} is paid but admission "
                     f"{adm.id} is still active ({bed_note})"),
                bed_id=adm.bed_id,
                admission_id=adm.id,
                invoice_id=inv.id))

    rows = (db.query(Invoice, Admission).join(
        Admission, Admission.id == Invoice.admission_id).filter(
            Invoice.status == INVOICE_PENDING,
            Admission.status == ADMISSION_DISCHARGED).all())
    for inv, adm in rows:
        found.append(
            Inconsistency(
                code="pending_invoice_discharged_admission",
                msg=(f"Invoice {inv.id} is pending but admission "
                     f"{adm.id} was already discharged"),
                bed_id=adm.bed_id,
                admission_id=adm.id,
                invoice_id=inv.id))
    return found


def inconsistency_dicts(db: Session) -> List[Dict[str, Any]]:
    return [asdict(i) for i in find_inconsistencies(db)]
