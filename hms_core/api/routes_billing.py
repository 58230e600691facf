# FILE: hms_core/api/routes_billing.py
from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from hms_core.api.deps import (
    get_cascade,
    get_db,
    get_follow_ups,
    get_invoice_service,
)
from hms_core.api.response import ok
from hms_core.schemas.billing import (
    BillingStatsOut,
    CascadeResultOut,
    DiscountIn,
    FollowUpRetryOut,
    InsuranceIn,
    InvoiceCreateIn,
    InvoiceDetailOut,
    InvoiceListItem,
    InvoiceOut,
    LineItemIn,
    LineItemOut,
    SettleIn,
    ToggleStatusIn,
    WaiveIn,
)
from hms_core.services import read_views
from hms_core.services.billing_cascade import BillingCascade
from hms_core.services.follow_up import FollowUpRunner
from hms_core.services.invoicing import InvoiceService

router = APIRouter(prefix="/billing", tags=["Billing"])
logger = logging.getLogger(__name__)


# ---------------- Invoices ----------------


@router.post("/invoices")
def create_invoice(
        payload: InvoiceCreateIn,
        invoices: InvoiceService = Depends(get_invoice_service),
):
    inv = invoices.create_invoice(payload.patient_id,
                                  payload.admission_id,
                                  discount_pct=payload.discount_pct,
                                  notes=payload.notes)
    return ok(InvoiceOut.model_validate(inv), status_code=201)


@router.get("/invoices/{invoice_id}")
def get_invoice(invoice_id: int, db: Session = Depends(get_db)):
    return ok(InvoiceDetailOut(**read_views.get_invoice_view(db, invoice_id)))


@router.post("/invoices/{invoice_id}/items")
def add_line_item(
        invoice_id: int,
        payload: LineItemIn,
        invoices: InvoiceService = Depends(get_invoice_service),
):
    item = invoices.add_line_item(invoice_id, payload.label, payload.qty,
                                  payload.unit_rate, payload.category)
    return ok(LineItemOut.model_validate(item), status_code=201)


@router.delete("/invoices/{invoice_id}/items/{item_id}")
def remove_line_item(
        invoice_id: int,
        item_id: int,
        invoices: InvoiceService = Depends(get_invoice_service),
):
    invoices.remove_line_item(invoice_id, item_id)
    return ok({"deleted": item_id})


@router.put("/invoices/{invoice_id}/discount")
def set_discount(
        invoice_id: int,
        payload: DiscountIn,
        invoices: InvoiceService = Depends(get_invoice_service),
):
    inv = invoices.set_discount(invoice_id, payload.discount_pct)
    return ok(InvoiceOut.model_validate(inv))


@router.put("/invoices/{invoice_id}/insurance")
def set_insurance(
        invoice_id: int,
        payload: InsuranceIn,
        invoices: InvoiceService = Depends(get_invoice_service),
):
    inv = invoices.set_insurance(invoice_id, payload.provider, payload.claim)
    return ok(InvoiceOut.model_validate(inv))


# ---------------- Settlement ----------------


@router.post("/settle-and-discharge")
def settle_and_discharge(
        payload: SettleIn,
        cascade: BillingCascade = Depends(get_cascade),
):
    result = cascade.settle_and_discharge(
        invoice_id=payload.invoice_id,
        payment_method=payload.payment_method,
        notes=payload.notes,
    )
    out = CascadeResultOut(
        invoice_id=result.invoice_id,
        admission_id=result.admission_id,
        patient_id=result.patient_id,
        patient_name=result.patient_name,
        bed_id=result.bed_id,
        bed_code=result.bed_code,
        clinician_id=result.clinician_id,
        doctor_name=result.doctor_name,
        totals=asdict(result.totals),
        state=result.state.value,
        warnings=[w.to_dict() for w in result.warnings],
    )
    meta = {"degraded": result.degraded}
    if result.degraded:
        meta["msg"] = ("Invoice settled and bed freed, but some follow-up "
                       "steps did not complete. Please verify manually.")
    return ok(out, meta=meta)


@router.post("/toggle-status")
def toggle_invoice_status(
        payload: ToggleStatusIn,
        cascade: BillingCascade = Depends(get_cascade),
):
    """
    Manual correction only. Does not free the bed or discharge the patient.
    """
    inv = cascade.toggle_invoice_status(payload.invoice_id)
    return ok(InvoiceOut.model_validate(inv),
              meta={"cascade": False})


@router.post("/invoices/{invoice_id}/waive")
def waive_invoice(
        invoice_id: int,
        payload: WaiveIn,
        cascade: BillingCascade = Depends(get_cascade),
):
    inv = cascade.waive_invoice(invoice_id, payload.reason)
    return ok(InvoiceOut.model_validate(inv))


@router.get("/invoices")
def list_invoices(
        status: str = Query("", description="pending / paid / partial / waived"),
        patient_id: Optional[int] = Query(None),
        db: Session = Depends(get_db),
):
    rows = read_views.list_invoices(db, status=status, patient_id=patient_id)
    return ok([InvoiceListItem(**r) for r in rows])


@router.get("/stats")
def billing_stats(db: Session = Depends(get_db)):
    return ok(BillingStatsOut(**read_views.billing_stats(db)))


@router.post("/follow-ups/retry")
def retry_follow_ups(follow_ups: FollowUpRunner = Depends(get_follow_ups)):
    return ok(FollowUpRetryOut(**follow_ups.retry_pending()))
