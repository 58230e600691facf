# File: hms_core/services/billing_cascade.py
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional

from hms_core.core.config import settings
from hms_core.models.billing import (
    INVOICE_PAID,
    INVOICE_PENDING,
    INVOICE_WAIVED,
    PAYMENT_METHODS,
    Invoice,
)
from hms_core.services.admission_coordinator import AdmissionCoordinator
from hms_core.services.billing_math import InvoiceTotals, live_invoice_totals
from hms_core.services.errors import (
    AlreadyPaidError,
    ConflictError,
    InvalidInputError,
    DegradedSuccessWarning,
    LifecycleError,
)
from hms_core.services.follow_up import FollowUpRunner, discharge_notification
from hms_core.services.invoicing import check_invoice_admission
from hms_core.services.stores import (
    AdmissionStore,
    BedStore,
    InvoiceStore,
    PatientStore,
)
from hms_core.services.unit_of_work import UnitOfWork
from hms_core.utils.timezone import now_local

logger = logging.getLogger(__name__)

# columns written by InvoiceStore.freeze_totals
FROZEN_COLUMNS = tuple(f.name for f in fields(InvoiceTotals))


class CascadeState(str, enum.Enum):
    PENDING = "Pending"
    CORE_COMMITTED = "CoreCommitted"
    BEST_EFFORT_APPLIED = "BestEffortApplied"
    BEST_EFFORT_DEGRADED = "BestEffortDegraded"


@dataclass
class CascadeResult:
    invoice_id: int
    admission_id: Optional[int]
    patient_id: int
    patient_name: str
    bed_id: Optional[int]
    bed_code: Optional[str]
    clinician_id: Optional[int]
    doctor_name: Optional[str]
    totals: InvoiceTotals
    state: CascadeState = CascadeState.PENDING
    warnings: List[DegradedSuccessWarning] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return self.state == CascadeState.BEST_EFFORT_DEGRADED


def live_totals(uow: UnitOfWork, inv: Invoice, *, until=None,
                tax_rate=None, default_ward_rate=None) -> InvoiceTotals:
    """
    Totals as they would be frozen right now: line items plus the room
    charge for the linked stay up to its discharge date (or ``until``).
    """
    tax_rate = settings.TAX_RATE if tax_rate is None else tax_rate
    if default_ward_rate is None:
        default_ward_rate = settings.DEFAULT_WARD_RATE

    stay: Dict[str, Any] = {}
    if inv.admission_id:
        adm = AdmissionStore(uow).get(inv.admission_id)
        beds = BedStore(uow)
        stay = dict(admit_date=adm.admit_date,
                    discharge_date=adm.discharge_date,
                    ward_rate=beds.ward_rate(beds.get(adm.bed_id)))

    items = InvoiceStore(uow).line_items(inv.id)
    return live_invoice_totals([li.amount for li in items],
                               discount_pct=inv.discount_pct,
                               tax_rate=tax_rate,
                               default_ward_rate=default_ward_rate,
                               now=now_local(),
                               until=until,
                               **stay)


class BillingCascade:
    """
    Settlement path used when an invoice exists.

    Steps 1-3 (freeze totals, mark paid, discharge) share one unit of
    work: a paid invoice never coexists with a still-active admission.
    Step 4 (clinician restore, notification) runs after commit and can
    only degrade the result, never undo it.
    """

    def __init__(
        self,
        coordinator: AdmissionCoordinator,
        follow_ups: FollowUpRunner,
        *,
        tax_rate: Optional[float] = None,
        default_ward_rate: Optional[int] = None,
    ):
        self.coordinator = coordinator
        self.follow_ups = follow_ups
        self.tax_rate = settings.TAX_RATE if tax_rate is None else tax_rate
        self.default_ward_rate = (settings.DEFAULT_WARD_RATE
                                  if default_ward_rate is None else
                                  default_ward_rate)

    # ------------------------------------------------------------
    # settle + discharge
    # ------------------------------------------------------------
    def settle_and_discharge(self,
                             invoice_id: int,
                             payment_method: str,
                             notes: Optional[str] = None) -> CascadeResult:
        if payment_method not in PAYMENT_METHODS:
            raise InvalidInputError(f"Unsupported payment method: {payment_method}",
                                    payment_method=payment_method)

        try:
            with self.coordinator.unit() as uow:
                result = self._settle_core(uow, invoice_id, payment_method,
                                           notes)
        except LifecycleError as e:
            logger.warning("Settlement of invoice %s aborted (%s): %s",
                           invoice_id, e.kind.value, e.msg)
            raise

        result.state = CascadeState.CORE_COMMITTED
        logger.info("Invoice %s settled via %s; admission=%s bed=%s freed",
                    invoice_id, payment_method, result.admission_id,
                    result.bed_code)

        result.warnings = self.follow_ups.after_discharge(
            source="settle_and_discharge",
            clinician_id=result.clinician_id,
            invoice_id=result.invoice_id,
            admission_id=result.admission_id,
            notification=self._notification(result),
        )
        if result.warnings:
            result.state = CascadeState.BEST_EFFORT_DEGRADED
            logger.warning("Invoice %s settled with %d degraded step(s)",
                           invoice_id, len(result.warnings))
        else:
            result.state = CascadeState.BEST_EFFORT_APPLIED
        return result

    def _settle_core(self, uow: UnitOfWork, invoice_id: int,
                     payment_method: str,
                     notes: Optional[str]) -> CascadeResult:
        invoices = InvoiceStore(uow)
        inv = invoices.get(invoice_id)
        if inv.status != INVOICE_PENDING:
            raise AlreadyPaidError(f"Invoice is already {inv.status}",
                                   invoice_id=invoice_id,
                                   status=inv.status)

        now = now_local()
        patient = PatientStore(uow).get(inv.patient_id)
        admission_id = inv.admission_id
        # rows written before this check are not trusted
        check_invoice_admission(uow, inv.patient_id, admission_id)

        # 1) freeze totals (point of no return inside the unit)
        totals = live_totals(uow,
                             inv,
                             until=now,
                             tax_rate=self.tax_rate,
                             default_ward_rate=self.default_ward_rate)
        invoices.freeze_totals(invoice_id, totals.as_columns())

        # 2) paid
        invoices.mark_paid(invoice_id,
                           payment_method=payment_method,
                           paid_at=now,
                           notes=_append_note(inv.notes, notes))

        # 3) discharge in the same unit; failure rolls back 1-2
        bed_id = bed_code = clinician_id = doctor_name = None
        if admission_id:
            freed = self.coordinator.discharge_in(uow, admission_id, at=now)
            bed_id, bed_code = freed.bed_id, freed.bed_code
            clinician_id, doctor_name = freed.clinician_id, freed.doctor_name

        return CascadeResult(
            invoice_id=invoice_id,
            admission_id=admission_id,
            patient_id=patient.id,
            patient_name=patient.full_name,
            bed_id=bed_id,
            bed_code=bed_code,
            clinician_id=clinician_id,
            doctor_name=doctor_name,
            totals=totals,
        )

    @staticmethod
    def _notification(result: CascadeResult) -> Dict[str, Any]:
        return discharge_notification(type="discharge_complete",
                                      title="Discharge Complete",
                                      patient_name=result.patient_name,
                                      bed_code=result.bed_code,
                                      doctor_name=result.doctor_name,
                                      invoice_id=result.invoice_id)

    # ------------------------------------------------------------
    # manual corrections (no cascade)
    # ------------------------------------------------------------
    def toggle_invoice_status(self, invoice_id: int) -> Invoice:
        """
        Manual billing correction: pending <-> paid.

        Bypasses the cascade on purpose. It never frees the bed, the
        patient or the clinician, so it can leave a paid invoice on a
        still-admitted patient (or a pending one on a closed stay);
        ``read_views.find_inconsistencies`` reports both instead of
        hiding them.

        Paid freezes the totals as of now. Pending clears everything
        settlement wrote, so the invoice is computed live again.
        """
        with self.coordinator.unit() as uow:
            invoices = InvoiceStore(uow)
            inv = invoices.get(invoice_id)
            if inv.status == INVOICE_PENDING:
                now = now_local()
                totals = live_totals(uow,
                                     inv,
                                     until=now,
                                     tax_rate=self.tax_rate,
                                     default_ward_rate=self.default_ward_rate)
                invoices.transition(invoice_id,
                                    INVOICE_PENDING,
                                    INVOICE_PAID,
                                    paid_at=now,
                                    payment_method="cash",
                                    **totals.as_columns())
            elif inv.status == INVOICE_PAID:
                invoices.transition(invoice_id,
                                    INVOICE_PAID,
                                    INVOICE_PENDING,
                                    paid_at=None,
                                    payment_method=None,
                                    discharge_date=None,
                                    **dict.fromkeys(FROZEN_COLUMNS))
            else:
                raise ConflictError(f"Cannot toggle a {inv.status} invoice",
                                    invoice_id=invoice_id)
            inv = invoices.get(invoice_id)
        logger.warning("Invoice %s toggled to %s manually (no cascade)",
                       invoice_id, inv.status)
        return inv

    def waive_invoice(self, invoice_id: int, reason: str) -> Invoice:
        with self.coordinator.unit() as uow:
            invoices = InvoiceStore(uow)
            inv = invoices.get(invoice_id)
            if inv.status != INVOICE_PENDING:
                raise AlreadyPaidError(f"Invoice is already {inv.status}",
                                       invoice_id=invoice_id,
                                       status=inv.status)
            invoices.transition(invoice_id,
                                INVOICE_PENDING,
                                INVOICE_WAIVED,
                                notes=_append_note(inv.notes,
                                                   f"Waived: {reason}"))
            inv = invoices.get(invoice_id)
        logger.info("Invoice %s waived", invoice_id)
        return inv


def _append_note(existing: Optional[str], extra: Optional[str]) -> Optional[str]:
    extra = (extra or "").strip()
    if not extra:
        return existing
    if not existing:
        return extra
    return f"{existing}\n{extra}"
