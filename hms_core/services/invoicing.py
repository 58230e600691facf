# File: hms_core/services/invoicing.py
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

from sqlalchemy.orm import sessionmaker

from hms_core.models.billing import Invoice, InvoiceLineItem
from hms_core.models.ipd import Admission
from hms_core.services.errors import ConflictError, NotFoundError
from hms_core.services.stores import AdmissionStore, InvoiceStore, PatientStore
from hms_core.services.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


def check_invoice_admission(uow: UnitOfWork, patient_id: int,
                            admission_id: Optional[int]) -> Optional[Admission]:
    """
    An invoice may only link an admission of its own patient. Returns the
    admission (None when the invoice has no stay attached).
    """
    if not admission_id:
        return None
    adm = AdmissionStore(uow).find(admission_id)
    if adm is None:
        raise NotFoundError("Admission not found",
                            entity="admissions",
                            id=admission_id)
    if adm.patient_id != patient_id:
        raise ConflictError("Admission belongs to another patient",
                            admission_id=admission_id,
                            patient_id=patient_id,
                            admission_patient_id=adm.patient_id)
    return adm


class InvoiceService:
    """
    Edits of a pending invoice: creation, line items, discount and
    insurance. Every call is its own unit of work; the stores refuse
    edits once the invoice has left ``pending``.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.session_factory = session_factory
        self.timeout = timeout
        self.clock = clock

    def unit(self) -> UnitOfWork:
        return UnitOfWork(self.session_factory,
                          timeout=self.timeout,
                          clock=self.clock)

    def create_invoice(self,
                       patient_id: int,
                       admission_id: Optional[int] = None,
                       *,
                       discount_pct: Any = 0,
                       notes: Optional[str] = None) -> Invoice:
        with self.unit() as uow:
            PatientStore(uow).get(patient_id)
            check_invoice_admission(uow, patient_id, admission_id)
            invoices = InvoiceStore(uow)
            inv = invoices.create_invoice(patient_id, admission_id, notes=notes)
            if discount_pct:
                invoices.set_discount(inv.id, discount_pct)
            inv = invoices.get(inv.id)
        logger.info("Invoice %s created for patient=%s admission=%s", inv.id,
                    patient_id, admission_id)
        return inv

    def add_line_item(self,
                      invoice_id: int,
                      label: str,
                      qty: Any = 1,
                      unit_rate: Any = 0,
                      category: Optional[str] = None) -> InvoiceLineItem:
        with self.unit() as uow:
            return InvoiceStore(uow).add_line_item(invoice_id, label, qty,
                                                   unit_rate, category)

    def remove_line_item(self, invoice_id: int, item_id: int) -> None:
        with self.unit() as uow:
            InvoiceStore(uow).remove_line_item(invoice_id, item_id)

    def set_discount(self, invoice_id: int, pct: Any) -> Invoice:
        with self.unit() as uow:
            invoices = InvoiceStore(uow)
            invoices.set_discount(invoice_id, pct)
            return invoices.get(invoice_id)

    def set_insurance(self, invoice_id: int, provider: Optional[str],
                      claim: Optional[str] = None) -> Invoice:
        with self.unit() as uow:
            invoices = InvoiceStore(uow)
            invoices.set_insurance(invoice_id, provider, claim)
            return invoices.get(invoice_id)
