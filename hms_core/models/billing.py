# FILE: hms_core/models/billing.py
from __future__ import annotations

from sqlalchemy import (
    Column,
    Integer,
    String,
    Numeric,
    DateTime,
    Index,
    ForeignKey,
    Text,
)
from sqlalchemy.orm import relationship

from hms_core.db.base import Base
from hms_core.utils.timezone import now_local

INVOICE_PENDING = "pending"
INVOICE_PAID = "paid"
INVOICE_PARTIAL = "partial"
INVOICE_WAIVED = "waived"

INVOICE_STATUSES = (INVOICE_PENDING, INVOICE_PAID, INVOICE_PARTIAL,
                    INVOICE_WAIVED)

PAYMENT_METHODS = ("cash", "card", "insurance", "bank", "mobile")


class Invoice(Base):
    """
    Patient invoice, optionally tied to one admission.

    Totals stay NULL while the invoice is pending (they are computed live
    from line items and the stay length) and are frozen at settlement.
    """

    __tablename__ = "invoices"
    __table_args__ = (
        Index("ix_invoices_patient_status", "patient_id", "status"),
        {
            "mysql_engine": "InnoDB",
            "mysql_charset": "utf8mb4",
        },
    )

    id = Column(Integer, primary_key=True, index=True)

    patient_id = Column(Integer,
                        ForeignKey("patients.id"),
                        nullable=False,
                        index=True)
    admission_id = Column(Integer,
                          ForeignKey("admissions.id"),
                          nullable=True,
                          index=True)

    discount_pct = Column(Numeric(5, 2), nullable=False, default=0)

    status = Column(String(16), nullable=False,
                    default=INVOICE_PENDING)  # pending | paid | partial | waived
    payment_method = Column(String(20), nullable=True)
    paid_at = Column(DateTime, nullable=True)
    discharge_date = Column(DateTime, nullable=True)

    insurance_provider = Column(String(120), nullable=True)
    insurance_claim = Column(String(60), nullable=True)
    notes = Column(Text, nullable=True)

    # Frozen totals (set once, at settlement)
    room_days = Column(Integer, nullable=True)
    room_rate = Column(Numeric(12, 2), nullable=True)
    room_charge = Column(Numeric(12, 2), nullable=True)
    treatment_total = Column(Numeric(12, 2), nullable=True)
    subtotal = Column(Numeric(12, 2), nullable=True)
    discount_amount = Column(Numeric(12, 2), nullable=True)
    tax_amount = Column(Numeric(12, 2), nullable=True)
    grand_total = Column(Numeric(12, 2), nullable=True)

    created_at = Column(DateTime, default=now_local, nullable=False)
    version = Column(Integer, nullable=False, default=1)

    patient = relationship("Patient")
    admission = relationship("Admission")
    line_items = relationship(
        "InvoiceLineItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceLineItem.position",
    )


class InvoiceLineItem(Base):
    __tablename__ = "invoice_line_items"
    __table_args__ = {
        "mysql_engine": "InnoDB",
        "mysql_charset": "utf8mb4",
    }

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(Integer,
                        ForeignKey("invoices.id"),
                        nullable=False,
                        index=True)
    position = Column(Integer, nullable=False, default=0)
    category = Column(String(40), nullable=True)
    label = Column(String(255), nullable=False)
    qty = Column(Numeric(10, 2), nullable=False, default=1)
    unit_rate = Column(Numeric(12, 2), nullable=False, default=0)
    amount = Column(Numeric(12, 2), nullable=False, default=0)

    invoice = relationship("Invoice", back_populates="line_items")
