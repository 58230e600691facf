# FILE: hms_core/schemas/billing.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

PaymentMethod = Literal["cash", "card", "insurance", "bank", "mobile"]


class SettleIn(BaseModel):
    invoice_id: int = Field(..., gt=0)
    payment_method: PaymentMethod
    notes: Optional[str] = Field(None, max_length=2000)


class ToggleStatusIn(BaseModel):
    invoice_id: int = Field(..., gt=0)


class WaiveIn(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class InvoiceCreateIn(BaseModel):
    patient_id: int = Field(..., gt=0)
    admission_id: Optional[int] = Field(None, gt=0)
    discount_pct: Decimal = Decimal("0")
    notes: Optional[str] = Field(None, max_length=2000)


class LineItemIn(BaseModel):
    label: str = Field(..., min_length=1, max_length=255)
    qty: Decimal = Field(Decimal("1"), gt=0)
    unit_rate: Decimal = Field(Decimal("0"), ge=0)
    category: Optional[str] = Field(None, max_length=40)


class LineItemOut(BaseModel):
    id: int
    position: int
    category: Optional[str] = None
    label: str
    qty: Decimal
    unit_rate: Decimal
    amount: Decimal

    model_config = ConfigDict(from_attributes=True)


class DiscountIn(BaseModel):
    discount_pct: Decimal


class InsuranceIn(BaseModel):
    provider: Optional[str] = Field(None, max_length=120)
    claim: Optional[str] = Field(None, max_length=60)


class TotalsOut(BaseModel):
    room_days: int
    room_rate: Decimal
    room_charge: Decimal
    treatment_total: Decimal
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    grand_total: Decimal

    model_config = ConfigDict(from_attributes=True)


class WarningOut(BaseModel):
    kind: str
    step: str
    msg: str
    follow_up_id: Optional[int] = None


class CascadeResultOut(BaseModel):
    invoice_id: int
    admission_id: Optional[int] = None
    patient_id: int
    patient_name: str
    bed_id: Optional[int] = None
    bed_code: Optional[str] = None
    clinician_id: Optional[int] = None
    doctor_name: Optional[str] = None
    totals: TotalsOut
    state: str
    warnings: List[WarningOut] = []


class InvoiceOut(BaseModel):
    id: int
    patient_id: int
    admission_id: Optional[int] = None
    status: str
    payment_method: Optional[str] = None
    paid_at: Optional[datetime] = None
    discharge_date: Optional[datetime] = None
    discount_pct: Decimal = Decimal("0")
    insurance_provider: Optional[str] = None
    insurance_claim: Optional[str] = None
    notes: Optional[str] = None
    grand_total: Optional[Decimal] = None

    model_config = ConfigDict(from_attributes=True)


class InvoiceListItem(BaseModel):
    id: int
    patient_id: int
    patient_name: str
    admission_id: Optional[int] = None
    status: str
    payment_method: Optional[str] = None
    paid_at: Optional[datetime] = None
    discount_pct: Decimal = Decimal("0")
    insurance_provider: Optional[str] = None
    insurance_claim: Optional[str] = None
    frozen: bool = False
    totals: TotalsOut


class BillingStatsOut(BaseModel):
    total_invoices: int
    pending_count: int
    paid_count: int
    pending_revenue: Decimal
    collected_revenue: Decimal
    today_revenue: Decimal


class FollowUpRetryOut(BaseModel):
    done: int
    failed: int


class InvoiceDetailOut(InvoiceListItem):
    notes: Optional[str] = None
    line_items: List[LineItemOut] = []
