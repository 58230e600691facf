# hms_core/services/billing_math.py
from __future__ import annotations

import math
from dataclasses import dataclass, asdict
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, Optional

SECONDS_PER_DAY = 24 * 60 * 60


def D(x) -> Decimal:
    try:
        return Decimal(str(x or 0))
    except Exception:
        return Decimal("0")


def money0(x) -> Decimal:
    # invoices are settled in whole currency units
    return D(x).quantize(Decimal("1"), rounding=ROUND_HALF_UP)


@dataclass
class RoomCharge:
    days: int
    rate: Decimal
    total: Decimal


@dataclass
class InvoiceTotals:
    room_days: int
    room_rate: Decimal
    room_charge: Decimal
    treatment_total: Decimal
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    grand_total: Decimal

    def as_columns(self) -> Dict[str, Any]:
        return asdict(self)


def room_charge(admit_date: Optional[datetime], rate,
                until: datetime) -> RoomCharge:
    """
    Days are whole, rounded up, minimum one: a stay of 3 hours bills one
    day, a stay of 49 hours bills three.
    """
    rate = D(rate)
    if admit_date is None:
        return RoomCharge(days=0, rate=rate, total=Decimal("0"))
    seconds = (until - admit_date).total_seconds()
    days = max(1, math.ceil(seconds / SECONDS_PER_DAY))
    return RoomCharge(days=days, rate=rate, total=money0(rate * days))


def compute_invoice_totals(
    line_amounts: Iterable[Any],
    *,
    discount_pct,
    tax_rate,
    room: Optional[RoomCharge] = None,
) -> InvoiceTotals:
    """
    subtotal = treatment + room
    discount = round(subtotal * pct / 100)
    tax      = round((subtotal - discount) * tax_rate)
    grand    = subtotal - discount + tax
    """
    room = room or RoomCharge(days=0, rate=Decimal("0"), total=Decimal("0"))
    treatment = sum((D(a) for a in line_amounts), Decimal("0"))

    pct = D(discount_pct)
    if pct < 0:
        pct = Decimal("0")
    if pct > 100:
        pct = Decimal("100")

    subtotal = treatment + room.total
    discount_amount = money0(subtotal * pct / Decimal("100"))
    taxable = subtotal - discount_amount
    tax_amount = money0(taxable * D(tax_rate))
    grand = taxable + tax_amount

    return InvoiceTotals(
        room_days=room.days,
        room_rate=room.rate,
        room_charge=room.total,
        treatment_total=treatment,
        subtotal=subtotal,
        discount_amount=discount_amount,
        tax_amount=tax_amount,
        grand_total=grand,
    )


def live_invoice_totals(
    line_amounts: Iterable[Any],
    *,
    discount_pct,
    tax_rate,
    default_ward_rate,
    now: datetime,
    admit_date: Optional[datetime] = None,
    discharge_date: Optional[datetime] = None,
    ward_rate=None,
    until: Optional[datetime] = None,
) -> InvoiceTotals:
    """
    Totals of a not yet frozen invoice. A closed stay is billed up to
    its discharge date, an open one up to ``until`` or ``now``. A ward
    without a rate bills ``default_ward_rate``; no admit date means no
    room charge.
    """
    room = None
    if admit_date is not None:
        rate = ward_rate if ward_rate else default_ward_rate
        room = room_charge(admit_date, rate, discharge_date or until or now)
    return compute_invoice_totals(line_amounts,
                                  discount_pct=discount_pct,
                                  tax_rate=tax_rate,
                                  room=room)
