# hms_core/models/__init__.py
from .patient import Patient
from .clinician import Clinician
from .ipd import Ward, Bed, Admission
from .billing import Invoice, InvoiceLineItem
from .follow_up import FollowUpTask

__all__ = [
    "Patient",
    "Clinician",
    "Ward",
    "Bed",
    "Admission",
    "Invoice",
    "InvoiceLineItem",
    "FollowUpTask",
]
