# hms_core/db/base.py
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """All lifecycle tables (patients, beds, admissions, invoices, ...) inherit from this."""
    pass
