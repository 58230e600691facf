# FILE: hms_core/models/clinician.py
from sqlalchemy import Column, Integer, String

from hms_core.db.base import Base

CLINICIAN_AVAILABLE = "Available"
CLINICIAN_BUSY = "Busy"
CLINICIAN_OFF_SHIFT = "Off Shift"

CLINICIAN_AVAILABILITY = (CLINICIAN_AVAILABLE, CLINICIAN_BUSY,
                          CLINICIAN_OFF_SHIFT)


class Clinician(Base):
    """
    Attending doctor. Availability is shared with staff tooling; the
    discharge cascade only ever moves it back to Available.
    """
    __tablename__ = "clinicians"
    __table_args__ = {
        "mysql_engine": "InnoDB",
        "mysql_charset": "utf8mb4",
        "mysql_collate": "utf8mb4_unicode_ci",
    }

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(120), nullable=False)
    specialty = Column(String(120), nullable=True)
    availability = Column(String(20),
                          nullable=False,
                          default=CLINICIAN_AVAILABLE)
    version = Column(Integer, nullable=False, default=1)
