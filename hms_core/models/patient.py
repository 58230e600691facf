# FILE: hms_core/models/patient.py
from sqlalchemy import Column, Integer, String, DateTime

from hms_core.db.base import Base
from hms_core.utils.timezone import now_local

PATIENT_WAITING = "Waiting"
PATIENT_ADMITTED = "Admitted"
PATIENT_DISCHARGED = "Discharged"

PATIENT_STATUSES = (PATIENT_WAITING, PATIENT_ADMITTED, PATIENT_DISCHARGED)


class Patient(Base):
    __tablename__ = "patients"
    __table_args__ = {
        "mysql_engine": "InnoDB",
        "mysql_charset": "utf8mb4",
        "mysql_collate": "utf8mb4_unicode_ci",
    }

    id = Column(Integer, primary_key=True, index=True)

    # core demographics
    first_name = Column(String(120), nullable=False)
    last_name = Column(String(120), nullable=True)
    phone = Column(String(20), index=True, nullable=True)

    # Waiting / Admitted / Discharged (written by the admission coordinator)
    status = Column(String(20), nullable=False, default=PATIENT_WAITING)

    registered_at = Column(DateTime, default=now_local, nullable=False)
    version = Column(Integer, nullable=False, default=1)

    @property
    def full_name(self) -> str:
        return f"{(self.first_name or '').strip()} {(self.last_name or '').strip()}".strip()
