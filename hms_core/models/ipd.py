from __future__ import annotations
from sqlalchemy import (Column, Integer, String, DateTime, Text, ForeignKey,
                        Boolean, Numeric, Index)
from sqlalchemy.orm import relationship
from hms_core.db.base import Base
from hms_core.utils.timezone import now_local

# ---------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------

BED_EMPTY = "empty"
BED_OCCUPIED = "occupied"
BED_RESERVED = "reserved"
BED_MAINTENANCE = "maintenance"

BED_STATES = (BED_EMPTY, BED_OCCUPIED, BED_RESERVED, BED_MAINTENANCE)
# states ward staff may set by hand (outside the cascade)
BED_STAFF_STATES = (BED_EMPTY, BED_RESERVED, BED_MAINTENANCE)

ADMISSION_ACTIVE = "Active"
ADMISSION_DISCHARGED = "Discharged"

# ---------------------------------------------------------------------
# Masters
# ---------------------------------------------------------------------


class Ward(Base):
    __tablename__ = "wards"
    __table_args__ = {
        "mysql_engine": "InnoDB",
        "mysql_charset": "utf8mb4",
    }

    id = Column(Integer, primary_key=True)
    code = Column(String(20), unique=True, nullable=False)
    name = Column(String(100), nullable=False)
    label = Column(String(60), default="")
    rate_per_day = Column(Numeric(12, 2), nullable=False, default=0)
    is_active = Column(Boolean, default=True)

    beds = relationship("Bed", back_populates="ward")


class Bed(Base):
    __tablename__ = "beds"
    __table_args__ = (
        Index("ix_beds_occupied", "is_occupied"),
        Index("ix_beds_ward_state", "ward_code", "state"),
        {
            "mysql_engine": "InnoDB",
            "mysql_charset": "utf8mb4",
        },
    )

    id = Column(Integer, primary_key=True)
    code = Column(String(30), unique=True, nullable=False)
    ward_code = Column(String(20),
                       ForeignKey("wards.code"),
                       nullable=False,
                       index=True)
    # only the admission coordinator flips this
    is_occupied = Column(Boolean, nullable=False, default=False)
    state = Column(String(20), nullable=False,
                   default=BED_EMPTY)  # empty/occupied/reserved/maintenance
    note = Column(String(255), default="")
    version = Column(Integer, nullable=False, default=1)

    ward = relationship("Ward", back_populates="beds")

# ---------------------------------------------------------------------
# Core Workflow
# ---------------------------------------------------------------------


class Admission(Base):
    """
    One hospital stay. Rows are never deleted: the admit/discharge
    history per bed and per patient is the table itself.
    """
    __tablename__ = "admissions"
    __table_args__ = (
        Index("ix_admissions_bed_status", "bed_id", "status"),
        Index("ix_admissions_patient_status", "patient_id", "status"),
        Index("ix_admissions_clinician_status", "clinician_id", "status"),
        {
            "mysql_engine": "InnoDB",
            "mysql_charset": "utf8mb4",
        },
    )

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer,
                        ForeignKey("patients.id"),
                        nullable=False,
                        index=True)
    bed_id = Column(Integer, ForeignKey("beds.id"), nullable=False)
    clinician_id = Column(Integer,
                          ForeignKey("clinicians.id"),
                          nullable=True)

    diagnosis = Column(Text, nullable=True)
    admit_date = Column(DateTime, default=now_local, nullable=False)
    discharge_date = Column(DateTime, nullable=True)
    status = Column(String(20), nullable=False,
                    default=ADMISSION_ACTIVE)  # Active/Discharged
    version = Column(Integer, nullable=False, default=1)

    patient = relationship("Patient")
    bed = relationship("Bed")
    clinician = relationship("Clinician")

    @property
    def display_code(self) -> str:
        return f"ADM-{self.id:06d}"
