# FILE: hms_core/schemas/ipd.py
from __future__ import annotations
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator


class AdmitIn(BaseModel):
    patient_id: int = Field(..., gt=0)
    bed_id: int = Field(..., gt=0)
    clinician_id: Optional[int] = Field(None, gt=0)
    diagnosis: Optional[str] = None

    @field_validator("diagnosis")
    @classmethod
    def _strip_diagnosis(cls, v: Optional[str]) -> Optional[str]:
        v = (v or "").strip()
        return v or None


class AdmissionOut(BaseModel):
    id: int
    display_code: str
    patient_id: int
    bed_id: int
    clinician_id: Optional[int] = None
    diagnosis: Optional[str] = None
    admit_date: datetime
    discharge_date: Optional[datetime] = None
    status: str

    model_config = ConfigDict(from_attributes=True)


class DischargeOut(BaseModel):
    admission_id: int
    patient_id: int
    patient_name: str
    bed_id: int
    bed_code: Optional[str] = None
    clinician_id: Optional[int] = None
    doctor_name: Optional[str] = None
    discharge_date: datetime
    warnings: List[dict] = []

    model_config = ConfigDict(from_attributes=True)


class AdmissionListItem(BaseModel):
    id: int
    display_code: str
    status: str
    admit_date: Optional[datetime] = None
    discharge_date: Optional[datetime] = None
    diagnosis: Optional[str] = None

    patient_id: int
    patient_name: str
    patient_status: Optional[str] = None

    bed_id: Optional[int] = None
    bed_code: Optional[str] = None
    bed_occupied: bool = False
    ward_name: Optional[str] = None

    clinician_id: Optional[int] = None
    doctor_name: Optional[str] = None


class AdmissionListOut(BaseModel):
    items: List[AdmissionListItem]
    total: int
    limit: int
    offset: int


class BedStateIn(BaseModel):
    state: str = Field(..., description="empty / reserved / maintenance")
    note: str = Field("", max_length=255)


class BedOut(BaseModel):
    id: int
    code: str
    ward_code: Optional[str] = None
    ward_name: Optional[str] = None
    state: str
    is_occupied: bool = False
    note: str = ""

    model_config = ConfigDict(from_attributes=True)
