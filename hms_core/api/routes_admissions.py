# FILE: hms_core/api/routes_admissions.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from starlette.responses import StreamingResponse

from hms_core.api.deps import get_coordinator, get_db
from hms_core.api.response import ok
from hms_core.schemas.ipd import (
    AdmissionListOut,
    AdmissionOut,
    AdmitIn,
    AdmissionListItem,
    DischargeOut,
)
from hms_core.services import read_views
from hms_core.services.admission_coordinator import AdmissionCoordinator

router = APIRouter(prefix="/admissions", tags=["Admissions"])
logger = logging.getLogger(__name__)


# ---------------- Commands ----------------


@router.post("/admit")
def admit_patient(
        payload: AdmitIn,
        coordinator: AdmissionCoordinator = Depends(get_coordinator),
):
    adm = coordinator.admit(
        patient_id=payload.patient_id,
        bed_id=payload.bed_id,
        clinician_id=payload.clinician_id,
        diagnosis=payload.diagnosis,
    )
    return ok(AdmissionOut.model_validate(adm), status_code=201)


@router.post("/{admission_id}/discharge")
def discharge_admission(
        admission_id: int,
        coordinator: AdmissionCoordinator = Depends(get_coordinator),
):
    freed = coordinator.discharge(admission_id)
    out = DischargeOut(
        admission_id=freed.admission_id,
        patient_id=freed.patient_id,
        patient_name=freed.patient_name,
        bed_id=freed.bed_id,
        bed_code=freed.bed_code,
        clinician_id=freed.clinician_id,
        doctor_name=freed.doctor_name,
        discharge_date=freed.discharge_date,
        warnings=[w.to_dict() for w in freed.warnings],
    )
    return ok(out, meta={"degraded": bool(freed.warnings)})


# ---------------- Read views ----------------


@router.get("")
def list_admissions(
        status: str = Query("", description="Active / Discharged"),
        patient_id: Optional[int] = Query(None),
        limit: int = Query(100, ge=1, le=500),
        offset: int = Query(0, ge=0),
        db: Session = Depends(get_db),
):
    data = read_views.list_admissions(db,
                                      status=status,
                                      patient_id=patient_id,
                                      limit=limit,
                                      offset=offset)
    return ok(AdmissionListOut(**data))


@router.get("/export")
def export_admissions_excel(
        status: str = Query(""),
        db: Session = Depends(get_db),
):
    bio = read_views.export_admissions_xlsx(db, status=status)
    filename = f"admissions_{datetime.now().strftime('%Y%m%d_%H%M')}.xlsx"
    return StreamingResponse(
        bio,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/{admission_id}")
def get_admission(admission_id: int, db: Session = Depends(get_db)):
    return ok(AdmissionListItem(**read_views.get_admission_view(db, admission_id)))
