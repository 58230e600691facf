# FILE: hms_core/api/routes_beds.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from hms_core.api.deps import get_coordinator, get_db
from hms_core.api.response import ok
from hms_core.schemas.ipd import BedOut, BedStateIn
from hms_core.services import read_views
from hms_core.services.admission_coordinator import AdmissionCoordinator

router = APIRouter(prefix="/beds", tags=["Beds"])


@router.get("")
def list_beds(
        available_only: bool = Query(False),
        db: Session = Depends(get_db),
):
    rows = read_views.list_beds(db, available_only=available_only)
    return ok([BedOut(**r) for r in rows], meta={"count": len(rows)})


@router.put("/{bed_id}/state")
def set_bed_state(
        bed_id: int,
        payload: BedStateIn,
        coordinator: AdmissionCoordinator = Depends(get_coordinator),
):
    """
    Reserve, block for maintenance or reopen a free bed. Occupancy only
    changes through admit and discharge.
    """
    bed = coordinator.set_bed_state(bed_id, payload.state, payload.note)
    return ok(BedOut.model_validate(bed))
