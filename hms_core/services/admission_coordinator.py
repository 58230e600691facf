# File: hms_core/services/admission_coordinator.py
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.orm import sessionmaker

from hms_core.models.ipd import ADMISSION_ACTIVE, BED_EMPTY, Admission, Bed
from hms_core.models.patient import PATIENT_ADMITTED
from hms_core.services.errors import (
    AlreadyDischargedError,
    ConflictError,
    DegradedSuccessWarning,
)
from hms_core.services.follow_up import FollowUpRunner, discharge_notification
from hms_core.services.stores import (
    AdmissionStore,
    BedStore,
    ClinicianStore,
    PatientStore,
)
from hms_core.services.unit_of_work import UnitOfWork
from hms_core.utils.timezone import now_local

logger = logging.getLogger(__name__)


@dataclass
class DischargeResult:
    admission_id: int
    patient_id: int
    patient_name: str
    bed_id: int
    bed_code: Optional[str]
    clinician_id: Optional[int]
    doctor_name: Optional[str]
    discharge_date: datetime
    warnings: List[DegradedSuccessWarning] = field(default_factory=list)


class AdmissionCoordinator:
    """
    The only component allowed to change more than one entity per call.

    ``admit`` and ``discharge`` each run as one unit of work: either all
    of their writes commit or none do. The ``*_in`` variants run inside a
    caller-owned unit so other cascades (billing) can compose them.

    With ``follow_ups`` set, a committed ``discharge`` also restores the
    clinician and sends the notification; those steps can only degrade
    the result (see ``DischargeResult.warnings``).
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        follow_ups: Optional[FollowUpRunner] = None,
        timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.session_factory = session_factory
        self.follow_ups = follow_ups
        self.timeout = timeout
        self.clock = clock

    def unit(self) -> UnitOfWork:
        return UnitOfWork(self.session_factory,
                          timeout=self.timeout,
                          clock=self.clock)

    # ------------------------------------------------------------
    # admit
    # ------------------------------------------------------------
    def admit(self,
              patient_id: int,
              bed_id: int,
              clinician_id: Optional[int] = None,
              diagnosis: Optional[str] = None) -> Admission:
        try:
            with self.unit() as uow:
                adm = self.admit_in(uow,
                                    patient_id=patient_id,
                                    bed_id=bed_id,
                                    clinician_id=clinician_id,
                                    diagnosis=diagnosis)
        except ConflictError as e:
            logger.warning("Admit rejected patient=%s bed=%s: %s", patient_id,
                           bed_id, e.msg)
            raise
        logger.info("Admitted patient=%s bed=%s admission=%s", patient_id,
                    bed_id, adm.id)
        return adm

    def admit_in(self,
                 uow: UnitOfWork,
                 *,
                 patient_id: int,
                 bed_id: int,
                 clinician_id: Optional[int] = None,
                 diagnosis: Optional[str] = None) -> Admission:
        patients = PatientStore(uow)
        beds = BedStore(uow)
        admissions = AdmissionStore(uow)

        patient = patients.get(patient_id)
        bed = beds.get(bed_id)
        if clinician_id is not None:
            ClinicianStore(uow).get(clinician_id)

        if (patient.status == PATIENT_ADMITTED
                or admissions.active_for_patient(patient_id) is not None):
            raise ConflictError("Patient already admitted",
                                patient_id=patient_id)
        if bed.is_occupied or admissions.active_for_bed(bed_id) is not None:
            raise ConflictError("Bed already occupied", bed_id=bed_id)
        if bed.state != BED_EMPTY:
            raise ConflictError(f"Bed is {bed.state}", bed_id=bed_id)

        # 1) admission row, 2) bed CAS, 3) patient CAS
        adm = admissions.create(patient_id=patient_id,
                                bed_id=bed_id,
                                clinician_id=clinician_id,
                                diagnosis=diagnosis,
                                admit_date=now_local(),
                                status=ADMISSION_ACTIVE)
        beds.occupy(bed_id)
        patients.mark_admitted(patient_id)

        return uow.refresh(adm)

    # ------------------------------------------------------------
    # discharge
    # ------------------------------------------------------------
    def discharge(self, admission_id: int) -> DischargeResult:
        try:
            with self.unit() as uow:
                result = self.discharge_in(uow, admission_id)
        except AlreadyDischargedError:
            logger.warning("Discharge rejected: admission %s already closed",
                           admission_id)
            raise
        logger.info("Discharged admission=%s bed=%s patient=%s",
                    admission_id, result.bed_id, result.patient_id)

        # committed from here on; follow-ups only add warnings
        if self.follow_ups is not None:
            result.warnings = self.follow_ups.after_discharge(
                source="discharge",
                clinician_id=result.clinician_id,
                admission_id=admission_id,
                notification=discharge_notification(
                    type="patient_discharged",
                    title="Patient Discharged",
                    patient_name=result.patient_name,
                    bed_code=result.bed_code,
                    doctor_name=result.doctor_name,
                    admission_id=admission_id,
                ),
            )
            if result.warnings:
                logger.warning("Admission %s discharged with %d degraded step(s)",
                               admission_id, len(result.warnings))
        return result

    def discharge_in(self,
                     uow: UnitOfWork,
                     admission_id: int,
                     *,
                     at: Optional[datetime] = None) -> DischargeResult:
        admissions = AdmissionStore(uow)
        beds = BedStore(uow)
        patients = PatientStore(uow)

        adm = admissions.get(admission_id)
        if adm.status != ADMISSION_ACTIVE:
            raise AlreadyDischargedError("Admission already discharged",
                                         admission_id=admission_id)

        stop_ts = at or now_local()
        if adm.admit_date and stop_ts < adm.admit_date:
            stop_ts = adm.admit_date

        patient_id, bed_id, clinician_id = (adm.patient_id, adm.bed_id,
                                            adm.clinician_id)
        # names are read here so nothing after commit has to touch the store
        patient_name = patients.get(patient_id).full_name
        bed_code = beds.get(bed_id).code
        doctor_name = (ClinicianStore(uow).get(clinician_id).name
                       if clinician_id is not None else None)

        # 1) close admission (guarded by status=Active), 2) free bed, 3) patient
        admissions.close(admission_id, stop_ts)
        beds.release(bed_id)
        patients.mark_discharged(patient_id)

        return DischargeResult(
            admission_id=admission_id,
            patient_id=patient_id,
            patient_name=patient_name,
            bed_id=bed_id,
            bed_code=bed_code,
            clinician_id=clinician_id,
            doctor_name=doctor_name,
            discharge_date=stop_ts,
        )

    # ------------------------------------------------------------
    # ward staff
    # ------------------------------------------------------------
    def set_bed_state(self, bed_id: int, state: str, note: str = "") -> Bed:
        with self.unit() as uow:
            beds = BedStore(uow)
            beds.set_state(bed_id, state, note)
            bed = beds.get(bed_id)
        logger.info("Bed %s set to %s", bed.code, state)
        return bed
