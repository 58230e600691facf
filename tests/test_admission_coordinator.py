from __future__ import annotations

import threading

import pytest

from hms_core.models import Admission, Bed, Clinician, FollowUpTask, Patient
from hms_core.models.clinician import CLINICIAN_AVAILABLE, CLINICIAN_BUSY
from hms_core.models.follow_up import FOLLOW_UP_RESTORE_CLINICIAN
from hms_core.models.ipd import (
    ADMISSION_ACTIVE,
    ADMISSION_DISCHARGED,
    BED_EMPTY,
    BED_MAINTENANCE,
    BED_OCCUPIED,
    BED_RESERVED,
)
from hms_core.models.patient import PATIENT_ADMITTED, PATIENT_DISCHARGED
from hms_core.services import read_views
from hms_core.services.admission_coordinator import (
    AdmissionCoordinator,
    DischargeResult,
)
from hms_core.services.errors import (
    AlreadyDischargedError,
    ConflictError,
    InvalidInputError,
    LifecycleError,
    NotFoundError,
    StoreUnavailableError,
)
from hms_core.services.follow_up import FollowUpRunner
from hms_core.services.stores import BedStore, ClinicianStore, PatientStore
from hms_core.services.unit_of_work import UnitOfWork


def _count_admissions(session_factory, **filters) -> int:
    with session_factory() as db:
        return db.query(Admission).filter_by(**filters).count()


def _assert_consistent(session_factory) -> None:
    with session_factory() as db:
        assert read_views.find_inconsistencies(db) == []


# ---------------- admit ----------------


def test_admit_occupies_bed_and_marks_patient(coordinator, seed, load,
                                              session_factory) -> None:
    adm = coordinator.admit(seed.ada, seed.gw1, seed.dr_chen, "Pneumonia")

    assert adm.status == ADMISSION_ACTIVE
    assert adm.display_code == f"ADM-{adm.id:06d}"
    assert adm.discharge_date is None
    assert adm.diagnosis == "Pneumonia"

    bed = load(Bed, seed.gw1)
    assert bed.is_occupied is True
    assert bed.state == BED_OCCUPIED
    assert load(Patient, seed.ada).status == PATIENT_ADMITTED
    _assert_consistent(session_factory)


def test_admit_into_occupied_bed_is_rejected(coordinator, seed,
                                             session_factory, load) -> None:
    coordinator.admit(seed.ada, seed.gw1)

    with pytest.raises(ConflictError, match="Bed already occupied"):
        coordinator.admit(seed.alan, seed.gw1)

    assert _count_admissions(session_factory) == 1
    assert load(Patient, seed.alan).status != PATIENT_ADMITTED
    _assert_consistent(session_factory)


def test_admit_already_admitted_patient_is_rejected(coordinator, seed,
                                                    session_factory,
                                                    load) -> None:
    coordinator.admit(seed.ada, seed.gw1)

    with pytest.raises(ConflictError, match="Patient already admitted"):
        coordinator.admit(seed.ada, seed.gw2)

    assert load(Bed, seed.gw2).is_occupied is False
    assert _count_admissions(session_factory) == 1


@pytest.mark.parametrize("state", [BED_RESERVED, BED_MAINTENANCE])
def test_admit_into_unavailable_bed_is_rejected(coordinator, seed,
                                                session_factory, state) -> None:
    with UnitOfWork(session_factory) as uow:
        BedStore(uow).set_state(seed.gw1, state, note="held")

    with pytest.raises(ConflictError):
        coordinator.admit(seed.ada, seed.gw1)
    assert _count_admissions(session_factory) == 0


def test_admit_unknown_entities(coordinator, seed) -> None:
    with pytest.raises(NotFoundError):
        coordinator.admit(9999, seed.gw1)
    with pytest.raises(NotFoundError):
        coordinator.admit(seed.ada, 9999)
    with pytest.raises(NotFoundError):
        coordinator.admit(seed.ada, seed.gw1, clinician_id=9999)


def test_admit_rolls_back_when_patient_write_fails(coordinator, seed,
                                                   session_factory, load,
                                                   monkeypatch) -> None:

    def boom(self, patient_id):
        raise StoreUnavailableError("patient store down")

    monkeypatch.setattr(PatientStore, "mark_admitted", boom)

    with pytest.raises(StoreUnavailableError):
        coordinator.admit(seed.ada, seed.gw1)

    assert _count_admissions(session_factory) == 0
    assert load(Bed, seed.gw1).is_occupied is False
    assert load(Bed, seed.gw1).state == BED_EMPTY


# ---------------- discharge ----------------


def test_discharge_frees_bed_and_patient(coordinator, seed, load,
                                         session_factory) -> None:
    adm = coordinator.admit(seed.ada, seed.gw1, seed.dr_chen)

    result = coordinator.discharge(adm.id)

    assert result.bed_id == seed.gw1
    assert result.clinician_id == seed.dr_chen
    closed = load(Admission, adm.id)
    assert closed.status == ADMISSION_DISCHARGED
    assert closed.discharge_date >= closed.admit_date
    assert load(Bed, seed.gw1).is_occupied is False
    assert load(Bed, seed.gw1).state == BED_EMPTY
    assert load(Patient, seed.ada).status == PATIENT_DISCHARGED
    _assert_consistent(session_factory)


def test_discharge_twice_changes_nothing(coordinator, seed, load) -> None:
    adm = coordinator.admit(seed.ada, seed.gw1)
    coordinator.discharge(adm.id)
    first = load(Admission, adm.id)

    # bed re-used by someone else in between
    coordinator.admit(seed.alan, seed.gw1)

    with pytest.raises(AlreadyDischargedError):
        coordinator.discharge(adm.id)

    again = load(Admission, adm.id)
    assert again.discharge_date == first.discharge_date
    assert again.version == first.version
    assert load(Bed, seed.gw1).is_occupied is True


def test_discharge_unknown_admission(coordinator, seed) -> None:
    with pytest.raises(NotFoundError):
        coordinator.discharge(424242)


def test_discharge_rolls_back_when_bed_write_fails(coordinator, seed, load,
                                                   monkeypatch) -> None:
    adm = coordinator.admit(seed.ada, seed.gw1)

    def boom(self, bed_id):
        raise StoreUnavailableError("bed store down")

    monkeypatch.setattr(BedStore, "release", boom)

    with pytest.raises(StoreUnavailableError):
        coordinator.discharge(adm.id)

    assert load(Admission, adm.id).status == ADMISSION_ACTIVE
    assert load(Bed, seed.gw1).is_occupied is True
    assert load(Patient, seed.ada).status == PATIENT_ADMITTED


def test_readmission_after_discharge(coordinator, seed, load) -> None:
    first = coordinator.admit(seed.ada, seed.gw1)
    coordinator.discharge(first.id)

    second = coordinator.admit(seed.ada, seed.icu1)

    assert second.id != first.id
    assert load(Patient, seed.ada).status == PATIENT_ADMITTED


# ---------------- concurrency ----------------


def test_bed_write_loses_to_committed_admit(coordinator, seed,
                                            session_factory) -> None:
    with pytest.raises(ConflictError):
        with UnitOfWork(session_factory) as uow:
            beds = BedStore(uow)
            assert beds.get(seed.gw1).is_occupied is False

            # another desk admits into the same bed and commits first
            coordinator.admit(seed.alan, seed.gw1)

            beds.occupy(seed.gw1)

    assert _count_admissions(session_factory, bed_id=seed.gw1) == 1
    _assert_consistent(session_factory)


def test_concurrent_admits_for_same_bed(session_factory, seed) -> None:
    barrier = threading.Barrier(2)
    outcomes = {}

    def admit(patient_id):
        coordinator = AdmissionCoordinator(session_factory, timeout=30)
        barrier.wait()
        try:
            outcomes[patient_id] = coordinator.admit(patient_id, seed.gw1)
        except LifecycleError as e:
            outcomes[patient_id] = e

    threads = [
        threading.Thread(target=admit, args=(pid, ))
        for pid in (seed.ada, seed.alan)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    won = [o for o in outcomes.values() if isinstance(o, Admission)]
    lost = [o for o in outcomes.values() if isinstance(o, LifecycleError)]
    assert len(won) == 1
    assert len(lost) == 1
    assert isinstance(lost[0], ConflictError)

    assert _count_admissions(session_factory,
                             bed_id=seed.gw1,
                             status=ADMISSION_ACTIVE) == 1
    _assert_consistent(session_factory)


def test_concurrent_discharges_of_one_admission(session_factory, seed,
                                                load) -> None:
    adm = AdmissionCoordinator(session_factory).admit(seed.ada, seed.gw1)
    barrier = threading.Barrier(2)
    outcomes = []

    def discharge():
        coordinator = AdmissionCoordinator(session_factory, timeout=30)
        barrier.wait()
        try:
            outcomes.append(coordinator.discharge(adm.id))
        except LifecycleError as e:
            outcomes.append(e)

    threads = [threading.Thread(target=discharge) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    won = [o for o in outcomes if isinstance(o, DischargeResult)]
    lost = [o for o in outcomes if isinstance(o, LifecycleError)]
    assert len(won) == 1
    assert len(lost) == 1
    assert isinstance(lost[0], AlreadyDischargedError)

    closed = load(Admission, adm.id)
    assert closed.status == ADMISSION_DISCHARGED
    assert closed.discharge_date == won[0].discharge_date
    assert load(Bed, seed.gw1).is_occupied is False
    assert load(Patient, seed.ada).status == PATIENT_DISCHARGED
    _assert_consistent(session_factory)


# ---------------- discharge follow-ups ----------------


@pytest.fixture()
def discharging(session_factory, follow_ups) -> AdmissionCoordinator:
    return AdmissionCoordinator(session_factory, follow_ups=follow_ups)


def test_discharge_restores_clinician_and_notifies(discharging, seed, load,
                                                   sink,
                                                   session_factory) -> None:
    adm = discharging.admit(seed.ada, seed.gw1, seed.dr_chen)
    with UnitOfWork(session_factory) as uow:
        ClinicianStore(uow).set_availability(seed.dr_chen, CLINICIAN_BUSY)

    result = discharging.discharge(adm.id)

    assert result.warnings == []
    assert result.patient_name == "Ada Lovelace"
    assert result.bed_code == "GW-01"
    assert result.doctor_name == "Dr. Sarah Chen"
    assert load(Clinician, seed.dr_chen).availability == CLINICIAN_AVAILABLE

    [note] = sink.list()
    assert note.type == "patient_discharged"
    assert note.title == "Patient Discharged — Ada Lovelace"
    assert "Bed GW-01 is now available" in note.body
    assert note.payload["admission_id"] == adm.id


def test_discharge_does_not_read_stores_for_names_after_commit(
        discharging, seed, sink, monkeypatch) -> None:
    adm = discharging.admit(seed.ada, seed.gw1, seed.dr_chen)
    run_follow_ups = FollowUpRunner.after_discharge

    def patient_store_down(self, pk, **kwargs):
        raise StoreUnavailableError("patient store down")

    def after_commit(self, **kwargs):
        # the patient store fails the moment the core has committed
        monkeypatch.setattr(PatientStore, "get", patient_store_down)
        return run_follow_ups(self, **kwargs)

    monkeypatch.setattr(FollowUpRunner, "after_discharge", after_commit)

    result = discharging.discharge(adm.id)

    assert result.warnings == []
    assert result.patient_name == "Ada Lovelace"
    assert sink.list()[0].title == "Patient Discharged — Ada Lovelace"


def test_failed_follow_up_after_discharge_is_queued(discharging, seed, load,
                                                    sink, session_factory,
                                                    monkeypatch) -> None:
    adm = discharging.admit(seed.ada, seed.gw1, seed.dr_chen)
    with UnitOfWork(session_factory) as uow:
        ClinicianStore(uow).set_availability(seed.dr_chen, CLINICIAN_BUSY)

    def down(self, clinician_id):
        raise StoreUnavailableError("clinician store down")

    monkeypatch.setattr(FollowUpRunner, "restore_clinician", down)

    result = discharging.discharge(adm.id)

    [warning] = result.warnings
    assert warning.step == FOLLOW_UP_RESTORE_CLINICIAN
    task = load(FollowUpTask, warning.follow_up_id)
    assert task.source == "discharge"
    assert task.admission_id == adm.id
    assert task.payload == {"clinician_id": seed.dr_chen}

    # the discharge itself stands
    assert load(Admission, adm.id).status == ADMISSION_DISCHARGED
    assert load(Bed, seed.gw1).is_occupied is False
    assert load(Clinician, seed.dr_chen).availability == CLINICIAN_BUSY
    assert len(sink.list()) == 1


# ---------------- ward staff ----------------


def test_set_bed_state(coordinator, seed, load) -> None:
    bed = coordinator.set_bed_state(seed.gw2, BED_MAINTENANCE, "deep clean")

    assert bed.state == BED_MAINTENANCE
    assert bed.note == "deep clean"
    with pytest.raises(ConflictError):
        coordinator.admit(seed.ada, seed.gw2)

    coordinator.set_bed_state(seed.gw2, BED_EMPTY)
    assert load(Bed, seed.gw2).state == BED_EMPTY


def test_set_bed_state_refuses_occupied_bed(coordinator, seed, load) -> None:
    coordinator.admit(seed.ada, seed.gw1)

    with pytest.raises(ConflictError):
        coordinator.set_bed_state(seed.gw1, BED_RESERVED)
    with pytest.raises(InvalidInputError):
        coordinator.set_bed_state(seed.gw2, BED_OCCUPIED)

    assert load(Bed, seed.gw1).state == BED_OCCUPIED
