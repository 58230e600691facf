# File: hms_core/services/follow_up.py
from __future__ import annotations

import logging
import time
import traceback
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from hms_core.models.clinician import CLINICIAN_AVAILABLE
from hms_core.models.follow_up import (
    FOLLOW_UP_DONE,
    FOLLOW_UP_NOTIFY,
    FOLLOW_UP_PENDING,
    FOLLOW_UP_RESTORE_CLINICIAN,
    FollowUpTask,
)
from hms_core.services.errors import DegradedSuccessWarning
from hms_core.services.notifications import NotificationSink
from hms_core.services.stores import AdmissionStore, ClinicianStore
from hms_core.services.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


def format_exception(exc: Exception) -> str:
    return "".join(
        traceback.format_exception(type(exc), exc, exc.__traceback__))


def discharge_notification(*,
                           type: str,
                           title: str,
                           patient_name: str,
                           bed_code: Optional[str],
                           doctor_name: Optional[str],
                           **ids: Any) -> Dict[str, Any]:
    """Payload pushed to the notification sink once a discharge commits."""
    bed = bed_code or "N/A"
    doctor = doctor_name or "The attending clinician"
    return {
        "type": type,
        "title": f"{title} — {patient_name}",
        "body": (f"{patient_name} has been discharged. "
                 f"Bed {bed} is now available. "
                 f"{doctor} is available for next patient."),
        "patient_name": patient_name,
        "bed_code": bed_code,
        "doctor_name": doctor_name,
        **ids,
    }


class FollowUpRunner:
    """
    Best-effort steps that run after a discharge has committed:
    restoring the clinician to Available and pushing the notification.

    A failing step never touches the committed core. It is logged and
    written to ``follow_up_tasks`` so ``retry_pending`` can replay it;
    if even that write fails the payload goes to the error log.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        sink: NotificationSink,
        *,
        timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.session_factory = session_factory
        self.sink = sink
        self.timeout = timeout
        self.clock = clock

    def unit(self) -> UnitOfWork:
        return UnitOfWork(self.session_factory,
                          timeout=self.timeout,
                          clock=self.clock)

    # ------------------------------------------------------------
    # steps
    # ------------------------------------------------------------
    def restore_clinician(self, clinician_id: int) -> bool:
        """
        Available again only when no other Active admission references
        the clinician. Returns True when availability was written.
        """
        with self.unit() as uow:
            if AdmissionStore(uow).count_active_for_clinician(clinician_id):
                return False
            ClinicianStore(uow).set_availability(clinician_id,
                                                 CLINICIAN_AVAILABLE)
        return True

    def notify(self, notification: Dict[str, Any]) -> None:
        self.sink.push(**notification)

    def _run(self, kind: str, payload: Dict[str, Any]) -> None:
        if kind == FOLLOW_UP_RESTORE_CLINICIAN:
            self.restore_clinician(int(payload["clinician_id"]))
        elif kind == FOLLOW_UP_NOTIFY:
            self.notify(payload)
        else:
            raise ValueError(f"Unknown follow-up kind: {kind}")

    # ------------------------------------------------------------
    # cascade entry point
    # ------------------------------------------------------------
    def after_discharge(
        self,
        *,
        source: str,
        clinician_id: Optional[int],
        notification: Dict[str, Any],
        invoice_id: Optional[int] = None,
        admission_id: Optional[int] = None,
    ) -> List[DegradedSuccessWarning]:
        steps = []
        if clinician_id is not None:
            steps.append((FOLLOW_UP_RESTORE_CLINICIAN, {
                "clinician_id": clinician_id
            }, "Clinician status could not be refreshed"))
        steps.append((FOLLOW_UP_NOTIFY, notification,
                      "Discharge notification could not be sent"))

        warnings: List[DegradedSuccessWarning] = []
        for kind, payload, msg in steps:
            try:
                self._run(kind, payload)
            except Exception as e:
                logger.warning("%s step failed for %s (invoice=%s admission=%s): %s",
                               kind, source, invoice_id, admission_id, e)
                task_id = self._enqueue(kind=kind,
                                        payload=payload,
                                        source=source,
                                        invoice_id=invoice_id,
                                        admission_id=admission_id,
                                        exc=e)
                warnings.append(
                    DegradedSuccessWarning(
                        step=kind,
                        msg=f"{msg}; please verify manually",
                        follow_up_id=task_id,
                    ))
        return warnings

    # ------------------------------------------------------------
    # queue
    # ------------------------------------------------------------
    def _enqueue(self, *, kind: str, payload: Dict[str, Any], source: str,
                 invoice_id: Optional[int], admission_id: Optional[int],
                 exc: Exception) -> Optional[int]:
        try:
            with self.unit() as uow:
                task = uow.add(
                    FollowUpTask(kind=kind,
                                 payload=payload,
                                 source=source,
                                 invoice_id=invoice_id,
                                 admission_id=admission_id,
                                 status=FOLLOW_UP_PENDING,
                                 attempts=1,
                                 last_error=str(exc)[:1000]))
                task_id = task.id
        except Exception as e:
            # last resort: operational alert in the log, payload included
            logger.critical(
                "Follow-up %s could not be queued (invoice=%s admission=%s payload=%r): %s\n%s",
                kind, invoice_id, admission_id, payload, e,
                format_exception(exc))
            return None
        logger.error("Queued follow-up task %s (%s) for retry", task_id, kind)
        return task_id

    def pending(self) -> List[FollowUpTask]:
        with self.unit() as uow:
            return uow.scalars(
                select(FollowUpTask).where(
                    FollowUpTask.status == FOLLOW_UP_PENDING).order_by(
                        FollowUpTask.id))

    def retry_pending(self) -> Dict[str, int]:
        done = failed = 0
        for task in self.pending():
            try:
                self._run(task.kind, dict(task.payload or {}))
            except Exception as e:
                failed += 1
                logger.warning("Follow-up task %s failed again: %s", task.id,
                               e)
                self._record_attempt(task.id, error=str(e)[:1000])
                continue
            done += 1
            self._record_attempt(task.id, error=None, status=FOLLOW_UP_DONE)
        if done or failed:
            logger.info("Follow-up retry: %s done, %s still pending", done,
                        failed)
        return {"done": done, "failed": failed}

    def _record_attempt(self,
                        task_id: int,
                        *,
                        error: Optional[str],
                        status: str = FOLLOW_UP_PENDING) -> None:
        with self.unit() as uow:
            task = uow.scalar(
                select(FollowUpTask).where(FollowUpTask.id == task_id))
            if task is None:
                return
            task.attempts = (task.attempts or 0) + 1
            task.status = status
            task.last_error = error
