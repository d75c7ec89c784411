import logging
from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session
from fastapi import HTTPException, status

from app.core import timer
from app.core.config import settings
from app.core.constants import AttemptEvent, SeverityEnum
from app.crud.attempt import attempt as crud_attempt
from app.crud.proctoring_incident import proctoring_incident as crud_incident
from app.crud.student_warning import student_warning as crud_warning
from app.models.attempt import Attempt
from app.models.proctoring_incident import ProctoringIncident
from app.models.student_warning import StudentWarning
from app.schemas.proctoring import Incident, IncidentCreate, IncidentLogged, WarningCreate
from app.schemas.user import UserContext
from app.services.exam_session import exam_session_service
from app.services.expiry import expiry_enforcer
from app.utils.events import event_bus

logger = logging.getLogger(__name__)


class ProctoringService:
    """
    Invigilation records for a running attempt: incidents the exam screen
    reports about the student, and warnings an instructor sends back.

    Both are only accepted while the attempt is in progress; the expiry guard
    runs first, so nothing lands on an attempt whose time is up.
    """

    def _load(self, db: Session, attempt_id: int) -> Attempt:
        attempt = crud_attempt.get_for_update(db, attempt_id)
        if not attempt:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Attempt not found.")
        return attempt

    def _require_student(self, attempt: Attempt, context: UserContext) -> None:
        if attempt.student_id != context.user_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You can only act on your own exam attempts."
            )

    def _require_invigilator(self, attempt: Attempt, context: UserContext) -> None:
        if not (context.is_instructor and attempt.session.instructor_id == context.user_id):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only the session's instructor can invigilate this attempt."
            )

    def should_flag(self, incident_count: int, severity: SeverityEnum) -> bool:
        if severity == SeverityEnum.CRITICAL:
            return True
        if severity == SeverityEnum.HIGH and incident_count >= settings.FLAG_HIGH_SEVERITY_INCIDENTS:
            return True
        return incident_count >= settings.FLAG_TOTAL_INCIDENTS

    def log_incident(
        self, db: Session, attempt_id: int, incident_in: IncidentCreate, context: UserContext,
        now: Optional[datetime] = None,
    ) -> IncidentLogged:
        now = now or timer.utcnow()
        attempt = self._load(db, attempt_id)
        self._require_student(attempt, context)
        expiry_enforcer.require_active(db, attempt, now)

        incident = crud_incident.create(
            db,
            obj_in={
                "attempt_id": attempt.id,
                "session_id": attempt.session_id,
                "student_id": attempt.student_id,
                "violation_type": incident_in.violation_type.value,
                "severity": incident_in.severity.value,
                "details": incident_in.details,
                "browser_data": incident_in.browser_data,
                "occurred_at": now,
            },
            commit=False,
        )
        attempt.incident_count = (attempt.incident_count or 0) + 1
        newly_flagged = not attempt.is_flagged and self.should_flag(attempt.incident_count, incident_in.severity)
        if newly_flagged:
            attempt.is_flagged = True
        db.commit()
        db.refresh(incident)

        if newly_flagged:
            logger.warning(
                f"Attempt {attempt.id} flagged after {attempt.incident_count} incident(s), "
                f"last: {incident.violation_type} ({incident.severity})"
            )
        event_bus.emit(AttemptEvent.INCIDENT_LOGGED.value, {
            "attempt_id": attempt.id,
            "session_id": attempt.session_id,
            "student_id": attempt.student_id,
            "incident_id": incident.id,
            "violation_type": incident.violation_type,
            "severity": incident.severity,
            "incident_count": attempt.incident_count,
            "is_flagged": attempt.is_flagged,
        })
        return IncidentLogged(
            incident=Incident.model_validate(incident),
            incident_count=attempt.incident_count,
            is_flagged=attempt.is_flagged,
        )

    def list_session_incidents(self, db: Session, session_id: int, context: UserContext) -> List[ProctoringIncident]:
        exam_session_service.get_session(db, session_id=session_id, context=context)
        return crud_incident.get_by_session(db, session_id=session_id)

    def send_warning(
        self, db: Session, attempt_id: int, warning_in: WarningCreate, context: UserContext,
        now: Optional[datetime] = None,
    ) -> StudentWarning:
        now = now or timer.utcnow()
        attempt = self._load(db, attempt_id)
        self._require_invigilator(attempt, context)
        expiry_enforcer.require_active(db, attempt, now)

        warning = crud_warning.create(
            db,
            obj_in={
                "attempt_id": attempt.id,
                "session_id": attempt.session_id,
                "student_id": attempt.student_id,
                "instructor_id": context.user_id,
                "message": warning_in.message,
                "severity": warning_in.severity.value,
                "sent_at": now,
            },
            commit=False,
        )
        attempt.warning_count = (attempt.warning_count or 0) + 1
        db.commit()
        db.refresh(warning)

        logger.info(f"Instructor {context.user_id} warned student {attempt.student_id} on attempt {attempt.id}")
        event_bus.emit(AttemptEvent.WARNING_SENT.value, {
            "attempt_id": attempt.id,
            "student_id": attempt.student_id,
            "warning_id": warning.id,
            "message": warning.message,
            "severity": warning.severity,
            "warning_count": attempt.warning_count,
        })
        return warning

    def list_warnings(
        self, db: Session, attempt_id: int, context: UserContext, pending_only: bool = False
    ) -> List[StudentWarning]:
        attempt = crud_attempt.get(db, id=attempt_id)
        if not attempt:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Attempt not found.")
        if attempt.student_id != context.user_id:
            self._require_invigilator(attempt, context)
        return crud_warning.get_by_attempt(db, attempt_id=attempt.id, pending_only=pending_only)

    def acknowledge_warning(
        self, db: Session, attempt_id: int, warning_id: int, context: UserContext,
        now: Optional[datetime] = None,
    ) -> StudentWarning:
        """Mark a warning as read. Acknowledging twice keeps the first timestamp."""
        now = now or timer.utcnow()
        attempt = crud_attempt.get(db, id=attempt_id)
        if not attempt:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Attempt not found.")
        self._require_student(attempt, context)

        warning = crud_warning.get_for_attempt(db, attempt_id=attempt.id, warning_id=warning_id)
        if not warning:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Warning not found.")
        if warning.acknowledged_at is None:
            warning = crud_warning.update(db, db_obj=warning, obj_in={"acknowledged_at": now})
        return warning


proctoring_service = ProctoringService()
