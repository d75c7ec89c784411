import logging
from typing import List
from sqlalchemy.orm import Session

from app.core.constants import AttemptEvent
from app.crud.attempt import attempt as crud_attempt
from app.models.attempt import Attempt
from app.utils.events import event_bus

logger = logging.getLogger(__name__)


class MonitoringService:
    """Server-side view of the per-attempt camera resource."""

    def revoke(self, attempt: Attempt) -> bool:
        """Clear the camera flag; returns True only if it was set. Caller commits."""
        if not attempt.camera_enabled:
            return False
        attempt.camera_enabled = False
        return True

    def announce_revoked(self, attempt: Attempt, reason: str) -> None:
        event_bus.emit(AttemptEvent.MONITORING_REVOKED.value, {
            "attempt_id": attempt.id,
            "session_id": attempt.session_id,
            "student_id": attempt.student_id,
            "reason": reason,
        })

    def disable_session_cameras(self, db: Session, session_id: int) -> List[int]:
        attempts = crud_attempt.get_with_camera_enabled(db, session_id=session_id)
        for attempt in attempts:
            self.revoke(attempt)
        db.commit()

        for attempt in attempts:
            self.announce_revoked(attempt, reason="instructor_disabled")
        logger.info(f"Disabled {len(attempts)} camera(s) for session {session_id}")
        return [a.id for a in attempts]


monitoring_service = MonitoringService()
