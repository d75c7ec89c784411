import logging
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Session

from app.core import timer
from app.core.constants import AttemptStatusEnum
from app.core.exceptions import AttemptNotActiveError, FinalizationError
from app.models.attempt import Attempt
from app.services.attempt_state import attempt_state_service
from app.services.finalizer import finalizer_service

logger = logging.getLogger(__name__)


class ExpiryEnforcer:
    """
    Guard for every path that reads or writes an in-progress attempt.

    The caller loads the attempt under a row lock and hands it here first; if
    the allotment is spent the attempt is closed as expired before anything
    the caller wanted is applied.
    """

    def enforce(self, db: Session, attempt: Attempt, now: Optional[datetime] = None) -> timer.TimerReading:
        now = now or timer.utcnow()
        if attempt.status == AttemptStatusEnum.NOT_STARTED:
            return timer.read_timer(None, attempt.allotted_duration_seconds, now)
        if attempt.status != AttemptStatusEnum.IN_PROGRESS:
            return timer.closed_reading(now)

        reading = timer.read_timer(attempt.anchor_start_at, attempt.allotted_duration_seconds, now)
        if not reading.is_expired:
            return reading

        record = attempt_state_service.transition(
            db, attempt, AttemptStatusEnum.EXPIRED, reason="time_exhausted", now=now
        )
        db.commit()
        logger.info(f"Attempt {attempt.id} expired at {now.isoformat()}")
        attempt_state_service.publish(attempt, record)

        try:
            finalizer_service.finalize(db, attempt.id, now=now)
        except FinalizationError as exc:
            # Left expired; the reconciliation job and the admin listing pick it up.
            logger.error(f"Attempt {attempt.id} expired but could not be finalized: {exc.reason}")
        return timer.closed_reading(now)

    def require_active(self, db: Session, attempt: Attempt, now: Optional[datetime] = None) -> timer.TimerReading:
        reading = self.enforce(db, attempt, now)
        if attempt.status != AttemptStatusEnum.IN_PROGRESS:
            raise AttemptNotActiveError(
                "This attempt is no longer active.",
                context={"attempt_id": attempt.id, "status": AttemptStatusEnum(attempt.status).value},
            )
        return reading


expiry_enforcer = ExpiryEnforcer()
