import logging
from datetime import datetime
from typing import Dict, Optional
from sqlalchemy.orm import Session

from app.core import timer
from app.core.config import settings
from app.core.exceptions import FinalizationError
from app.crud.attempt import attempt as crud_attempt
from app.services.expiry import expiry_enforcer
from app.services.finalizer import finalizer_service

logger = logging.getLogger(__name__)


class ReconciliationService:
    """
    Background sweep. Request paths already close and score attempts on their
    own; this only catches attempts nobody touched after their time ran out and
    retries scoring that failed earlier.
    """

    def expire_overdue(self, db: Session, now: Optional[datetime] = None) -> int:
        now = now or timer.utcnow()
        expired = 0
        candidates = crud_attempt.get_in_progress(db, limit=settings.RECONCILE_BATCH_SIZE)
        overdue = [
            c.id for c in candidates
            if timer.read_timer(c.anchor_start_at, c.allotted_duration_seconds, now).is_expired
        ]

        # One row lock at a time; each is released by enforce's commit or the rollback below.
        for attempt_id in overdue:
            attempt = crud_attempt.get_for_update(db, attempt_id)
            if attempt is None or not attempt.is_in_progress:
                db.rollback()
                continue
            if expiry_enforcer.enforce(db, attempt, now).is_expired:
                expired += 1
        return expired

    def retry_finalization(self, db: Session, now: Optional[datetime] = None) -> Dict[str, int]:
        now = now or timer.utcnow()
        stats = {"finalized": 0, "failed": 0}
        for attempt in crud_attempt.get_pending_finalization(db, limit=settings.RECONCILE_BATCH_SIZE):
            try:
                finalizer_service.finalize(db, attempt.id, now=now)
                stats["finalized"] += 1
            except FinalizationError as exc:
                stats["failed"] += 1
                logger.warning(f"Reconciliation could not finalize attempt {attempt.id}: {exc.reason}")
        return stats

    def run(self, db: Session, now: Optional[datetime] = None) -> Dict[str, int]:
        now = now or timer.utcnow()
        expired = self.expire_overdue(db, now)
        stats = self.retry_finalization(db, now)
        return {"expired": expired, **stats}


reconciliation_service = ReconciliationService()
