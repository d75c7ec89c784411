import logging
from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session
from fastapi import HTTPException, status

from app.core import timer
from app.core.constants import AttemptStatusEnum
from app.core.exceptions import FinalizationError, TransitionConflictError
from app.crud.attempt import attempt as crud_attempt
from app.crud.attempt_audit import attempt_audit as crud_attempt_audit
from app.models.attempt import Attempt
from app.models.result import Result
from app.schemas.attempt import AttemptCreate
from app.schemas.user import UserContext
from app.services.finalizer import finalizer_service

logger = logging.getLogger(__name__)


class AttemptAdminService:
    """Instructor-side overrides: rescoring, the reconciliation backlog and reopening."""

    def _get_attempt_for_instructor(self, db: Session, attempt_id: int, context: UserContext) -> Attempt:
        attempt = crud_attempt.get(db, id=attempt_id)
        if not attempt:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Attempt not found.")
        if attempt.session.instructor_id != context.user_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You can only manage attempts in your own sessions."
            )
        return attempt

    def finalize_attempt(
        self, db: Session, attempt_id: int, context: UserContext, now: Optional[datetime] = None
    ) -> Result:
        self._get_attempt_for_instructor(db, attempt_id, context)
        try:
            return finalizer_service.finalize(db, attempt_id, now=now, actor_id=context.user_id)
        except FinalizationError as exc:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"Attempt could not be scored: {exc.reason}"
            )

    def list_pending_finalization(
        self, db: Session, context: UserContext, skip: int = 0, limit: int = 100
    ) -> List[Attempt]:
        attempts = crud_attempt.get_pending_finalization(db, skip=skip, limit=limit)
        return [a for a in attempts if a.session.instructor_id == context.user_id]

    def reopen_attempt(
        self, db: Session, attempt_id: int, context: UserContext, now: Optional[datetime] = None
    ) -> Attempt:
        """
        Give the student a fresh attempt. The closed attempt keeps its status
        and result; the override is recorded on it and a new `not_started`
        attempt with the next attempt number becomes the live one.
        """
        now = now or timer.utcnow()
        old = self._get_attempt_for_instructor(db, attempt_id, context)
        if not old.is_terminal:
            raise TransitionConflictError(
                "Only closed attempts can be reopened.",
                context={"attempt_id": old.id, "status": AttemptStatusEnum(old.status).value},
            )

        current = crud_attempt.get_current(
            db, session_id=old.session_id, student_id=old.student_id, exam_id=old.exam_id
        )
        if current.id != old.id:
            raise TransitionConflictError(
                "A newer attempt already exists for this student.",
                context={"attempt_id": current.id, "status": AttemptStatusEnum(current.status).value},
            )

        fresh = crud_attempt.create(
            db,
            obj_in=AttemptCreate(
                session_id=old.session_id,
                student_id=old.student_id,
                exam_id=old.exam_id,
                attempt_number=old.attempt_number + 1,
                allotted_duration_seconds=old.exam.duration_seconds,
            ),
            commit=False,
        )
        crud_attempt_audit.record(
            db,
            attempt_id=old.id,
            from_status=AttemptStatusEnum(old.status).value,
            to_status=AttemptStatusEnum(old.status).value,
            reason=f"reopen_override:new_attempt={fresh.id}",
            actor_id=context.user_id,
            occurred_at=now,
        )
        crud_attempt_audit.record(
            db,
            attempt_id=fresh.id,
            from_status=None,
            to_status=AttemptStatusEnum.NOT_STARTED.value,
            reason=f"reopened_from:{old.id}",
            actor_id=context.user_id,
            occurred_at=now,
        )
        db.commit()
        db.refresh(fresh)
        logger.info(f"Attempt {old.id} reopened by instructor {context.user_id} as attempt {fresh.id}")
        return fresh


attempt_admin_service = AttemptAdminService()
