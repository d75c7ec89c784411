from typing import List, Optional, Tuple
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload
import logging

from app.core.constants import AttemptStatusEnum, AWAITING_FINALIZATION_STATUSES
from app.crud.base import CRUDBase
from app.models.attempt import Attempt
from app.schemas.attempt import AttemptCreate

logger = logging.getLogger(__name__)


class CRUDAttempt(CRUDBase[Attempt, AttemptCreate, BaseModel]):

    def _query_with_relationships(self, db: Session):
        return db.query(Attempt).options(
            selectinload(Attempt.session),
            selectinload(Attempt.result),
        )

    def get_current(self, db: Session, *, session_id: int, student_id: int, exam_id: int) -> Optional[Attempt]:
        """The live attempt for a key is the one with the highest attempt_number."""
        return (
            self._query_with_relationships(db)
            .filter(
                Attempt.session_id == session_id,
                Attempt.student_id == student_id,
                Attempt.exam_id == exam_id,
            )
            .order_by(Attempt.attempt_number.desc())
            .first()
        )

    def get_or_create_current(self, db: Session, *, obj_in: AttemptCreate) -> Tuple[Attempt, bool]:
        existing = self.get_current(
            db, session_id=obj_in.session_id, student_id=obj_in.student_id, exam_id=obj_in.exam_id
        )
        if existing:
            return existing, False

        try:
            with db.begin_nested():
                created = self.create(db, obj_in=obj_in, commit=False)
            db.commit()
            return created, True
        except IntegrityError:
            # A concurrent request inserted the same key first; only the savepoint is rolled back.
            logger.info(
                "Attempt insert collided for session=%s student=%s exam=%s, returning existing row",
                obj_in.session_id, obj_in.student_id, obj_in.exam_id,
            )
            existing = self.get_current(
                db, session_id=obj_in.session_id, student_id=obj_in.student_id, exam_id=obj_in.exam_id
            )
            if existing is None:
                raise
            return existing, False

    def get_by_session(self, db: Session, *, session_id: int, skip: int = 0, limit: int = 500) -> List[Attempt]:
        return (
            self._query_with_relationships(db)
            .filter(Attempt.session_id == session_id)
            .order_by(Attempt.student_id, Attempt.attempt_number)
            .offset(skip)
            .limit(limit)
            .all()
        )

    def get_with_camera_enabled(self, db: Session, *, session_id: int) -> List[Attempt]:
        return (
            db.query(Attempt)
            .filter(Attempt.session_id == session_id, Attempt.camera_enabled.is_(True))
            .all()
        )

    def get_in_progress(self, db: Session, *, limit: int = 100) -> List[Attempt]:
        # Oldest anchors first: those are the ones most likely past their deadline.
        return (
            db.query(Attempt)
            .filter(Attempt.status == AttemptStatusEnum.IN_PROGRESS)
            .order_by(Attempt.anchor_start_at.asc())
            .limit(limit)
            .all()
        )

    def get_pending_finalization(self, db: Session, *, skip: int = 0, limit: int = 100) -> List[Attempt]:
        return (
            db.query(Attempt)
            .filter(Attempt.status.in_(list(AWAITING_FINALIZATION_STATUSES)))
            .order_by(Attempt.submitted_at.asc())
            .offset(skip)
            .limit(limit)
            .all()
        )


attempt = CRUDAttempt(Attempt)
