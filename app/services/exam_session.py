import logging
import secrets
from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session
from fastapi import HTTPException, status

from app.core import timer
from app.core.config import settings
from app.core.constants import SessionStatusEnum
from app.core.exceptions import SessionUnavailableError, TransitionConflictError
from app.crud.attempt import attempt as crud_attempt
from app.crud.exam import exam as crud_exam
from app.crud.exam_session import exam_session as crud_exam_session
from app.models.attempt import Attempt
from app.models.exam_session import ExamSession
from app.schemas.attempt import AttemptCreate
from app.schemas.exam_session import ExamSessionCreate, SessionJoinRequest, SessionJoinResponse
from app.schemas.user import UserContext
from app.services.monitoring import monitoring_service

logger = logging.getLogger(__name__)

SESSION_STATUS_ORDER = [SessionStatusEnum.SCHEDULED, SessionStatusEnum.ACTIVE, SessionStatusEnum.ENDED]
MAX_CODE_GENERATION_ATTEMPTS = 10


class ExamSessionService:

    def _generate_session_code(self, db: Session) -> str:
        length = settings.SESSION_CODE_LENGTH
        for _ in range(MAX_CODE_GENERATION_ATTEMPTS):
            code = str(secrets.randbelow(10 ** length)).zfill(length)
            if not crud_exam_session.code_exists(db, session_code=code):
                return code
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not allocate a session code, please try again."
        )

    def _get_owned_session(self, db: Session, session_id: int, context: UserContext) -> ExamSession:
        session = crud_exam_session.get(db, id=session_id)
        if not session:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found.")
        if session.instructor_id != context.user_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You can only manage sessions you created."
            )
        return session

    def ensure_open(
        self,
        db: Session,
        session: ExamSession,
        *,
        student_id: int,
        class_level: Optional[str],
        now: datetime,
        holds_attempt: bool = False,
    ) -> None:
        """Raise SessionUnavailableError unless the student may start work in the session right now."""
        if session.status == SessionStatusEnum.ENDED:
            raise SessionUnavailableError("This exam session has ended.", context={"reason": "ended"})

        now = timer.as_utc(now)
        if now < timer.as_utc(session.starts_at):
            raise SessionUnavailableError("This exam session has not started yet.", context={"reason": "not_started"})
        if now > timer.as_utc(session.ends_at):
            raise SessionUnavailableError("This exam session is closed.", context={"reason": "window_closed"})

        if session.class_level and class_level and session.class_level.strip().lower() != class_level.strip().lower():
            raise SessionUnavailableError(
                "This exam session is for a different class level.",
                context={"reason": "class_level_mismatch"},
            )

        if not holds_attempt:
            enrolled = crud_exam_session.count_students(db, session_id=session.id)
            if enrolled >= session.max_students:
                raise SessionUnavailableError(
                    "This exam session is full.",
                    context={"reason": "capacity_reached", "max_students": session.max_students},
                )

    def create_session(self, db: Session, session_in: ExamSessionCreate, context: UserContext) -> ExamSession:
        exam = crud_exam.get(db, id=session_in.exam_id)
        if not exam:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Exam not found.")
        if exam.created_by != context.user_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You can only schedule sessions for your own exams."
            )

        code = self._generate_session_code(db)
        session = crud_exam_session.create_with_code(
            db, obj_in=session_in, instructor_id=context.user_id, session_code=code
        )
        logger.info(f"Session {session.id} ({code}) created for exam {exam.id}")
        return session

    def get_session(self, db: Session, session_id: int, context: UserContext) -> ExamSession:
        return self._get_owned_session(db, session_id, context)

    def update_status(
        self, db: Session, session_id: int, new_status: SessionStatusEnum, context: UserContext
    ) -> ExamSession:
        session = self._get_owned_session(db, session_id, context)
        current = SessionStatusEnum(session.status)
        if current == new_status:
            return session
        if SESSION_STATUS_ORDER.index(new_status) < SESSION_STATUS_ORDER.index(current):
            raise TransitionConflictError(
                f"Session cannot move from '{current.value}' back to '{new_status.value}'.",
                context={"session_id": session.id, "status": current.value},
            )
        return crud_exam_session.update(db, db_obj=session, obj_in={"status": new_status})

    def release_results(
        self, db: Session, session_id: int, context: UserContext, now: Optional[datetime] = None
    ) -> ExamSession:
        session = self._get_owned_session(db, session_id, context)
        if session.results_released_at is not None:
            return session
        return crud_exam_session.update(
            db, db_obj=session, obj_in={"results_released_at": now or timer.utcnow()}
        )

    def disable_cameras(self, db: Session, session_id: int, context: UserContext) -> List[int]:
        self._get_owned_session(db, session_id, context)
        return monitoring_service.disable_session_cameras(db, session_id)

    def list_attempts(self, db: Session, session_id: int, context: UserContext) -> List[Attempt]:
        self._get_owned_session(db, session_id, context)
        return crud_attempt.get_by_session(db, session_id=session_id)

    def join_session(
        self, db: Session, join_in: SessionJoinRequest, context: UserContext, now: Optional[datetime] = None
    ) -> SessionJoinResponse:
        now = now or timer.utcnow()
        session = crud_exam_session.get_by_code(db, session_code=join_in.session_code.strip())
        if not session:
            raise SessionUnavailableError("Invalid session code.", context={"reason": "unknown_code"})

        existing = crud_attempt.get_current(
            db, session_id=session.id, student_id=context.user_id, exam_id=session.exam_id
        )
        if existing is None:
            self.ensure_open(
                db, session, student_id=context.user_id, class_level=join_in.class_level, now=now
            )
            existing, created = crud_attempt.get_or_create_current(
                db,
                obj_in=AttemptCreate(
                    session_id=session.id,
                    student_id=context.user_id,
                    exam_id=session.exam_id,
                    allotted_duration_seconds=session.exam.duration_seconds,
                ),
            )
            if created:
                logger.info(f"Student {context.user_id} joined session {session.id} (attempt {existing.id})")

        return SessionJoinResponse(
            session_id=session.id,
            exam_id=session.exam_id,
            attempt_id=existing.id,
            session_name=session.name,
            camera_monitoring_required=session.camera_monitoring_required,
            duration_seconds=existing.allotted_duration_seconds,
        )


exam_session_service = ExamSessionService()
