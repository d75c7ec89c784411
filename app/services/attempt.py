import logging
from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session
from fastapi import HTTPException, status

from app.core import timer
from app.core.constants import AttemptStatusEnum, AWAITING_FINALIZATION_STATUSES
from app.core.exceptions import (
    AttemptClosedError,
    FinalizationError,
    InvalidQuestionError,
    ResultNotAvailableError,
    TransitionConflictError,
)
from app.crud.answer import answer as crud_answer
from app.crud.attempt import attempt as crud_attempt
from app.crud.exam_session import exam_session as crud_exam_session
from app.crud.question import question as crud_question
from app.crud.result import result as crud_result
from app.models.answer import Answer
from app.models.attempt import Attempt
from app.models.question import Question
from app.schemas.answer import AnswerReview, AnswerSave
from app.schemas.attempt import (
    AttemptCreate,
    AttemptStartRequest,
    AttemptStartResponse,
    CameraUpdate,
    PositionUpdate,
    SubmitResponse,
    TimerState,
)
from app.schemas.result import Result, ResultDetails
from app.schemas.user import UserContext
from app.services.attempt_state import attempt_state_service
from app.services.exam_session import exam_session_service
from app.services.expiry import expiry_enforcer
from app.services.finalizer import finalizer_service
from app.services.monitoring import monitoring_service
from app.services.question_bank import question_bank_service

logger = logging.getLogger(__name__)


class AttemptService:

    def _load(self, db: Session, attempt_id: int, *, for_update: bool = False) -> Attempt:
        attempt = crud_attempt.get_for_update(db, attempt_id) if for_update else crud_attempt.get(db, id=attempt_id)
        if not attempt:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Attempt not found.")
        return attempt

    def _require_owner(self, attempt: Attempt, context: UserContext) -> None:
        if attempt.student_id != context.user_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You can only act on your own exam attempts."
            )

    def _require_viewer(self, attempt: Attempt, context: UserContext) -> None:
        if attempt.student_id == context.user_id:
            return
        if context.is_instructor and attempt.session.instructor_id == context.user_id:
            return
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have permission to view this exam attempt."
        )

    def _start_response(self, attempt: Attempt, reading: timer.TimerReading, resumed: bool) -> AttemptStartResponse:
        return AttemptStartResponse(
            attempt_id=attempt.id,
            status=attempt.status,
            anchor_start_at=timer.as_utc(attempt.anchor_start_at),
            allotted_duration_seconds=attempt.allotted_duration_seconds,
            remaining_seconds=reading.remaining_seconds,
            timer_status=reading.status,
            current_question_index=attempt.current_question_index,
            camera_enabled=attempt.camera_enabled,
            resumed=resumed,
            server_time=reading.server_time,
        )

    def _closed(self, attempt: Attempt) -> AttemptClosedError:
        return AttemptClosedError(
            "This attempt has already been closed.",
            context={"attempt_id": attempt.id, "status": AttemptStatusEnum(attempt.status).value},
        )

    def start_attempt(
        self, db: Session, start_in: AttemptStartRequest, context: UserContext, now: Optional[datetime] = None
    ) -> AttemptStartResponse:
        now = now or timer.utcnow()
        session = crud_exam_session.get(db, id=start_in.session_id)
        if not session:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found.")

        current = crud_attempt.get_current(
            db, session_id=session.id, student_id=context.user_id, exam_id=session.exam_id
        )
        if current is None:
            exam_session_service.ensure_open(
                db, session, student_id=context.user_id, class_level=start_in.class_level, now=now
            )
            current, _ = crud_attempt.get_or_create_current(
                db,
                obj_in=AttemptCreate(
                    session_id=session.id,
                    student_id=context.user_id,
                    exam_id=session.exam_id,
                    allotted_duration_seconds=session.exam.duration_seconds,
                ),
            )

        attempt = self._load(db, current.id, for_update=True)
        if attempt.is_terminal:
            raise self._closed(attempt)

        if attempt.status == AttemptStatusEnum.IN_PROGRESS:
            reading = expiry_enforcer.enforce(db, attempt, now)
            if attempt.is_terminal:
                raise self._closed(attempt)
            logger.info(f"Attempt {attempt.id} resumed by student {context.user_id}")
            return self._start_response(attempt, reading, resumed=True)

        exam_session_service.ensure_open(
            db, session, student_id=context.user_id, class_level=start_in.class_level, now=now,
            holds_attempt=True,
        )
        record = attempt_state_service.transition(
            db, attempt, AttemptStatusEnum.IN_PROGRESS, reason="student_start", now=now, actor_id=context.user_id
        )
        db.commit()
        attempt_state_service.publish(attempt, record)
        reading = timer.read_timer(attempt.anchor_start_at, attempt.allotted_duration_seconds, now)
        return self._start_response(attempt, reading, resumed=False)

    def get_timer(
        self, db: Session, attempt_id: int, context: UserContext, now: Optional[datetime] = None
    ) -> TimerState:
        attempt = self._load(db, attempt_id, for_update=True)
        self._require_viewer(attempt, context)
        reading = expiry_enforcer.enforce(db, attempt, now)
        return TimerState(
            attempt_id=attempt.id,
            attempt_status=attempt.status,
            remaining_seconds=reading.remaining_seconds,
            timer_status=reading.status,
            server_time=reading.server_time,
        )

    def save_answer(
        self, db: Session, attempt_id: int, answer_in: AnswerSave, context: UserContext, now: Optional[datetime] = None
    ) -> Answer:
        now = now or timer.utcnow()
        attempt = self._load(db, attempt_id, for_update=True)
        self._require_owner(attempt, context)
        expiry_enforcer.require_active(db, attempt, now)

        question = crud_question.get_for_exam(db, exam_id=attempt.exam_id, question_id=answer_in.question_id)
        if not question:
            raise InvalidQuestionError(
                "Question does not belong to this exam attempt.",
                context={"question_id": answer_in.question_id},
            )

        answer = crud_answer.upsert(
            db,
            attempt_id=attempt.id,
            question_id=question.id,
            answer_text=answer_in.answer,
            answered_at=now,
            commit=False,
        )
        if answer_in.current_question_index is not None:
            attempt.current_question_index = answer_in.current_question_index
        db.commit()
        db.refresh(answer)
        return answer

    def update_position(
        self, db: Session, attempt_id: int, position_in: PositionUpdate, context: UserContext, now: Optional[datetime] = None
    ) -> Attempt:
        attempt = self._load(db, attempt_id, for_update=True)
        self._require_owner(attempt, context)
        expiry_enforcer.require_active(db, attempt, now)

        question_count = question_bank_service.count_questions(db, attempt.exam_id)
        if question_count and position_in.current_question_index >= question_count:
            raise InvalidQuestionError(
                "Question index is out of range.",
                context={"question_count": question_count},
            )
        return crud_attempt.update(
            db, db_obj=attempt, obj_in={"current_question_index": position_in.current_question_index}
        )

    def set_camera(
        self, db: Session, attempt_id: int, camera_in: CameraUpdate, context: UserContext, now: Optional[datetime] = None
    ) -> Attempt:
        attempt = self._load(db, attempt_id, for_update=True)
        self._require_owner(attempt, context)

        if camera_in.enabled:
            expiry_enforcer.require_active(db, attempt, now)
            return crud_attempt.update(db, db_obj=attempt, obj_in={"camera_enabled": True})

        if monitoring_service.revoke(attempt):
            db.commit()
            monitoring_service.announce_revoked(attempt, reason="student_released")
        return attempt

    def submit_attempt(
        self, db: Session, attempt_id: int, context: UserContext, now: Optional[datetime] = None
    ) -> SubmitResponse:
        """
        Close the attempt and score it.

        Repeating a submit is harmless: a closed attempt is reported as such, and
        one whose scoring previously failed gets another finalization try. If
        the allotment ran out before this request arrived the attempt closes as
        expired instead, and that is still a successful response.
        """
        now = now or timer.utcnow()
        attempt = self._load(db, attempt_id, for_update=True)
        self._require_owner(attempt, context)

        if attempt.status == AttemptStatusEnum.NOT_STARTED:
            raise TransitionConflictError(
                "This attempt has not been started.",
                context={"attempt_id": attempt.id, "status": AttemptStatusEnum.NOT_STARTED.value},
            )

        already_closed = attempt.is_terminal
        expired_now = False
        if attempt.status == AttemptStatusEnum.IN_PROGRESS:
            # enforce already made the one finalization try for an attempt it expires
            expired_now = expiry_enforcer.enforce(db, attempt, now).is_expired

        if attempt.status == AttemptStatusEnum.IN_PROGRESS:
            record = attempt_state_service.transition(
                db, attempt, AttemptStatusEnum.SUBMITTED, reason="student_submit", now=now, actor_id=context.user_id
            )
            db.commit()
            attempt_state_service.publish(attempt, record)
            self._finalize_quietly(db, attempt, now)
        elif attempt.status in AWAITING_FINALIZATION_STATUSES and not expired_now:
            self._finalize_quietly(db, attempt, now)

        db.refresh(attempt)
        result = crud_result.get_by_attempt(db, attempt_id=attempt.id)
        finalized = attempt.status == AttemptStatusEnum.COMPLETED and result is not None
        visible = finalized and attempt.session.results_visible
        return SubmitResponse(
            attempt_id=attempt.id,
            status=attempt.status,
            already_closed=already_closed,
            finalized=finalized,
            result_available=visible,
            result=Result.model_validate(result) if visible else None,
        )

    def _finalize_quietly(self, db: Session, attempt: Attempt, now: datetime) -> None:
        try:
            finalizer_service.finalize(db, attempt.id, now=now)
        except FinalizationError as exc:
            logger.error(f"Attempt {attempt.id} closed but finalization failed: {exc.reason}")

    def get_questions(self, db: Session, attempt_id: int, context: UserContext) -> List[Question]:
        attempt = self._load(db, attempt_id)
        self._require_owner(attempt, context)
        if attempt.status == AttemptStatusEnum.NOT_STARTED:
            raise TransitionConflictError(
                "Start the attempt before requesting its questions.",
                context={"attempt_id": attempt.id, "status": AttemptStatusEnum.NOT_STARTED.value},
            )
        return question_bank_service.get_questions_in_order(db, attempt.exam_id, attempt.question_order)

    def get_result(self, db: Session, attempt_id: int, context: UserContext) -> ResultDetails:
        attempt = self._load(db, attempt_id)
        self._require_viewer(attempt, context)

        result = crud_result.get_by_attempt(db, attempt_id=attempt.id)
        if result is None or attempt.status != AttemptStatusEnum.COMPLETED:
            raise ResultNotAvailableError(
                "The result for this attempt is not ready yet.",
                context={"attempt_id": attempt.id, "status": AttemptStatusEnum(attempt.status).value},
            )
        if context.is_student and not attempt.session.results_visible:
            raise ResultNotAvailableError(
                "Results for this session have not been released yet.",
                context={"attempt_id": attempt.id, "status": AttemptStatusEnum.COMPLETED.value},
            )

        answers = crud_answer.get_all_by_attempt(db, attempt_id=attempt.id)
        details = ResultDetails.model_validate(result)
        details.answers = [AnswerReview.model_validate(a) for a in answers]
        return details


attempt_service = AttemptService()
