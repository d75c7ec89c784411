import logging
from datetime import datetime
from typing import Optional
from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.core import timer
from app.core.constants import AttemptEvent, AttemptStatusEnum, TERMINAL_ATTEMPT_STATUSES
from app.core.exceptions import FinalizationError, ScoringError, TransitionConflictError
from app.crud.answer import answer as crud_answer
from app.crud.attempt import attempt as crud_attempt
from app.crud.exam import exam as crud_exam
from app.crud.result import result as crud_result
from app.models.result import Result
from app.services import scoring
from app.services.attempt_state import attempt_state_service
from app.services.monitoring import monitoring_service
from app.services.notification import result_notification_service
from app.services.question_bank import question_bank_service
from app.utils.events import event_bus

logger = logging.getLogger(__name__)


class FinalizerService:

    def finalize(
        self,
        db: Session,
        attempt_id: int,
        now: Optional[datetime] = None,
        actor_id: Optional[int] = None,
    ) -> Result:
        """
        Score a closed attempt and mark it completed.

        Safe to run any number of times: correctness is recomputed from the
        question keys and the stored answers, the result row is overwritten in
        place, and the notification is deduplicated by attempt id. Running it on
        a completed attempt is a rescore.
        """
        now = now or timer.utcnow()
        attempt = crud_attempt.get_for_update(db, attempt_id)
        if not attempt:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Attempt not found.")
        if attempt.status not in TERMINAL_ATTEMPT_STATUSES:
            raise TransitionConflictError(
                "Only submitted or expired attempts can be finalized.",
                context={"attempt_id": attempt.id, "status": attempt.status.value},
            )

        exam = crud_exam.get(db, id=attempt.exam_id)
        answers = crud_answer.get_all_by_attempt(db, attempt_id=attempt.id)
        attempt.finalization_attempts = (attempt.finalization_attempts or 0) + 1
        try:
            keys = question_bank_service.get_keys(db, attempt.exam_id)
            summary = scoring.score_attempt(
                keys,
                {a.question_id: a.answer_text for a in answers},
                exam.passing_score,
            )
        except ScoringError as exc:
            attempt.finalization_error = str(exc)
            db.commit()
            logger.error(f"Finalization of attempt {attempt_id} failed: {exc}")
            raise FinalizationError(attempt_id, str(exc)) from exc

        result = crud_result.upsert(
            db,
            attempt_id=attempt.id,
            values={
                **summary.as_result_values(),
                "student_id": attempt.student_id,
                "session_id": attempt.session_id,
                "exam_id": attempt.exam_id,
            },
        )
        for answer in answers:
            grade = summary.grades.get(answer.question_id)
            answer.is_correct = grade.is_correct if grade else False
            answer.points_earned = grade.points_earned if grade else 0

        record = attempt_state_service.transition(
            db, attempt, AttemptStatusEnum.COMPLETED, reason="finalized", now=now, actor_id=actor_id
        )
        attempt.finalization_error = None
        camera_released = monitoring_service.revoke(attempt)
        scheduled = result_notification_service.schedule_for_attempt(db, attempt, attempt.completed_at)
        db.commit()
        db.refresh(result)

        attempt_state_service.publish(attempt, record)
        if camera_released:
            monitoring_service.announce_revoked(attempt, reason="finalized")
        if scheduled and scheduled[1]:
            result_notification_service.announce_scheduled(scheduled[0])
        event_bus.emit(AttemptEvent.FINALIZED.value, {
            "attempt_id": attempt.id,
            "session_id": attempt.session_id,
            "student_id": attempt.student_id,
            "percentage_score": result.percentage_score,
            "rescored": not record.changed,
        })
        logger.info(
            f"Attempt {attempt.id} finalized: {result.points_earned}/{result.total_points} "
            f"({result.percentage_score}%)"
        )
        return result


finalizer_service = FinalizerService()
