import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Session

from app.core.constants import AttemptEvent, AttemptStatusEnum
from app.core.exceptions import TransitionConflictError
from app.core.state_machine import InvalidTransitionError, ensure_transition
from app.crud.attempt_audit import attempt_audit as crud_attempt_audit
from app.models.attempt import Attempt
from app.services.monitoring import monitoring_service
from app.services.question_bank import question_bank_service
from app.utils.events import event_bus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionRecord:
    attempt_id: int
    previous: Optional[AttemptStatusEnum]
    current: AttemptStatusEnum
    changed: bool
    camera_released: bool = False


class AttemptStateService:
    """
    Applies status transitions to an attempt together with their side effects
    and an audit row. Nothing is committed here; the caller commits and then
    hands the returned record to `publish` so events only leave after the
    write is durable.
    """

    def transition(
        self,
        db: Session,
        attempt: Attempt,
        target: AttemptStatusEnum,
        *,
        reason: str,
        now: datetime,
        actor_id: Optional[int] = None,
    ) -> TransitionRecord:
        current = AttemptStatusEnum(attempt.status) if attempt.status is not None else None
        if current == target:
            return TransitionRecord(attempt.id, current, target, changed=False)

        try:
            ensure_transition(current, target)
        except InvalidTransitionError as exc:
            raise TransitionConflictError(
                str(exc),
                context={"attempt_id": attempt.id, "status": current.value if current else None},
            )

        camera_released = False
        if target == AttemptStatusEnum.IN_PROGRESS:
            if attempt.anchor_start_at is None:
                attempt.anchor_start_at = now
            if attempt.question_order is None:
                attempt.question_order = question_bank_service.question_order_for(db, attempt)
            attempt.camera_enabled = bool(attempt.session.camera_monitoring_required)
        elif target in (AttemptStatusEnum.SUBMITTED, AttemptStatusEnum.EXPIRED):
            if attempt.submitted_at is None:
                attempt.submitted_at = now
            camera_released = monitoring_service.revoke(attempt)
        elif target == AttemptStatusEnum.COMPLETED:
            if attempt.completed_at is None:
                attempt.completed_at = now
            camera_released = monitoring_service.revoke(attempt)

        attempt.status = target
        crud_attempt_audit.record(
            db,
            attempt_id=attempt.id,
            from_status=current.value if current else None,
            to_status=target.value,
            reason=reason,
            actor_id=actor_id,
            occurred_at=now,
        )
        db.flush()
        logger.info(
            f"Attempt {attempt.id} moved {current.value if current else 'none'} -> {target.value} ({reason})"
        )
        return TransitionRecord(attempt.id, current, target, changed=True, camera_released=camera_released)

    def publish(self, attempt: Attempt, record: TransitionRecord) -> None:
        if not record.changed:
            return
        if record.camera_released:
            monitoring_service.announce_revoked(attempt, reason=record.current.value)
        if record.current in (AttemptStatusEnum.SUBMITTED, AttemptStatusEnum.EXPIRED):
            event_bus.emit(AttemptEvent.CLOSED.value, {
                "attempt_id": attempt.id,
                "session_id": attempt.session_id,
                "student_id": attempt.student_id,
                "status": record.current.value,
            })


attempt_state_service = AttemptStateService()
