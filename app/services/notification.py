import logging
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple
from sqlalchemy.orm import Session

from app.core import timer
from app.core.config import settings
from app.core.constants import AttemptEvent
from app.crud.result_notification import result_notification as crud_result_notification
from app.models.attempt import Attempt
from app.models.result_notification import ResultNotification
from app.utils.events import event_bus

logger = logging.getLogger(__name__)


class ResultNotificationService:
    """
    Queue of "your result is ready" requests. Delivery belongs to whoever
    subscribes to the due event; this service only decides when a request is
    due and tracks its retries.
    """

    def schedule_for_attempt(
        self, db: Session, attempt: Attempt, completed_at: datetime
    ) -> Optional[Tuple[ResultNotification, bool]]:
        session = attempt.session
        if not session.notify_results:
            return None

        delay_days = session.notification_delay_days
        if delay_days is None:
            delay_days = settings.NOTIFICATION_DELAY_DAYS
        scheduled_at = timer.as_utc(completed_at) + timedelta(days=delay_days)
        notification, created = crud_result_notification.schedule(
            db, attempt_id=attempt.id, scheduled_at=scheduled_at
        )
        if created:
            logger.info(f"Result notification for attempt {attempt.id} scheduled at {scheduled_at.isoformat()}")
        return notification, created

    def announce_scheduled(self, notification: ResultNotification) -> None:
        event_bus.emit(AttemptEvent.NOTIFICATION_SCHEDULED.value, {
            "attempt_id": notification.attempt_id,
            "scheduled_at": timer.as_utc(notification.scheduled_at).isoformat(),
        })

    async def process_due(self, db: Session, now: Optional[datetime] = None) -> Dict[str, int]:
        now = now or timer.utcnow()
        stats = {"sent": 0, "failed": 0}

        if not event_bus.has_subscribers(AttemptEvent.NOTIFICATION_DUE.value):
            logger.debug("No delivery handler registered for result notifications; leaving queue untouched")
            return stats

        due = crud_result_notification.get_due(db, now=now, limit=settings.NOTIFICATION_BATCH_SIZE)
        for notification in due:
            attempt = notification.attempt
            payload = {
                "notification_id": notification.id,
                "attempt_id": notification.attempt_id,
                "student_id": attempt.student_id,
                "session_id": attempt.session_id,
                "exam_id": attempt.exam_id,
            }
            failures = await event_bus.publish(AttemptEvent.NOTIFICATION_DUE.value, payload)
            if failures:
                crud_result_notification.record_failure(
                    db,
                    db_obj=notification,
                    error=f"{failures} delivery handler(s) failed",
                    max_retries=settings.NOTIFICATION_MAX_RETRIES,
                )
                stats["failed"] += 1
                logger.warning(
                    f"Result notification {notification.id} failed (retry {notification.retry_count}/"
                    f"{settings.NOTIFICATION_MAX_RETRIES})"
                )
            else:
                crud_result_notification.mark_sent(db, db_obj=notification, sent_at=now)
                stats["sent"] += 1
        return stats


result_notification_service = ResultNotificationService()
