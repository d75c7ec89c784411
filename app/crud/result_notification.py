from datetime import datetime
from typing import List, Optional, Tuple
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.constants import NotificationStatusEnum
from app.crud.base import CRUDBase
from app.models.result_notification import ResultNotification


class CRUDResultNotification(CRUDBase[ResultNotification, BaseModel, BaseModel]):

    def get_by_attempt(self, db: Session, *, attempt_id: int) -> Optional[ResultNotification]:
        return db.query(ResultNotification).filter(ResultNotification.attempt_id == attempt_id).first()

    def schedule(self, db: Session, *, attempt_id: int, scheduled_at: datetime) -> Tuple[ResultNotification, bool]:
        """At most one notification per attempt; rescoring never queues a second one."""
        existing = self.get_by_attempt(db, attempt_id=attempt_id)
        if existing:
            return existing, False
        notification = ResultNotification(
            attempt_id=attempt_id,
            scheduled_at=scheduled_at,
            status=NotificationStatusEnum.PENDING,
            retry_count=0,
        )
        db.add(notification)
        db.flush()
        return notification, True

    def get_due(self, db: Session, *, now: datetime, limit: int = 10) -> List[ResultNotification]:
        return (
            db.query(ResultNotification)
            .filter(
                ResultNotification.status == NotificationStatusEnum.PENDING,
                ResultNotification.scheduled_at <= now,
            )
            .order_by(ResultNotification.scheduled_at.asc())
            .limit(limit)
            .all()
        )

    def mark_sent(self, db: Session, *, db_obj: ResultNotification, sent_at: datetime) -> ResultNotification:
        return self.update(
            db,
            db_obj=db_obj,
            obj_in={"status": NotificationStatusEnum.SENT, "sent_at": sent_at, "last_error": None},
        )

    def record_failure(
        self, db: Session, *, db_obj: ResultNotification, error: str, max_retries: int
    ) -> ResultNotification:
        retry_count = (db_obj.retry_count or 0) + 1
        status = NotificationStatusEnum.FAILED if retry_count >= max_retries else NotificationStatusEnum.PENDING
        return self.update(
            db,
            db_obj=db_obj,
            obj_in={"retry_count": retry_count, "status": status, "last_error": error[:500]},
        )


result_notification = CRUDResultNotification(ResultNotification)
