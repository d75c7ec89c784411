from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.crud.base import CRUDBase
from app.models.attempt_audit import AttemptAuditLog


class CRUDAttemptAudit(CRUDBase[AttemptAuditLog, BaseModel, BaseModel]):

    def record(
        self,
        db: Session,
        *,
        attempt_id: int,
        from_status: Optional[str],
        to_status: str,
        reason: str,
        occurred_at: datetime,
        actor_id: Optional[int] = None,
    ) -> AttemptAuditLog:
        entry = AttemptAuditLog(
            attempt_id=attempt_id,
            from_status=from_status,
            to_status=to_status,
            reason=reason,
            actor_id=actor_id,
            occurred_at=occurred_at,
        )
        db.add(entry)
        return entry

    def get_by_attempt(self, db: Session, *, attempt_id: int) -> List[AttemptAuditLog]:
        return (
            db.query(AttemptAuditLog)
            .filter(AttemptAuditLog.attempt_id == attempt_id)
            .order_by(AttemptAuditLog.id)
            .all()
        )


attempt_audit = CRUDAttemptAudit(AttemptAuditLog)
