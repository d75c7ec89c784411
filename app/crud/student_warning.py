from typing import List, Optional
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.crud.base import CRUDBase
from app.models.student_warning import StudentWarning


class CRUDStudentWarning(CRUDBase[StudentWarning, BaseModel, BaseModel]):

    def get_for_attempt(self, db: Session, *, attempt_id: int, warning_id: int) -> Optional[StudentWarning]:
        return (
            db.query(StudentWarning)
            .filter(StudentWarning.id == warning_id, StudentWarning.attempt_id == attempt_id)
            .first()
        )

    def get_by_attempt(self, db: Session, *, attempt_id: int, pending_only: bool = False) -> List[StudentWarning]:
        query = db.query(StudentWarning).filter(StudentWarning.attempt_id == attempt_id)
        if pending_only:
            query = query.filter(StudentWarning.acknowledged_at.is_(None))
        return query.order_by(StudentWarning.sent_at.desc(), StudentWarning.id.desc()).all()


student_warning = CRUDStudentWarning(StudentWarning)
