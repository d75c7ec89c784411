from typing import List
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.crud.base import CRUDBase
from app.models.proctoring_incident import ProctoringIncident


class CRUDProctoringIncident(CRUDBase[ProctoringIncident, BaseModel, BaseModel]):

    def get_by_attempt(self, db: Session, *, attempt_id: int) -> List[ProctoringIncident]:
        return (
            db.query(ProctoringIncident)
            .filter(ProctoringIncident.attempt_id == attempt_id)
            .order_by(ProctoringIncident.occurred_at, ProctoringIncident.id)
            .all()
        )

    def get_by_session(self, db: Session, *, session_id: int, skip: int = 0, limit: int = 500) -> List[ProctoringIncident]:
        return (
            db.query(ProctoringIncident)
            .filter(ProctoringIncident.session_id == session_id)
            .order_by(ProctoringIncident.occurred_at.desc(), ProctoringIncident.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )


proctoring_incident = CRUDProctoringIncident(ProctoringIncident)
