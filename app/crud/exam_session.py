from typing import List, Optional
from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from app.crud.base import CRUDBase
from app.models.attempt import Attempt
from app.models.exam_session import ExamSession
from app.schemas.exam_session import ExamSessionCreate


class CRUDExamSession(CRUDBase[ExamSession, ExamSessionCreate, BaseModel]):

    def get(self, db: Session, id: int) -> Optional[ExamSession]:
        return (
            db.query(ExamSession)
            .options(selectinload(ExamSession.exam))
            .filter(ExamSession.id == id)
            .first()
        )

    def get_by_code(self, db: Session, *, session_code: str) -> Optional[ExamSession]:
        return (
            db.query(ExamSession)
            .options(selectinload(ExamSession.exam))
            .filter(ExamSession.session_code == session_code)
            .first()
        )

    def code_exists(self, db: Session, *, session_code: str) -> bool:
        return db.query(ExamSession.id).filter(ExamSession.session_code == session_code).first() is not None

    def get_by_instructor(self, db: Session, *, instructor_id: int, skip: int = 0, limit: int = 100) -> List[ExamSession]:
        return (
            db.query(ExamSession)
            .filter(ExamSession.instructor_id == instructor_id)
            .order_by(ExamSession.starts_at.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def count_students(self, db: Session, *, session_id: int) -> int:
        """Distinct students holding an attempt in the session (capacity check)."""
        return (
            db.query(func.count(func.distinct(Attempt.student_id)))
            .filter(Attempt.session_id == session_id)
            .scalar()
        ) or 0

    def create_with_code(
        self, db: Session, *, obj_in: ExamSessionCreate, instructor_id: int, session_code: str
    ) -> ExamSession:
        db_obj = ExamSession(
            **obj_in.model_dump(),
            instructor_id=instructor_id,
            session_code=session_code,
        )
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj


exam_session = CRUDExamSession(ExamSession)
