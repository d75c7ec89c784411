from typing import List, Optional
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.crud.base import CRUDBase
from app.models.question import Question
from app.schemas.question import QuestionCreate

class CRUDQuestion(CRUDBase[Question, QuestionCreate, BaseModel]):
    def get_by_exam(self, db: Session, *, exam_id: int) -> List[Question]:
        return (
            db.query(self.model)
            .filter(self.model.exam_id == exam_id)
            .order_by(self.model.position, self.model.id)
            .all()
        )

    def get_for_exam(self, db: Session, *, exam_id: int, question_id: int) -> Optional[Question]:
        return (
            db.query(self.model)
            .filter(self.model.id == question_id, self.model.exam_id == exam_id)
            .first()
        )

question = CRUDQuestion(Question)
