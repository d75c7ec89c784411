from sqlalchemy.orm import Session, selectinload
from typing import List, Optional
from pydantic import BaseModel

from app.crud.base import CRUDBase
from app.models.exam import Exam
from app.models.question import Question
from app.schemas.exam import ExamCreate


class CRUDExam(CRUDBase[Exam, ExamCreate, BaseModel]):

    def _query_with_relationships(self, db: Session):
        return db.query(Exam).options(selectinload(Exam.questions))

    def get(self, db: Session, id: int) -> Optional[Exam]:
        return self._query_with_relationships(db).filter(Exam.id == id).first()

    def get_multi_by_creator(self, db: Session, created_by: int, skip: int = 0, limit: int = 100) -> List[Exam]:
        return (
            self._query_with_relationships(db)
            .filter(Exam.created_by == created_by)
            .order_by(Exam.created_at.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def create_with_questions(self, db: Session, *, obj_in: ExamCreate, created_by: int) -> Exam:
        exam_data = obj_in.model_dump(exclude={"questions"})
        db_obj = Exam(**exam_data, created_by=created_by)
        for index, question_in in enumerate(obj_in.questions):
            question_data = question_in.model_dump()
            if not question_data.get("position"):
                question_data["position"] = index
            db_obj.questions.append(Question(**question_data))
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj

exam = CRUDExam(Exam)
