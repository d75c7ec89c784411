from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.crud.base import CRUDBase
from app.models.answer import Answer


class CRUDAnswer(CRUDBase[Answer, BaseModel, BaseModel]):

    def get_by_attempt_and_question(self, db: Session, *, attempt_id: int, question_id: int) -> Optional[Answer]:
        return (
            db.query(Answer)
            .filter(Answer.attempt_id == attempt_id, Answer.question_id == question_id)
            .first()
        )

    def get_all_by_attempt(self, db: Session, *, attempt_id: int) -> List[Answer]:
        return db.query(Answer).filter(Answer.attempt_id == attempt_id).order_by(Answer.question_id).all()

    def upsert(
        self,
        db: Session,
        *,
        attempt_id: int,
        question_id: int,
        answer_text: Optional[str],
        answered_at: datetime,
        commit: bool = True,
    ) -> Answer:
        """Insert or overwrite the answer for (attempt, question). Repeated saves converge."""
        existing = self.get_by_attempt_and_question(db, attempt_id=attempt_id, question_id=question_id)
        if existing:
            return self.update(
                db,
                db_obj=existing,
                obj_in={"answer_text": answer_text, "answered_at": answered_at},
                commit=commit,
            )

        values = {
            "attempt_id": attempt_id,
            "question_id": question_id,
            "answer_text": answer_text,
            "answered_at": answered_at,
        }
        try:
            # Savepoint: a collision must not end the caller's transaction or its row lock.
            with db.begin_nested():
                created = self.create(db, obj_in=values, commit=False)
        except IntegrityError:
            existing = self.get_by_attempt_and_question(db, attempt_id=attempt_id, question_id=question_id)
            if existing is None:
                raise
            return self.update(
                db,
                db_obj=existing,
                obj_in={"answer_text": answer_text, "answered_at": answered_at},
                commit=commit,
            )
        if commit:
            db.commit()
        return created


answer = CRUDAnswer(Answer)
