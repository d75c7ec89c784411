import random
from typing import List, Optional, Sequence
from sqlalchemy.orm import Session

from app.crud.question import question as crud_question
from app.models.attempt import Attempt
from app.models.question import Question
from app.services.scoring import QuestionKey, key_for_question


class QuestionBankService:
    """Read-only view of an exam's questions and their answer keys."""

    def get_questions(self, db: Session, exam_id: int) -> List[Question]:
        return crud_question.get_by_exam(db, exam_id=exam_id)

    def get_keys(self, db: Session, exam_id: int) -> List[QuestionKey]:
        # ScoringError propagates: a malformed key must stop finalization.
        return [key_for_question(q) for q in self.get_questions(db, exam_id)]

    def count_questions(self, db: Session, exam_id: int) -> int:
        return len(self.get_questions(db, exam_id))

    def question_order_for(self, db: Session, attempt: Attempt) -> List[int]:
        """
        Question ids in the order this student sees them.

        Exams with shuffling get a per-student order seeded by session, student
        and exam, so the same student in the same session always sees the same
        sequence. Answer options are never reordered; stored keys stay valid.
        """
        ids = [q.id for q in self.get_questions(db, attempt.exam_id)]
        if attempt.exam.shuffle_questions:
            random.Random(f"{attempt.session_id}-{attempt.student_id}-{attempt.exam_id}").shuffle(ids)
        return ids

    def get_questions_in_order(self, db: Session, exam_id: int, order: Optional[Sequence[int]]) -> List[Question]:
        questions = self.get_questions(db, exam_id)
        if not order:
            return questions
        rank = {question_id: index for index, question_id in enumerate(order)}
        # Questions added after the order was fixed go last, by position.
        return sorted(questions, key=lambda q: (q.id not in rank, rank.get(q.id, 0)))


question_bank_service = QuestionBankService()
