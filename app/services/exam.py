import logging
from sqlalchemy.orm import Session
from fastapi import HTTPException, status

from app.core.exceptions import InvalidQuestionError, ScoringError
from app.crud.exam import exam as crud_exam
from app.models.exam import Exam
from app.schemas.exam import ExamCreate
from app.schemas.user import UserContext
from app.services.scoring import build_key

logger = logging.getLogger(__name__)


class ExamService:

    def _validate_questions(self, exam_in: ExamCreate) -> None:
        for index, question_in in enumerate(exam_in.questions):
            try:
                build_key(
                    question_id=index,
                    question_type=question_in.question_type,
                    correct_answer=question_in.correct_answer,
                    points=question_in.points,
                    options=question_in.options,
                )
            except ScoringError as exc:
                raise InvalidQuestionError(
                    f"Question {index + 1} is invalid: {str(exc).split(': ', 1)[-1]}",
                    context={"question_index": index},
                )

    def _require_owner(self, exam: Exam, context: UserContext) -> None:
        if exam.created_by != context.user_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You can only manage exams you created."
            )

    def create_exam(self, db: Session, exam_in: ExamCreate, context: UserContext) -> Exam:
        self._validate_questions(exam_in)
        exam = crud_exam.create_with_questions(db, obj_in=exam_in, created_by=context.user_id)
        logger.info(f"Exam {exam.id} created by instructor {context.user_id} with {len(exam.questions)} question(s)")
        return exam

    def get_exam(self, db: Session, exam_id: int, context: UserContext) -> Exam:
        exam = crud_exam.get(db, id=exam_id)
        if not exam:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Exam not found.")
        self._require_owner(exam, context)
        return exam


exam_service = ExamService()
