from pydantic import BaseModel, ConfigDict
from typing import Optional, List
from datetime import datetime

from app.schemas.answer import AnswerReview

class ResultBase(BaseModel):
    attempt_id: int
    student_id: int
    session_id: int
    exam_id: int
    total_questions: int
    correct_answers: int
    total_points: int
    points_earned: int
    percentage_score: float
    passed: bool
    manual_review_required: bool = False

class Result(ResultBase):
    id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class ResultDetails(Result):
    answers: List[AnswerReview] = []
