from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Dict
from datetime import datetime

from app.core.constants import QuestionTypeEnum

class QuestionBase(BaseModel):
    question_text: str
    question_type: QuestionTypeEnum = QuestionTypeEnum.MULTIPLE_CHOICE
    options: Optional[Dict[str, str]] = None # {"A": "Lagos", "B": "Abuja"}
    points: int = Field(default=1, ge=0)
    position: int = Field(default=0, ge=0)

class QuestionCreate(QuestionBase):
    correct_answer: Optional[str] = None
    explanation: Optional[str] = None

class Question(QuestionBase):
    """Student-facing question: never carries the answer key."""
    id: int
    exam_id: int

    model_config = ConfigDict(from_attributes=True)

class QuestionWithAnswerKey(Question):
    # For instructors reviewing their own exams
    correct_answer: Optional[str] = None
    explanation: Optional[str] = None
    created_at: Optional[datetime] = None
