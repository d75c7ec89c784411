from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from datetime import datetime

from app.schemas.question import QuestionCreate, QuestionWithAnswerKey

class ExamBase(BaseModel):
    title: str
    description: Optional[str] = None
    duration_minutes: int = Field(default=60, gt=0)
    passing_score: float = Field(default=50.0, ge=0, le=100)
    is_active: bool = True
    shuffle_questions: bool = False

    class Config:
        json_schema_extra = {
            "example": {
                "title": "JSS1 Mathematics - First Term",
                "description": "End of term assessment",
                "duration_minutes": 30,
                "passing_score": 50.0,
                "is_active": True,
                "questions": [
                    {
                        "question_text": "What is 15 + 27?",
                        "question_type": "short_answer",
                        "correct_answer": "42",
                        "points": 1
                    }
                ]
            }
        }

class ExamCreate(ExamBase):
    questions: List[QuestionCreate] = []

class Exam(ExamBase):
    id: int
    created_by: Optional[int] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    questions: List[QuestionWithAnswerKey] = []

    model_config = ConfigDict(from_attributes=True)
