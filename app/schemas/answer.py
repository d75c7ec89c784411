from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime

class AnswerSave(BaseModel):
    question_id: int
    answer: Optional[str] = None
    current_question_index: Optional[int] = Field(default=None, ge=0)

class Answer(BaseModel):
    id: int
    attempt_id: int
    question_id: int
    answer_text: Optional[str] = None
    answered_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class AnswerReview(Answer):
    # Available once the attempt has been finalized
    is_correct: Optional[bool] = None
    points_earned: Optional[int] = None
