from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Optional
from datetime import datetime

from app.core.config import settings
from app.core.constants import SessionStatusEnum

class ExamSessionBase(BaseModel):
    exam_id: int
    name: str
    class_level: Optional[str] = None
    max_students: int = Field(default=settings.DEFAULT_MAX_STUDENTS, gt=0)
    starts_at: datetime
    ends_at: datetime
    camera_monitoring_required: bool = False
    reveal_results_immediately: bool = False
    notify_results: bool = False
    notification_delay_days: int = Field(default=settings.NOTIFICATION_DELAY_DAYS, ge=0)

class ExamSessionCreate(ExamSessionBase):
    @model_validator(mode="after")
    def validate_window(self):
        if self.ends_at <= self.starts_at:
            raise ValueError("ends_at must be later than starts_at")
        return self

class ExamSessionStatusUpdate(BaseModel):
    status: SessionStatusEnum

class ExamSession(ExamSessionBase):
    id: int
    instructor_id: int
    session_code: str
    status: SessionStatusEnum
    results_released_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class SessionJoinRequest(BaseModel):
    session_code: str = Field(..., min_length=1)
    class_level: Optional[str] = None

class SessionJoinResponse(BaseModel):
    session_id: int
    exam_id: int
    attempt_id: int
    session_name: str
    camera_monitoring_required: bool
    duration_seconds: int
