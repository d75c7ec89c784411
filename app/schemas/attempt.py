from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from datetime import datetime

from app.core.constants import AttemptStatusEnum, TimerStatusEnum
from app.schemas.result import Result

class AttemptCreate(BaseModel):
    session_id: int
    student_id: int
    exam_id: int
    attempt_number: int = 1
    allotted_duration_seconds: int = Field(..., gt=0)
    status: AttemptStatusEnum = AttemptStatusEnum.NOT_STARTED

class Attempt(BaseModel):
    id: int
    session_id: int
    student_id: int
    exam_id: int
    attempt_number: int
    status: AttemptStatusEnum
    anchor_start_at: Optional[datetime] = None
    allotted_duration_seconds: int
    current_question_index: int
    camera_enabled: bool
    submitted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    finalization_error: Optional[str] = None
    finalization_attempts: int = 0
    question_order: Optional[List[int]] = None
    incident_count: int = 0
    warning_count: int = 0
    is_flagged: bool = False
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class AttemptStartRequest(BaseModel):
    session_id: int
    class_level: Optional[str] = None

class AttemptStartResponse(BaseModel):
    attempt_id: int
    status: AttemptStatusEnum
    anchor_start_at: datetime
    allotted_duration_seconds: int
    remaining_seconds: int
    timer_status: TimerStatusEnum
    current_question_index: int
    camera_enabled: bool
    resumed: bool
    server_time: datetime

class TimerState(BaseModel):
    attempt_id: int
    attempt_status: AttemptStatusEnum
    remaining_seconds: int
    timer_status: TimerStatusEnum
    server_time: datetime

class PositionUpdate(BaseModel):
    current_question_index: int = Field(..., ge=0)

class CameraUpdate(BaseModel):
    enabled: bool

class SubmitResponse(BaseModel):
    attempt_id: int
    status: AttemptStatusEnum
    already_closed: bool = False
    finalized: bool = False
    result_available: bool = False
    result: Optional[Result] = None

class AuditEntry(BaseModel):
    from_status: Optional[str] = None
    to_status: str
    reason: str
    actor_id: Optional[int] = None
    occurred_at: datetime

    model_config = ConfigDict(from_attributes=True)

class AttemptWithAudit(Attempt):
    audit_entries: List[AuditEntry] = []
