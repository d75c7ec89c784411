from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Dict, Optional
from datetime import datetime

from app.core.constants import IncidentTypeEnum, SeverityEnum

class IncidentCreate(BaseModel):
    violation_type: IncidentTypeEnum
    severity: SeverityEnum = SeverityEnum.LOW
    details: Optional[Dict[str, Any]] = None
    browser_data: Optional[Dict[str, Any]] = None

class Incident(BaseModel):
    id: int
    attempt_id: int
    session_id: int
    student_id: int
    violation_type: str
    severity: str
    details: Optional[Dict[str, Any]] = None
    browser_data: Optional[Dict[str, Any]] = None
    occurred_at: datetime

    model_config = ConfigDict(from_attributes=True)

class IncidentLogged(BaseModel):
    incident: Incident
    incident_count: int
    is_flagged: bool

class WarningCreate(BaseModel):
    message: str = Field(..., max_length=1000)
    severity: SeverityEnum = SeverityEnum.MEDIUM

    @field_validator("message")
    @classmethod
    def message_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("message must not be blank")
        return value

class StudentWarning(BaseModel):
    id: int
    attempt_id: int
    session_id: int
    student_id: int
    instructor_id: int
    message: str
    severity: str
    sent_at: datetime
    acknowledged: bool = False
    acknowledged_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
