from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.core.database import Base

class ProctoringIncident(Base):
    __tablename__ = "proctoring_incidents"

    id = Column(Integer, primary_key=True, index=True)
    attempt_id = Column(Integer, ForeignKey("attempts.id"), nullable=False, index=True)
    session_id = Column(Integer, ForeignKey("exam_sessions.id"), nullable=False, index=True)
    student_id = Column(Integer, nullable=False, index=True)
    violation_type = Column(String, nullable=False) # e.g. 'tab_switch', 'copy_paste_attempt'
    severity = Column(String, nullable=False, default="low")
    details = Column(JSON, nullable=True)
    browser_data = Column(JSON, nullable=True) # user agent, page url as reported by the exam screen
    occurred_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    attempt = relationship("Attempt")
