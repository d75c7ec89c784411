from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.core.database import Base

class StudentWarning(Base):
    __tablename__ = "student_warnings"

    id = Column(Integer, primary_key=True, index=True)
    attempt_id = Column(Integer, ForeignKey("attempts.id"), nullable=False, index=True)
    session_id = Column(Integer, ForeignKey("exam_sessions.id"), nullable=False, index=True)
    student_id = Column(Integer, nullable=False, index=True)
    instructor_id = Column(Integer, nullable=False)
    message = Column(String, nullable=False)
    severity = Column(String, nullable=False, default="medium")
    sent_at = Column(DateTime(timezone=True), nullable=False)
    acknowledged_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    attempt = relationship("Attempt")

    @property
    def acknowledged(self) -> bool:
        return self.acknowledged_at is not None
