from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.core.database import Base
from app.core.config import settings
from app.core.constants import SessionStatusEnum

class ExamSession(Base):
    __tablename__ = "exam_sessions"

    id = Column(Integer, primary_key=True, index=True)
    exam_id = Column(Integer, ForeignKey("exams.id"), nullable=False, index=True)
    instructor_id = Column(Integer, nullable=False, index=True)
    name = Column(String, nullable=False)
    session_code = Column(String(12), nullable=False, unique=True, index=True)
    class_level = Column(String, nullable=True)
    max_students = Column(Integer, nullable=False, default=settings.DEFAULT_MAX_STUDENTS)
    starts_at = Column(DateTime(timezone=True), nullable=False)
    ends_at = Column(DateTime(timezone=True), nullable=False)
    status = Column(Enum(SessionStatusEnum), nullable=False, default=SessionStatusEnum.SCHEDULED)
    camera_monitoring_required = Column(Boolean, nullable=False, default=False)
    reveal_results_immediately = Column(Boolean, nullable=False, default=False)
    results_released_at = Column(DateTime(timezone=True), nullable=True)
    notify_results = Column(Boolean, nullable=False, default=False)
    notification_delay_days = Column(Integer, nullable=False, default=settings.NOTIFICATION_DELAY_DAYS)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    exam = relationship("Exam", back_populates="sessions")
    attempts = relationship("Attempt", back_populates="session", cascade="all, delete-orphan")

    @property
    def results_visible(self) -> bool:
        return bool(self.reveal_results_immediately or self.results_released_at is not None)
