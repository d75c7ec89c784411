from sqlalchemy import Column, Integer, String, Boolean, DateTime, Float
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.core.database import Base

class Exam(Base):
    __tablename__ = "exams"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, index=True, nullable=False)
    description = Column(String, nullable=True)
    duration_minutes = Column(Integer, nullable=False, default=60)
    passing_score = Column(Float, nullable=False, default=50.0)
    is_active = Column(Boolean, default=True)
    shuffle_questions = Column(Boolean, nullable=False, default=False)
    created_by = Column(Integer, nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    questions = relationship(
        "Question",
        back_populates="exam",
        cascade="all, delete-orphan",
        order_by="Question.position",
    )
    sessions = relationship("ExamSession", back_populates="exam", cascade="all, delete-orphan")

    @property
    def duration_seconds(self) -> int:
        return int(self.duration_minutes or 0) * 60
