from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sqlalchemy.dialects.postgresql import JSONB
from app.core.database import Base
from app.core.constants import QuestionTypeEnum

class Question(Base):
    __tablename__ = "questions"

    id = Column(Integer, primary_key=True, index=True)
    exam_id = Column(Integer, ForeignKey("exams.id"), nullable=False, index=True)
    question_text = Column(String, nullable=False)
    question_type = Column(Enum(QuestionTypeEnum), nullable=False, default=QuestionTypeEnum.MULTIPLE_CHOICE)
    options = Column(JSON().with_variant(JSONB, "postgresql"), nullable=True) # {"A": "...", "B": "..."}
    correct_answer = Column(String, nullable=True) # fill_in_gap accepts "a|b" alternatives
    points = Column(Integer, nullable=False, default=1)
    position = Column(Integer, nullable=False, default=0)
    explanation = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    exam = relationship("Exam", back_populates="questions")
    answers = relationship("Answer", back_populates="question", cascade="all, delete-orphan")
