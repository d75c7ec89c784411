from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Boolean, Enum, JSON, UniqueConstraint
from sqlalchemy.orm import relationship, validates
from sqlalchemy.sql import func
from app.core.database import Base
from app.core.constants import AttemptStatusEnum, TERMINAL_ATTEMPT_STATUSES
from app.core.state_machine import ensure_transition
from app.core.timer import as_utc

WRITE_ONCE_FIELDS = ("anchor_start_at", "allotted_duration_seconds", "submitted_at", "completed_at")

class Attempt(Base):
    __tablename__ = "attempts"
    __table_args__ = (
        UniqueConstraint(
            "session_id", "student_id", "exam_id", "attempt_number",
            name="uq_attempts_session_student_exam_number",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey("exam_sessions.id"), nullable=False, index=True)
    student_id = Column(Integer, nullable=False, index=True)
    exam_id = Column(Integer, ForeignKey("exams.id"), nullable=False, index=True)
    attempt_number = Column(Integer, nullable=False, default=1)
    status = Column(Enum(AttemptStatusEnum), nullable=False, default=AttemptStatusEnum.NOT_STARTED, index=True)
    anchor_start_at = Column(DateTime(timezone=True), nullable=True)
    allotted_duration_seconds = Column(Integer, nullable=False)
    current_question_index = Column(Integer, nullable=False, default=0) # index into question_order
    question_order = Column(JSON, nullable=True) # question ids as served; fixed at start
    camera_enabled = Column(Boolean, nullable=False, default=False)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    finalization_error = Column(String, nullable=True)
    finalization_attempts = Column(Integer, nullable=False, default=0)
    incident_count = Column(Integer, nullable=False, default=0)
    warning_count = Column(Integer, nullable=False, default=0)
    is_flagged = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    session = relationship("ExamSession", back_populates="attempts")
    exam = relationship("Exam")
    answers = relationship("Answer", back_populates="attempt", cascade="all, delete-orphan")
    result = relationship("Result", back_populates="attempt", uselist=False, cascade="all, delete-orphan")
    audit_entries = relationship(
        "AttemptAuditLog",
        back_populates="attempt",
        cascade="all, delete-orphan",
        order_by="AttemptAuditLog.id",
    )

    @validates(*WRITE_ONCE_FIELDS)
    def _validate_write_once(self, key, value):
        current = getattr(self, key)
        if current is None:
            return value
        if key == "allotted_duration_seconds":
            unchanged = int(current) == int(value)
        else:
            unchanged = value is not None and as_utc(current) == as_utc(value)
        if not unchanged:
            raise ValueError(f"{key} is write-once and already set for attempt {self.id}.")
        return current

    @validates("question_order")
    def _validate_question_order(self, key, value):
        current = self.question_order
        if current is not None and list(current) != list(value or []):
            raise ValueError(f"question_order is write-once and already set for attempt {self.id}.")
        return value if current is None else current

    @validates("status")
    def _validate_status(self, key, value):
        target = AttemptStatusEnum(value)
        current = self.status
        if current is not None and AttemptStatusEnum(current) != target:
            ensure_transition(AttemptStatusEnum(current), target)
        return target

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_ATTEMPT_STATUSES

    @property
    def is_in_progress(self) -> bool:
        return self.status == AttemptStatusEnum.IN_PROGRESS
