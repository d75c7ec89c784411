from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.core.database import Base

class AttemptAuditLog(Base):
    __tablename__ = "attempt_audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    attempt_id = Column(Integer, ForeignKey("attempts.id"), nullable=False, index=True)
    from_status = Column(String, nullable=True)
    to_status = Column(String, nullable=False)
    reason = Column(String, nullable=False) # e.g. 'student_submit', 'time_exhausted', 'reopen_override'
    actor_id = Column(Integer, nullable=True) # None for system-driven transitions
    occurred_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    attempt = relationship("Attempt", back_populates="audit_entries")
