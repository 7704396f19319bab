"""ModuleProgress model - Per-module completion state for one enrollment"""
from sqlalchemy import (
    Column, String, Integer, DateTime, ForeignKey, CheckConstraint, Index, UniqueConstraint, Uuid
)
from sqlalchemy.sql import func
import uuid

from carepath.database import Base

PROGRESS_STATUSES = ("not_started", "in_progress", "completed")


class ModuleProgress(Base):
    """One row per (patient, module, enrollment), seeded at enrollment time"""

    __tablename__ = "module_progress"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    patient_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    module_id = Column(Uuid, ForeignKey("modules.id"), nullable=False)
    enrollment_id = Column(Uuid, ForeignKey("program_enrollments.id"), nullable=False)
    status = Column(
        String(20),
        CheckConstraint(
            "status IN ('not_started', 'in_progress', 'completed')",
            name="ck_module_progress_status",
        ),
        nullable=False,
        default="not_started",
    )
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    time_spent_seconds = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("patient_id", "module_id", "enrollment_id", name="uq_module_progress_row"),
        Index("idx_module_progress_enrollment", "enrollment_id"),
    )

    def __repr__(self):
        return f"<ModuleProgress(module={self.module_id}, enrollment={self.enrollment_id}, status={self.status})>"
