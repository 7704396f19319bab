"""Enrollment models - Patient enrollment in categories and programs"""
from sqlalchemy import (
    Column, String, Date, DateTime, ForeignKey, CheckConstraint, Index, Uuid, text
)
from sqlalchemy.sql import func
import uuid

from carepath.database import Base

ENROLLMENT_STATUSES = ("assigned", "in_progress", "completed", "dropped")
ACTIVE_ENROLLMENT_STATUSES = ("assigned", "in_progress")

_STATUS_CHECK = "status IN ('assigned', 'in_progress', 'completed', 'dropped')"
_ACTIVE_FILTER = "status IN ('assigned', 'in_progress')"


class CategoryEnrollment(Base):
    """Patient assignment to a treatment category; at most one active per patient"""

    __tablename__ = "category_enrollments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    patient_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    category_id = Column(Uuid, ForeignKey("categories.id"), nullable=False)
    enrolled_by = Column(Uuid, ForeignKey("users.id"), nullable=True)
    start_date = Column(Date, nullable=False)
    completed_date = Column(DateTime(timezone=True), nullable=True)
    status = Column(
        String(20),
        CheckConstraint(_STATUS_CHECK, name="ck_category_enrollments_status"),
        nullable=False,
        default="in_progress",
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("idx_category_enrollments_patient", "patient_id", "status"),
        Index(
            "uq_category_enrollments_active_patient",
            "patient_id",
            unique=True,
            postgresql_where=text(_ACTIVE_FILTER),
            sqlite_where=text(_ACTIVE_FILTER),
        ),
    )

    def __repr__(self):
        return f"<CategoryEnrollment(id={self.id}, patient={self.patient_id}, status={self.status})>"


class ProgramEnrollment(Base):
    """Patient enrollment in a program; at most one active per (patient, program)"""

    __tablename__ = "program_enrollments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    patient_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    program_id = Column(Uuid, ForeignKey("programs.id"), nullable=False)
    category_enrollment_id = Column(Uuid, ForeignKey("category_enrollments.id"), nullable=True)
    enrolled_by = Column(Uuid, ForeignKey("users.id"), nullable=True)
    start_date = Column(Date, nullable=False)
    expected_end_date = Column(Date, nullable=True)
    completed_date = Column(DateTime(timezone=True), nullable=True)
    status = Column(
        String(20),
        CheckConstraint(_STATUS_CHECK, name="ck_program_enrollments_status"),
        nullable=False,
        default="in_progress",
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("idx_program_enrollments_patient", "patient_id", "status"),
        Index("idx_program_enrollments_program", "program_id"),
        Index(
            "uq_program_enrollments_active_patient_program",
            "patient_id",
            "program_id",
            unique=True,
            postgresql_where=text(_ACTIVE_FILTER),
            sqlite_where=text(_ACTIVE_FILTER),
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_ENROLLMENT_STATUSES

    def __repr__(self):
        return (
            f"<ProgramEnrollment(id={self.id}, patient={self.patient_id}, "
            f"program={self.program_id}, status={self.status})>"
        )
