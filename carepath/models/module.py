"""Module model - Ordered unit of a program"""
from sqlalchemy import (
    Column, String, Text, Integer, Boolean, DateTime, ForeignKey, CheckConstraint, Index, Uuid
)
from sqlalchemy.sql import func
import uuid

from carepath.database import Base


class Module(Base):
    """Learning module; sequence_number is dense 1..N within its program"""

    __tablename__ = "modules"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    program_id = Column(Uuid, ForeignKey("programs.id"), nullable=False)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    sequence_number = Column(
        Integer,
        CheckConstraint("sequence_number >= 1", name="ck_modules_sequence"),
        nullable=False,
    )
    estimated_minutes = Column(Integer, nullable=True)
    is_required = Column(Boolean, nullable=False, default=True)
    created_by = Column(Uuid, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("idx_modules_program_sequence", "program_id", "sequence_number"),
    )

    def __repr__(self):
        return f"<Module(id={self.id}, program={self.program_id}, seq={self.sequence_number})>"
