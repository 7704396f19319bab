"""Program model - Structured treatment course inside a category"""
from sqlalchemy import (
    Column, String, Text, Integer, Boolean, DateTime, ForeignKey, CheckConstraint, Index, Uuid
)
from sqlalchemy.sql import func
import uuid

from carepath.database import Base


class Program(Base):
    """Treatment program composed of ordered modules"""

    __tablename__ = "programs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    category_id = Column(Uuid, ForeignKey("categories.id"), nullable=False)
    duration_days = Column(
        Integer,
        CheckConstraint("duration_days IS NULL OR duration_days > 0", name="ck_programs_duration"),
        nullable=True,
    )
    is_self_paced = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_by = Column(Uuid, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("idx_programs_category", "category_id", "is_active"),
    )

    def __repr__(self):
        return f"<Program(id={self.id}, title={self.title}, category={self.category_id})>"
