"""Category model - Top-level grouping of treatment programs"""
from sqlalchemy import Column, String, Text, DateTime, Uuid
from sqlalchemy.sql import func
import uuid

from carepath.database import Base


class Category(Base):
    """Treatment category a patient is assigned to"""

    __tablename__ = "categories"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(200), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self):
        return f"<Category(id={self.id}, name={self.name})>"
