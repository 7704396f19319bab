"""ContentItem model - Single piece of module content"""
from sqlalchemy import (
    Column, String, Text, Integer, DateTime, ForeignKey, CheckConstraint, Index, Uuid
)
from sqlalchemy.sql import func
import uuid

from carepath.database import Base

CONTENT_TYPES = ("document", "link", "video", "text", "assessment")


class ContentItem(Base):
    """Document, link, video, text or assessment; content is JSON for structured types"""

    __tablename__ = "content_items"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    module_id = Column(Uuid, ForeignKey("modules.id"), nullable=False)
    title = Column(String(200), nullable=False)
    content_type = Column(
        String(20),
        CheckConstraint(
            "content_type IN ('document', 'link', 'video', 'text', 'assessment')",
            name="ck_content_items_type",
        ),
        nullable=False,
    )
    content = Column(Text, nullable=False, default="")
    sequence_number = Column(
        Integer,
        CheckConstraint("sequence_number >= 1", name="ck_content_items_sequence"),
        nullable=False,
    )
    created_by = Column(Uuid, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("idx_content_items_module_sequence", "module_id", "sequence_number"),
    )

    def __repr__(self):
        return f"<ContentItem(id={self.id}, type={self.content_type}, seq={self.sequence_number})>"
