"""MoodEntry model - Patient mood check-ins"""
from sqlalchemy import (
    Column, String, Text, Integer, DateTime, ForeignKey, CheckConstraint, Index, Uuid
)
import uuid

from carepath.database import Base

MOOD_TYPES = ("happy", "calm", "neutral", "stressed", "sad", "angry", "anxious")


class MoodEntry(Base):
    """Mood score (1-10) with optional journal text, optionally tied to content"""

    __tablename__ = "mood_entries"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    patient_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    content_item_id = Column(Uuid, ForeignKey("content_items.id"), nullable=True)
    mood_type = Column(
        String(20),
        CheckConstraint(
            "mood_type IN ('happy', 'calm', 'neutral', 'stressed', 'sad', 'angry', 'anxious')",
            name="ck_mood_entries_type",
        ),
        nullable=False,
    )
    mood_score = Column(
        Integer,
        CheckConstraint("mood_score >= 1 AND mood_score <= 10", name="ck_mood_entries_score"),
        nullable=False,
    )
    journal_entry = Column(Text, nullable=True)
    entry_timestamp = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_mood_entries_patient_time", "patient_id", "entry_timestamp"),
    )

    def __repr__(self):
        return f"<MoodEntry(patient={self.patient_id}, mood={self.mood_type}, score={self.mood_score})>"
