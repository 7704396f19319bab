"""Assessment models - Assessments, their questions and answer options"""
from sqlalchemy import (
    Column, String, Text, Integer, Boolean, DateTime, ForeignKey, CheckConstraint, Index, Uuid
)
from sqlalchemy.sql import func
import uuid

from carepath.database import Base

QUESTION_TYPES = ("multiple_choice", "true_false", "text_response")
CHOICE_QUESTION_TYPES = ("multiple_choice", "true_false")


class Assessment(Base):
    """Assessment attached 1:1 to an 'assessment' content item"""

    __tablename__ = "assessments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    content_item_id = Column(Uuid, ForeignKey("content_items.id"), unique=True, nullable=False)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    passing_score = Column(
        Integer,
        CheckConstraint("passing_score >= 0 AND passing_score <= 100", name="ck_assessments_passing"),
        nullable=False,
    )
    time_limit_minutes = Column(Integer, nullable=True)
    created_by = Column(Uuid, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self):
        return f"<Assessment(id={self.id}, title={self.title}, passing={self.passing_score})>"


class Question(Base):
    """Assessment question; sequence_number is dense within its assessment"""

    __tablename__ = "questions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    assessment_id = Column(Uuid, ForeignKey("assessments.id"), nullable=False)
    question_text = Column(Text, nullable=False)
    question_type = Column(
        String(20),
        CheckConstraint(
            "question_type IN ('multiple_choice', 'true_false', 'text_response')",
            name="ck_questions_type",
        ),
        nullable=False,
    )
    points = Column(
        Integer,
        CheckConstraint("points > 0", name="ck_questions_points"),
        nullable=False,
    )
    sequence_number = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("idx_questions_assessment_sequence", "assessment_id", "sequence_number"),
    )

    def __repr__(self):
        return f"<Question(id={self.id}, type={self.question_type}, points={self.points})>"


class QuestionOption(Base):
    """Answer option of a choice question"""

    __tablename__ = "question_options"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    question_id = Column(Uuid, ForeignKey("questions.id"), nullable=False)
    option_text = Column(Text, nullable=False)
    is_correct = Column(Boolean, nullable=False, default=False)
    sequence_number = Column(Integer, nullable=False)

    __table_args__ = (
        Index("idx_question_options_question", "question_id"),
    )

    def __repr__(self):
        return f"<QuestionOption(id={self.id}, question={self.question_id}, correct={self.is_correct})>"
