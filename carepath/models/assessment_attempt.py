"""Attempt models - Scored assessment submissions and per-question responses"""
from sqlalchemy import (
    Column, String, Text, Integer, Boolean, DateTime, ForeignKey, CheckConstraint, Index, Uuid
)
from sqlalchemy.sql import func
import uuid

from carepath.database import Base

GRADING_STATUSES = ("graded", "pending_review")


class AssessmentAttempt(Base):
    """One submission of an assessment; score and passed stay null until completed"""

    __tablename__ = "assessment_attempts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    patient_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    assessment_id = Column(Uuid, ForeignKey("assessments.id"), nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    score = Column(
        Integer,
        CheckConstraint("score IS NULL OR (score >= 0 AND score <= 100)", name="ck_attempts_score"),
        nullable=True,
    )
    passed = Column(Boolean, nullable=True)

    __table_args__ = (
        Index("idx_attempts_patient_assessment", "patient_id", "assessment_id"),
    )

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    def __repr__(self):
        return f"<AssessmentAttempt(id={self.id}, assessment={self.assessment_id}, score={self.score})>"


class QuestionResponse(Base):
    """Answer to one question within an attempt"""

    __tablename__ = "question_responses"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    attempt_id = Column(Uuid, ForeignKey("assessment_attempts.id"), nullable=False)
    question_id = Column(Uuid, ForeignKey("questions.id"), nullable=False)
    selected_option_id = Column(Uuid, ForeignKey("question_options.id"), nullable=True)
    text_response = Column(Text, nullable=True)
    # None only while grading_status is pending_review
    is_correct = Column(Boolean, nullable=True)
    points_earned = Column(Integer, nullable=False, default=0)
    grading_status = Column(
        String(20),
        CheckConstraint(
            "grading_status IN ('graded', 'pending_review')",
            name="ck_question_responses_grading",
        ),
        nullable=False,
        default="graded",
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("idx_question_responses_attempt", "attempt_id"),
        Index("idx_question_responses_question", "question_id"),
    )

    def __repr__(self):
        return f"<QuestionResponse(question={self.question_id}, correct={self.is_correct}, points={self.points_earned})>"
