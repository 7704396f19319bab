"""
Response models shared by the routers

Each model reads straight from the ORM object (from_attributes) and is
dumped in JSON mode so UUIDs and dates serialize the same everywhere.
"""
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Type
from uuid import UUID

from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, ConfigDict


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class ReorderRequest(BaseModel):
    """Target 1-based position; out-of-range values are clamped"""
    new_position: int
    parent_id: Optional[UUID] = None


class CategoryOut(ORMModel):
    id: UUID
    name: str
    description: Optional[str] = None


class ProgramOut(ORMModel):
    id: UUID
    title: str
    description: Optional[str] = None
    category_id: UUID
    duration_days: Optional[int] = None
    is_self_paced: bool
    is_active: bool


class ModuleOut(ORMModel):
    id: UUID
    program_id: UUID
    title: str
    description: Optional[str] = None
    sequence_number: int
    estimated_minutes: Optional[int] = None
    is_required: bool


class ContentItemOut(ORMModel):
    id: UUID
    module_id: UUID
    title: str
    content_type: str
    sequence_number: int


class AssessmentOut(ORMModel):
    id: UUID
    content_item_id: UUID
    title: str
    description: Optional[str] = None
    passing_score: int
    time_limit_minutes: Optional[int] = None


class QuestionOut(ORMModel):
    id: UUID
    assessment_id: UUID
    question_text: str
    question_type: str
    points: int
    sequence_number: int


class PatientOut(ORMModel):
    id: UUID
    email: str
    first_name: str
    last_name: str
    date_of_birth: Optional[date] = None
    gender: Optional[str] = None
    phone: Optional[str] = None
    is_active: bool


class CategoryEnrollmentOut(ORMModel):
    id: UUID
    patient_id: UUID
    category_id: UUID
    start_date: date
    completed_date: Optional[datetime] = None
    status: str


class ProgramEnrollmentOut(ORMModel):
    id: UUID
    patient_id: UUID
    program_id: UUID
    category_enrollment_id: Optional[UUID] = None
    start_date: date
    expected_end_date: Optional[date] = None
    completed_date: Optional[datetime] = None
    status: str


class ModuleProgressOut(ORMModel):
    id: UUID
    module_id: UUID
    enrollment_id: UUID
    status: str
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    time_spent_seconds: int


class AttemptOut(ORMModel):
    id: UUID
    assessment_id: UUID
    started_at: datetime
    completed_at: Optional[datetime] = None
    score: Optional[int] = None
    passed: Optional[bool] = None


class QuestionResponseOut(ORMModel):
    id: UUID
    question_id: UUID
    selected_option_id: Optional[UUID] = None
    is_correct: Optional[bool] = None
    points_earned: int
    grading_status: str


class MoodEntryOut(ORMModel):
    id: UUID
    mood_type: str
    mood_score: int
    journal_entry: Optional[str] = None
    content_item_id: Optional[UUID] = None
    entry_timestamp: datetime


def dump(model: Type[BaseModel], obj: Any) -> Dict[str, Any]:
    return model.model_validate(obj).model_dump(mode="json")


def dump_many(model: Type[BaseModel], objs) -> List[Dict[str, Any]]:
    return [dump(model, obj) for obj in objs]


def jsonable(data: Any) -> Any:
    """JSON-mode copy of plain dict/list payloads built by services."""
    return jsonable_encoder(data)
