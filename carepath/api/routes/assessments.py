"""
Assessment API Endpoints

Admin authoring of assessments and questions, plus the patient flow:
listing, taking and reviewing assessments. Patients never receive the
correct-option flags until an attempt is completed.
"""
import logging
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from carepath.api.auth import get_current_user, require_admin, require_patient
from carepath.api.dependencies import get_catalog, get_grader
from carepath.api.schemas import AssessmentOut, AttemptOut, QuestionOut, ReorderRequest, dump, jsonable
from carepath.errors import success
from carepath.models import User
from carepath.services.assessment_grader import Answer, AssessmentGrader
from carepath.services.catalog import CatalogService, OptionInput

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["assessments"])


# Pydantic models for request validation

class AssessmentCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    instructions: Optional[str] = None
    passing_score: int = Field(..., ge=0, le=100)
    time_limit_minutes: Optional[int] = Field(None, gt=0)


class AssessmentUpdateRequest(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    passing_score: Optional[int] = Field(None, ge=0, le=100)
    time_limit_minutes: Optional[int] = Field(None, gt=0)


class OptionRequest(BaseModel):
    option_text: str = Field(..., min_length=1)
    is_correct: bool = False


class QuestionCreateRequest(BaseModel):
    question_text: str = Field(..., min_length=1)
    question_type: Literal["multiple_choice", "true_false", "text_response"]
    points: int = Field(1, ge=1)
    options: List[OptionRequest] = Field(default_factory=list)


class QuestionUpdateRequest(BaseModel):
    question_text: Optional[str] = Field(None, min_length=1)
    question_type: Optional[Literal["multiple_choice", "true_false", "text_response"]] = None
    points: Optional[int] = Field(None, ge=1)
    options: Optional[List[OptionRequest]] = None


class AnswerRequest(BaseModel):
    """One answer; the question type is looked up server-side"""
    question_id: UUID
    selected_option_id: Optional[UUID] = None
    text_response: Optional[str] = None


class SubmitRequest(BaseModel):
    answers: List[AnswerRequest]


def _options(options: Optional[List[OptionRequest]]) -> Optional[List[OptionInput]]:
    if options is None:
        return None
    return [OptionInput(option_text=o.option_text, is_correct=o.is_correct) for o in options]


# Admin endpoints

@router.post("/modules/{module_id}/assessments", status_code=201)
async def create_assessment(
    module_id: UUID,
    request: AssessmentCreateRequest,
    admin: User = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog),
) -> Dict[str, Any]:
    """Create the assessment and its content item in one step."""
    assessment = await catalog.create_assessment(
        module_id=module_id,
        title=request.title,
        passing_score=request.passing_score,
        description=request.description,
        instructions=request.instructions,
        time_limit_minutes=request.time_limit_minutes,
        created_by=admin.id,
    )
    return success(dump(AssessmentOut, assessment))


@router.patch("/assessments/{assessment_id}")
async def update_assessment(
    assessment_id: UUID,
    request: AssessmentUpdateRequest,
    admin: User = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog),
) -> Dict[str, Any]:
    assessment = await catalog.update_assessment(assessment_id, **request.model_dump(exclude_unset=True))
    return success(dump(AssessmentOut, assessment))


@router.post("/assessments/{assessment_id}/questions", status_code=201)
async def create_question(
    assessment_id: UUID,
    request: QuestionCreateRequest,
    admin: User = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog),
) -> Dict[str, Any]:
    question = await catalog.create_question(
        assessment_id=assessment_id,
        question_text=request.question_text,
        question_type=request.question_type,
        points=request.points,
        options=_options(request.options),
    )
    return success(dump(QuestionOut, question))


@router.patch("/questions/{question_id}")
async def update_question(
    question_id: UUID,
    request: QuestionUpdateRequest,
    admin: User = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog),
) -> Dict[str, Any]:
    question = await catalog.update_question(
        question_id,
        question_text=request.question_text,
        question_type=request.question_type,
        points=request.points,
        options=_options(request.options),
    )
    return success(dump(QuestionOut, question))


@router.post("/questions/{question_id}/reorder")
async def reorder_question(
    question_id: UUID,
    request: ReorderRequest,
    admin: User = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog),
) -> Dict[str, Any]:
    position = await catalog.reorder_question(question_id, request.new_position, request.parent_id)
    return success({"id": str(question_id), "sequence_number": position})


@router.delete("/questions/{question_id}")
async def delete_question(
    question_id: UUID,
    admin: User = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog),
) -> Dict[str, Any]:
    await catalog.delete_question(question_id)
    return success({"id": str(question_id)})


# Shared read

@router.get("/assessments/{assessment_id}")
async def get_assessment(
    assessment_id: UUID,
    user: User = Depends(get_current_user),
    grader: AssessmentGrader = Depends(get_grader),
) -> Dict[str, Any]:
    """Admins see correct flags; patients get the answer-free view."""
    if user.role == "admin":
        view = await grader.get_assessment_for_admin(assessment_id)
    else:
        view = await grader.get_assessment_for_patient(assessment_id)
    return success(jsonable(view))


# Patient endpoints

@router.get("/patient/assessments")
async def list_my_assessments(
    category_id: Optional[UUID] = Query(None),
    patient: User = Depends(require_patient),
    grader: AssessmentGrader = Depends(get_grader),
) -> Dict[str, Any]:
    """Assessments of the patient's assigned category; other categories are refused."""
    return success(jsonable(await grader.list_patient_assessments(patient.id, category_id)))


@router.post("/assessments/{assessment_id}/submit", status_code=201)
async def submit_assessment(
    assessment_id: UUID,
    request: SubmitRequest,
    patient: User = Depends(require_patient),
    grader: AssessmentGrader = Depends(get_grader),
) -> Dict[str, Any]:
    """Grade a full set of answers as a new attempt."""
    answers = [
        Answer(
            question_id=a.question_id,
            selected_option_id=a.selected_option_id,
            text_response=a.text_response,
        )
        for a in request.answers
    ]
    attempt = await grader.submit(patient.id, assessment_id, answers)
    return success(dump(AttemptOut, attempt))


@router.get("/attempts/{attempt_id}/review")
async def review_attempt(
    attempt_id: UUID,
    patient: User = Depends(require_patient),
    grader: AssessmentGrader = Depends(get_grader),
) -> Dict[str, Any]:
    return success(jsonable(await grader.get_attempt_review(attempt_id, patient.id)))
