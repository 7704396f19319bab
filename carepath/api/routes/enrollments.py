"""
Enrollment API Endpoints

Admin assignment of patients to categories and programs, batch
enrollment, lifecycle transitions, and the patient side: own programs,
assigned category and self-enrollment.
"""
import logging
from datetime import date
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field

from carepath.api.auth import require_admin, require_patient
from carepath.api.dependencies import get_enrollment_manager
from carepath.api.schemas import CategoryEnrollmentOut, CategoryOut, ProgramEnrollmentOut, ProgramOut, dump
from carepath.errors import success
from carepath.models import User
from carepath.services.enrollment_manager import EnrollmentManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["enrollments"])

EnrollmentStatus = Literal["assigned", "in_progress", "completed", "dropped"]


# Pydantic models for request validation

class CategoryAssignRequest(BaseModel):
    category_id: UUID
    start_date: date


class ProgramAssignRequest(BaseModel):
    program_id: UUID
    start_date: date


class BatchEnrollRequest(BaseModel):
    category_id: UUID
    program_ids: List[UUID] = Field(..., min_length=1)
    start_date: date


class TransitionRequest(BaseModel):
    status: EnrollmentStatus


def _program_rows(rows) -> List[Dict[str, Any]]:
    return [
        {**dump(ProgramEnrollmentOut, enrollment), "program": dump(ProgramOut, program)}
        for enrollment, program in rows
    ]


# Admin endpoints

@router.post("/patients/{patient_id}/category", status_code=201)
async def assign_category(
    patient_id: UUID,
    request: CategoryAssignRequest,
    admin: User = Depends(require_admin),
    manager: EnrollmentManager = Depends(get_enrollment_manager),
) -> Dict[str, Any]:
    """Assign a category; the previous category and its programs are dropped."""
    enrollment = await manager.assign_category(patient_id, request.category_id, request.start_date, admin.id)
    return success(dump(CategoryEnrollmentOut, enrollment))


@router.post("/patients/{patient_id}/programs", status_code=201)
async def assign_program(
    patient_id: UUID,
    request: ProgramAssignRequest,
    admin: User = Depends(require_admin),
    manager: EnrollmentManager = Depends(get_enrollment_manager),
) -> Dict[str, Any]:
    """Assign a program, superseding active enrollments in its category."""
    enrollment = await manager.assign(patient_id, request.program_id, request.start_date, admin.id)
    return success(dump(ProgramEnrollmentOut, enrollment))


@router.post("/patients/{patient_id}/programs/batch", status_code=201)
async def enroll_programs(
    patient_id: UUID,
    request: BatchEnrollRequest,
    admin: User = Depends(require_admin),
    manager: EnrollmentManager = Depends(get_enrollment_manager),
) -> Dict[str, Any]:
    """
    Enroll a patient in several programs of one category.

    Partial success is still a success: skipped targets are listed with
    their reason.
    """
    result = await manager.enroll_multiple(
        patient_id, request.program_ids, request.category_id, request.start_date, admin.id
    )
    return success({
        "category_enrollment": dump(CategoryEnrollmentOut, result.category_enrollment),
        "enrollments": [dump(ProgramEnrollmentOut, e) for e in result.enrollments],
        "enrolled_count": result.enrolled_count,
        "requested_count": result.requested_count,
        "skipped": [{"program_id": str(s.program_id), "reason": s.reason} for s in result.skipped],
    })


@router.get("/patients/{patient_id}/programs")
async def list_patient_programs(
    patient_id: UUID,
    admin: User = Depends(require_admin),
    manager: EnrollmentManager = Depends(get_enrollment_manager),
) -> Dict[str, Any]:
    return success(_program_rows(await manager.list_patient_programs(patient_id)))


@router.get("/patients/{patient_id}/category")
async def get_patient_category(
    patient_id: UUID,
    admin: User = Depends(require_admin),
    manager: EnrollmentManager = Depends(get_enrollment_manager),
) -> Dict[str, Any]:
    enrollment = await manager.get_active_category_enrollment(patient_id)
    return success(dump(CategoryEnrollmentOut, enrollment) if enrollment else None)


@router.patch("/enrollments/{enrollment_id}")
async def transition_enrollment(
    enrollment_id: UUID,
    request: TransitionRequest,
    admin: User = Depends(require_admin),
    manager: EnrollmentManager = Depends(get_enrollment_manager),
) -> Dict[str, Any]:
    enrollment = await manager.transition(enrollment_id, request.status)
    return success(dump(ProgramEnrollmentOut, enrollment))


@router.patch("/category-enrollments/{enrollment_id}")
async def transition_category_enrollment(
    enrollment_id: UUID,
    request: TransitionRequest,
    admin: User = Depends(require_admin),
    manager: EnrollmentManager = Depends(get_enrollment_manager),
) -> Dict[str, Any]:
    enrollment = await manager.transition_category(enrollment_id, request.status)
    return success(dump(CategoryEnrollmentOut, enrollment))


# Patient endpoints

@router.get("/patient/programs")
async def list_my_programs(
    patient: User = Depends(require_patient),
    manager: EnrollmentManager = Depends(get_enrollment_manager),
) -> Dict[str, Any]:
    return success(_program_rows(await manager.list_patient_programs(patient.id)))


@router.get("/patient/enrollment")
async def get_my_current_enrollment(
    patient: User = Depends(require_patient),
    manager: EnrollmentManager = Depends(get_enrollment_manager),
) -> Dict[str, Any]:
    current: Optional[tuple] = await manager.get_current_enrollment(patient.id)
    if current is None:
        return success(None)
    return success(_program_rows([current])[0])


@router.get("/patient/category")
async def get_my_category(
    patient: User = Depends(require_patient),
    manager: EnrollmentManager = Depends(get_enrollment_manager),
) -> Dict[str, Any]:
    """The patient's assigned category, or null when none is assigned."""
    assigned = await manager.get_patient_category(patient.id)
    if assigned is None:
        return success(None)
    enrollment, category = assigned
    return success({**dump(CategoryEnrollmentOut, enrollment), "category": dump(CategoryOut, category)})


@router.post("/patient/programs/{program_id}/enroll")
async def enroll_in_program(
    program_id: UUID,
    response: Response,
    patient: User = Depends(require_patient),
    manager: EnrollmentManager = Depends(get_enrollment_manager),
) -> Dict[str, Any]:
    """
    Enroll in a program of the patient's category.

    Returns 201 with the new enrollment, or 200 with the enrollment the
    patient already holds in that program.
    """
    enrollment, created = await manager.self_enroll(patient.id, program_id)
    response.status_code = 201 if created else 200
    return success(dump(ProgramEnrollmentOut, enrollment))
