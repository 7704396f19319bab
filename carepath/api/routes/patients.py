"""
Patient Directory API Endpoints

Admin listing, lookup and creation of patient records. Sign-in
credentials are issued by the identity provider, not here.
"""
import logging
from datetime import date
from typing import Any, Dict, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from carepath.api.auth import require_admin
from carepath.api.dependencies import get_patient_directory
from carepath.api.schemas import PatientOut, dump, jsonable
from carepath.errors import success
from carepath.models import User
from carepath.services.patient_directory import PatientDirectory

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/patients", tags=["patients"])


# Pydantic models for request validation

class PatientCreateRequest(BaseModel):
    email: str = Field(..., min_length=1, max_length=255)
    first_name: str
    last_name: str
    date_of_birth: Optional[date] = None
    gender: Optional[Literal["male", "female"]] = None
    phone: Optional[str] = Field(None, max_length=30)


class PatientStatusRequest(BaseModel):
    is_active: bool


@router.get("")
async def list_patients(
    search: Optional[str] = Query(None, max_length=100),
    category_id: Optional[UUID] = Query(None),
    admin: User = Depends(require_admin),
    directory: PatientDirectory = Depends(get_patient_directory),
) -> Dict[str, Any]:
    """
    List patients, newest first.

    `search` matches first name, last name or email; `category_id` keeps
    patients currently assigned to that category.
    """
    return success(jsonable(await directory.list_patients(search, category_id)))


@router.post("", status_code=201)
async def create_patient(
    request: PatientCreateRequest,
    admin: User = Depends(require_admin),
    directory: PatientDirectory = Depends(get_patient_directory),
) -> Dict[str, Any]:
    patient = await directory.create_patient(**request.model_dump())
    logger.info(f"Admin {admin.id} created patient {patient.id}")
    return success(dump(PatientOut, patient))


@router.get("/{patient_id}")
async def get_patient(
    patient_id: UUID,
    admin: User = Depends(require_admin),
    directory: PatientDirectory = Depends(get_patient_directory),
) -> Dict[str, Any]:
    return success(jsonable(await directory.get_patient_record(patient_id)))


@router.patch("/{patient_id}/status")
async def set_patient_status(
    patient_id: UUID,
    request: PatientStatusRequest,
    admin: User = Depends(require_admin),
    directory: PatientDirectory = Depends(get_patient_directory),
) -> Dict[str, Any]:
    patient = await directory.set_patient_active(patient_id, request.is_active)
    return success(dump(PatientOut, patient))
