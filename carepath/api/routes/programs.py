"""
Category and Program API Endpoints

Admins author categories and programs; any authenticated user may browse
them (patients only see active programs).
"""
import logging
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from carepath.api.auth import get_current_user, require_admin
from carepath.api.dependencies import get_catalog
from carepath.api.schemas import CategoryOut, ProgramOut, dump, dump_many
from carepath.errors import success
from carepath.models import User
from carepath.services.catalog import CatalogService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["programs"])


# Pydantic models for request validation

class CategoryCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None


class CategoryUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None


class ProgramCreateRequest(BaseModel):
    """Program definition submitted by an admin"""
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    category_id: UUID
    duration_days: Optional[int] = Field(None, gt=0)
    is_self_paced: bool = False


class ProgramUpdateRequest(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    category_id: Optional[UUID] = None
    duration_days: Optional[int] = Field(None, gt=0)
    is_self_paced: Optional[bool] = None
    is_active: Optional[bool] = None


# API Endpoints

@router.get("/categories")
async def list_categories(
    user: User = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog),
) -> Dict[str, Any]:
    return success(dump_many(CategoryOut, await catalog.list_categories()))


@router.post("/categories", status_code=201)
async def create_category(
    request: CategoryCreateRequest,
    admin: User = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog),
) -> Dict[str, Any]:
    category = await catalog.create_category(request.name, request.description)
    return success(dump(CategoryOut, category))


@router.patch("/categories/{category_id}")
async def update_category(
    category_id: UUID,
    request: CategoryUpdateRequest,
    admin: User = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog),
) -> Dict[str, Any]:
    category = await catalog.update_category(category_id, request.name, request.description)
    return success(dump(CategoryOut, category))


@router.get("/programs")
async def list_programs(
    category_id: Optional[UUID] = Query(None),
    active_only: bool = Query(False),
    user: User = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog),
) -> Dict[str, Any]:
    """
    List programs, optionally within one category.

    Patients always get active programs only.
    """
    active_only = active_only or user.role != "admin"
    programs = await catalog.list_programs(category_id=category_id, active_only=active_only)
    return success(dump_many(ProgramOut, programs))


@router.post("/programs", status_code=201)
async def create_program(
    request: ProgramCreateRequest,
    admin: User = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog),
) -> Dict[str, Any]:
    program = await catalog.create_program(
        title=request.title,
        category_id=request.category_id,
        description=request.description,
        duration_days=request.duration_days,
        is_self_paced=request.is_self_paced,
        created_by=admin.id,
    )
    return success(dump(ProgramOut, program))


@router.get("/programs/{program_id}")
async def get_program(
    program_id: UUID,
    user: User = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog),
) -> Dict[str, Any]:
    return success(dump(ProgramOut, await catalog.get_program(program_id)))


@router.patch("/programs/{program_id}")
async def update_program(
    program_id: UUID,
    request: ProgramUpdateRequest,
    admin: User = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog),
) -> Dict[str, Any]:
    changes = request.model_dump(exclude_unset=True)
    program = await catalog.update_program(program_id, **changes)
    return success(dump(ProgramOut, program))


@router.delete("/programs/{program_id}")
async def delete_program(
    program_id: UUID,
    admin: User = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog),
) -> Dict[str, Any]:
    await catalog.delete_program(program_id)
    return success({"id": str(program_id)})
