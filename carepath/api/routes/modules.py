"""
Module and Content API Endpoints

Ordered modules of a program and the ordered content items of a module.
Reorders clamp the requested position and return where the item landed.
"""
import logging
from typing import Any, Dict, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from carepath.api.auth import get_current_user, require_admin
from carepath.api.dependencies import get_catalog
from carepath.api.schemas import ContentItemOut, ModuleOut, ReorderRequest, dump, dump_many, jsonable
from carepath.errors import success
from carepath.models import User
from carepath.services.catalog import CatalogService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["modules"])


# Pydantic models for request validation

class ModuleCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    estimated_minutes: Optional[int] = Field(None, ge=0)
    is_required: bool = True
    sequence_number: Optional[int] = None


class ModuleUpdateRequest(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    estimated_minutes: Optional[int] = Field(None, ge=0)
    is_required: Optional[bool] = None
    sequence_number: Optional[int] = None


class ContentCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    content_type: Literal["text", "video", "document", "link"]
    body: Optional[str] = None
    url: Optional[str] = None
    description: Optional[str] = None


class ContentUpdateRequest(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    body: Optional[str] = None
    url: Optional[str] = None
    description: Optional[str] = None


# Module endpoints

@router.get("/programs/{program_id}/modules")
async def list_modules(
    program_id: UUID,
    user: User = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog),
) -> Dict[str, Any]:
    return success(dump_many(ModuleOut, await catalog.list_modules(program_id)))


@router.post("/programs/{program_id}/modules", status_code=201)
async def create_module(
    program_id: UUID,
    request: ModuleCreateRequest,
    admin: User = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog),
) -> Dict[str, Any]:
    module = await catalog.create_module(
        program_id=program_id,
        title=request.title,
        description=request.description,
        estimated_minutes=request.estimated_minutes,
        is_required=request.is_required,
        sequence_number=request.sequence_number,
        created_by=admin.id,
    )
    return success(dump(ModuleOut, module))


@router.patch("/modules/{module_id}")
async def update_module(
    module_id: UUID,
    request: ModuleUpdateRequest,
    admin: User = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog),
) -> Dict[str, Any]:
    changes = request.model_dump(exclude_unset=True)
    sequence_number = changes.pop("sequence_number", None)
    module = await catalog.update_module(module_id, sequence_number=sequence_number, **changes)
    return success(dump(ModuleOut, module))


@router.post("/modules/{module_id}/reorder")
async def reorder_module(
    module_id: UUID,
    request: ReorderRequest,
    admin: User = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog),
) -> Dict[str, Any]:
    position = await catalog.reorder_module(module_id, request.new_position, request.parent_id)
    return success({"id": str(module_id), "sequence_number": position})


@router.delete("/modules/{module_id}")
async def delete_module(
    module_id: UUID,
    admin: User = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog),
) -> Dict[str, Any]:
    await catalog.delete_module(module_id)
    return success({"id": str(module_id)})


# Content endpoints

@router.get("/modules/{module_id}/content")
async def list_content(
    module_id: UUID,
    user: User = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog),
) -> Dict[str, Any]:
    return success(jsonable(await catalog.list_content_items(module_id)))


@router.post("/modules/{module_id}/content", status_code=201)
async def create_content(
    module_id: UUID,
    request: ContentCreateRequest,
    admin: User = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog),
) -> Dict[str, Any]:
    item = await catalog.create_content_item(
        module_id=module_id,
        title=request.title,
        content_type=request.content_type,
        body=request.body,
        url=request.url,
        description=request.description,
        created_by=admin.id,
    )
    return success(dump(ContentItemOut, item))


@router.patch("/content/{item_id}")
async def update_content(
    item_id: UUID,
    request: ContentUpdateRequest,
    admin: User = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog),
) -> Dict[str, Any]:
    item = await catalog.update_content_item(
        item_id, title=request.title, body=request.body, url=request.url, description=request.description
    )
    return success(dump(ContentItemOut, item))


@router.post("/content/{item_id}/reorder")
async def reorder_content(
    item_id: UUID,
    request: ReorderRequest,
    admin: User = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog),
) -> Dict[str, Any]:
    position = await catalog.reorder_content_item(item_id, request.new_position, request.parent_id)
    return success({"id": str(item_id), "sequence_number": position})


@router.delete("/content/{item_id}")
async def delete_content(
    item_id: UUID,
    admin: User = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog),
) -> Dict[str, Any]:
    await catalog.delete_content_item(item_id)
    return success({"id": str(item_id)})
