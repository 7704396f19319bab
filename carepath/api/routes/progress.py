"""
Progress and Mood API Endpoints

Patient-side writes: module progress (which may complete the enrollment)
and mood check-ins.
"""
import logging
from typing import Any, Dict, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from carepath.api.auth import require_patient
from carepath.api.dependencies import get_mood_tracker, get_progress_tracker
from carepath.api.schemas import ModuleProgressOut, MoodEntryOut, dump, dump_many, jsonable
from carepath.errors import success
from carepath.models import User
from carepath.services.mood_tracker import MoodTracker
from carepath.services.progress_tracker import ProgressTracker

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/patient", tags=["progress"])


# Pydantic models for request validation

class ModuleProgressRequest(BaseModel):
    status: Literal["in_progress", "completed"]
    time_spent_seconds: Optional[int] = Field(None, ge=0)


class MoodEntryRequest(BaseModel):
    mood_type: Literal["happy", "calm", "neutral", "stressed", "sad", "angry", "anxious"]
    mood_score: int = Field(..., ge=1, le=10)
    journal_entry: Optional[str] = None
    content_item_id: Optional[UUID] = None


# API Endpoints

@router.put("/modules/{module_id}/progress")
async def update_module_progress(
    module_id: UUID,
    request: ModuleProgressRequest,
    patient: User = Depends(require_patient),
    tracker: ProgressTracker = Depends(get_progress_tracker),
) -> Dict[str, Any]:
    """Record module progress; completing the last required module completes the enrollment."""
    progress = await tracker.set_module_status(
        patient.id, module_id, request.status, request.time_spent_seconds
    )
    return success(dump(ModuleProgressOut, progress))


@router.get("/programs/{program_id}/progress")
async def get_program_progress(
    program_id: UUID,
    patient: User = Depends(require_patient),
    tracker: ProgressTracker = Depends(get_progress_tracker),
) -> Dict[str, Any]:
    return success(jsonable(await tracker.get_program_progress(patient.id, program_id)))


@router.post("/mood", status_code=201)
async def submit_mood(
    request: MoodEntryRequest,
    patient: User = Depends(require_patient),
    mood: MoodTracker = Depends(get_mood_tracker),
) -> Dict[str, Any]:
    entry = await mood.submit_entry(
        patient.id,
        request.mood_type,
        request.mood_score,
        journal_entry=request.journal_entry,
        content_item_id=request.content_item_id,
    )
    return success(dump(MoodEntryOut, entry))


@router.get("/mood")
async def list_mood(
    limit: int = Query(10, ge=1, le=100),
    patient: User = Depends(require_patient),
    mood: MoodTracker = Depends(get_mood_tracker),
) -> Dict[str, Any]:
    return success(dump_many(MoodEntryOut, await mood.recent_entries(patient.id, limit)))
