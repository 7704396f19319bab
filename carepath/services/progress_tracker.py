"""
Module Progress Tracker

Records per-module status for a patient's enrollment and promotes the
enrollment to completed once every required module is done. The promotion
check runs in the same transaction as the module write.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select

from carepath.errors import NotFoundError, ValidationError
from carepath.models import Module, ModuleProgress, ProgramEnrollment
from carepath.models.enrollment import ACTIVE_ENROLLMENT_STATUSES
from carepath.services.base import BaseService
from carepath.services.enrollment_manager import is_legal_transition

logger = logging.getLogger(__name__)

SETTABLE_STATUSES = ("in_progress", "completed")


def required_modules_complete(required_ids: set, completed_ids: set) -> bool:
    """True when the program has required modules and all of them are completed."""
    return bool(required_ids) and required_ids <= completed_ids


def completion_percentage(required_ids: set, completed_ids: set) -> int:
    if not required_ids:
        return 0
    done = len(required_ids & completed_ids)
    return (200 * done + len(required_ids)) // (2 * len(required_ids))


class ProgressTracker(BaseService):
    """Per-module progress writes and the auto-completion rule"""

    async def set_module_status(
        self,
        patient_id: UUID,
        module_id: UUID,
        status: str,
        time_spent_seconds: Optional[int] = None,
    ) -> ModuleProgress:
        """
        Upsert the patient's progress row for a module.

        in_progress stamps started_at the first time; completed stamps
        completed_at and may complete the owning enrollment.
        """
        if status not in SETTABLE_STATUSES:
            raise ValidationError.for_field(
                "status", f"Status must be one of: {', '.join(SETTABLE_STATUSES)}"
            )
        if time_spent_seconds is not None and time_spent_seconds < 0:
            raise ValidationError.for_field("time_spent_seconds", "Time spent cannot be negative")

        module = await self.get_or_404(Module, module_id, "Module")
        enrollment = await self.resolve_enrollment(patient_id, module.program_id)
        if enrollment is None:
            raise NotFoundError("Enrollment")

        async with self.unit_of_work("module progress update"):
            progress = await self._get_or_create_progress(patient_id, module_id, enrollment.id)
            now = datetime.now(timezone.utc)

            progress.status = status
            progress.started_at = progress.started_at or now
            progress.completed_at = now if status == "completed" else None
            if time_spent_seconds:
                progress.time_spent_seconds = (progress.time_spent_seconds or 0) + time_spent_seconds

            if enrollment.status == "assigned":
                enrollment.status = "in_progress"
            await self.session.flush()

            if status == "completed":
                await self._complete_enrollment_if_done(enrollment, module.program_id)

            self.cache.mark(
                f"/patient/programs/{module.program_id}",
                f"/patient/programs/{module.program_id}/modules/{module_id}",
                "/patient/progress",
            )

        logger.info(f"Module {module_id} -> {status} for patient {patient_id} (enrollment {enrollment.id})")
        return progress

    async def resolve_enrollment(self, patient_id: UUID, program_id: UUID) -> Optional[ProgramEnrollment]:
        """Current non-dropped enrollment for the program; active ones win, newest first."""
        result = await self.session.execute(
            select(ProgramEnrollment)
            .where(
                ProgramEnrollment.patient_id == patient_id,
                ProgramEnrollment.program_id == program_id,
                ProgramEnrollment.status != "dropped",
            )
            .order_by(ProgramEnrollment.created_at.desc())
        )
        enrollments = list(result.scalars().all())
        for enrollment in enrollments:
            if enrollment.status in ACTIVE_ENROLLMENT_STATUSES:
                return enrollment
        return enrollments[0] if enrollments else None

    async def get_program_progress(self, patient_id: UUID, program_id: UUID) -> Dict[str, Any]:
        """Ordered modules of a program with the patient's status for each."""
        enrollment = await self.resolve_enrollment(patient_id, program_id)
        if enrollment is None:
            raise NotFoundError("Enrollment")

        modules = (await self.session.execute(
            select(Module).where(Module.program_id == program_id).order_by(Module.sequence_number)
        )).scalars().all()
        rows = (await self.session.execute(
            select(ModuleProgress).where(ModuleProgress.enrollment_id == enrollment.id)
        )).scalars().all()
        by_module = {row.module_id: row for row in rows}

        required_ids = {m.id for m in modules if m.is_required}
        completed_ids = {row.module_id for row in rows if row.status == "completed"}

        items: List[Dict[str, Any]] = []
        for module in modules:
            row = by_module.get(module.id)
            items.append({
                "module_id": module.id,
                "title": module.title,
                "sequence_number": module.sequence_number,
                "is_required": module.is_required,
                "estimated_minutes": module.estimated_minutes,
                "status": row.status if row else "not_started",
                "started_at": row.started_at if row else None,
                "completed_at": row.completed_at if row else None,
                "time_spent_seconds": row.time_spent_seconds if row else 0,
            })

        return {
            "enrollment_id": enrollment.id,
            "enrollment_status": enrollment.status,
            "completion_percentage": completion_percentage(required_ids, completed_ids),
            "modules": items,
        }

    async def _get_or_create_progress(self, patient_id: UUID, module_id: UUID, enrollment_id: UUID) -> ModuleProgress:
        result = await self.session.execute(
            select(ModuleProgress).where(
                ModuleProgress.patient_id == patient_id,
                ModuleProgress.module_id == module_id,
                ModuleProgress.enrollment_id == enrollment_id,
            )
        )
        progress = result.scalar_one_or_none()
        if progress is None:
            progress = ModuleProgress(
                patient_id=patient_id,
                module_id=module_id,
                enrollment_id=enrollment_id,
                status="not_started",
                time_spent_seconds=0,
            )
            self.session.add(progress)
        return progress

    async def _complete_enrollment_if_done(self, enrollment: ProgramEnrollment, program_id: UUID) -> bool:
        required_ids = set((await self.session.execute(
            select(Module.id).where(Module.program_id == program_id, Module.is_required.is_(True))
        )).scalars().all())
        completed_ids = set((await self.session.execute(
            select(ModuleProgress.module_id).where(
                ModuleProgress.enrollment_id == enrollment.id,
                ModuleProgress.status == "completed",
            )
        )).scalars().all())

        if not required_modules_complete(required_ids, completed_ids):
            return False
        if not is_legal_transition(enrollment.status, "completed"):
            return False

        enrollment.status = "completed"
        enrollment.completed_date = datetime.now(timezone.utc)
        await self.session.flush()
        logger.info(f"Enrollment {enrollment.id} completed: all {len(required_ids)} required modules done")
        return True
