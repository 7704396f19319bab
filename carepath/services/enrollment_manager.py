"""
Enrollment Manager

Governs category- and program-level enrollment lifecycle for a patient:
assignment, superseding prior enrollments with a progress reset, batch
enrollment within a category, and table-driven status transitions.

Lifecycle: assigned -> in_progress -> completed, and assigned|in_progress ->
dropped. completed and dropped are terminal.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import delete, select

from carepath.errors import ForbiddenError, ValidationError
from carepath.models import (
    Category,
    CategoryEnrollment,
    Module,
    ModuleProgress,
    Program,
    ProgramEnrollment,
)
from carepath.models.enrollment import ACTIVE_ENROLLMENT_STATUSES, ENROLLMENT_STATUSES
from carepath.services.base import BaseService

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[str, frozenset] = {
    "assigned": frozenset({"in_progress", "dropped"}),
    "in_progress": frozenset({"completed", "dropped"}),
    "completed": frozenset(),
    "dropped": frozenset(),
}


def is_legal_transition(current: str, new: str) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, frozenset())


def validate_transition(current: str, new: str) -> bool:
    """
    Check a status change against the lifecycle table.

    Returns False when the status is unchanged (nothing to do), True when
    the change is legal, and raises ValidationError otherwise.
    """
    if new not in ENROLLMENT_STATUSES:
        raise ValidationError.for_field(
            "status", f"Status must be one of: {', '.join(ENROLLMENT_STATUSES)}"
        )
    if current == new:
        return False
    if not is_legal_transition(current, new):
        raise ValidationError.for_field(
            "status", f"Cannot change enrollment status from {current} to {new}"
        )
    return True


def compute_expected_end_date(
    start_date: date,
    duration_days: Optional[int],
    is_self_paced: bool = False,
) -> Optional[date]:
    """start_date + duration_days; None for self-paced programs or no duration."""
    if is_self_paced or not duration_days:
        return None
    return start_date + timedelta(days=duration_days)


@dataclass
class SkippedTarget:
    program_id: UUID
    reason: str


@dataclass
class EnrollmentBatchResult:
    """Outcome of enroll_multiple; partial success is reported, not raised"""
    category_enrollment: CategoryEnrollment
    enrollments: List[ProgramEnrollment] = field(default_factory=list)
    skipped: List[SkippedTarget] = field(default_factory=list)
    requested_count: int = 0

    @property
    def enrolled_count(self) -> int:
        return len(self.enrollments)

    @property
    def is_partial(self) -> bool:
        return self.enrolled_count < self.requested_count


class EnrollmentManager(BaseService):
    """Enrollment lifecycle operations; each public write is one transaction"""

    # ------------------------------------------------------------------
    # Category level
    # ------------------------------------------------------------------

    async def assign_category(
        self,
        patient_id: UUID,
        category_id: UUID,
        start_date: date,
        enrolled_by: Optional[UUID] = None,
    ) -> CategoryEnrollment:
        """Assign a patient to a category, superseding any active assignment."""
        await self.get_patient(patient_id)
        await self.get_or_404(Category, category_id, "Category")

        async with self.unit_of_work("category assignment"):
            superseded = await self._supersede_category(patient_id)
            enrollment = await self._create_category_enrollment(patient_id, category_id, start_date, enrolled_by)

            # every active program of the category starts alongside the assignment
            programs = (await self.session.execute(
                select(Program)
                .where(Program.category_id == category_id, Program.is_active.is_(True))
                .order_by(Program.title)
            )).scalars().all()
            seeded = 0
            for program in programs:
                program_enrollment = await self._create_program_enrollment(
                    patient_id, program, start_date, enrolled_by, enrollment.id
                )
                seeded += await self._seed_progress(program_enrollment)

            self._mark_patient_paths(patient_id)

        logger.info(
            f"Assigned patient {patient_id} to category {category_id} "
            f"(superseded: {superseded.id if superseded else None}); "
            f"enrolled in {len(programs)} programs, seeded {seeded} modules"
        )
        return enrollment

    async def get_active_category_enrollment(self, patient_id: UUID) -> Optional[CategoryEnrollment]:
        result = await self.session.execute(
            select(CategoryEnrollment)
            .where(
                CategoryEnrollment.patient_id == patient_id,
                CategoryEnrollment.status.in_(ACTIVE_ENROLLMENT_STATUSES),
            )
            .order_by(CategoryEnrollment.created_at.desc())
        )
        return result.scalars().first()

    async def get_patient_category(self, patient_id: UUID) -> Optional[Tuple[CategoryEnrollment, Category]]:
        """The patient's active category assignment with its category, or None."""
        await self.get_patient(patient_id)
        result = await self.session.execute(
            select(CategoryEnrollment, Category)
            .join(Category, Category.id == CategoryEnrollment.category_id)
            .where(
                CategoryEnrollment.patient_id == patient_id,
                CategoryEnrollment.status.in_(ACTIVE_ENROLLMENT_STATUSES),
            )
            .order_by(CategoryEnrollment.created_at.desc())
        )
        row = result.first()
        return (row[0], row[1]) if row else None

    # ------------------------------------------------------------------
    # Program level
    # ------------------------------------------------------------------

    async def assign(
        self,
        patient_id: UUID,
        program_id: UUID,
        start_date: date,
        enrolled_by: Optional[UUID] = None,
    ) -> ProgramEnrollment:
        """
        Assign a patient to a program.

        Any active enrollment the patient holds in the program's category is
        dropped and its module progress deleted before the new enrollment is
        inserted and seeded, all in one transaction. The enrollment hangs off
        the patient's category assignment for the program's category; an
        assignment to another category is superseded first.
        """
        await self.get_patient(patient_id)
        program = await self.get_or_404(Program, program_id, "Program")

        async with self.unit_of_work("program assignment"):
            prior = await self._active_program_enrollments_in_category(patient_id, program.category_id)
            await self._drop_and_reset(prior)

            anchor = await self._anchor_for_category(patient_id, program.category_id, start_date, enrolled_by)

            enrollment = await self._create_program_enrollment(
                patient_id, program, start_date, enrolled_by, anchor.id
            )
            seeded = await self._seed_progress(enrollment)

            self._mark_patient_paths(patient_id)

        logger.info(
            f"Assigned patient {patient_id} to program {program_id}: "
            f"superseded {len(prior)}, seeded {seeded} modules"
        )
        return enrollment

    async def enroll_multiple(
        self,
        patient_id: UUID,
        program_ids: Sequence[UUID],
        category_id: UUID,
        start_date: date,
        enrolled_by: Optional[UUID] = None,
    ) -> EnrollmentBatchResult:
        """
        Enroll a patient in several programs of one category.

        Targets outside the category, inactive, missing or already active are
        skipped; callers compare enrolled_count with requested_count.
        Repeated ids count as one target.
        """
        if not program_ids:
            raise ValidationError.for_field("program_ids", "At least one program is required")

        await self.get_patient(patient_id)
        await self.get_or_404(Category, category_id, "Category")

        targets = list(dict.fromkeys(program_ids))

        async with self.unit_of_work("batch enrollment"):
            anchor = await self._anchor_for_category(patient_id, category_id, start_date, enrolled_by)

            result = EnrollmentBatchResult(category_enrollment=anchor, requested_count=len(targets))

            programs = await self._programs_by_id(targets)
            active_program_ids = await self._active_program_ids(patient_id)

            for program_id in targets:
                program = programs.get(program_id)
                reason = self._batch_skip_reason(program, category_id, active_program_ids)
                if reason:
                    result.skipped.append(SkippedTarget(program_id=program_id, reason=reason))
                    continue

                enrollment = await self._create_program_enrollment(
                    patient_id, program, start_date, enrolled_by, anchor.id
                )
                await self._seed_progress(enrollment)
                result.enrollments.append(enrollment)
                active_program_ids.add(program_id)

            self._mark_patient_paths(patient_id)

        if result.skipped:
            logger.warning(
                f"Batch enrollment for patient {patient_id} enrolled {result.enrolled_count}/"
                f"{result.requested_count}; skipped {[(str(s.program_id), s.reason) for s in result.skipped]}"
            )
        else:
            logger.info(f"Batch enrollment for patient {patient_id}: {result.enrolled_count} programs")
        return result

    async def self_enroll(
        self, patient_id: UUID, program_id: UUID, start_date: Optional[date] = None
    ) -> Tuple[ProgramEnrollment, bool]:
        """
        Enroll a patient in a program on their own request.

        An existing non-dropped enrollment in the program is returned as is.
        Otherwise the program must be active and belong to the patient's
        assigned category (a patient without one is assigned to the program's
        category). Nothing the patient already holds is superseded.

        Returns:
            (enrollment, created)
        """
        await self.get_patient(patient_id)
        program = await self.get_or_404(Program, program_id, "Program")

        existing = (await self.session.execute(
            select(ProgramEnrollment)
            .where(
                ProgramEnrollment.patient_id == patient_id,
                ProgramEnrollment.program_id == program_id,
                ProgramEnrollment.status != "dropped",
            )
            .order_by(ProgramEnrollment.created_at.desc())
        )).scalars().first()
        if existing is not None:
            return existing, False

        if not program.is_active:
            raise ValidationError.for_field("program_id", "Program is not open for enrollment")

        anchor = await self.get_active_category_enrollment(patient_id)
        if anchor is not None and anchor.category_id != program.category_id:
            raise ForbiddenError("Program is not in your assigned category")

        start_date = start_date or date.today()
        async with self.unit_of_work("self enrollment"):
            if anchor is None:
                anchor = await self._create_category_enrollment(patient_id, program.category_id, start_date, None)
            enrollment = await self._create_program_enrollment(patient_id, program, start_date, None, anchor.id)
            seeded = await self._seed_progress(enrollment)

            self._mark_patient_paths(patient_id)

        logger.info(f"Patient {patient_id} enrolled in program {program_id}, seeded {seeded} modules")
        return enrollment, True

    async def transition(self, enrollment_id: UUID, new_status: str) -> ProgramEnrollment:
        """Move a program enrollment to new_status if the lifecycle allows it."""
        enrollment = await self.get_or_404(ProgramEnrollment, enrollment_id, "Enrollment")
        return await self._apply_transition(enrollment, new_status)

    async def transition_category(self, enrollment_id: UUID, new_status: str) -> CategoryEnrollment:
        """Move a category enrollment to new_status if the lifecycle allows it."""
        enrollment = await self.get_or_404(CategoryEnrollment, enrollment_id, "Category enrollment")
        return await self._apply_transition(enrollment, new_status)

    async def get_current_enrollment(self, patient_id: UUID) -> Optional[Tuple[ProgramEnrollment, Program]]:
        """Most recent active program enrollment with its program."""
        await self.get_patient(patient_id)
        result = await self.session.execute(
            select(ProgramEnrollment, Program)
            .join(Program, Program.id == ProgramEnrollment.program_id)
            .where(
                ProgramEnrollment.patient_id == patient_id,
                ProgramEnrollment.status.in_(ACTIVE_ENROLLMENT_STATUSES),
            )
            .order_by(ProgramEnrollment.start_date.desc(), ProgramEnrollment.created_at.desc())
        )
        row = result.first()
        return (row[0], row[1]) if row else None

    async def list_patient_programs(self, patient_id: UUID) -> List[Tuple[ProgramEnrollment, Program]]:
        """All non-dropped program enrollments, newest start date first."""
        await self.get_patient(patient_id)
        result = await self.session.execute(
            select(ProgramEnrollment, Program)
            .join(Program, Program.id == ProgramEnrollment.program_id)
            .where(
                ProgramEnrollment.patient_id == patient_id,
                ProgramEnrollment.status != "dropped",
            )
            .order_by(ProgramEnrollment.start_date.desc(), ProgramEnrollment.created_at.desc())
        )
        return [(row[0], row[1]) for row in result.all()]

    # ------------------------------------------------------------------
    # Internals (no commits)
    # ------------------------------------------------------------------

    async def _apply_transition(self, enrollment, new_status: str):
        current = enrollment.status
        if not validate_transition(current, new_status):
            return enrollment

        async with self.unit_of_work("enrollment transition"):
            if new_status == "dropped" and isinstance(enrollment, CategoryEnrollment):
                anchored = await self._active_program_enrollments_for_anchor(enrollment.id)
                await self._drop_and_reset(anchored)

            enrollment.status = new_status
            if new_status == "completed":
                enrollment.completed_date = datetime.now(timezone.utc)
            await self.session.flush()

            self._mark_patient_paths(enrollment.patient_id)

        logger.info(f"Enrollment {enrollment.id}: {current} -> {new_status}")
        return enrollment

    async def _anchor_for_category(
        self,
        patient_id: UUID,
        category_id: UUID,
        start_date: date,
        enrolled_by: Optional[UUID],
    ) -> CategoryEnrollment:
        """Reuse the active category enrollment for category_id, or switch the patient to it."""
        anchor = await self.get_active_category_enrollment(patient_id)
        if anchor is not None and anchor.category_id == category_id:
            return anchor
        if anchor is not None:
            await self._supersede_category(patient_id)
        return await self._create_category_enrollment(patient_id, category_id, start_date, enrolled_by)

    async def _create_category_enrollment(
        self,
        patient_id: UUID,
        category_id: UUID,
        start_date: date,
        enrolled_by: Optional[UUID],
    ) -> CategoryEnrollment:
        enrollment = CategoryEnrollment(
            patient_id=patient_id,
            category_id=category_id,
            enrolled_by=enrolled_by,
            start_date=start_date,
            status="in_progress",
        )
        self.session.add(enrollment)
        await self.session.flush()
        return enrollment

    async def _supersede_category(self, patient_id: UUID) -> Optional[CategoryEnrollment]:
        """Drop the active category enrollment and the program enrollments anchored to it."""
        prior = await self.get_active_category_enrollment(patient_id)
        if prior is None:
            return None

        anchored = await self._active_program_enrollments_for_anchor(prior.id)
        await self._drop_and_reset(anchored)

        prior.status = "dropped"
        await self.session.flush()
        return prior

    async def _drop_and_reset(self, enrollments: List[ProgramEnrollment]) -> None:
        """Mark enrollments dropped and hard-delete their module progress."""
        if not enrollments:
            return

        ids = [e.id for e in enrollments]
        for enrollment in enrollments:
            enrollment.status = "dropped"
        await self.session.flush()

        result = await self.session.execute(
            delete(ModuleProgress)
            .where(ModuleProgress.enrollment_id.in_(ids))
            .execution_options(synchronize_session="fetch")
        )
        logger.info(f"Dropped {len(ids)} enrollments, deleted {result.rowcount} progress rows")

    async def _active_program_enrollments_in_category(
        self, patient_id: UUID, category_id: UUID
    ) -> List[ProgramEnrollment]:
        result = await self.session.execute(
            select(ProgramEnrollment)
            .join(Program, Program.id == ProgramEnrollment.program_id)
            .where(
                ProgramEnrollment.patient_id == patient_id,
                ProgramEnrollment.status.in_(ACTIVE_ENROLLMENT_STATUSES),
                Program.category_id == category_id,
            )
        )
        return list(result.scalars().all())

    async def _active_program_enrollments_for_anchor(self, anchor_id: UUID) -> List[ProgramEnrollment]:
        result = await self.session.execute(
            select(ProgramEnrollment).where(
                ProgramEnrollment.category_enrollment_id == anchor_id,
                ProgramEnrollment.status.in_(ACTIVE_ENROLLMENT_STATUSES),
            )
        )
        return list(result.scalars().all())

    async def _active_program_ids(self, patient_id: UUID) -> set:
        result = await self.session.execute(
            select(ProgramEnrollment.program_id).where(
                ProgramEnrollment.patient_id == patient_id,
                ProgramEnrollment.status.in_(ACTIVE_ENROLLMENT_STATUSES),
            )
        )
        return set(result.scalars().all())

    async def _programs_by_id(self, program_ids: Sequence[UUID]) -> Dict[UUID, Program]:
        result = await self.session.execute(select(Program).where(Program.id.in_(list(program_ids))))
        return {p.id: p for p in result.scalars().all()}

    @staticmethod
    def _batch_skip_reason(program: Optional[Program], category_id: UUID, active_program_ids: set) -> Optional[str]:
        if program is None:
            return "program not found"
        if program.category_id != category_id:
            return "program does not belong to category"
        if not program.is_active:
            return "program is inactive"
        if program.id in active_program_ids:
            return "already enrolled"
        return None

    async def _create_program_enrollment(
        self,
        patient_id: UUID,
        program: Program,
        start_date: date,
        enrolled_by: Optional[UUID],
        category_enrollment_id: Optional[UUID],
    ) -> ProgramEnrollment:
        enrollment = ProgramEnrollment(
            patient_id=patient_id,
            program_id=program.id,
            category_enrollment_id=category_enrollment_id,
            enrolled_by=enrolled_by,
            start_date=start_date,
            expected_end_date=compute_expected_end_date(
                start_date, program.duration_days, program.is_self_paced
            ),
            status="in_progress",
        )
        self.session.add(enrollment)
        await self.session.flush()
        return enrollment

    async def _seed_progress(self, enrollment: ProgramEnrollment) -> int:
        """Create a not_started progress row for every module of the program."""
        result = await self.session.execute(
            select(Module.id).where(Module.program_id == enrollment.program_id)
        )
        module_ids = list(result.scalars().all())
        for module_id in module_ids:
            self.session.add(ModuleProgress(
                patient_id=enrollment.patient_id,
                module_id=module_id,
                enrollment_id=enrollment.id,
                status="not_started",
                time_spent_seconds=0,
            ))
        await self.session.flush()
        return len(module_ids)

    def _mark_patient_paths(self, patient_id: UUID) -> None:
        self.cache.mark(
            "/admin/patients",
            f"/admin/patients/{patient_id}",
            "/patient",
            "/patient/programs",
        )
