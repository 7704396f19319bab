"""
Integration tests for EnrollmentManager

Tests assignment with end-date computation, superseding with progress
reset, batch enrollment and lifecycle transitions.
"""
import uuid
from datetime import date

import pytest
from sqlalchemy import func, select

from carepath.database import atomic
from carepath.errors import ForbiddenError, NotFoundError, TransactionError, ValidationError
from carepath.models import CategoryEnrollment, ModuleProgress, ProgramEnrollment
from carepath.services.enrollment_manager import EnrollmentManager
from carepath.services.progress_tracker import ProgressTracker


@pytest.fixture
def manager(session, cache):
    return EnrollmentManager(session, cache)


async def status_of(session, model, enrollment_id):
    return (await session.execute(select(model.status).where(model.id == enrollment_id))).scalar_one()


async def progress_count(session, enrollment_id):
    return (await session.execute(
        select(func.count()).select_from(ModuleProgress).where(ModuleProgress.enrollment_id == enrollment_id)
    )).scalar()


class TestAssign:
    """Single-program assignment"""

    async def test_expected_end_date_and_seeded_progress(self, session, manager, patient, admin, make_program):
        program = await make_program(modules=[("Intro", True), ("Practice", True), ("Extra", False)])

        enrollment = await manager.assign(patient.id, program.id, date(2024, 1, 1), admin.id)

        assert enrollment.status == "in_progress"
        assert enrollment.start_date == date(2024, 1, 1)
        assert enrollment.expected_end_date == date(2024, 1, 31)
        assert enrollment.enrolled_by == admin.id
        assert await progress_count(session, enrollment.id) == 3

    async def test_self_paced_program_has_no_end_date(self, manager, patient, make_program):
        program = await make_program("Mindfulness", duration_days=None, is_self_paced=True)

        enrollment = await manager.assign(patient.id, program.id, date(2024, 1, 1))

        assert enrollment.expected_end_date is None

    async def test_unknown_patient(self, manager, admin, make_program):
        program = await make_program()

        # admins are not patients
        with pytest.raises(NotFoundError):
            await manager.assign(admin.id, program.id, date(2024, 1, 1))

    async def test_unknown_program(self, manager, patient):
        with pytest.raises(NotFoundError):
            await manager.assign(patient.id, uuid.uuid4(), date(2024, 1, 1))

    async def test_detox_switch_drops_prior_and_resets_progress(
        self, session, manager, patient, admin, catalog, make_program
    ):
        """Detox-30 -> Detox-60 within one category"""
        category = await catalog.create_category("Substance Recovery")
        detox_30 = await make_program("Detox-30", category=category, modules=[("Week 1", True), ("Week 2", True)])
        detox_60 = await make_program("Detox-60", category=category, duration_days=60, modules=[("Month 1", True)])
        anchor = await manager.assign_category(patient.id, category.id, date(2024, 1, 1), admin.id)

        first = await manager.assign(patient.id, detox_30.id, date(2024, 1, 1), admin.id)
        week_1 = (await catalog.list_modules(detox_30.id))[0]
        await ProgressTracker(session).set_module_status(patient.id, week_1.id, "completed", 900)

        second = await manager.assign(patient.id, detox_60.id, date(2024, 1, 15), admin.id)

        assert await status_of(session, ProgramEnrollment, first.id) == "dropped"
        assert await progress_count(session, first.id) == 0
        assert second.status == "in_progress"
        assert second.expected_end_date == date(2024, 3, 15)
        assert second.category_enrollment_id == anchor.id
        assert await progress_count(session, second.id) == 1

    async def test_reassigning_same_program_starts_over(self, session, manager, patient, make_program):
        program = await make_program()
        first = await manager.assign(patient.id, program.id, date(2024, 1, 1))

        second = await manager.assign(patient.id, program.id, date(2024, 2, 1))

        assert second.id != first.id
        assert await status_of(session, ProgramEnrollment, first.id) == "dropped"

    async def test_assignment_hangs_off_the_category(self, manager, patient, make_program):
        program = await make_program("Detox-30")

        enrollment = await manager.assign(patient.id, program.id, date(2024, 1, 1))

        anchor = await manager.get_active_category_enrollment(patient.id)
        assert anchor.category_id == program.category_id
        assert enrollment.category_enrollment_id == anchor.id

    async def test_program_in_another_category_switches_category(self, session, manager, patient, make_program):
        recovery = await make_program("Detox-30")
        anxiety = await make_program("Calm Mind")
        first = await manager.assign(patient.id, recovery.id, date(2024, 1, 1))
        first_id, old_anchor_id = first.id, first.category_enrollment_id

        second = await manager.assign(patient.id, anxiety.id, date(2024, 2, 1))

        assert await status_of(session, ProgramEnrollment, first_id) == "dropped"
        assert await progress_count(session, first_id) == 0
        assert await status_of(session, CategoryEnrollment, old_anchor_id) == "dropped"
        anchor = await manager.get_active_category_enrollment(patient.id)
        assert anchor.category_id == anxiety.category_id
        assert second.category_enrollment_id == anchor.id

    async def test_later_category_switch_drops_assigned_program(
        self, session, manager, patient, catalog, make_program
    ):
        detox = await make_program("Detox-30")
        anxiety = await catalog.create_category("Anxiety")
        enrollment = await manager.assign(patient.id, detox.id, date(2024, 1, 1))
        enrollment_id = enrollment.id

        await manager.assign_category(patient.id, anxiety.id, date(2024, 2, 1))

        assert await status_of(session, ProgramEnrollment, enrollment_id) == "dropped"


class TestAssignCategory:
    async def test_supersede_cascades_to_anchored_programs(
        self, session, manager, patient, admin, catalog, make_program
    ):
        recovery = await catalog.create_category("Substance Recovery")
        anxiety = await catalog.create_category("Anxiety")
        detox = await make_program("Detox-30", category=recovery, modules=[("Week 1", True)])
        result = await manager.enroll_multiple(patient.id, [detox.id], recovery.id, date(2024, 1, 1), admin.id)
        old_anchor_id = result.category_enrollment.id
        old_enrollment_id = result.enrollments[0].id

        new_anchor = await manager.assign_category(patient.id, anxiety.id, date(2024, 2, 1), admin.id)

        assert new_anchor.status == "in_progress"
        assert await status_of(session, CategoryEnrollment, old_anchor_id) == "dropped"
        assert await status_of(session, ProgramEnrollment, old_enrollment_id) == "dropped"
        assert await progress_count(session, old_enrollment_id) == 0

        active = await manager.get_active_category_enrollment(patient.id)
        assert active.id == new_anchor.id

    async def test_enrolls_and_seeds_active_programs(self, session, manager, patient, admin, catalog, make_program):
        category = await catalog.create_category("Substance Recovery")
        detox = await make_program("Detox-30", category=category, modules=[("Week 1", True), ("Week 2", True)])
        support = await make_program("Family Support", category=category, duration_days=14)
        paused = await make_program("Detox-90", category=category)
        await catalog.set_program_active(paused.id, False)

        anchor = await manager.assign_category(patient.id, category.id, date(2024, 1, 1), admin.id)

        enrollments = (await session.execute(
            select(ProgramEnrollment).where(ProgramEnrollment.patient_id == patient.id)
        )).scalars().all()
        by_program = {e.program_id: e for e in enrollments}
        assert set(by_program) == {detox.id, support.id}
        assert all(e.category_enrollment_id == anchor.id for e in enrollments)
        assert all(e.status == "in_progress" for e in enrollments)
        assert by_program[support.id].expected_end_date == date(2024, 1, 15)
        assert await progress_count(session, by_program[detox.id].id) == 2
        assert await progress_count(session, by_program[support.id].id) == 1

    async def test_category_without_programs(self, session, manager, patient, catalog):
        category = await catalog.create_category("Anxiety")

        anchor = await manager.assign_category(patient.id, category.id, date(2024, 1, 1))

        assert anchor.status == "in_progress"
        assert await manager.list_patient_programs(patient.id) == []

    async def test_patient_category_lookup(self, manager, patient, catalog):
        assert await manager.get_patient_category(patient.id) is None
        category = await catalog.create_category("Anxiety")
        anchor = await manager.assign_category(patient.id, category.id, date(2024, 1, 1))

        enrollment, found = await manager.get_patient_category(patient.id)

        assert enrollment.id == anchor.id
        assert found.name == "Anxiety"

    async def test_unknown_category(self, manager, patient):
        with pytest.raises(NotFoundError):
            await manager.assign_category(patient.id, uuid.uuid4(), date(2024, 1, 1))


class TestEnrollMultiple:
    """Batch enrollment reports skipped targets instead of failing"""

    async def test_partial_success(self, manager, patient, admin, catalog, make_program):
        category = await catalog.create_category("Substance Recovery")
        detox = await make_program("Detox-30", category=category)
        paused = await make_program("Detox-90", category=category)
        await catalog.set_program_active(paused.id, False)
        elsewhere = await make_program("Calm Mind")
        missing = uuid.uuid4()

        result = await manager.enroll_multiple(
            patient.id, [detox.id, paused.id, elsewhere.id, missing], category.id, date(2024, 1, 1), admin.id
        )

        assert result.requested_count == 4
        assert result.enrolled_count == 1
        assert result.is_partial is True
        assert result.enrollments[0].program_id == detox.id
        assert [(s.program_id, s.reason) for s in result.skipped] == [
            (paused.id, "program is inactive"),
            (elsewhere.id, "program does not belong to category"),
            (missing, "program not found"),
        ]

    async def test_already_enrolled_is_skipped(self, manager, patient, catalog, make_program):
        category = await catalog.create_category("Substance Recovery")
        detox = await make_program("Detox-30", category=category)
        first = await manager.enroll_multiple(patient.id, [detox.id], category.id, date(2024, 1, 1))

        again = await manager.enroll_multiple(patient.id, [detox.id], category.id, date(2024, 1, 5))

        assert again.enrolled_count == 0
        assert again.skipped[0].reason == "already enrolled"
        assert again.category_enrollment.id == first.category_enrollment.id

    async def test_several_programs_share_one_anchor(self, manager, patient, catalog, make_program):
        category = await catalog.create_category("Substance Recovery")
        detox = await make_program("Detox-30", category=category)
        support = await make_program("Family Support", category=category, duration_days=14)

        result = await manager.enroll_multiple(patient.id, [detox.id, support.id], category.id, date(2024, 1, 1))

        assert result.enrolled_count == 2
        assert result.is_partial is False
        assert {e.category_enrollment_id for e in result.enrollments} == {result.category_enrollment.id}
        assert sorted(e.expected_end_date for e in result.enrollments) == [date(2024, 1, 15), date(2024, 1, 31)]

    async def test_repeated_ids_count_once(self, manager, patient, catalog, make_program):
        category = await catalog.create_category("Substance Recovery")
        detox = await make_program("Detox-30", category=category)

        result = await manager.enroll_multiple(patient.id, [detox.id, detox.id], category.id, date(2024, 1, 1))

        assert result.requested_count == 1
        assert result.enrolled_count == 1
        assert result.skipped == []
        assert result.is_partial is False

    async def test_empty_target_list(self, manager, patient, catalog):
        category = await catalog.create_category("Substance Recovery")

        with pytest.raises(ValidationError):
            await manager.enroll_multiple(patient.id, [], category.id, date(2024, 1, 1))


class TestSelfEnroll:
    """Patient-initiated enrollment"""

    async def test_enrolls_into_assigned_category(self, session, manager, patient, catalog, make_program):
        category = await catalog.create_category("Substance Recovery")
        anchor = await manager.assign_category(patient.id, category.id, date(2024, 1, 1))
        support = await make_program("Family Support", category=category, duration_days=14)

        enrollment, created = await manager.self_enroll(patient.id, support.id, date(2024, 2, 1))

        assert created is True
        assert enrollment.category_enrollment_id == anchor.id
        assert enrollment.enrolled_by is None
        assert enrollment.expected_end_date == date(2024, 2, 15)
        assert await progress_count(session, enrollment.id) == 1

    async def test_existing_enrollment_is_returned(self, manager, patient, make_program):
        program = await make_program("Detox-30")
        assigned = await manager.assign(patient.id, program.id, date(2024, 1, 1))

        enrollment, created = await manager.self_enroll(patient.id, program.id)

        assert created is False
        assert enrollment.id == assigned.id

    async def test_without_category_assigns_programs_category(self, manager, patient, make_program):
        program = await make_program("Detox-30")

        enrollment, _ = await manager.self_enroll(patient.id, program.id, date(2024, 1, 1))

        anchor = await manager.get_active_category_enrollment(patient.id)
        assert anchor.category_id == program.category_id
        assert enrollment.category_enrollment_id == anchor.id

    async def test_program_outside_assigned_category(self, manager, patient, catalog, make_program):
        category = await catalog.create_category("Anxiety")
        await manager.assign_category(patient.id, category.id, date(2024, 1, 1))
        elsewhere = await make_program("Detox-30")

        with pytest.raises(ForbiddenError):
            await manager.self_enroll(patient.id, elsewhere.id)

    async def test_inactive_program(self, manager, patient, catalog, make_program):
        program = await make_program("Detox-90")
        await catalog.set_program_active(program.id, False)

        with pytest.raises(ValidationError):
            await manager.self_enroll(patient.id, program.id)


class TestTransitions:
    async def test_complete_sets_completed_date(self, manager, patient, make_program):
        program = await make_program()
        enrollment = await manager.assign(patient.id, program.id, date(2024, 1, 1))

        updated = await manager.transition(enrollment.id, "completed")

        assert updated.status == "completed"
        assert updated.completed_date is not None

    async def test_terminal_status_cannot_be_left(self, session, manager, patient, make_program):
        program = await make_program()
        enrollment = await manager.assign(patient.id, program.id, date(2024, 1, 1))
        enrollment_id = enrollment.id
        await manager.transition(enrollment_id, "dropped")

        with pytest.raises(ValidationError):
            await manager.transition(enrollment_id, "in_progress")

        assert await status_of(session, ProgramEnrollment, enrollment_id) == "dropped"

    async def test_same_status_is_noop(self, manager, cache, patient, make_program):
        program = await make_program()
        enrollment = await manager.assign(patient.id, program.id, date(2024, 1, 1))
        published = len(cache.published)

        await manager.transition(enrollment.id, "in_progress")

        assert len(cache.published) == published

    async def test_dropping_category_drops_its_programs(self, session, manager, patient, catalog, make_program):
        category = await catalog.create_category("Substance Recovery")
        detox = await make_program("Detox-30", category=category)
        result = await manager.enroll_multiple(patient.id, [detox.id], category.id, date(2024, 1, 1))

        await manager.transition_category(result.category_enrollment.id, "dropped")

        assert await status_of(session, ProgramEnrollment, result.enrollments[0].id) == "dropped"
        assert await manager.get_active_category_enrollment(patient.id) is None

    async def test_unknown_enrollment(self, manager):
        with pytest.raises(NotFoundError):
            await manager.transition(uuid.uuid4(), "dropped")


class TestActiveEnrollmentUniqueness:
    async def test_second_active_enrollment_fails_atomically(self, session, manager, patient, make_program):
        """A concurrent duplicate loses on the unique index and nothing is half-applied"""
        program = await make_program()
        enrollment = await manager.assign(patient.id, program.id, date(2024, 1, 1))
        enrollment_id, patient_id, program_id = enrollment.id, patient.id, program.id

        with pytest.raises(TransactionError):
            async with atomic(session, "duplicate enrollment"):
                session.add(ProgramEnrollment(
                    patient_id=patient_id,
                    program_id=program_id,
                    start_date=date(2024, 1, 2),
                    status="assigned",
                ))
                await session.flush()

        count = (await session.execute(
            select(func.count()).select_from(ProgramEnrollment).where(ProgramEnrollment.patient_id == patient_id)
        )).scalar()
        assert count == 1
        assert await status_of(session, ProgramEnrollment, enrollment_id) == "in_progress"


class TestReads:
    async def test_current_and_listed_programs(self, manager, patient, catalog, make_program):
        category = await catalog.create_category("Substance Recovery")
        detox = await make_program("Detox-30", category=category)
        calm = await make_program("Calm Mind", category=category)
        await manager.enroll_multiple(patient.id, [detox.id], category.id, date(2024, 1, 1))
        await manager.enroll_multiple(patient.id, [calm.id], category.id, date(2024, 3, 1))

        enrollment, program = await manager.get_current_enrollment(patient.id)
        listed = await manager.list_patient_programs(patient.id)

        assert program.title == "Calm Mind"
        assert enrollment.start_date == date(2024, 3, 1)
        assert [p.title for _, p in listed] == ["Calm Mind", "Detox-30"]

    async def test_no_current_enrollment(self, manager, patient):
        assert await manager.get_current_enrollment(patient.id) is None
