"""
Integration tests for PatientDirectory and the recent-patients aggregate
"""
import uuid
from datetime import date

import pytest

from carepath.errors import NotFoundError, ValidationError
from carepath.services.dashboard import DashboardService
from carepath.services.enrollment_manager import EnrollmentManager
from carepath.services.patient_directory import PatientDirectory


@pytest.fixture
def directory(session, cache):
    return PatientDirectory(session, cache)


@pytest.fixture
async def registered(directory):
    jordan = await directory.create_patient("jordan.lee@carepath.test", "Jordan", "Lee")
    riley = await directory.create_patient("riley@carepath.test", "Riley", "Moss", gender="female")
    return jordan, riley


class TestCreatePatient:
    async def test_creates_patient_row(self, directory, cache):
        patient = await directory.create_patient(
            " Jordan.Lee@CarePath.test ", "Jordan", "Lee", date_of_birth=date(1990, 1, 1), phone="555-0100"
        )

        assert patient.role == "patient"
        assert patient.email == "jordan.lee@carepath.test"
        assert patient.date_of_birth == date(1990, 1, 1)
        assert patient.is_active is True
        assert ["/admin/patients"] in cache.published

    async def test_duplicate_email_ignores_case(self, directory):
        await directory.create_patient("jordan.lee@carepath.test", "Jordan", "Lee")

        with pytest.raises(ValidationError) as exc_info:
            await directory.create_patient("JORDAN.LEE@carepath.test", "Jo", "Lee")
        assert exc_info.value.details == {"email": ["This email address is already registered"]}

    async def test_invalid_fields(self, directory):
        with pytest.raises(ValidationError) as exc_info:
            await directory.create_patient("not-an-email", "J", "Lee")
        assert set(exc_info.value.details) == {"email", "first_name"}


class TestListPatients:
    async def test_lists_patients_only(self, directory, admin, registered):
        listed = await directory.list_patients()

        assert {p["email"] for p in listed} == {"jordan.lee@carepath.test", "riley@carepath.test"}
        assert all(p["category"] is None for p in listed)

    @pytest.mark.parametrize("term,expected", [
        ("jor", "jordan.lee@carepath.test"),
        ("MOSS", "riley@carepath.test"),
        ("riley@", "riley@carepath.test"),
    ])
    async def test_search(self, directory, registered, term, expected):
        assert [p["email"] for p in await directory.list_patients(search=term)] == [expected]

    async def test_category_filter(self, session, directory, catalog, registered):
        jordan, _ = registered
        category = await catalog.create_category("Anxiety")
        await EnrollmentManager(session).assign_category(jordan.id, category.id, date(2024, 1, 1))

        listed = await directory.list_patients(category_id=category.id)

        assert [p["id"] for p in listed] == [jordan.id]
        assert listed[0]["category"] == {"id": category.id, "name": "Anxiety"}


class TestPatientRecord:
    async def test_record_with_category(self, session, directory, catalog, registered):
        jordan, _ = registered
        category = await catalog.create_category("Substance Recovery")
        await EnrollmentManager(session).assign_category(jordan.id, category.id, date(2024, 1, 1))

        record = await directory.get_patient_record(jordan.id)

        assert record["first_name"] == "Jordan"
        assert record["category"]["name"] == "Substance Recovery"

    async def test_admins_are_not_patients(self, directory, admin):
        with pytest.raises(NotFoundError):
            await directory.get_patient_record(admin.id)

    async def test_unknown_patient(self, directory):
        with pytest.raises(NotFoundError):
            await directory.get_patient_record(uuid.uuid4())

    async def test_deactivate(self, directory, registered):
        jordan, _ = registered

        updated = await directory.set_patient_active(jordan.id, False)

        assert updated.is_active is False
        assert (await directory.get_patient_record(jordan.id))["is_active"] is False


class TestRecentPatients:
    async def test_limit_and_category_name(self, session, directory, catalog, registered):
        jordan, _ = registered
        await directory.create_patient("sam@carepath.test", "Sam", "Ortiz")
        category = await catalog.create_category("Anxiety")
        await EnrollmentManager(session).assign_category(jordan.id, category.id, date(2024, 1, 1))

        recent = await DashboardService(session).get_recent_patients(limit=2)
        everyone = await DashboardService(session).get_recent_patients(limit=10)

        assert len(recent) == 2
        assert len(everyone) == 3
        by_email = {p["email"]: p for p in everyone}
        assert by_email["jordan.lee@carepath.test"]["name"] == "Jordan Lee"
        assert by_email["jordan.lee@carepath.test"]["category"] == "Anxiety"
        assert by_email["sam@carepath.test"]["category"] is None
