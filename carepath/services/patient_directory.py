"""
Patient Directory

Admin-side patient records: searchable listing, a single record with the
patient's current category, and creation of the patient profile row.
Credentials live with the identity provider; only the users row is
created here.
"""
import logging
import re
from datetime import date
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import and_, func, or_, select

from carepath.errors import NotFoundError, ValidationError
from carepath.models import Category, CategoryEnrollment, User
from carepath.models.enrollment import ACTIVE_ENROLLMENT_STATUSES
from carepath.models.user import GENDERS
from carepath.services.base import BaseService

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
NAME_PATTERN = re.compile(r"^[a-zA-Z\s\-']+$")
MIN_PATIENT_AGE = 15
MAX_PATIENT_AGE = 60


def calculate_age(date_of_birth: date, today: Optional[date] = None) -> int:
    today = today or date.today()
    had_birthday = (today.month, today.day) >= (date_of_birth.month, date_of_birth.day)
    return today.year - date_of_birth.year - (0 if had_birthday else 1)


def validate_patient_fields(
    email: str,
    first_name: str,
    last_name: str,
    date_of_birth: Optional[date] = None,
    gender: Optional[str] = None,
    today: Optional[date] = None,
) -> Dict[str, List[str]]:
    """Field errors for a new patient profile; empty when valid."""
    errors: Dict[str, List[str]] = {}

    if not (email or "").strip():
        errors["email"] = ["Required"]
    elif not EMAIL_PATTERN.match(email.strip()):
        errors["email"] = ["Please enter a valid email address"]

    for field, label, value in (("first_name", "First name", first_name), ("last_name", "Last name", last_name)):
        value = (value or "").strip()
        if not value:
            errors[field] = ["Required"]
        elif not 2 <= len(value) <= 50:
            errors[field] = [f"{label} must be between 2 and 50 characters"]
        elif not NAME_PATTERN.match(value):
            errors[field] = [f"{label} can only contain letters, spaces, hyphens, and apostrophes"]

    if date_of_birth is not None:
        today = today or date.today()
        if date_of_birth >= today:
            errors["date_of_birth"] = ["Date of birth must be in the past"]
        elif not MIN_PATIENT_AGE <= calculate_age(date_of_birth, today) <= MAX_PATIENT_AGE:
            errors["date_of_birth"] = [
                f"Patient must be between {MIN_PATIENT_AGE} and {MAX_PATIENT_AGE} years old"
            ]

    if gender and gender not in GENDERS:
        errors["gender"] = ["Please select a valid gender option"]

    return errors


def patient_rows_query():
    """Patients joined to their active category assignment, newest first."""
    return (
        select(
            User.id,
            User.email,
            User.first_name,
            User.last_name,
            User.is_active,
            User.date_of_birth,
            User.gender,
            User.phone,
            User.created_at,
            Category.id.label("category_id"),
            Category.name.label("category_name"),
        )
        .outerjoin(
            CategoryEnrollment,
            and_(
                CategoryEnrollment.patient_id == User.id,
                CategoryEnrollment.status.in_(ACTIVE_ENROLLMENT_STATUSES),
            ),
        )
        .outerjoin(Category, Category.id == CategoryEnrollment.category_id)
        .where(User.role == "patient")
        .order_by(User.created_at.desc(), User.last_name, User.first_name)
    )


def patient_record(row) -> Dict[str, Any]:
    record = dict(row._mapping)
    category_id = record.pop("category_id")
    category_name = record.pop("category_name")
    record["category"] = {"id": category_id, "name": category_name} if category_id else None
    return record


class PatientDirectory(BaseService):
    """Patient records as seen by admins"""

    async def list_patients(
        self, search: Optional[str] = None, category_id: Optional[UUID] = None
    ) -> List[Dict[str, Any]]:
        """
        Patients matching an optional name/email search and category.

        The search is a case-insensitive substring match on first name,
        last name or email.
        """
        query = patient_rows_query()
        if search and search.strip():
            pattern = f"%{search.strip().lower()}%"
            query = query.where(or_(
                func.lower(User.first_name).like(pattern),
                func.lower(User.last_name).like(pattern),
                func.lower(User.email).like(pattern),
            ))
        if category_id is not None:
            query = query.where(Category.id == category_id)

        rows = (await self.session.execute(query)).all()
        return [patient_record(row) for row in rows]

    async def get_patient_record(self, patient_id: UUID) -> Dict[str, Any]:
        row = (await self.session.execute(patient_rows_query().where(User.id == patient_id))).first()
        if row is None:
            raise NotFoundError("Patient")
        return patient_record(row)

    async def create_patient(
        self,
        email: str,
        first_name: str,
        last_name: str,
        date_of_birth: Optional[date] = None,
        gender: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> User:
        errors = validate_patient_fields(email, first_name, last_name, date_of_birth, gender)
        if errors:
            raise ValidationError(details=errors)

        email = email.strip().lower()
        taken = (await self.session.execute(
            select(User.id).where(func.lower(User.email) == email)
        )).first()
        if taken is not None:
            raise ValidationError.for_field("email", "This email address is already registered")

        async with self.unit_of_work("patient creation"):
            patient = User(
                email=email,
                first_name=first_name.strip(),
                last_name=last_name.strip(),
                role="patient",
                date_of_birth=date_of_birth,
                gender=gender or None,
                phone=phone or None,
                is_active=True,
            )
            self.session.add(patient)
            await self.session.flush()
            self.cache.mark("/admin/patients")

        logger.info(f"Created patient {patient.id} ({email})")
        return patient

    async def set_patient_active(self, patient_id: UUID, is_active: bool) -> User:
        patient = await self.get_patient(patient_id)
        async with self.unit_of_work("patient status"):
            patient.is_active = is_active
            await self.session.flush()
            self.cache.mark("/admin/patients", f"/admin/patients/{patient_id}")
        logger.info(f"Patient {patient_id} {'activated' if is_active else 'deactivated'}")
        return patient
