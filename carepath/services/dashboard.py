"""
Admin Dashboard Aggregates

Headline counts, per-category breakdown and the daily enrollment trend
shown on the admin overview.
"""
import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

from sqlalchemy import func, select

from carepath.errors import ValidationError
from carepath.models import (
    AssessmentAttempt,
    Category,
    CategoryEnrollment,
    Module,
    Program,
    ProgramEnrollment,
    User,
)
from carepath.models.enrollment import ACTIVE_ENROLLMENT_STATUSES
from carepath.services.base import BaseService
from carepath.services.patient_directory import patient_rows_query

logger = logging.getLogger(__name__)

MAX_TREND_DAYS = 365


def percentage(part: int, whole: int) -> int:
    """Half-up integer percentage; 0 when whole is 0."""
    if not whole:
        return 0
    return (200 * part + whole) // (2 * whole)


class DashboardService(BaseService):
    """Read-only aggregates for the admin overview"""

    async def get_stats(self) -> Dict[str, int]:
        total_patients = await self._count(User.id, User.role == "patient")
        active_patients = await self._count(User.id, User.role == "patient", User.is_active.is_(True))
        active_programs = await self._count(Program.id, Program.is_active.is_(True))
        total_modules = await self._count(Module.id)
        total_enrollments = await self._count(ProgramEnrollment.id)
        active_enrollments = await self._count(
            ProgramEnrollment.id, ProgramEnrollment.status.in_(ACTIVE_ENROLLMENT_STATUSES)
        )
        completed_enrollments = await self._count(ProgramEnrollment.id, ProgramEnrollment.status == "completed")
        total_attempts = await self._count(AssessmentAttempt.id)
        completed_assessments = await self._count(AssessmentAttempt.id, AssessmentAttempt.completed_at.is_not(None))

        return {
            "total_patients": total_patients,
            "active_patients": active_patients,
            "active_programs": active_programs,
            "total_modules": total_modules,
            "total_enrollments": total_enrollments,
            "active_enrollments": active_enrollments,
            "completed_enrollments": completed_enrollments,
            "enrollment_completion_rate": percentage(completed_enrollments, total_enrollments),
            "completed_assessments": completed_assessments,
            "assessment_completion_rate": percentage(completed_assessments, total_attempts),
        }

    async def get_recent_patients(self, limit: int = 5) -> List[Dict[str, Any]]:
        """Newest patients with the name of their current category."""
        rows = (await self.session.execute(patient_rows_query().limit(max(1, min(limit, 50))))).all()
        return [
            {
                "id": row.id,
                "name": f"{row.first_name} {row.last_name}",
                "email": row.email,
                "is_active": row.is_active,
                "created_at": row.created_at,
                "category": row.category_name,
            }
            for row in rows
        ]

    async def get_category_stats(self) -> List[Dict[str, Any]]:
        """Program count and actively assigned patients per category."""
        program_counts = dict((await self.session.execute(
            select(Program.category_id, func.count(Program.id)).group_by(Program.category_id)
        )).all())
        patient_counts = dict((await self.session.execute(
            select(CategoryEnrollment.category_id, func.count(func.distinct(CategoryEnrollment.patient_id)))
            .where(CategoryEnrollment.status.in_(ACTIVE_ENROLLMENT_STATUSES))
            .group_by(CategoryEnrollment.category_id)
        )).all())

        categories = (await self.session.execute(select(Category).order_by(Category.name))).scalars().all()
        return [
            {
                "id": category.id,
                "name": category.name,
                "program_count": program_counts.get(category.id, 0),
                "patient_count": patient_counts.get(category.id, 0),
            }
            for category in categories
        ]

    async def get_enrollment_trend(self, days: int = 30) -> Dict[str, Any]:
        """
        New program enrollments per day and category over the last `days` days.

        Returns {"categories": [...], "data": [{"date": "YYYY-MM-DD", <category>: n}]},
        one point per day that had enrollments, oldest first.
        """
        if days < 1 or days > MAX_TREND_DAYS:
            raise ValidationError.for_field("days", f"Days must be between 1 and {MAX_TREND_DAYS}")

        since = datetime.now(timezone.utc) - timedelta(days=days)
        rows = (await self.session.execute(
            select(ProgramEnrollment.created_at, Category.name)
            .join(Program, Program.id == ProgramEnrollment.program_id)
            .join(Category, Category.id == Program.category_id)
            .where(ProgramEnrollment.created_at >= since)
            .order_by(ProgramEnrollment.created_at)
        )).all()

        by_day: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
        categories: List[str] = []
        for created_at, category_name in rows:
            if category_name not in categories:
                categories.append(category_name)
            by_day[created_at.date().isoformat()][category_name] += 1

        data = []
        for day in sorted(by_day):
            point: Dict[str, Any] = {"date": day}
            for name in categories:
                point[name] = by_day[day].get(name, 0)
            data.append(point)

        logger.debug(f"Enrollment trend over {days} days: {len(rows)} enrollments on {len(data)} days")
        return {"categories": categories, "data": data}

    async def _count(self, column, *criteria) -> int:
        query = select(func.count(column))
        if criteria:
            query = query.where(*criteria)
        return (await self.session.execute(query)).scalar() or 0
