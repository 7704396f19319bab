"""Request-scoped service providers for the routers"""
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from carepath.database import get_db, get_redis
from carepath.services.assessment_grader import AssessmentGrader
from carepath.services.cache_invalidator import CacheInvalidator
from carepath.services.catalog import CatalogService
from carepath.services.dashboard import DashboardService
from carepath.services.enrollment_manager import EnrollmentManager
from carepath.services.mood_tracker import MoodTracker
from carepath.services.patient_directory import PatientDirectory
from carepath.services.progress_tracker import ProgressTracker


def get_cache_invalidator() -> CacheInvalidator:
    return CacheInvalidator(get_redis())


def get_catalog(
    db: AsyncSession = Depends(get_db), cache: CacheInvalidator = Depends(get_cache_invalidator)
) -> CatalogService:
    return CatalogService(db, cache)


def get_enrollment_manager(
    db: AsyncSession = Depends(get_db), cache: CacheInvalidator = Depends(get_cache_invalidator)
) -> EnrollmentManager:
    return EnrollmentManager(db, cache)


def get_progress_tracker(
    db: AsyncSession = Depends(get_db), cache: CacheInvalidator = Depends(get_cache_invalidator)
) -> ProgressTracker:
    return ProgressTracker(db, cache)


def get_grader(
    db: AsyncSession = Depends(get_db), cache: CacheInvalidator = Depends(get_cache_invalidator)
) -> AssessmentGrader:
    return AssessmentGrader(db, cache)


def get_mood_tracker(
    db: AsyncSession = Depends(get_db), cache: CacheInvalidator = Depends(get_cache_invalidator)
) -> MoodTracker:
    return MoodTracker(db, cache)


def get_patient_directory(
    db: AsyncSession = Depends(get_db), cache: CacheInvalidator = Depends(get_cache_invalidator)
) -> PatientDirectory:
    return PatientDirectory(db, cache)


def get_dashboard(db: AsyncSession = Depends(get_db)) -> DashboardService:
    return DashboardService(db)
