"""
Dashboard Data API Endpoints

Provides aggregated data for the admin overview.
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Query

from carepath.api.auth import require_admin
from carepath.api.dependencies import get_dashboard
from carepath.api.schemas import jsonable
from carepath.errors import success
from carepath.models import User
from carepath.services.dashboard import MAX_TREND_DAYS, DashboardService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/dashboard", tags=["dashboard"])


@router.get("/stats")
async def get_dashboard_stats(
    admin: User = Depends(require_admin),
    dashboard: DashboardService = Depends(get_dashboard),
) -> Dict[str, Any]:
    """
    Headline counts for the admin overview.

    Returns patient, program, module, enrollment and assessment totals
    along with completion rates as whole percentages.
    """
    return success(await dashboard.get_stats())


@router.get("/category-stats")
async def get_category_stats(
    admin: User = Depends(require_admin),
    dashboard: DashboardService = Depends(get_dashboard),
) -> Dict[str, Any]:
    return success(jsonable(await dashboard.get_category_stats()))


@router.get("/enrollment-trend")
async def get_enrollment_trend(
    days: int = Query(30, ge=1, le=MAX_TREND_DAYS),
    admin: User = Depends(require_admin),
    dashboard: DashboardService = Depends(get_dashboard),
) -> Dict[str, Any]:
    """New enrollments per day and category over the last `days` days."""
    return success(await dashboard.get_enrollment_trend(days))


@router.get("/recent-patients")
async def get_recent_patients(
    limit: int = Query(5, ge=1, le=50),
    admin: User = Depends(require_admin),
    dashboard: DashboardService = Depends(get_dashboard),
) -> Dict[str, Any]:
    """Newest patients with their current category name."""
    return success(jsonable(await dashboard.get_recent_patients(limit)))
