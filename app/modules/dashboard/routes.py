from fastapi import APIRouter, Depends
from app.database.supabase_client import get_supabase
from app.modules.dashboard.schemas import DashboardStats
from app.modules.dashboard.service import DashboardService
from app.core.dependencies import require_permission, require_company_id, get_access_cache
from supabase import Client
from typing import Dict

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


def get_dashboard_service(supabase: Client = Depends(get_supabase)) -> DashboardService:
    return DashboardService(supabase)


@router.get("/stats", response_model=DashboardStats)
async def company_stats(
    user_data: Dict = Depends(require_permission("dashboard:read")),
    service: DashboardService = Depends(get_dashboard_service),
    supabase: Client = Depends(get_supabase),
    cache: Dict = Depends(get_access_cache)
):
    """Summary for the caller's company"""
    return service.company_stats(require_company_id(user_data, supabase, cache))
