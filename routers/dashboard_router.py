from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from auth import require_app_access
from database import get_db
from database_models import User
from services.dashboard_service import DashboardService

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get("/stats")
async def get_dashboard_stats(user: User = Depends(require_app_access), db: AsyncSession = Depends(get_db)):
    """
    Headline numbers for the contractor dashboard.
    Values are preformatted strings ("3", "$12.5k") ready for display.
    """
    return await DashboardService(db).get_stats(user.id)
