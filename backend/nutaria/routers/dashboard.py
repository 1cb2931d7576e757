"""Dashboard stats and the five most recently updated stock rows."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from nutaria.auth.deps import require_permission
from nutaria.database import get_db
from nutaria.models.user import UserProfile
from nutaria.schemas.dashboard import DashboardOut
from nutaria.services.dashboard import get_dashboard

router = APIRouter()


@router.get("/", response_model=DashboardOut)
async def dashboard(
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(require_permission("inventory.read")),
):
    """Partial failures are reported in `errors`; the response is still 200."""
    return await get_dashboard(db)
