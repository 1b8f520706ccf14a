from typing import List

from fastapi import APIRouter, Depends, Query

from api.dependencies import CurrentUser, get_context, get_current_user
from api.state import AppContext
from timebeacon.models import TimeEntry

router = APIRouter(prefix="/api/v1/time-entries", tags=["time-entries"])


@router.get("/pending", response_model=List[TimeEntry])
async def pending_entries(
    limit: int = Query(50, ge=1, le=500),
    user: CurrentUser = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> List[TimeEntry]:
    """Imported entries waiting for the user's review, newest first."""
    return await ctx.entries.list_pending(user.user_id, limit)
