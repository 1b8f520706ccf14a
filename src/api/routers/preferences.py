import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import ValidationError

from api.dependencies import CurrentUser, get_context, get_current_user
from api.state import AppContext
from timebeacon.metrics import REQUESTS_TOTAL
from timebeacon.models import AIPreferences, AIPreferencesUpdate

router = APIRouter(prefix="/api/v1/ai-preferences", tags=["preferences"])
logger = logging.getLogger(__name__)


@router.get("", response_model=AIPreferences)
async def get_preferences(
    user: CurrentUser = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> AIPreferences:
    return await ctx.preferences.get(user.user_id, user.company_id)


@router.patch("", response_model=AIPreferences)
async def update_preferences(
    payload: Dict[str, Any] = Body(...),
    user: CurrentUser = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> AIPreferences:
    """
    Partially update the caller's AI preferences.

    Invalid values (e.g. confidence_threshold outside 0..100) are a 400 and
    leave the stored preferences untouched.
    """
    try:
        update = AIPreferencesUpdate.model_validate(payload)
    except ValidationError as e:
        REQUESTS_TOTAL.labels(endpoint="/ai-preferences", status="invalid").inc()
        problems = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        raise HTTPException(status_code=400, detail=problems)

    current = await ctx.preferences.get(user.user_id, user.company_id)
    updated = await ctx.preferences.save(user.user_id, user.company_id, update.apply(current))
    REQUESTS_TOTAL.labels(endpoint="/ai-preferences", status="updated").inc()
    logger.info(f"Updated AI preferences for {user.user_id}: {sorted(update.model_dump(exclude_none=True))}")
    return updated
