"""
Preferences API Routes

The caller's preferences row: read, display-setting edits, and a
server-sent event stream of changes for checkout reconciliation.
"""

import logging

from fastapi import APIRouter, Depends
from sse_starlette.sse import EventSourceResponse

from app.api.dependencies import (
    get_change_feed,
    get_current_user_id,
    get_preferences_store,
)
from app.domain.subscription import PreferencesUpdateRequest, UserPreferences
from app.infrastructure.db.repositories import IPreferencesStore
from app.infrastructure.realtime.change_feed import PreferencesChangeFeed


logger = logging.getLogger(__name__)

router = APIRouter()

PREFERENCES_EVENT = "preferences"


@router.get("/preferences", response_model=UserPreferences)
async def get_preferences(
    user_id: str = Depends(get_current_user_id),
    preferences: IPreferencesStore = Depends(get_preferences_store),
):
    """Current preferences, created with defaults on first read."""
    return await preferences.get_or_create(user_id)


@router.patch("/preferences", response_model=UserPreferences)
async def update_preferences(
    body: PreferencesUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    preferences: IPreferencesStore = Depends(get_preferences_store),
):
    """
    Change currency and/or locale.

    Only the display columns are written; billing fields are owned by the
    webhook and cannot be set here.
    """
    values = body.model_dump(exclude_none=True)
    if not values:
        return await preferences.get_or_create(user_id)

    logger.info(f"Updating display preferences for user {user_id}: {sorted(values)}")
    return await preferences.update_display(user_id, values)


@router.get("/preferences/stream")
async def stream_preferences(
    user_id: str = Depends(get_current_user_id),
    preferences: IPreferencesStore = Depends(get_preferences_store),
    change_feed: PreferencesChangeFeed = Depends(get_change_feed),
):
    """
    Stream preferences changes as server-sent events.

    The current row is sent first, then one `preferences` event per write.
    Subscribing before the read means no write can fall between the two.
    """
    updates = change_feed.subscribe(user_id)
    try:
        current = await preferences.get_or_create(user_id)
    except Exception:
        updates.close()
        raise

    async def event_generator():
        try:
            yield {"event": PREFERENCES_EVENT, "data": current.model_dump_json()}
            async for updated in updates:
                yield {"event": PREFERENCES_EVENT, "data": updated.model_dump_json()}
        finally:
            # Client disconnected: drop the subscriber queue now
            await updates.aclose()

    return EventSourceResponse(event_generator())
