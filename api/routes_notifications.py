# api/routes_notifications.py
from fastapi import APIRouter, Depends, Query

from core.auth import get_current_user, require_roles
from core.container import ServiceContainer, get_container
from core.errors import NotFoundError, ValidationError
from core.response import ok
from models.notification import BROADCAST_EVENTS, Channel
from models.schemas import (
    BroadcastPayload,
    DispatchPayload,
    NotificationOut,
    PreferencesOut,
    PreferencesUpdate,
    RegisterTokenRequest,
)

router = APIRouter()


def _parse_channels(requested):
    known = {c.value for c in Channel}
    unknown = [c for c in requested if c.upper() not in known]
    if unknown:
        raise ValidationError(f"Unknown channel(s): {', '.join(unknown)}", details={"channels": unknown})
    return [Channel(c.upper()) for c in requested]


@router.post("/dispatch")
async def dispatch(
    req: DispatchPayload,
    caller: dict = Depends(require_roles("admin", "system")),
    services: ServiceContainer = Depends(get_container),
):
    """
    Internal: fan an event out to a user's channels.

    Always 200 once the request is valid; per-channel failures (and a
    missing user) are reported in the body with overall=false.
    """
    result = await services.dispatcher.dispatch(
        user_id=req.user_id,
        event_type=req.event_type,
        channels=_parse_channels(req.channels),
        title=req.title,
        body=req.body,
        data=req.data,
        recipient=req.recipient,
        subject=req.subject,
    )
    return ok(result.model_dump(by_alias=True, mode="json"))


@router.post("/broadcast")
async def broadcast(
    req: BroadcastPayload,
    caller: dict = Depends(require_roles("admin")),
    services: ServiceContainer = Depends(get_container),
):
    """Admin: send one event to all active users. PROMOTIONAL only reaches marketing opt-ins."""
    allowed = [e.value for e in BROADCAST_EVENTS]
    if req.event_type not in allowed:
        raise ValidationError(
            f"Broadcast type must be one of {', '.join(allowed)}", details={"type": req.event_type},
        )
    result = await services.dispatcher.broadcast(
        event_type=req.event_type,
        channels=_parse_channels(req.channels),
        title=req.title,
        body=req.body,
        data=req.data,
    )
    return ok(result.model_dump(by_alias=True))


@router.get("/unread-count")
async def unread_count(
    user: dict = Depends(get_current_user),
    services: ServiceContainer = Depends(get_container),
):
    return ok({"unreadCount": await services.dispatcher.unread_count(user["user_id"])})


@router.get("")
async def list_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: dict = Depends(get_current_user),
    services: ServiceContainer = Depends(get_container),
):
    inbox = await services.dispatcher.list_notifications(user["user_id"], page=page, limit=limit)
    return ok({
        "notifications": [
            NotificationOut.model_validate(n).model_dump(by_alias=True, mode="json")
            for n in inbox["notifications"]
        ],
        "unreadCount": inbox["unread_count"],
        "pagination": inbox["pagination"],
    })


@router.put("/{notification_id}/read")
async def mark_as_read(
    notification_id: str,
    user: dict = Depends(get_current_user),
    services: ServiceContainer = Depends(get_container),
):
    if not await services.dispatcher.mark_as_read(notification_id, user["user_id"]):
        raise NotFoundError("Notification not found")
    return ok({"id": notification_id, "read": True})


@router.get("/preferences")
async def get_preferences(
    user: dict = Depends(get_current_user),
    services: ServiceContainer = Depends(get_container),
):
    prefs = await services.preferences.get(user["user_id"])
    return ok(PreferencesOut(**prefs.model_dump()).model_dump(by_alias=True))


@router.put("/preferences")
async def update_preferences(
    req: PreferencesUpdate,
    user: dict = Depends(get_current_user),
    services: ServiceContainer = Depends(get_container),
):
    prefs = await services.preferences.update(user["user_id"], **req.model_dump())
    return ok(PreferencesOut(**prefs.model_dump()).model_dump(by_alias=True))


@router.post("/register-token")
async def register_token(
    req: RegisterTokenRequest,
    user: dict = Depends(get_current_user),
    services: ServiceContainer = Depends(get_container),
):
    await services.device_tokens.register(user["user_id"], req.token, req.platform)
    return ok({"registered": True})


@router.delete("/register-token")
async def unregister_token(
    token: str = Query(..., min_length=1),
    user: dict = Depends(get_current_user),
    services: ServiceContainer = Depends(get_container),
):
    if not await services.device_tokens.deactivate(user["user_id"], token):
        raise NotFoundError("Device token not found")
    return ok({"registered": False})
