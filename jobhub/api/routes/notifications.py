from fastapi import APIRouter, Depends, Query, status

from jobhub.api.errors import to_http_exception
from jobhub.core.auth import Principal
from jobhub.core.errors import DomainError
from jobhub.core.security import get_principal
from jobhub.schemas.notifications import (
    MarkAllReadOut,
    NotificationListOut,
    NotificationOut,
    TokenOut,
    TokenRegister,
    UnreadCountOut,
)
from jobhub.services.runtime import Runtime, get_runtime

router = APIRouter()


@router.get("", response_model=NotificationListOut)
async def list_notifications(
    unread_only: bool = Query(default=False, alias="unreadOnly"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    principal: Principal = Depends(get_principal),
    runtime: Runtime = Depends(get_runtime),
) -> NotificationListOut:
    items, total = await runtime.notifications.list_notifications(
        principal.user_id,
        unread_only=unread_only,
        page=page,
        limit=limit,
    )
    unread = await runtime.notifications.unread_count(principal.user_id)
    return NotificationListOut(
        items=[NotificationOut.model_validate(item) for item in items],
        total=total,
        page=page,
        limit=limit,
        unread_count=unread,
    )


@router.get("/unread-count", response_model=UnreadCountOut)
async def unread_count(
    principal: Principal = Depends(get_principal),
    runtime: Runtime = Depends(get_runtime),
) -> UnreadCountOut:
    return UnreadCountOut(unread_count=await runtime.notifications.unread_count(principal.user_id))


@router.post("/read-all", response_model=MarkAllReadOut)
async def mark_all_read(
    principal: Principal = Depends(get_principal),
    runtime: Runtime = Depends(get_runtime),
) -> MarkAllReadOut:
    return MarkAllReadOut(updated=await runtime.notifications.mark_all_read(principal.user_id))


@router.post("/tokens", response_model=TokenOut, status_code=status.HTTP_201_CREATED)
async def register_token(
    payload: TokenRegister,
    principal: Principal = Depends(get_principal),
    runtime: Runtime = Depends(get_runtime),
) -> TokenOut:
    record = await runtime.notifications.register_token(
        principal.user_id,
        payload.token,
        device_id=payload.device_id,
        platform=payload.platform,
    )
    return TokenOut.model_validate(record)


@router.post("/{notification_id}/read", response_model=NotificationOut)
async def mark_read(
    notification_id: str,
    principal: Principal = Depends(get_principal),
    runtime: Runtime = Depends(get_runtime),
) -> NotificationOut:
    try:
        notification = await runtime.notifications.mark_read(notification_id, principal.user_id)
    except DomainError as exc:
        raise to_http_exception(exc) from exc
    return NotificationOut.model_validate(notification)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: str,
    principal: Principal = Depends(get_principal),
    runtime: Runtime = Depends(get_runtime),
) -> None:
    try:
        await runtime.notifications.delete(notification_id, principal.user_id)
    except DomainError as exc:
        raise to_http_exception(exc) from exc
