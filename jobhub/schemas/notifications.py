from datetime import datetime
from typing import Any, Literal

from pydantic import ConfigDict, Field

from jobhub.schemas.base import WireModel


class NotificationActionOut(WireModel):
    model_config = ConfigDict(from_attributes=True)

    label: str
    type: str
    url: str | None
    method: str
    payload: dict[str, Any] | None


class NotificationOut(WireModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    title: str
    message: str
    type: str
    priority: str
    is_read: bool
    metadata: dict[str, Any]
    actions: list[NotificationActionOut]
    delivery_status: dict[str, str]
    expires_at: datetime
    created_at: datetime


class NotificationListOut(WireModel):
    items: list[NotificationOut]
    total: int
    page: int
    limit: int
    unread_count: int


class UnreadCountOut(WireModel):
    unread_count: int


class MarkAllReadOut(WireModel):
    updated: int


class TokenRegister(WireModel):
    token: str = Field(min_length=1)
    device_id: str | None = None
    platform: Literal["web", "android", "ios"] = "web"


class TokenOut(WireModel):
    model_config = ConfigDict(from_attributes=True)

    token: str
    device_id: str | None
    platform: str
    is_active: bool
