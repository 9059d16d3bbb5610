"""In-app notifications with best-effort push delivery.

The row is persisted before any push attempt and is keyed by the source event
id, so a redelivered event neither duplicates the row nor re-sends a push that
already completed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

import httpx

from jobhub.core.errors import NotFoundError
from jobhub.events.models import (
    ApplicationStatusUpdated,
    CompanySubscriptionUpdated,
    CompanyVerified,
    Event,
    JobApplicationSubmitted,
    JobHot,
    JobPublished,
    JobSaved,
    NotificationActionPayload,
    UserInvited,
)
from jobhub.services.push import PushGateway
from jobhub.services.records import (
    DELIVERY_FAILED,
    DELIVERY_PENDING,
    DELIVERY_SENT,
    DeliveryTokenRecord,
    NotificationAction,
    NotificationRecord,
)

logger = logging.getLogger(__name__)

NOTIFICATION_QUEUE = "notification.fanout"
NOTIFICATION_PATTERNS = (
    "job.published",
    "job.application",
    "application.status.updated",
    "job.save",
    "job.hot",
    "company.verified",
    "company.subscription.updated",
    "identify.user.invited",
)
DEFAULT_TTL_DAYS = 30


@dataclass(slots=True)
class NotificationDraft:
    user_id: str
    title: str
    message: str
    type: str
    priority: str = "medium"
    metadata: dict[str, Any] = field(default_factory=dict)
    actions: list[NotificationAction] = field(default_factory=list)
    source_event_id: str | None = None


def _link(label: str, url: str) -> NotificationAction:
    return NotificationAction(label=label, type="link", url=url, method="GET")


def _from_payload(action: NotificationActionPayload) -> NotificationAction:
    return NotificationAction(
        label=action.label,
        type=action.action_type,
        url=action.url,
        method=action.method,
        payload=action.payload,
    )


def draft_for_event(event: Event) -> NotificationDraft | None:
    """Map a consumed event to the notification it produces, or None when it produces none."""
    if isinstance(event, JobPublished):
        return NotificationDraft(
            user_id=event.posted_by,
            title="Job published",
            message=event.message or "Your job has been published successfully.",
            type=event.notification_type or "job_published",
            metadata={"jobId": event.job_id, "jobSlug": event.slug},
            actions=[_link("View job", f"/jobs/{event.slug}")],
            source_event_id=event.event_id,
        )
    if isinstance(event, JobApplicationSubmitted):
        actions = []
        if event.application_id:
            actions.append(_link("View application", f"/employer/applications/{event.application_id}"))
        return NotificationDraft(
            user_id=event.user_id,
            title="New applicant",
            message=event.message,
            type=event.notification_type,
            priority="high",
            metadata={"jobId": event.job_id, "jobSlug": event.job_slug, "applicationId": event.application_id},
            actions=actions,
            source_event_id=event.event_id,
        )
    if isinstance(event, ApplicationStatusUpdated):
        return NotificationDraft(
            user_id=event.user_id,
            title="Application status updated",
            message=event.message or "The status of your application has been updated.",
            type=event.notification_type,
            priority=event.priority,
            metadata={**event.metadata, "jobId": event.job_id, "applicationId": event.application_id},
            actions=[_from_payload(action) for action in event.actions or []],
            source_event_id=event.event_id,
        )
    if isinstance(event, JobSaved):
        return NotificationDraft(
            user_id=event.user_id,
            title="Job saved",
            message=event.message or "You saved a new job.",
            type=event.notification_type or "job_saved",
            metadata={"jobId": event.job_id},
            actions=[_link("View job", f"/jobs/{event.job_id}")],
            source_event_id=event.event_id,
        )
    if isinstance(event, JobHot):
        if not event.is_hot:
            return None
        if not event.posted_by:
            logger.warning("job.hot without poster job_id=%s; no notification", event.job_id)
            return None
        until = f" until {event.hot_until:%Y-%m-%d}" if event.hot_until else ""
        return NotificationDraft(
            user_id=event.posted_by,
            title="Your job is trending",
            message=f'"{event.title or event.slug}" is now a hot job{until}.',
            type="job_hot",
            metadata={"jobId": event.job_id, "jobSlug": event.slug},
            actions=[_link("View job", f"/jobs/{event.slug}")],
            source_event_id=event.event_id,
        )
    if isinstance(event, CompanyVerified):
        if not event.user_id:
            logger.warning("company.verified without user company_id=%s; no notification", event.company_id)
            return None
        return NotificationDraft(
            user_id=event.user_id,
            title="Company verified",
            message=event.message or "Your company has been verified.",
            type=event.notification_type or "company_verified",
            priority="high",
            metadata={"companyId": event.company_id},
            actions=[_link("View company", f"/companies/{event.company_id}"), _link("Post a job", "/post-job")],
            source_event_id=event.event_id,
        )
    if isinstance(event, CompanySubscriptionUpdated):
        if not event.user_id:
            logger.info("subscription update without user company_id=%s; no notification", event.company_id)
            return None
        return NotificationDraft(
            user_id=event.user_id,
            title="Subscription updated",
            message=event.message or f"Your company's plan is now {event.subscription.plan}.",
            type=event.notification_type or "subscription_updated",
            metadata={"companyId": event.company_id, "plan": event.subscription.plan},
            source_event_id=event.event_id,
        )
    if isinstance(event, UserInvited):
        return NotificationDraft(
            user_id=event.user_id,
            title="Company invitation",
            message=event.message or "You have been invited to join a company.",
            type=event.notification_type or "company_member_invite",
            metadata={"companyId": event.company_id},
            actions=[
                NotificationAction(
                    label="Join",
                    type="api_call",
                    url=f"/company/{event.company_id}/invite/accept",
                    method="PATCH",
                ),
                NotificationAction(
                    label="Decline",
                    type="api_call",
                    url=f"/company/{event.company_id}/invite/reject",
                    method="DELETE",
                ),
            ],
            source_event_id=event.event_id,
        )
    return None


def notification_url(notification: NotificationRecord, base_url: str) -> str:
    base = base_url.rstrip("/")
    metadata = notification.metadata or {}
    application_id = metadata.get("applicationId")
    job_slug = metadata.get("jobSlug")
    kind = notification.type
    if kind == "application_submitted" and application_id:
        return f"{base}/employer/applications/{application_id}"
    if kind in {"application_accepted", "application_rejected"} and application_id:
        return f"{base}/applications/{application_id}"
    if kind == "application_interview_scheduled" and application_id:
        return f"{base}/interviews/{application_id}"
    if kind in {"new_job_match", "job_published", "job_hot"} and job_slug:
        return f"{base}/jobs/{job_slug}"
    if kind == "profile_viewed":
        return f"{base}/profile"
    if kind == "message_received":
        return f"{base}/messages"
    return f"{base}/notifications"


def push_data(notification: NotificationRecord, base_url: str) -> dict[str, str]:
    data = {
        "notificationId": notification.id,
        "type": notification.type,
        "url": notification_url(notification, base_url),
        "userId": notification.user_id,
    }
    for key, value in (notification.metadata or {}).items():
        if value:
            data[key] = str(value)
    return data


class NotificationService:
    def __init__(
        self,
        store,
        push: PushGateway,
        *,
        frontend_url: str = "http://localhost:5000",
        ttl_days: int = DEFAULT_TTL_DAYS,
    ) -> None:
        self.store = store
        self.push = push
        self.frontend_url = frontend_url
        self.ttl_days = max(1, ttl_days)

    async def handle_event(self, event: Event) -> None:
        draft = draft_for_event(event)
        if draft is None:
            return
        await self.create_and_send(draft)

    async def create_and_send(self, draft: NotificationDraft) -> NotificationRecord:
        now = datetime.now(timezone.utc)
        notification, created = await self.store.insert_notification(
            NotificationRecord(
                id=str(uuid4()),
                user_id=draft.user_id,
                title=draft.title,
                message=draft.message,
                type=draft.type,
                priority=draft.priority,
                metadata=dict(draft.metadata),
                actions=list(draft.actions),
                source_event_id=draft.source_event_id,
                created_at=now,
                expires_at=now + timedelta(days=self.ttl_days),
            )
        )
        if not created and notification.delivery_status.get("push") != DELIVERY_PENDING:
            logger.info("notification already delivered source_event_id=%s", draft.source_event_id)
            return notification

        tokens = [record.token for record in await self.store.list_active_tokens(notification.user_id)]
        if not tokens:
            logger.warning("no active push tokens for user_id=%s", notification.user_id)
            return await self._record_push_status(notification, DELIVERY_FAILED)

        data = push_data(notification, self.frontend_url)
        try:
            if len(tokens) == 1:
                result = await self.push.send(tokens[0], notification.title, notification.message, data)
            else:
                result = await self.push.send_multicast(tokens, notification.title, notification.message, data)
        except httpx.HTTPError as exc:
            logger.warning("push transport failed notification_id=%s: %s", notification.id, exc)
            return await self._record_push_status(notification, DELIVERY_FAILED)

        if result.invalid_tokens:
            deactivated = await self.store.deactivate_tokens(result.invalid_tokens)
            logger.info("deactivated %s unregistered push tokens for user_id=%s", deactivated, notification.user_id)
        if result.delivered:
            await self.store.touch_tokens([token for token in tokens if token not in result.invalid_tokens], now)

        status = DELIVERY_SENT if result.delivered else DELIVERY_FAILED
        logger.info("notification created notification_id=%s push=%s", notification.id, status)
        return await self._record_push_status(notification, status)

    async def list_notifications(
        self,
        user_id: str,
        *,
        unread_only: bool = False,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[NotificationRecord], int]:
        return await self.store.list_notifications(
            user_id,
            unread_only=unread_only,
            page=max(1, page),
            limit=max(1, min(limit, 100)),
        )

    async def unread_count(self, user_id: str) -> int:
        return await self.store.unread_count(user_id)

    async def mark_read(self, notification_id: str, user_id: str) -> NotificationRecord:
        notification = await self.store.mark_read(notification_id, user_id)
        if notification is None:
            raise NotFoundError("notification not found")
        return notification

    async def mark_all_read(self, user_id: str) -> int:
        return await self.store.mark_all_read(user_id)

    async def delete(self, notification_id: str, user_id: str) -> None:
        if not await self.store.delete_notification(notification_id, user_id):
            raise NotFoundError("notification not found")

    async def register_token(
        self,
        user_id: str,
        token: str,
        *,
        device_id: str | None = None,
        platform: str = "web",
    ) -> DeliveryTokenRecord:
        record = await self.store.upsert_token(
            DeliveryTokenRecord(
                user_id=user_id,
                token=token,
                device_id=device_id,
                platform=platform,
                is_active=True,
                last_used=datetime.now(timezone.utc),
            )
        )
        logger.info("push token registered for user_id=%s platform=%s", user_id, platform)
        return record

    async def purge_expired(self, now: datetime | None = None) -> int:
        purged = await self.store.purge_expired_notifications(now or datetime.now(timezone.utc))
        if purged:
            logger.info("purged expired notifications: %s", purged)
        return purged

    async def _record_push_status(self, notification: NotificationRecord, status: str) -> NotificationRecord:
        await self.store.set_delivery_status(notification.id, channel="push", status=status)
        notification.delivery_status["push"] = status
        return notification
