"""Typed event payloads, one variant per routing key.

Events are immutable. On the wire the payload is camelCase JSON and the
routing key travels next to it, the way a topic exchange carries it; inside
the process the key is the discriminator of the `Event` union.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Union
from uuid import uuid4

from pydantic import ConfigDict, Field, TypeAdapter, ValidationError

from jobhub.core.errors import EventProcessingError
from jobhub.schemas.base import WireModel
from jobhub.schemas.subscriptions import SubscriptionSnapshot

ActionType = Literal["link", "api_call", "dismiss"]
HttpMethod = Literal["GET", "POST", "PUT", "DELETE", "PATCH"]
Priority = Literal["low", "medium", "high", "urgent"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotificationActionPayload(WireModel):
    label: str = Field(max_length=50)
    action_type: ActionType = Field(default="link", alias="type")
    url: str | None = None
    method: HttpMethod = "GET"
    payload: dict[str, Any] | None = None


class EventBase(WireModel):
    model_config = ConfigDict(frozen=True)

    event_id: str = Field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = Field(default_factory=_utcnow)


class CompanyCreated(EventBase):
    routing_key: Literal["company.created"] = "company.created"
    company_id: str
    user_id: str | None = None
    subscription: SubscriptionSnapshot


class CompanyVerified(EventBase):
    routing_key: Literal["company.verified"] = "company.verified"
    company_id: str
    name: str | None = None
    user_id: str | None = None
    message: str | None = None
    notification_type: str = Field(default="company_verified", alias="type")


class CompanySubscriptionUpdated(EventBase):
    routing_key: Literal["company.subscription.updated"] = "company.subscription.updated"
    company_id: str
    subscription: SubscriptionSnapshot
    user_id: str | None = None
    company_name: str | None = None
    message: str | None = None
    notification_type: str = Field(default="subscription_updated", alias="type")


class CompanyMemberAccepted(EventBase):
    routing_key: Literal["companies.member.accepted"] = "companies.member.accepted"
    user_id: str
    company_id: str
    company_name: str | None = None


class CompanyMemberInvited(EventBase):
    routing_key: Literal["companies.member.invited"] = "companies.member.invited"
    company_id: str
    user_email: str
    invited_by: str | None = None
    company_name: str | None = None
    message: str | None = None


class UserInvited(EventBase):
    routing_key: Literal["identify.user.invited"] = "identify.user.invited"
    user_id: str
    company_id: str
    invited_by: str | None = None
    message: str | None = None
    notification_type: str = Field(default="company_member_invite", alias="type")


class JobSnapshot(EventBase):
    job_id: str
    slug: str
    title: str
    company: str
    company_name: str
    location: str
    salary: float
    experience: str | None = None
    skills: list[str] = Field(default_factory=list)
    job_type: str
    category: str | None = None
    posted_by: str
    status: str
    is_featured: bool = False
    is_hot: bool = False
    created_at: datetime
    message: str | None = None
    notification_type: str = Field(default="job_published", alias="type")


class JobCreated(JobSnapshot):
    routing_key: Literal["job.created"] = "job.created"


class JobPublished(JobSnapshot):
    routing_key: Literal["job.published"] = "job.published"


class JobDeleted(EventBase):
    routing_key: Literal["job.deleted"] = "job.deleted"
    job_id: str
    slug: str
    company: str
    status: str


class JobClosed(EventBase):
    routing_key: Literal["job.closed"] = "job.closed"
    job_id: str
    slug: str
    company: str
    status: str


class JobFeatured(EventBase):
    routing_key: Literal["job.featured"] = "job.featured"
    job_id: str
    slug: str
    is_featured: bool
    featured_expiry: datetime | None = None
    title: str | None = None


class JobHot(EventBase):
    routing_key: Literal["job.hot"] = "job.hot"
    job_id: str
    slug: str
    is_hot: bool
    hot_until: datetime | None = None
    title: str | None = None
    company_name: str | None = None
    posted_by: str | None = None


class JobApplicationSubmitted(EventBase):
    routing_key: Literal["job.application"] = "job.application"
    user_id: str
    job_id: str
    job_slug: str
    application_id: str | None = None
    applicant_id: str | None = None
    message: str
    notification_type: str = Field(default="application_submitted", alias="type")


class ApplicationStatusUpdated(EventBase):
    routing_key: Literal["application.status.updated"] = "application.status.updated"
    user_id: str
    job_id: str
    application_id: str
    status: str
    old_status: str
    message: str
    notification_type: str = Field(default="application_status_update", alias="type")
    priority: Priority = "medium"
    metadata: dict[str, Any] = Field(default_factory=dict)
    actions: list[NotificationActionPayload] | None = None


class JobSaved(EventBase):
    routing_key: Literal["job.save"] = "job.save"
    user_id: str
    job_id: str
    message: str
    notification_type: str = Field(default="job_saved", alias="type")


Event = Annotated[
    Union[
        CompanyCreated,
        CompanyVerified,
        CompanySubscriptionUpdated,
        CompanyMemberAccepted,
        CompanyMemberInvited,
        UserInvited,
        JobCreated,
        JobPublished,
        JobDeleted,
        JobClosed,
        JobFeatured,
        JobHot,
        JobApplicationSubmitted,
        ApplicationStatusUpdated,
        JobSaved,
    ],
    Field(discriminator="routing_key"),
]

EVENT_ADAPTER: TypeAdapter[Event] = TypeAdapter(Event)

ROUTING_KEYS = frozenset(
    model.model_fields["routing_key"].default
    for model in (
        CompanyCreated,
        CompanyVerified,
        CompanySubscriptionUpdated,
        CompanyMemberAccepted,
        CompanyMemberInvited,
        UserInvited,
        JobCreated,
        JobPublished,
        JobDeleted,
        JobClosed,
        JobFeatured,
        JobHot,
        JobApplicationSubmitted,
        ApplicationStatusUpdated,
        JobSaved,
    )
)


def encode_event(event: EventBase) -> dict[str, Any]:
    """JSON-safe camelCase payload without the routing key."""
    return event.model_dump(mode="json", by_alias=True, exclude={"routing_key"})


def decode_event(routing_key: str, payload: Mapping[str, Any]) -> Event:
    if routing_key not in ROUTING_KEYS:
        raise EventProcessingError(f"unknown routing key: {routing_key}")
    try:
        return EVENT_ADAPTER.validate_python({**payload, "routingKey": routing_key})
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise EventProcessingError(f"malformed {routing_key} payload: {location}: {first['msg']}") from exc
