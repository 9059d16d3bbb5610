from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import uuid4

from jobhub.core.auth import Principal, Role
from jobhub.core.errors import ConflictError, NotFoundError, PermissionDeniedError
from jobhub.events.bus import EventBus
from jobhub.events.models import (
    ApplicationStatusUpdated,
    JobApplicationSubmitted,
    JobSaved,
    NotificationActionPayload,
    Priority,
)
from jobhub.schemas.applications import ApplicationCreate, ApplicationStatusUpdate
from jobhub.services.records import (
    APPLICATION_STATUS_ACCEPTED,
    APPLICATION_STATUS_IN_REVIEW,
    APPLICATION_STATUS_INTERVIEW,
    APPLICATION_STATUS_PENDING,
    APPLICATION_STATUS_REJECTED,
    JOB_STATUS_PUBLISHED,
    ApplicationRecord,
    JobRecord,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class StatusNotice:
    message: str
    type: str
    priority: Priority
    actions: list[NotificationActionPayload] | None


def status_notice(status: str, job: JobRecord, application_id: str) -> StatusNotice:
    """Applicant-facing message, type, priority and actions for a status change."""
    title = job.title
    if status == APPLICATION_STATUS_ACCEPTED:
        return StatusNotice(
            message=(
                f'Congratulations! Your application for "{title}" has been accepted. '
                "We will contact you soon to discuss next steps."
            ),
            type="success",
            priority="high",
            actions=[NotificationActionPayload(label="View job", action_type="link", url=f"/jobs/{job.slug}")],
        )
    if status == APPLICATION_STATUS_REJECTED:
        return StatusNotice(
            message=(
                f'Unfortunately, your application for "{title}" was not accepted. '
                "Thank you for your interest."
            ),
            type="error",
            priority="medium",
            actions=None,
        )
    if status == APPLICATION_STATUS_INTERVIEW:
        return StatusNotice(
            message=f'You have been invited to interview for "{title}". Please check your email for details.',
            type="info",
            priority="high",
            actions=[
                NotificationActionPayload(
                    label="View details",
                    action_type="link",
                    url=f"/applications/{application_id}",
                )
            ],
        )
    if status == APPLICATION_STATUS_IN_REVIEW:
        return StatusNotice(
            message=(
                f'Your application for "{title}" is now under review. '
                "We will let you know when there is an update."
            ),
            type="warning",
            priority="medium",
            actions=None,
        )
    return StatusNotice(
        message=f'The status of your application for "{title}" has been updated: {status}.',
        type="application_status_update",
        priority="medium",
        actions=None,
    )


class ApplicationService:
    def __init__(self, store, bus: EventBus) -> None:
        self.store = store
        self.bus = bus

    async def apply(self, slug: str, payload: ApplicationCreate, actor: Principal) -> ApplicationRecord:
        actor.require_role(Role.APPLICANT, message="only applicants can apply for jobs")
        job = await self._require_job_by_slug(slug)
        if job.status != JOB_STATUS_PUBLISHED:
            raise ConflictError("applications are only accepted for published jobs")
        if await self.store.find_application(job.id, actor.user_id) is not None:
            raise ConflictError("you have already applied for this job")

        application = await self.store.insert_application(
            ApplicationRecord(
                id=str(uuid4()),
                job_id=job.id,
                user_id=actor.user_id,
                user_name=payload.user_name,
                user_email=payload.user_email,
                user_phone_number=payload.user_phone_number,
                resume_url=payload.resume_url,
                cover_letter=payload.cover_letter,
                status=APPLICATION_STATUS_PENDING,
                applied_date=_utcnow(),
            )
        )
        await self.bus.publish(
            JobApplicationSubmitted(
                user_id=job.posted_by,
                job_id=job.id,
                job_slug=job.slug,
                application_id=application.id,
                applicant_id=actor.user_id,
                message=f'{application.user_name} applied for "{job.title}".',
            )
        )
        logger.info("application submitted application_id=%s job_id=%s", application.id, job.id)
        return application

    async def find_my_application(self, slug: str, actor: Principal) -> ApplicationRecord | None:
        job = await self._require_job_by_slug(slug)
        return await self.store.find_application(job.id, actor.user_id)

    async def list_my_applications(self, actor: Principal) -> list[ApplicationRecord]:
        return await self.store.list_applications_by_user(actor.user_id)

    async def list_job_applicants(self, slug: str, actor: Principal) -> list[ApplicationRecord]:
        actor.require_role(Role.RECRUITER, message="only recruiters can view job applicants")
        job = await self._require_job_by_slug(slug)
        if job.posted_by != actor.user_id:
            raise PermissionDeniedError("you can only view applicants for your own job postings")
        return await self.store.list_applications_by_job(job.id)

    async def update_status(
        self,
        application_id: str,
        payload: ApplicationStatusUpdate,
        actor: Principal,
    ) -> ApplicationRecord:
        actor.require_role(Role.RECRUITER, message="only recruiters can update application status")
        application = await self.store.get_application(application_id)
        if application is None:
            raise NotFoundError("application not found")
        job = await self.store.get_job(application.job_id)
        if job is None:
            raise NotFoundError("job not found")
        if job.posted_by != actor.user_id:
            raise PermissionDeniedError("you can only update status for your own job postings")

        result = await self.store.update_application_status(
            application_id,
            status=payload.status,
            changed_by=actor.user_id,
            notes=payload.notes,
            now=_utcnow(),
        )
        if result is None:
            raise NotFoundError("application not found")
        updated, old_status = result
        if old_status == updated.status:
            return updated

        notice = status_notice(updated.status, job, updated.id)
        await self.bus.publish(
            ApplicationStatusUpdated(
                user_id=updated.user_id,
                job_id=job.id,
                application_id=updated.id,
                status=updated.status,
                old_status=old_status,
                message=notice.message,
                notification_type=notice.type,
                priority=notice.priority,
                metadata={"jobTitle": job.title, "companyId": job.company, "applicationId": updated.id},
                actions=notice.actions,
            )
        )
        logger.info(
            "application status changed application_id=%s from=%s to=%s",
            updated.id,
            old_status,
            updated.status,
        )
        return updated

    async def toggle_saved_job(self, job_id: str, actor: Principal) -> bool:
        job = await self.store.get_job(job_id)
        if job is None:
            raise NotFoundError("job not found")
        saved = await self.store.toggle_saved_job(actor.user_id, job.id, _utcnow())
        if saved:
            await self.bus.publish(
                JobSaved(user_id=actor.user_id, job_id=job.id, message=f'Job "{job.title}" has been saved.')
            )
        return saved

    async def _require_job_by_slug(self, slug: str) -> JobRecord:
        job = await self.store.get_job_by_slug(slug)
        if job is None:
            raise NotFoundError("job not found")
        return job
