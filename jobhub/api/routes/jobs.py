from typing import Any

from fastapi import APIRouter, Body, Depends, Query, status

from jobhub.api.errors import to_http_exception
from jobhub.core.auth import Principal
from jobhub.core.errors import DomainError
from jobhub.core.security import get_principal
from jobhub.schemas.applications import ApplicationCreate, ApplicationOut, AppliedOut, SavedJobOut
from jobhub.schemas.jobs import JobListOut, JobOut
from jobhub.services.runtime import Runtime, get_runtime

router = APIRouter()


@router.post("", response_model=JobOut, status_code=status.HTTP_201_CREATED)
async def create_job(
    payload: dict[str, Any] = Body(...),
    principal: Principal = Depends(get_principal),
    runtime: Runtime = Depends(get_runtime),
) -> JobOut:
    try:
        job = await runtime.jobs.create_job(payload, principal)
    except DomainError as exc:
        raise to_http_exception(exc) from exc
    return JobOut.model_validate(job)


@router.get("", response_model=JobListOut)
async def list_jobs(
    query: str | None = None,
    company: str | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    runtime: Runtime = Depends(get_runtime),
) -> JobListOut:
    jobs, total = await runtime.jobs.list_jobs(query=query, company=company, page=page, limit=limit)
    return JobListOut(items=[JobOut.model_validate(job) for job in jobs], total=total, page=page, limit=limit)


@router.get("/mine", response_model=list[JobOut])
async def list_my_jobs(
    principal: Principal = Depends(get_principal),
    runtime: Runtime = Depends(get_runtime),
) -> list[JobOut]:
    jobs = await runtime.jobs.list_posted_jobs(principal)
    return [JobOut.model_validate(job) for job in jobs]


@router.get("/{slug}", response_model=JobOut)
async def get_job(slug: str, runtime: Runtime = Depends(get_runtime)) -> JobOut:
    try:
        job = await runtime.jobs.get_job(slug)
    except DomainError as exc:
        raise to_http_exception(exc) from exc
    return JobOut.model_validate(job)


@router.delete("/{slug}", response_model=JobOut)
async def delete_job(
    slug: str,
    principal: Principal = Depends(get_principal),
    runtime: Runtime = Depends(get_runtime),
) -> JobOut:
    try:
        job = await runtime.jobs.delete_job(slug, principal)
    except DomainError as exc:
        raise to_http_exception(exc) from exc
    return JobOut.model_validate(job)


@router.patch("/{job_id}/approve", response_model=JobOut)
async def approve_job(
    job_id: str,
    principal: Principal = Depends(get_principal),
    runtime: Runtime = Depends(get_runtime),
) -> JobOut:
    try:
        job = await runtime.jobs.approve_job(job_id, principal)
    except DomainError as exc:
        raise to_http_exception(exc) from exc
    return JobOut.model_validate(job)


@router.patch("/{job_id}/reject", response_model=JobOut)
async def reject_job(
    job_id: str,
    principal: Principal = Depends(get_principal),
    runtime: Runtime = Depends(get_runtime),
) -> JobOut:
    try:
        job = await runtime.jobs.reject_job(job_id, principal)
    except DomainError as exc:
        raise to_http_exception(exc) from exc
    return JobOut.model_validate(job)


@router.patch("/{job_id}/feature", response_model=JobOut)
async def feature_job(
    job_id: str,
    principal: Principal = Depends(get_principal),
    runtime: Runtime = Depends(get_runtime),
) -> JobOut:
    try:
        job = await runtime.jobs.mark_featured(job_id, principal)
    except DomainError as exc:
        raise to_http_exception(exc) from exc
    return JobOut.model_validate(job)


@router.patch("/{job_id}/close", response_model=JobOut)
async def close_job(
    job_id: str,
    principal: Principal = Depends(get_principal),
    runtime: Runtime = Depends(get_runtime),
) -> JobOut:
    try:
        job = await runtime.jobs.close_job(job_id, principal)
    except DomainError as exc:
        raise to_http_exception(exc) from exc
    return JobOut.model_validate(job)


@router.patch("/{job_id}/archive", response_model=JobOut)
async def archive_job(
    job_id: str,
    principal: Principal = Depends(get_principal),
    runtime: Runtime = Depends(get_runtime),
) -> JobOut:
    try:
        job = await runtime.jobs.archive_job(job_id, principal)
    except DomainError as exc:
        raise to_http_exception(exc) from exc
    return JobOut.model_validate(job)


@router.post("/{slug}/apply", response_model=ApplicationOut, status_code=status.HTTP_201_CREATED)
async def apply_to_job(
    slug: str,
    payload: ApplicationCreate,
    principal: Principal = Depends(get_principal),
    runtime: Runtime = Depends(get_runtime),
) -> ApplicationOut:
    try:
        application = await runtime.applications.apply(slug, payload, principal)
    except DomainError as exc:
        raise to_http_exception(exc) from exc
    return ApplicationOut.model_validate(application)


@router.get("/{slug}/applied", response_model=AppliedOut)
async def check_applied(
    slug: str,
    principal: Principal = Depends(get_principal),
    runtime: Runtime = Depends(get_runtime),
) -> AppliedOut:
    try:
        application = await runtime.applications.find_my_application(slug, principal)
    except DomainError as exc:
        raise to_http_exception(exc) from exc
    if application is None:
        return AppliedOut(applied=False)
    return AppliedOut(applied=True, application=ApplicationOut.model_validate(application))


@router.post("/{job_id}/save", response_model=SavedJobOut)
async def toggle_saved_job(
    job_id: str,
    principal: Principal = Depends(get_principal),
    runtime: Runtime = Depends(get_runtime),
) -> SavedJobOut:
    try:
        saved = await runtime.applications.toggle_saved_job(job_id, principal)
    except DomainError as exc:
        raise to_http_exception(exc) from exc
    return SavedJobOut(job_id=job_id, saved=saved)
