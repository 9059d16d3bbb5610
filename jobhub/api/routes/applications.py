from fastapi import APIRouter, Depends

from jobhub.api.errors import to_http_exception
from jobhub.core.auth import Principal
from jobhub.core.errors import DomainError
from jobhub.core.security import get_principal
from jobhub.schemas.applications import ApplicationOut, ApplicationStatusUpdate
from jobhub.services.runtime import Runtime, get_runtime

router = APIRouter()


@router.get("/mine", response_model=list[ApplicationOut])
async def list_my_applications(
    principal: Principal = Depends(get_principal),
    runtime: Runtime = Depends(get_runtime),
) -> list[ApplicationOut]:
    applications = await runtime.applications.list_my_applications(principal)
    return [ApplicationOut.model_validate(application) for application in applications]


@router.get("/jobs/{slug}", response_model=list[ApplicationOut])
async def list_job_applicants(
    slug: str,
    principal: Principal = Depends(get_principal),
    runtime: Runtime = Depends(get_runtime),
) -> list[ApplicationOut]:
    try:
        applications = await runtime.applications.list_job_applicants(slug, principal)
    except DomainError as exc:
        raise to_http_exception(exc) from exc
    return [ApplicationOut.model_validate(application) for application in applications]


@router.patch("/{application_id}/status", response_model=ApplicationOut)
async def update_application_status(
    application_id: str,
    payload: ApplicationStatusUpdate,
    principal: Principal = Depends(get_principal),
    runtime: Runtime = Depends(get_runtime),
) -> ApplicationOut:
    try:
        application = await runtime.applications.update_status(application_id, payload, principal)
    except DomainError as exc:
        raise to_http_exception(exc) from exc
    return ApplicationOut.model_validate(application)
