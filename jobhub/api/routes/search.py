from typing import Literal

from fastapi import APIRouter, Depends, Query

from jobhub.schemas.search import PaginationOut, SearchResponse, SearchResultOut, SearchStatsOut
from jobhub.services.ranking import RankedEntry
from jobhub.services.records import SearchFilters
from jobhub.services.runtime import Runtime, get_runtime

router = APIRouter()


def _result(ranked: RankedEntry) -> SearchResultOut:
    entry = ranked.entry
    return SearchResultOut(
        job_id=entry.job_id,
        slug=entry.slug,
        title=entry.title,
        company=entry.company,
        company_name=entry.company_name,
        location=entry.location,
        salary=entry.salary,
        experience=entry.experience,
        skills=list(entry.skills),
        job_type=entry.job_type,
        category=entry.category,
        posted_by=entry.posted_by,
        status=entry.status,
        is_featured=entry.is_featured,
        is_hot=entry.is_hot,
        created_at=entry.created_at,
        job_category=ranked.job_category,
    )


@router.get("", response_model=SearchResponse)
async def search_jobs(
    query: str | None = None,
    location: str | None = None,
    job_type: str | None = Query(default=None, alias="jobType"),
    min_salary: float | None = Query(default=None, alias="minSalary", ge=0),
    max_salary: float | None = Query(default=None, alias="maxSalary", ge=0),
    experience: str | None = None,
    skills: str | None = Query(default=None, description="comma-separated"),
    sort_by: Literal["createdAt", "salary"] = Query(default="createdAt", alias="sortBy"),
    order: Literal["asc", "desc"] = "desc",
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    interleave: bool = True,
    runtime: Runtime = Depends(get_runtime),
) -> SearchResponse:
    filters = SearchFilters(
        query=query or None,
        location=location or None,
        job_type=job_type or None,
        min_salary=min_salary,
        max_salary=max_salary,
        experience=experience or None,
        skills=[skill.strip() for skill in (skills or "").split(",") if skill.strip()],
    )
    result = await runtime.search.search(
        filters,
        sort_by=sort_by,
        order=order,
        page=page,
        limit=limit,
        enable_interleaving=interleave,
    )
    return SearchResponse(
        data=[_result(item) for item in result.items],
        pagination=PaginationOut(
            total=result.total,
            page=result.page,
            limit=result.limit,
            total_pages=result.total_pages,
        ),
        stats=SearchStatsOut(
            featured=result.stats.get("featured", 0),
            hot=result.stats.get("hot", 0),
            normal=result.stats.get("normal", 0),
            interleaving_enabled=result.interleaving_enabled,
        ),
    )
