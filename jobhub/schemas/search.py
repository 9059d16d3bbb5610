from datetime import datetime

from jobhub.schemas.base import WireModel


class SearchResultOut(WireModel):
    job_id: str
    slug: str
    title: str
    company: str
    company_name: str
    location: str
    salary: float
    experience: str | None
    skills: list[str]
    job_type: str
    category: str | None
    posted_by: str
    status: str
    is_featured: bool
    is_hot: bool
    created_at: datetime
    job_category: str


class PaginationOut(WireModel):
    total: int
    page: int
    limit: int
    total_pages: int


class SearchStatsOut(WireModel):
    featured: int
    hot: int
    normal: int
    interleaving_enabled: bool


class SearchResponse(WireModel):
    data: list[SearchResultOut]
    pagination: PaginationOut
    stats: SearchStatsOut
