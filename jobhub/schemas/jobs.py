from datetime import datetime, timezone
from typing import Literal

from pydantic import ConfigDict, Field, field_validator

from jobhub.schemas.base import WireModel

JobType = Literal["Full-time", "Part-time", "Contract", "Freelance", "Internship", "Remote"]


class JobCreate(WireModel):
    title: str = Field(min_length=5, max_length=200)
    description: str = Field(min_length=10)
    company: str = Field(min_length=1)
    company_name: str = Field(min_length=1)
    location: str = Field(min_length=1)
    salary: float = Field(ge=0)
    experience: str | None = None
    skills: list[str] = Field(default_factory=list)
    job_type: JobType
    benefits: list[str] = Field(default_factory=list)
    category: str | None = None
    application_deadline: datetime
    is_featured: bool = False

    @field_validator("application_deadline")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @field_validator("skills", "benefits")
    @classmethod
    def _strip_items(cls, value: list[str]) -> list[str]:
        return [item.strip() for item in value if item.strip()]


class JobOut(WireModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    slug: str
    title: str
    description: str
    company: str
    company_name: str
    location: str
    salary: float
    experience: str | None
    skills: list[str]
    job_type: str
    benefits: list[str]
    category: str | None
    posted_by: str
    status: str
    is_featured: bool
    featured_expiry: datetime | None
    featured_requested: bool
    is_hot: bool
    hot_until: datetime | None
    application_deadline: datetime
    created_at: datetime
    updated_at: datetime


class JobListOut(WireModel):
    items: list[JobOut]
    total: int
    page: int
    limit: int
