from datetime import datetime
from typing import Literal

from pydantic import ConfigDict, Field

from jobhub.schemas.base import WireModel

ApplicationStatus = Literal["Pending", "In Review", "Interview Scheduled", "Rejected", "Accepted"]


class ApplicationCreate(WireModel):
    user_name: str = Field(min_length=1)
    user_email: str = Field(min_length=3)
    user_phone_number: str | None = None
    resume_url: str = Field(min_length=1)
    cover_letter: str = ""


class ApplicationStatusUpdate(WireModel):
    status: ApplicationStatus
    notes: str | None = None


class StatusHistoryOut(WireModel):
    model_config = ConfigDict(from_attributes=True)

    status: str
    changed_at: datetime
    changed_by: str
    notes: str | None


class ApplicationOut(WireModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    job_id: str
    user_id: str
    user_name: str
    user_email: str
    user_phone_number: str | None
    resume_url: str
    cover_letter: str
    notes: str | None
    status: str
    applied_date: datetime
    status_history: list[StatusHistoryOut]


class AppliedOut(WireModel):
    applied: bool
    application: ApplicationOut | None = None


class SavedJobOut(WireModel):
    job_id: str
    saved: bool
