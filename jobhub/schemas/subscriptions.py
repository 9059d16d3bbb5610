from datetime import datetime
from typing import Literal

from pydantic import Field

from jobhub.schemas.base import WireModel

SubscriptionPlan = Literal["free", "basic", "premium", "enterprise"]
BillingCycle = Literal["monthly", "annually"]


class SubscriptionSnapshot(WireModel):
    plan: SubscriptionPlan = "free"
    billing_cycle: BillingCycle = "monthly"
    job_post_limit: int = Field(default=3, ge=0)
    featured_jobs_limit: int = Field(default=0, ge=0)
    start_date: datetime | None = None
    end_date: datetime | None = None
