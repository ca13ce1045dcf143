from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class AdminSubscriptionUpdate(BaseModel):
    """Manual correction of a tenant's subscription.

    ``trialEndsAt`` may be sent as an explicit ``null`` to clear the trial end.
    """

    model_config = ConfigDict(populate_by_name=True)

    plan_name: Optional[str] = Field(default=None, alias="planName")
    status: Optional[str] = None
    trial_ends_at: Optional[datetime] = Field(default=None, alias="trialEndsAt")
    current_period_end: Optional[datetime] = Field(default=None, alias="currentPeriodEnd")

    @property
    def clears_trial_ends_at(self) -> bool:
        return "trial_ends_at" in self.model_fields_set and self.trial_ends_at is None
