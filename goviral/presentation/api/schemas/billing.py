"""Pydantic schemas for the billing API.

Clients send camelCase keys; snake_case is accepted as well.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class TrialStartRequest(_CamelModel):
    """Request schema for starting a card-backed trial."""

    plan_name: str = Field(alias="planName", min_length=1)
    country_code: Optional[str] = Field(default=None, alias="countryCode")


class UpgradeRequest(_CamelModel):
    """Request schema for upgrading to a higher plan."""

    new_plan_name: str = Field(alias="newPlanName", min_length=1)
    country_code: Optional[str] = Field(default=None, alias="countryCode")


class VerifyPaymentRequest(_CamelModel):
    reference: str = Field(min_length=1)


class StripeVerifyRequest(_CamelModel):
    session_id: str = Field(alias="sessionId", min_length=1)
