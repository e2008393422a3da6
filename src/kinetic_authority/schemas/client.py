"""Tenant administration Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from kinetic_authority.services.registry import PLAN_LIMITS


class ClientCreate(BaseModel):
    """Schema for provisioning a tenant."""

    name: str = Field(..., min_length=1, max_length=200, description="Tenant display name")
    plan: str = Field("starter", description="starter, business, enterprise or unlimited")
    monthly_limit: int | None = Field(
        None, alias="monthlyLimit", ge=0, description="Overrides the plan cap; 0 = unlimited"
    )
    duration_days: int | None = Field(
        None, alias="durationDays", ge=1, description="Subscription length in days"
    )

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("plan")
    @classmethod
    def validate_plan(cls, v: str) -> str:
        """Normalize the plan name and reject unknown plans."""
        plan = v.strip().lower()
        if plan not in PLAN_LIMITS:
            raise ValueError(f"plan must be one of {', '.join(PLAN_LIMITS)}")
        return plan


class ClientRenew(BaseModel):
    """Schema for extending a subscription."""

    duration_days: int = Field(30, alias="durationDays", ge=1)

    model_config = ConfigDict(populate_by_name=True)


class ClientResponse(BaseModel):
    """Full tenant record as shown to administrators."""

    api_key: str = Field(..., alias="apiKey")
    name: str
    plan: str
    status: str
    created_at: datetime = Field(..., alias="createdAt")
    expires_at: datetime | None = Field(None, alias="expiresAt")
    monthly_limit: int = Field(..., alias="monthlyLimit")
    used_this_month: int = Field(..., alias="usedThisMonth")
    last_reset_month: str = Field(..., alias="lastResetMonth")
    total_verifications: int = Field(..., alias="totalVerifications")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class ClientListResponse(BaseModel):
    clients: list[ClientResponse]
    count: int


class UsageLogResponse(BaseModel):
    """One usage log entry."""

    id: int
    timestamp: datetime
    api_key: str | None = Field(None, alias="apiKey")
    action: str
    result: str
    details: str | None = None

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class UsageLogListResponse(BaseModel):
    logs: list[UsageLogResponse]
    count: int
