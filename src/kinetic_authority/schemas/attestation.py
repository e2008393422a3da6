"""Challenge, verification and session Pydantic schemas.

Wire names are camelCase; Python attributes stay snake_case.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ChallengeResponse(BaseModel):
    """Challenge material returned to an admitted tenant."""

    nonce: str = Field(..., description="Single-use token binding the code to one verification")
    challenge_code: list[int] = Field(
        ..., alias="challengeCode", description="Digits to display to the user"
    )
    expiry: datetime = Field(..., description="Instant after which the challenge is void")

    model_config = ConfigDict(populate_by_name=True)


class VerifyRequest(BaseModel):
    """Device response to a challenge.

    Every field is optional at the schema level so that absent fields are
    reported as ``MISSING_FIELDS`` and malformed sensor values as
    ``BAD_BIOMETRIC_FORMAT`` by the engine itself.
    """

    nonce: str | None = Field(None, description="Nonce from the challenge")
    user_response: list[int] | None = Field(
        None, alias="userResponse", description="Digits entered by the user"
    )
    biometric_data: dict[str, Any] | None = Field(
        None,
        alias="biometricData",
        description="Sensor scores: {motion, touch, pattern}",
    )
    device_id: str | None = Field(
        None, alias="deviceId", max_length=128, description="Optional device identifier"
    )

    model_config = ConfigDict(populate_by_name=True)


class VerifyResponse(BaseModel):
    """Approval payload. Duress approvals use exactly the same fields."""

    allowed: bool = Field(..., description="Always true on success")
    risk_score: str = Field(..., alias="riskScore")
    session_token: str = Field(..., alias="sessionToken")
    expires_at: datetime = Field(..., alias="expiresAt")

    model_config = ConfigDict(populate_by_name=True)


class SessionValidateRequest(BaseModel):
    """Request to validate a previously issued session token."""

    session_token: str | None = Field(None, alias="sessionToken")

    model_config = ConfigDict(populate_by_name=True)


class SessionValidateResponse(BaseModel):
    """Validation result; `status` is only present for invalid tokens."""

    valid: bool
    status: str | None = None
    risk_score: str | None = Field(None, alias="riskScore")
    device_id: str | None = Field(None, alias="deviceId")
    issued_at: datetime | None = Field(None, alias="issuedAt")
    expires_at: datetime | None = Field(None, alias="expiresAt")

    model_config = ConfigDict(populate_by_name=True)
