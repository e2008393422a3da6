"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .attestation import (
    ChallengeResponse,
    SessionValidateRequest,
    SessionValidateResponse,
    VerifyRequest,
    VerifyResponse,
)
from .client import (
    ClientCreate,
    ClientListResponse,
    ClientRenew,
    ClientResponse,
    UsageLogListResponse,
    UsageLogResponse,
)

__all__ = [
    "ChallengeResponse", "VerifyRequest", "VerifyResponse",
    "SessionValidateRequest", "SessionValidateResponse",
    "ClientCreate", "ClientRenew", "ClientResponse", "ClientListResponse",
    "UsageLogResponse", "UsageLogListResponse",
]
