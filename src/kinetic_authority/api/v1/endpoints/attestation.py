# src/kinetic_authority/api/v1/endpoints/attestation.py
"""Challenge, verification and session validation endpoints."""

from __future__ import annotations

from typing import Final

from fastapi import APIRouter, HTTPException, status

from kinetic_authority.api.v1.dependencies import AdmittedClientDep, EngineDep, error_detail
from kinetic_authority.schemas.attestation import (
    ChallengeResponse,
    SessionValidateRequest,
    SessionValidateResponse,
    VerifyRequest,
    VerifyResponse,
)
from kinetic_authority.services.attestation import (
    BAD_BIOMETRIC_FORMAT,
    BAD_RESPONSE_FORMAT,
    MISSING_FIELDS,
    VERIFICATION_FAILED,
    Approved,
)
from kinetic_authority.services.nonce_store import EXPIRED, INVALID_NONCE, OWNER_MISMATCH, REPLAY
from kinetic_authority.services.registry import INVALID_KEY, LIMIT_REACHED
from kinetic_authority.services.session_store import SESSION_INVALID

router = APIRouter(tags=["attestation"])

_DENIAL_STATUS: Final[dict[str, int]] = {
    MISSING_FIELDS: status.HTTP_400_BAD_REQUEST,
    BAD_BIOMETRIC_FORMAT: status.HTTP_400_BAD_REQUEST,
    BAD_RESPONSE_FORMAT: status.HTTP_400_BAD_REQUEST,
    INVALID_NONCE: status.HTTP_403_FORBIDDEN,
    REPLAY: status.HTTP_403_FORBIDDEN,
    EXPIRED: status.HTTP_403_FORBIDDEN,
    OWNER_MISMATCH: status.HTTP_403_FORBIDDEN,
    VERIFICATION_FAILED: status.HTTP_401_UNAUTHORIZED,
    INVALID_KEY: status.HTTP_401_UNAUTHORIZED,
    LIMIT_REACHED: status.HTTP_429_TOO_MANY_REQUESTS,
}

_DENIAL_MESSAGES: Final[dict[str, str]] = {
    MISSING_FIELDS: "nonce, userResponse and biometricData are required",
    BAD_BIOMETRIC_FORMAT: "biometricData must hold numeric motion, touch and pattern",
    BAD_RESPONSE_FORMAT: "userResponse must be exactly 3 digits between 0 and 9",
    INVALID_NONCE: "Invalid nonce",
    REPLAY: "Nonce has already been used",
    EXPIRED: "Challenge expired",
    OWNER_MISMATCH: "Challenge belongs to another client",
    VERIFICATION_FAILED: "Verification failed",
    INVALID_KEY: "Invalid API key",
    LIMIT_REACHED: "Monthly limit reached",
}


@router.post(
    "/challenge",
    summary="Issue a single-use challenge code",
    response_model=ChallengeResponse,
)
def issue_challenge(client: AdmittedClientDep, engine: EngineDep) -> ChallengeResponse:
    """Issue a three-digit code bound to a fresh nonce for the calling tenant."""
    issued = engine.issue_challenge(client.api_key)
    return ChallengeResponse(
        nonce=issued.nonce,
        challenge_code=list(issued.code),
        expiry=issued.expires_at,
    )


@router.post(
    "/verify",
    summary="Verify a challenge response and biometric signals",
    response_model=VerifyResponse,
)
def verify_response(
    payload: VerifyRequest,
    client: AdmittedClientDep,
    engine: EngineDep,
) -> VerifyResponse:
    """Verify the entered code and sensor scores; mint a session on success."""
    result = engine.verify(
        client.api_key,
        payload.nonce,
        payload.user_response,
        payload.biometric_data,
        device_id=payload.device_id,
    )
    if isinstance(result, Approved):
        return VerifyResponse(
            allowed=True,
            risk_score=result.risk_score,
            session_token=result.session_token,
            expires_at=result.expires_at,
        )

    raise HTTPException(
        status_code=_DENIAL_STATUS.get(result.code, status.HTTP_403_FORBIDDEN),
        detail=error_detail(
            result.code,
            _DENIAL_MESSAGES.get(result.code, "Verification denied"),
            allowed=False,
            reasons=list(result.reasons),
        ),
    )


@router.post(
    "/session/validate",
    summary="Validate a session token",
    response_model=SessionValidateResponse,
    response_model_exclude_none=True,
)
def validate_session(
    payload: SessionValidateRequest,
    engine: EngineDep,
) -> SessionValidateResponse:
    """Report whether a session token is live, unknown or timed out."""
    if not payload.session_token:
        return SessionValidateResponse(valid=False, status=SESSION_INVALID)

    lookup = engine.validate_session(payload.session_token)
    if not lookup.valid or lookup.session is None:
        return SessionValidateResponse(valid=False, status=lookup.status)

    session = lookup.session
    return SessionValidateResponse(
        valid=True,
        risk_score=session.risk_score,
        device_id=session.device_id,
        issued_at=session.issued_at,
        expires_at=session.expires_at,
    )
