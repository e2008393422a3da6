"""Shared API dependencies for tenant admission and admin authentication."""

import logging
import secrets
from typing import Annotated, Final

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from kinetic_authority.core.settings import settings
from kinetic_authority.models import Client
from kinetic_authority.services.attestation import AttestationEngine, get_attestation_engine
from kinetic_authority.services.registry import (
    LIMIT_REACHED,
    NO_KEY,
    SUBSCRIPTION_EXPIRED,
    AdmissionDeniedError,
    ClientRegistry,
    get_client_registry,
)

logger = logging.getLogger(__name__)

API_KEY_HEADER: Final[str] = "X-API-Key"
ADMIN_PASSWORD_HEADER: Final[str] = "X-Admin-Password"

api_key_header = APIKeyHeader(name=API_KEY_HEADER, auto_error=False)
admin_password_header = APIKeyHeader(name=ADMIN_PASSWORD_HEADER, auto_error=False)

# Admission reasons whose wire code differs from the registry reason.
_WIRE_CODES: Final[dict[str, str]] = {NO_KEY: "NO_API_KEY"}


def error_detail(code: str, message: str, **extra: object) -> dict[str, object]:
    """Build the JSON body carried by every API error."""
    return {"code": code, "message": message, **extra}


def admission_status(reason: str) -> int:
    """Map an admission denial onto its HTTP status code."""
    if reason == LIMIT_REACHED:
        return status.HTTP_429_TOO_MANY_REQUESTS
    if reason == SUBSCRIPTION_EXPIRED or reason.startswith("ACCOUNT_"):
        return status.HTTP_403_FORBIDDEN
    return status.HTTP_401_UNAUTHORIZED


def get_registry_dep() -> ClientRegistry:
    return get_client_registry()


def get_engine_dep() -> AttestationEngine:
    return get_attestation_engine()


RegistryDep = Annotated[ClientRegistry, Depends(get_registry_dep)]
EngineDep = Annotated[AttestationEngine, Depends(get_engine_dep)]


def get_admitted_client(
    registry: RegistryDep,
    api_key: Annotated[str | None, Security(api_key_header)] = None,
) -> Client:
    """Admit the calling tenant or reject the request.

    Raises:
        HTTPException: 401 for a missing or unknown key, 403 for a blocked or
            expired account, 429 once the monthly quota is used up.
    """
    try:
        return registry.admit(api_key)
    except AdmissionDeniedError as err:
        code = _WIRE_CODES.get(err.reason, err.reason)
        raise HTTPException(
            status_code=admission_status(err.reason),
            detail=error_detail(code, "Request not admitted"),
        ) from err


def require_admin(
    password: Annotated[str | None, Security(admin_password_header)] = None,
) -> None:
    """Reject the request unless it carries the configured admin credential."""
    expected = settings.admin_password
    if (
        not expected
        or not password
        or not secrets.compare_digest(password.encode(), expected.encode())
    ):
        logger.warning("Rejected admin request with bad credential")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=error_detail("BAD_ADMIN_CREDENTIAL", "Invalid admin credential"),
        )


# Type alias for admitted tenant dependency
AdmittedClientDep = Annotated[Client, Depends(get_admitted_client)]
