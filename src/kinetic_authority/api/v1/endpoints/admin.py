# src/kinetic_authority/api/v1/endpoints/admin.py
"""Tenant administration endpoints guarded by the admin credential."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from kinetic_authority.api.v1.dependencies import (
    EngineDep,
    RegistryDep,
    error_detail,
    require_admin,
)
from kinetic_authority.schemas.client import (
    ClientCreate,
    ClientListResponse,
    ClientRenew,
    ClientResponse,
    UsageLogListResponse,
    UsageLogResponse,
)
from kinetic_authority.services.registry import ClientNotFoundError

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


def _not_found(api_key: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=error_detail("UNKNOWN_CLIENT", f"No client for key {api_key[:12]}..."),
    )


@router.post(
    "/clients",
    summary="Provision a client",
    status_code=status.HTTP_201_CREATED,
    response_model=ClientResponse,
)
def create_client(payload: ClientCreate, registry: RegistryDep) -> ClientResponse:
    """Create a tenant and return its record, including the new API key."""
    try:
        client = registry.create(
            payload.name,
            payload.plan,
            monthly_limit=payload.monthly_limit,
            duration_days=payload.duration_days,
        )
    except ValueError as err:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_detail("INVALID_FIELDS", str(err)),
        ) from err
    return ClientResponse.model_validate(client)


@router.get("/clients", summary="List clients", response_model=ClientListResponse)
def list_clients(registry: RegistryDep) -> ClientListResponse:
    clients = [ClientResponse.model_validate(c) for c in registry.list_clients()]
    return ClientListResponse(clients=clients, count=len(clients))


@router.get("/clients/{api_key}", summary="Get one client", response_model=ClientResponse)
def get_client(api_key: str, registry: RegistryDep) -> ClientResponse:
    try:
        return ClientResponse.model_validate(registry.lookup(api_key))
    except ClientNotFoundError as err:
        raise _not_found(api_key) from err


@router.post("/clients/{api_key}/block", summary="Block a client", response_model=ClientResponse)
def block_client(api_key: str, registry: RegistryDep) -> ClientResponse:
    try:
        return ClientResponse.model_validate(registry.block(api_key))
    except ClientNotFoundError as err:
        raise _not_found(api_key) from err


@router.post(
    "/clients/{api_key}/unblock", summary="Unblock a client", response_model=ClientResponse
)
def unblock_client(api_key: str, registry: RegistryDep) -> ClientResponse:
    try:
        return ClientResponse.model_validate(registry.unblock(api_key))
    except ClientNotFoundError as err:
        raise _not_found(api_key) from err


@router.post(
    "/clients/{api_key}/renew", summary="Extend a subscription", response_model=ClientResponse
)
def renew_client(
    api_key: str,
    registry: RegistryDep,
    payload: ClientRenew | None = None,
) -> ClientResponse:
    """Extend from the later of now and the current expiry; counters are kept."""
    days = (payload or ClientRenew()).duration_days
    try:
        return ClientResponse.model_validate(registry.renew(api_key, days))
    except ClientNotFoundError as err:
        raise _not_found(api_key) from err


@router.delete(
    "/clients/{api_key}",
    summary="Delete a client",
    status_code=status.HTTP_204_NO_CONTENT,
)
def delete_client(api_key: str, registry: RegistryDep) -> None:
    try:
        registry.delete(api_key)
    except ClientNotFoundError as err:
        raise _not_found(api_key) from err


@router.get("/logs", summary="List usage log entries", response_model=UsageLogListResponse)
def list_logs(
    registry: RegistryDep,
    api_key: Annotated[str | None, Query(alias="apiKey")] = None,
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
) -> UsageLogListResponse:
    """Return the newest entries first, optionally for a single client."""
    logs = [UsageLogResponse.model_validate(e) for e in registry.list_logs(api_key, limit)]
    return UsageLogListResponse(logs=logs, count=len(logs))


@router.get("/stats", summary="Aggregate statistics")
def get_stats(registry: RegistryDep, engine: EngineDep) -> dict[str, object]:
    """Combine verification counters, live store sizes and client totals."""
    return {
        "verifications": engine.counters(),
        "pending_challenges": len(engine.nonce_store),
        "active_sessions": len(engine.session_store),
        "clients": registry.aggregate_stats(),
    }
