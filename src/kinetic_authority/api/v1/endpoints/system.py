"""Health and service information endpoints."""

from __future__ import annotations

import time

from fastapi import APIRouter

from kinetic_authority.core.settings import settings
from kinetic_authority.db.time import utcnow

router = APIRouter(tags=["system"])

_STARTED_AT = time.monotonic()


@router.get("/health")
async def health_check() -> dict[str, object]:
    """Keep-alive check reporting the server name, time and uptime."""
    return {
        "status": "OK",
        "server": settings.app_name,
        "time": utcnow().isoformat(),
        "uptime": round(time.monotonic() - _STARTED_AT, 3),
    }


@router.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "description": "Challenge attestation and session authority",
        "docs": "/docs",
    }
