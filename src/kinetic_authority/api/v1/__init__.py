# src/kinetic_authority/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import admin_router, attestation_router, system_router

__all__ = [
    "admin_router",
    "attestation_router",
    "system_router",
]
