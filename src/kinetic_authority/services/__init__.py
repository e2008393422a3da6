# src/kinetic_authority/services/__init__.py
"""Business logic services for Kinetic Authority."""

from .attestation import AttestationEngine, get_attestation_engine
from .nonce_store import NonceStore
from .registry import ClientRegistry, get_client_registry
from .session_store import SessionStore
from .sweeper import CleanupSweeper

__all__ = [
    "AttestationEngine",
    "CleanupSweeper",
    "ClientRegistry",
    "NonceStore",
    "SessionStore",
    "get_attestation_engine",
    "get_client_registry",
]
