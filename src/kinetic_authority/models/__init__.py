# src/kinetic_authority/models/__init__.py
"""SQLAlchemy models for Kinetic Authority."""

from .client import (
    CLIENT_STATUS_ACTIVE,
    CLIENT_STATUS_BLOCKED,
    CLIENT_STATUS_EXPIRED,
    CLIENT_STATUSES,
    Client,
)
from .usage_log import UsageLog

__all__ = [
    "Client",
    "CLIENT_STATUS_ACTIVE", "CLIENT_STATUS_BLOCKED", "CLIENT_STATUS_EXPIRED", "CLIENT_STATUSES",
    "UsageLog",
]
