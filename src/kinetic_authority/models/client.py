# src/kinetic_authority/models/client.py
"""SQLAlchemy model for API-key-scoped tenants."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from kinetic_authority.db.session import Base
from kinetic_authority.db.time import utcnow

CLIENT_STATUS_ACTIVE = "active"
CLIENT_STATUS_BLOCKED = "blocked"
CLIENT_STATUS_EXPIRED = "expired"
CLIENT_STATUSES = (CLIENT_STATUS_ACTIVE, CLIENT_STATUS_BLOCKED, CLIENT_STATUS_EXPIRED)


class Client(Base):
    """Tenant record: credentials, plan, lifecycle status and usage counters."""

    __tablename__ = "clients"

    api_key: Mapped[str] = mapped_column(String(128), primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    plan: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=CLIENT_STATUS_ACTIVE
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # 0 = unlimited.
    monthly_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    used_this_month: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Calendar month (YYYY-MM) the monthly counter belongs to.
    last_reset_month: Mapped[str] = mapped_column(String(7), nullable=False)
    total_verifications: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    @property
    def is_unlimited(self) -> bool:
        """Return True if the tenant has no monthly cap."""
        return self.monthly_limit == 0

    @property
    def key_hint(self) -> str:
        """Return a short, log-safe prefix of the API key."""
        return f"{self.api_key[:12]}..."

    def __repr__(self) -> str:
        return f"<Client(name={self.name!r}, plan={self.plan!r}, status={self.status!r})>"
