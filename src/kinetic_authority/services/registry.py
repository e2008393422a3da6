"""Tenant registry: API keys, plans, lifecycle status and monthly quotas."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta
from threading import RLock
from typing import Any, Final

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from kinetic_authority.core.clock import Clock, get_clock
from kinetic_authority.core.settings import settings
from kinetic_authority.db.session import SessionLocal
from kinetic_authority.db.time import as_utc, year_month
from kinetic_authority.models import (
    CLIENT_STATUS_ACTIVE,
    CLIENT_STATUS_BLOCKED,
    CLIENT_STATUS_EXPIRED,
    CLIENT_STATUSES,
    Client,
    UsageLog,
)

logger = logging.getLogger(__name__)

PLAN_LIMITS: Final[dict[str, int]] = {
    "starter": 5_000,
    "business": 20_000,
    "enterprise": 100_000,
    "unlimited": 0,
}
API_KEY_BYTES: Final[int] = 24
# Tenants hash onto a fixed set of locks so unknown keys cost no memory.
LOCK_STRIPES: Final[int] = 64
DEFAULT_LOG_LIMIT: Final[int] = 100

NO_KEY: Final[str] = "NO_KEY"
INVALID_KEY: Final[str] = "INVALID_KEY"
SUBSCRIPTION_EXPIRED: Final[str] = "SUBSCRIPTION_EXPIRED"
LIMIT_REACHED: Final[str] = "LIMIT_REACHED"

ACTION_ADMIN: Final[str] = "admin"
ACTION_DENIED: Final[str] = "denied"


class RegistryError(Exception):
    """Base class for registry failures."""


class ClientNotFoundError(RegistryError):
    """Raised when no tenant exists for an API key."""


class AdmissionDeniedError(RegistryError):
    """Raised when a tenant may not use the challenge/verify API."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class QuotaExceededError(AdmissionDeniedError):
    """Raised when a tenant has used up its monthly verifications."""

    def __init__(self) -> None:
        super().__init__(LIMIT_REACHED)


class ClientRegistry:
    """Owns tenant records, usage counters and the usage log.

    Every operation on one tenant runs under that tenant's lock stripe, which
    closes the check-then-increment race between `admit` and `record_usage`. The
    increment itself is a conditional UPDATE, so the monthly cap also holds
    across processes sharing the database.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._session_factory = session_factory or SessionLocal
        self._clock = clock or get_clock()
        self._locks: tuple[RLock, ...] = tuple(RLock() for _ in range(LOCK_STRIPES))

    # --- Locking and sessions -------------------------------------------------------
    def _tenant_lock(self, api_key: str) -> RLock:
        return self._locks[hash(api_key) % LOCK_STRIPES]

    @contextmanager
    def _tenant(self, api_key: str) -> Iterator[Session]:
        with self._tenant_lock(api_key), self._session_factory() as db:
            yield db

    @staticmethod
    def _get(db: Session, api_key: str) -> Client:
        client = db.get(Client, api_key)
        if client is None:
            raise ClientNotFoundError(api_key)
        return client

    @staticmethod
    def _append_log(
        db: Session,
        api_key: str | None,
        action: str,
        result: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        db.add(
            UsageLog(
                api_key=api_key,
                action=action,
                result=result,
                details=json.dumps(details, sort_keys=True) if details else None,
            )
        )

    def _roll_month(self, db: Session, client: Client, now: datetime) -> None:
        """Zero the monthly counter once when the calendar month changes."""
        current = year_month(now)
        if client.last_reset_month == current:
            return
        result = db.execute(
            update(Client)
            .where(Client.api_key == client.api_key, Client.last_reset_month != current)
            .values(used_this_month=0, last_reset_month=current)
        )
        db.commit()
        db.refresh(client)
        if result.rowcount:
            logger.info("Reset monthly usage for %s (month %s)", client.key_hint, current)

    # --- Lookup and admission -------------------------------------------------------
    def lookup(self, api_key: str) -> Client:
        """Return the tenant for `api_key`.

        Raises:
            ClientNotFoundError: If the key is unknown.
        """
        with self._tenant(api_key) as db:
            return self._get(db, api_key)

    def admit(self, api_key: str | None) -> Client:
        """Gate a challenge or verify call.

        Returns:
            The admitted tenant.

        Raises:
            AdmissionDeniedError: With reason ``NO_KEY``, ``INVALID_KEY``,
                ``ACCOUNT_<STATUS>``, ``SUBSCRIPTION_EXPIRED`` or ``LIMIT_REACHED``.
        """
        if not api_key:
            raise AdmissionDeniedError(NO_KEY)

        now = self._clock.now()
        with self._tenant(api_key) as db:
            client = db.get(Client, api_key)
            if client is None:
                raise AdmissionDeniedError(INVALID_KEY)

            if client.status != CLIENT_STATUS_ACTIVE:
                reason = f"ACCOUNT_{client.status.upper()}"
            elif client.expires_at is not None and as_utc(client.expires_at) < now:
                client.status = CLIENT_STATUS_EXPIRED
                logger.info("Subscription for %s expired", client.key_hint)
                reason = SUBSCRIPTION_EXPIRED
            else:
                self._roll_month(db, client, now)
                if client.is_unlimited or client.used_this_month < client.monthly_limit:
                    return client
                reason = LIMIT_REACHED

            self._append_log(db, api_key, ACTION_DENIED, reason)
            db.commit()
        logger.warning("Admission denied for %s: %s", client.key_hint, reason)
        raise AdmissionDeniedError(reason)

    def record_usage(self, api_key: str) -> Client:
        """Count one successful verification against the tenant.

        Raises:
            ClientNotFoundError: If the tenant was deleted meanwhile.
            QuotaExceededError: If the monthly cap is already reached; nothing
                is incremented in that case.
        """
        now = self._clock.now()
        with self._tenant(api_key) as db:
            client = self._get(db, api_key)
            self._roll_month(db, client, now)
            result = db.execute(
                update(Client)
                .where(
                    Client.api_key == api_key,
                    or_(
                        Client.monthly_limit == 0,
                        Client.used_this_month < Client.monthly_limit,
                    ),
                )
                .values(
                    used_this_month=Client.used_this_month + 1,
                    total_verifications=Client.total_verifications + 1,
                )
            )
            if result.rowcount != 1:
                db.rollback()
                raise QuotaExceededError()
            db.commit()
            db.refresh(client)
            return client

    def log_usage(
        self,
        api_key: str | None,
        action: str,
        result: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Append one entry to the usage log."""
        if api_key:
            with self._tenant(api_key) as db:
                self._append_log(db, api_key, action, result, details)
                db.commit()
            return
        with self._session_factory() as db:
            self._append_log(db, None, action, result, details)
            db.commit()

    # --- Provisioning and lifecycle -------------------------------------------------
    def create(
        self,
        name: str,
        plan: str,
        monthly_limit: int | None = None,
        duration_days: int | None = None,
    ) -> Client:
        """Provision a new tenant with a freshly generated API key.

        Args:
            name: Display name of the tenant.
            plan: One of the keys of `PLAN_LIMITS`.
            monthly_limit: Overrides the plan's default cap (0 = unlimited).
            duration_days: Subscription length; defaults to the configured plan duration.

        Raises:
            ValueError: For an unknown plan or a negative limit or duration.
        """
        plan = plan.strip().lower()
        if plan not in PLAN_LIMITS:
            raise ValueError(f"Unknown plan {plan!r}")
        limit = PLAN_LIMITS[plan] if monthly_limit is None else monthly_limit
        if limit < 0:
            raise ValueError("monthly_limit must be >= 0")
        days = settings.default_plan_duration_days if duration_days is None else duration_days
        if days <= 0:
            raise ValueError("duration_days must be positive")

        now = self._clock.now()
        api_key = f"{settings.api_key_prefix}{self._clock.token_hex(API_KEY_BYTES)}"
        with self._tenant(api_key) as db:
            client = Client(
                api_key=api_key,
                name=name,
                plan=plan,
                status=CLIENT_STATUS_ACTIVE,
                created_at=now,
                expires_at=now + timedelta(days=days),
                monthly_limit=limit,
                used_this_month=0,
                last_reset_month=year_month(now),
                total_verifications=0,
            )
            db.add(client)
            self._append_log(db, api_key, ACTION_ADMIN, "CREATED", {"plan": plan, "limit": limit})
            db.commit()
        logger.info("Created client %s (%s, plan=%s)", client.key_hint, name, plan)
        return client

    def _set_status(self, api_key: str, status: str, result: str) -> Client:
        with self._tenant(api_key) as db:
            client = self._get(db, api_key)
            client.status = status
            self._append_log(db, api_key, ACTION_ADMIN, result)
            db.commit()
        logger.info("Client %s is now %s", client.key_hint, status)
        return client

    def block(self, api_key: str) -> Client:
        return self._set_status(api_key, CLIENT_STATUS_BLOCKED, "BLOCKED")

    def unblock(self, api_key: str) -> Client:
        return self._set_status(api_key, CLIENT_STATUS_ACTIVE, "UNBLOCKED")

    def renew(self, api_key: str, duration_days: int) -> Client:
        """Extend the subscription from the later of now and the current expiry.

        Usage counters are preserved. An expired account becomes active again;
        a blocked one stays blocked.
        """
        if duration_days <= 0:
            raise ValueError("duration_days must be positive")
        now = self._clock.now()
        with self._tenant(api_key) as db:
            client = self._get(db, api_key)
            base = now
            if client.expires_at is not None:
                base = max(now, as_utc(client.expires_at))
            client.expires_at = base + timedelta(days=duration_days)
            if client.status == CLIENT_STATUS_EXPIRED:
                client.status = CLIENT_STATUS_ACTIVE
            self._append_log(
                db, api_key, ACTION_ADMIN, "RENEWED", {"days": duration_days}
            )
            db.commit()
        logger.info("Renewed %s by %d days", client.key_hint, duration_days)
        return client

    def delete(self, api_key: str) -> None:
        """Remove a tenant permanently. Its usage log entries are kept."""
        with self._tenant(api_key) as db:
            client = self._get(db, api_key)
            db.delete(client)
            self._append_log(db, api_key, ACTION_ADMIN, "DELETED")
            db.commit()
        logger.info("Deleted client %s", client.key_hint)

    # --- Reporting ------------------------------------------------------------------
    def list_clients(self) -> list[Client]:
        with self._session_factory() as db:
            return list(db.scalars(select(Client).order_by(Client.created_at)))

    def list_logs(
        self, api_key: str | None = None, limit: int = DEFAULT_LOG_LIMIT
    ) -> list[UsageLog]:
        """Return the newest usage log entries, optionally for one tenant."""
        stmt = select(UsageLog).order_by(UsageLog.id.desc()).limit(limit)
        if api_key:
            stmt = stmt.where(UsageLog.api_key == api_key)
        with self._session_factory() as db:
            return list(db.scalars(stmt))

    def aggregate_stats(self) -> dict[str, int]:
        """Return tenant counts by status and usage totals."""
        with self._session_factory() as db:
            by_status = dict(
                db.execute(select(Client.status, func.count()).group_by(Client.status)).all()
            )
            used, total = db.execute(
                select(
                    func.coalesce(func.sum(Client.used_this_month), 0),
                    func.coalesce(func.sum(Client.total_verifications), 0),
                )
            ).one()
            log_entries = db.scalar(select(func.count()).select_from(UsageLog)) or 0
        stats = {f"clients_{status}": int(by_status.get(status, 0)) for status in CLIENT_STATUSES}
        stats["clients_total"] = sum(stats.values())
        stats["used_this_month"] = int(used)
        stats["total_verifications"] = int(total)
        stats["usage_log_entries"] = int(log_entries)
        return stats


class _RegistrySingleton:
    """Singleton wrapper for ClientRegistry."""

    _instance: ClientRegistry | None = None

    @classmethod
    def get_instance(cls) -> ClientRegistry:
        if cls._instance is None:
            cls._instance = ClientRegistry()
        return cls._instance


def get_client_registry() -> ClientRegistry:
    """Return the process-wide client registry."""
    return _RegistrySingleton.get_instance()
