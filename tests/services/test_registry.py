"""Tests for the tenant registry: admission, quotas and lifecycle."""

from __future__ import annotations

import json
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest
from sqlalchemy import update

from kinetic_authority.db.time import as_utc
from kinetic_authority.models import Client
from kinetic_authority.services.registry import (
    INVALID_KEY,
    LIMIT_REACHED,
    LOCK_STRIPES,
    NO_KEY,
    PLAN_LIMITS,
    SUBSCRIPTION_EXPIRED,
    AdmissionDeniedError,
    ClientNotFoundError,
    ClientRegistry,
    QuotaExceededError,
)
from tests.conftest import START_TIME


def _set_usage(session_factory, api_key: str, used: int, limit: int | None = None) -> None:
    values: dict[str, int] = {"used_this_month": used}
    if limit is not None:
        values["monthly_limit"] = limit
    with session_factory() as db:
        db.execute(update(Client).where(Client.api_key == api_key).values(**values))
        db.commit()


def _denial(registry: ClientRegistry, api_key: str | None) -> str:
    with pytest.raises(AdmissionDeniedError) as exc_info:
        registry.admit(api_key)
    return exc_info.value.reason


@pytest.mark.parametrize(("plan", "limit"), sorted(PLAN_LIMITS.items()))
def test_create_applies_plan_limit(registry: ClientRegistry, plan: str, limit: int) -> None:
    client = registry.create("Acme", plan)

    assert client.api_key.startswith("zk_live_")
    assert len(client.api_key) == len("zk_live_") + 48
    assert client.plan == plan
    assert client.monthly_limit == limit
    assert client.status == "active"
    assert client.used_this_month == 0
    assert client.last_reset_month == "2026-03"
    assert as_utc(client.expires_at) == START_TIME + timedelta(days=30)


def test_create_rejects_unknown_plan(registry: ClientRegistry) -> None:
    with pytest.raises(ValueError):
        registry.create("Acme", "platinum")


def test_create_honours_overrides(registry: ClientRegistry) -> None:
    client = registry.create("Acme", "starter", monthly_limit=10, duration_days=7)
    assert client.monthly_limit == 10
    assert as_utc(client.expires_at) == START_TIME + timedelta(days=7)


def test_admit_active_tenant(registry: ClientRegistry, tenant: Client) -> None:
    admitted = registry.admit(tenant.api_key)
    assert admitted.api_key == tenant.api_key


def test_admit_without_key(registry: ClientRegistry) -> None:
    assert _denial(registry, None) == NO_KEY
    assert _denial(registry, "") == NO_KEY


def test_admit_unknown_key(registry: ClientRegistry) -> None:
    assert _denial(registry, "zk_live_unknown") == INVALID_KEY


def test_admit_blocked_and_unblocked(registry: ClientRegistry, tenant: Client) -> None:
    registry.block(tenant.api_key)
    assert _denial(registry, tenant.api_key) == "ACCOUNT_BLOCKED"

    registry.unblock(tenant.api_key)
    assert registry.admit(tenant.api_key).status == "active"


def test_admit_after_expiry_marks_account_expired(
    registry: ClientRegistry, tenant: Client, clock
) -> None:
    clock.advance(days=31)

    assert _denial(registry, tenant.api_key) == SUBSCRIPTION_EXPIRED
    assert registry.lookup(tenant.api_key).status == "expired"
    assert _denial(registry, tenant.api_key) == "ACCOUNT_EXPIRED"


def test_quota_boundary(registry: ClientRegistry, tenant: Client, session_factory) -> None:
    """The verification that reaches the cap succeeds; the next admission is refused."""
    _set_usage(session_factory, tenant.api_key, 4_999, 5_000)

    registry.admit(tenant.api_key)
    updated = registry.record_usage(tenant.api_key)

    assert updated.used_this_month == 5_000
    assert updated.total_verifications == 1
    assert _denial(registry, tenant.api_key) == LIMIT_REACHED


def test_record_usage_refuses_past_cap(
    registry: ClientRegistry, tenant: Client, session_factory
) -> None:
    _set_usage(session_factory, tenant.api_key, 5_000)

    with pytest.raises(QuotaExceededError):
        registry.record_usage(tenant.api_key)
    assert registry.lookup(tenant.api_key).used_this_month == 5_000


def test_unlimited_plan_never_caps(registry: ClientRegistry, session_factory) -> None:
    client = registry.create("Big", "unlimited")
    _set_usage(session_factory, client.api_key, 1_000_000)

    registry.admit(client.api_key)
    assert registry.record_usage(client.api_key).used_this_month == 1_000_001


def test_concurrent_record_usage_respects_cap(
    registry: ClientRegistry, session_factory
) -> None:
    client = registry.create("Small", "starter", monthly_limit=5)

    def attempt(_: int) -> bool:
        try:
            registry.record_usage(client.api_key)
        except QuotaExceededError:
            return False
        return True

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(attempt, range(20)))

    assert results.count(True) == 5
    assert registry.lookup(client.api_key).used_this_month == 5


def test_month_rollover_resets_usage(
    registry: ClientRegistry, tenant: Client, session_factory, clock
) -> None:
    _set_usage(session_factory, tenant.api_key, 5_000)
    assert _denial(registry, tenant.api_key) == LIMIT_REACHED

    clock.advance(days=17)  # 2026-04-01
    admitted = registry.admit(tenant.api_key)

    assert admitted.used_this_month == 0
    assert admitted.last_reset_month == "2026-04"


def test_record_usage_unknown_key(registry: ClientRegistry) -> None:
    with pytest.raises(ClientNotFoundError):
        registry.record_usage("zk_live_missing")


def test_renew_extends_from_current_expiry(registry: ClientRegistry, tenant: Client) -> None:
    renewed = registry.renew(tenant.api_key, 10)
    assert as_utc(renewed.expires_at) == START_TIME + timedelta(days=40)


def test_renew_reactivates_expired_account(
    registry: ClientRegistry, tenant: Client, session_factory, clock
) -> None:
    _set_usage(session_factory, tenant.api_key, 12)
    clock.advance(days=45)
    _denial(registry, tenant.api_key)

    renewed = registry.renew(tenant.api_key, 30)

    assert renewed.status == "active"
    assert as_utc(renewed.expires_at) == clock.now() + timedelta(days=30)
    assert renewed.used_this_month == 12
    assert registry.admit(tenant.api_key).status == "active"


def test_renew_keeps_blocked_account_blocked(registry: ClientRegistry, tenant: Client) -> None:
    registry.block(tenant.api_key)
    assert registry.renew(tenant.api_key, 30).status == "blocked"


def test_renew_rejects_non_positive_duration(registry: ClientRegistry, tenant: Client) -> None:
    with pytest.raises(ValueError):
        registry.renew(tenant.api_key, 0)


def test_delete_removes_tenant_but_keeps_logs(registry: ClientRegistry, tenant: Client) -> None:
    registry.delete(tenant.api_key)

    with pytest.raises(ClientNotFoundError):
        registry.lookup(tenant.api_key)
    assert _denial(registry, tenant.api_key) == INVALID_KEY
    results = [entry.result for entry in registry.list_logs(tenant.api_key)]
    assert results == ["DELETED", "CREATED"]


def test_denials_are_logged(registry: ClientRegistry, tenant: Client) -> None:
    registry.block(tenant.api_key)
    _denial(registry, tenant.api_key)

    newest = registry.list_logs(tenant.api_key, limit=1)[0]
    assert newest.action == "denied"
    assert newest.result == "ACCOUNT_BLOCKED"


def test_log_usage_serializes_details(registry: ClientRegistry, tenant: Client) -> None:
    registry.log_usage(tenant.api_key, "verify", "APPROVED", {"risk": "LOW"})

    entry = registry.list_logs(tenant.api_key, limit=1)[0]
    assert json.loads(entry.details) == {"risk": "LOW"}


def test_aggregate_stats(registry: ClientRegistry, tenant: Client, other_tenant: Client) -> None:
    registry.block(other_tenant.api_key)
    registry.record_usage(tenant.api_key)

    stats = registry.aggregate_stats()

    assert stats["clients_total"] == 2
    assert stats["clients_active"] == 1
    assert stats["clients_blocked"] == 1
    assert stats["clients_expired"] == 0
    assert stats["used_this_month"] == 1
    assert stats["total_verifications"] == 1
    assert stats["usage_log_entries"] >= 3


def test_unknown_keys_do_not_grow_lock_table(registry: ClientRegistry) -> None:
    for i in range(500):
        assert _denial(registry, f"zk_live_bogus-{i}") == INVALID_KEY
        with pytest.raises(ClientNotFoundError):
            registry.lookup(f"zk_live_other-{i}")

    assert len(registry._locks) == LOCK_STRIPES
