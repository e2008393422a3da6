"""Tests for pending challenge storage and one-time consumption."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from threading import Barrier

import pytest

from kinetic_authority.services.nonce_store import (
    CONSUMED,
    EXPIRED,
    INVALID_NONCE,
    OWNER_MISMATCH,
    REPLAY,
    NonceStore,
)


def test_issue_stores_challenge_with_ttl(nonce_store: NonceStore, clock) -> None:
    """A new challenge is pending and expires one TTL after issuance."""
    challenge = nonce_store.issue("zk_live_owner", (4, 1, 9))

    assert challenge.nonce in nonce_store
    assert len(challenge.nonce) == 32
    assert challenge.code == (4, 1, 9)
    assert challenge.owner_key == "zk_live_owner"
    assert (challenge.expires_at - challenge.issued_at).total_seconds() == 60
    assert challenge.issued_at == clock.now()


def test_issue_returns_distinct_nonces(nonce_store: NonceStore) -> None:
    nonces = {nonce_store.issue("owner", (1, 2, 3)).nonce for _ in range(50)}
    assert len(nonces) == 50
    assert len(nonce_store) == 50


def test_consume_succeeds_once_then_reports_replay(nonce_store: NonceStore) -> None:
    challenge = nonce_store.issue("owner", (1, 2, 3))

    first = nonce_store.consume(challenge.nonce, "owner")
    second = nonce_store.consume(challenge.nonce, "owner")

    assert first.ok
    assert first.outcome == CONSUMED
    assert first.challenge is challenge
    assert second.outcome == REPLAY
    assert challenge.nonce not in nonce_store


def test_consume_unknown_nonce(nonce_store: NonceStore) -> None:
    result = nonce_store.consume("deadbeef", "owner")
    assert result.outcome == INVALID_NONCE
    assert result.challenge is None


def test_consume_by_other_owner_burns_nonce(nonce_store: NonceStore) -> None:
    """A foreign tenant cannot use the nonce, and the rightful owner loses it too."""
    challenge = nonce_store.issue("owner-a", (5, 5, 1))

    stolen = nonce_store.consume(challenge.nonce, "owner-b")
    retry = nonce_store.consume(challenge.nonce, "owner-a")

    assert stolen.outcome == OWNER_MISMATCH
    assert stolen.challenge is challenge
    assert retry.outcome == REPLAY


def test_consume_after_ttl_is_expired(nonce_store: NonceStore, clock) -> None:
    challenge = nonce_store.issue("owner", (1, 2, 3))
    clock.advance(seconds=61)

    result = nonce_store.consume(challenge.nonce, "owner")

    assert result.outcome == EXPIRED
    assert challenge.nonce not in nonce_store


def test_consume_at_exact_expiry_is_accepted(nonce_store: NonceStore, clock) -> None:
    challenge = nonce_store.issue("owner", (1, 2, 3))
    clock.advance(seconds=60)

    assert nonce_store.consume(challenge.nonce, "owner").ok


def test_sweep_evicts_expired_and_forgets_spent_markers(nonce_store: NonceStore, clock) -> None:
    stale = nonce_store.issue("owner", (1, 2, 3))
    used = nonce_store.issue("owner", (3, 2, 1))
    assert nonce_store.consume(used.nonce, "owner").ok
    clock.advance(seconds=30)
    fresh = nonce_store.issue("owner", (7, 7, 7))
    clock.advance(seconds=31)

    evicted = nonce_store.sweep()

    assert evicted == 1
    assert stale.nonce not in nonce_store
    assert fresh.nonce in nonce_store
    # The spent marker outlived its challenge's expiry and is gone.
    assert nonce_store.consume(used.nonce, "owner").outcome == INVALID_NONCE


def test_concurrent_consume_has_single_winner(nonce_store: NonceStore) -> None:
    """Racing consumers of one nonce: exactly one succeeds."""
    workers = 16
    challenge = nonce_store.issue("owner", (2, 4, 6))
    barrier = Barrier(workers)

    def attempt() -> str:
        barrier.wait()
        return nonce_store.consume(challenge.nonce, "owner").outcome

    with ThreadPoolExecutor(max_workers=workers) as pool:
        outcomes = list(pool.map(lambda _: attempt(), range(workers)))

    assert outcomes.count(CONSUMED) == 1
    assert outcomes.count(REPLAY) == workers - 1


def test_rejects_non_positive_ttl() -> None:
    with pytest.raises(ValueError):
        NonceStore(0)
