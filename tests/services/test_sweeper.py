"""Tests for the background cleanup sweeper."""

from __future__ import annotations

import asyncio

import pytest

from kinetic_authority.services.sweeper import CleanupSweeper


def test_run_once_evicts_expired_entries(nonce_store, session_store, clock) -> None:
    nonce_store.issue("owner", (1, 2, 3))
    session_store.issue("owner", "device", "LOW", "n1")
    sweeper = CleanupSweeper(nonce_store, session_store, interval_seconds=60)

    assert sweeper.run_once() == (0, 0)

    clock.advance(seconds=301)
    assert sweeper.run_once() == (1, 1)
    assert len(nonce_store) == 0
    assert len(session_store) == 0
    assert sweeper.stats.runs == 2
    assert sweeper.stats.challenges_evicted == 1
    assert sweeper.stats.sessions_evicted == 1


@pytest.mark.asyncio
async def test_start_and_stop(nonce_store, session_store, clock) -> None:
    nonce_store.issue("owner", (1, 2, 3))
    clock.advance(seconds=61)
    sweeper = CleanupSweeper(nonce_store, session_store, interval_seconds=0.01)

    await sweeper.start()
    assert sweeper.running
    for _ in range(100):
        if sweeper.stats.runs:
            break
        await asyncio.sleep(0.01)
    await sweeper.stop()

    assert not sweeper.running
    assert sweeper.stats.runs >= 1
    assert len(nonce_store) == 0


@pytest.mark.asyncio
async def test_stop_without_start_is_noop(nonce_store, session_store) -> None:
    sweeper = CleanupSweeper(nonce_store, session_store)
    await sweeper.stop()
    assert not sweeper.running


@pytest.mark.asyncio
async def test_unexpected_sweep_errors_do_not_kill_loop(
    nonce_store, session_store, mocker, caplog
) -> None:
    sweeper = CleanupSweeper(nonce_store, session_store, interval_seconds=0.01)
    failures = iter([RuntimeError("boom")])

    def flaky_sweep() -> int:
        for err in failures:
            raise err
        return 0

    mocker.patch.object(nonce_store, "sweep", side_effect=flaky_sweep)
    calls = mocker.spy(session_store, "sweep")

    await sweeper.start()
    for _ in range(100):
        if calls.call_count:
            break
        await asyncio.sleep(0.01)
    await sweeper.stop()

    assert calls.call_count >= 1
    assert "CleanupSweeper failed during sweep" in caplog.text
