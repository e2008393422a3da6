"""Periodic eviction of expired challenges and sessions.

Sweeping only bounds memory. Expiry is re-checked whenever a challenge is
consumed or a session validated, so a late sweep never lets anything through.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from kinetic_authority.core.settings import settings
from kinetic_authority.services.nonce_store import NonceStore
from kinetic_authority.services.session_store import SessionStore

logger = logging.getLogger(__name__)


@dataclass
class SweepStats:
    """Running totals kept by the sweeper."""

    runs: int = 0
    challenges_evicted: int = 0
    sessions_evicted: int = 0


class CleanupSweeper:
    """Evicts expired entries from the nonce and session stores on a fixed period."""

    def __init__(
        self,
        nonce_store: NonceStore,
        session_store: SessionStore,
        interval_seconds: float | None = None,
    ) -> None:
        self.nonce_store = nonce_store
        self.session_store = session_store
        self.interval = float(
            settings.sweep_interval_seconds if interval_seconds is None else interval_seconds
        )
        self.stats = SweepStats()
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the background sweep loop."""
        if not self.running:
            self._stopping.clear()
            self._task = asyncio.create_task(self._run())
            logger.info("Cleanup sweeper started (interval=%.1fs)", self.interval)

    async def stop(self) -> None:
        """Stop the background sweep loop."""
        if self._task is None:
            return

        self._stopping.set()
        await self._task
        self._task = None
        logger.info("Cleanup sweeper stopped")

    def run_once(self) -> tuple[int, int]:
        """Sweep both stores once.

        Returns:
            ``(challenges_evicted, sessions_evicted)``
        """
        challenges = self.nonce_store.sweep()
        sessions = self.session_store.sweep()
        self.stats.runs += 1
        self.stats.challenges_evicted += challenges
        self.stats.sessions_evicted += sessions
        return challenges, sessions

    async def _run(self) -> None:
        interval = max(0.01, self.interval)

        while not self._stopping.is_set():
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=interval)
            except TimeoutError:
                pass
            if self._stopping.is_set():
                return
            try:
                self.run_once()
            except Exception:
                logger.exception("CleanupSweeper failed during sweep")
