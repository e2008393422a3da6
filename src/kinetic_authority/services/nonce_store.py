"""Pending challenge storage with one-time, lock-guarded consumption."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from threading import Lock
from typing import Final

from kinetic_authority.core.clock import Clock, get_clock

logger = logging.getLogger(__name__)

CONSUMED: Final[str] = "CONSUMED"
INVALID_NONCE: Final[str] = "INVALID_NONCE"
REPLAY: Final[str] = "REPLAY"
OWNER_MISMATCH: Final[str] = "OWNER_MISMATCH"
EXPIRED: Final[str] = "EXPIRED"


@dataclass
class Challenge:
    """A secret digit code bound to a single-use nonce and one tenant."""

    nonce: str
    code: tuple[int, ...]
    issued_at: datetime
    expires_at: datetime
    owner_key: str
    used: bool = field(default=False)

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


@dataclass(frozen=True)
class ConsumeResult:
    """Outcome of an atomic consume attempt.

    `challenge` is set whenever the nonce existed, including the owner-mismatch
    and expired outcomes, so callers can log what was burned.
    """

    outcome: str
    challenge: Challenge | None = None

    @property
    def ok(self) -> bool:
        return self.outcome == CONSUMED


class NonceStore:
    """Owns every pending challenge.

    Consumption removes the challenge in the same critical section that checks
    it, so two concurrent consumers of one nonce can never both succeed.
    Consumed nonces are remembered until their original expiry so a second
    attempt is reported as a replay rather than an unknown nonce.
    """

    def __init__(self, ttl_seconds: int, nonce_bytes: int = 16, clock: Clock | None = None) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._ttl = timedelta(seconds=ttl_seconds)
        self._nonce_bytes = nonce_bytes
        self._clock = clock or get_clock()
        self._challenges: dict[str, Challenge] = {}
        self._spent: dict[str, datetime] = {}
        self._lock = Lock()

    def issue(self, owner_key: str, code: tuple[int, ...]) -> Challenge:
        """Store a fresh challenge for `owner_key` and return it."""
        now = self._clock.now()
        with self._lock:
            nonce = self._clock.token_hex(self._nonce_bytes)
            while nonce in self._challenges or nonce in self._spent:
                nonce = self._clock.token_hex(self._nonce_bytes)
            challenge = Challenge(
                nonce=nonce,
                code=tuple(code),
                issued_at=now,
                expires_at=now + self._ttl,
                owner_key=owner_key,
            )
            self._challenges[nonce] = challenge
        return challenge

    def consume(self, nonce: str, owner_key: str) -> ConsumeResult:
        """Atomically take the challenge for `nonce` out of the store.

        The challenge is removed whatever the outcome once it has been looked
        up; a mismatched owner or an expired entry still burns the nonce.
        """
        now = self._clock.now()
        with self._lock:
            challenge = self._challenges.pop(nonce, None)
            if challenge is None:
                if nonce in self._spent:
                    return ConsumeResult(REPLAY)
                return ConsumeResult(INVALID_NONCE)
            if challenge.used:  # pragma: no cover - entries leave the table when used
                return ConsumeResult(REPLAY, challenge)
            challenge.used = True
            self._spent[nonce] = challenge.expires_at

        if challenge.owner_key != owner_key:
            return ConsumeResult(OWNER_MISMATCH, challenge)
        if challenge.is_expired(now):
            return ConsumeResult(EXPIRED, challenge)
        return ConsumeResult(CONSUMED, challenge)

    def sweep(self) -> int:
        """Evict expired challenges and spent-nonce markers.

        Returns:
            Number of pending challenges evicted.
        """
        now = self._clock.now()
        with self._lock:
            expired = [n for n, c in self._challenges.items() if c.expires_at < now]
            for nonce in expired:
                del self._challenges[nonce]
            spent = [n for n, exp in self._spent.items() if exp < now]
            for nonce in spent:
                del self._spent[nonce]
        if expired:
            logger.info("Evicted %d expired challenges", len(expired))
        return len(expired)

    def __contains__(self, nonce: object) -> bool:
        with self._lock:
            return nonce in self._challenges

    def __len__(self) -> int:
        with self._lock:
            return len(self._challenges)
