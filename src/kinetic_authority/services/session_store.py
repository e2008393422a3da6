"""Issued session tokens and their validation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from threading import Lock
from typing import Final

from kinetic_authority.core.clock import Clock, get_clock
from kinetic_authority.core.risk import RiskScore

logger = logging.getLogger(__name__)

SESSION_VALID: Final[str] = "VALID"
SESSION_INVALID: Final[str] = "INVALID"
SESSION_EXPIRED: Final[str] = "EXPIRED"


@dataclass(frozen=True)
class AttestedSession:
    """Proof of a completed attestation, valid for a fixed window."""

    token: str
    device_id: str
    owner_key: str
    risk_score: RiskScore
    source_nonce: str
    issued_at: datetime
    expires_at: datetime
    duress: bool = False


@dataclass(frozen=True)
class SessionLookup:
    """Result of validating a session token."""

    status: str
    session: AttestedSession | None = None

    @property
    def valid(self) -> bool:
        return self.status == SESSION_VALID


class SessionStore:
    """Owns every issued session token."""

    def __init__(
        self,
        ttl_seconds: int,
        token_bytes: int = 32,
        *,
        token_prefix: str = "",
        duress_prefix: str = "",
        clock: Clock | None = None,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._ttl = timedelta(seconds=ttl_seconds)
        self._token_bytes = token_bytes
        self._token_prefix = token_prefix
        self._duress_prefix = duress_prefix
        self._clock = clock or get_clock()
        self._sessions: dict[str, AttestedSession] = {}
        self._lock = Lock()

    def issue(
        self,
        owner_key: str,
        device_id: str,
        risk_score: RiskScore,
        source_nonce: str,
        *,
        duress: bool = False,
    ) -> AttestedSession:
        """Mint a session token for a successful attestation."""
        prefix = self._duress_prefix if duress else self._token_prefix
        now = self._clock.now()
        with self._lock:
            token = prefix + self._clock.token_hex(self._token_bytes)
            while token in self._sessions:
                token = prefix + self._clock.token_hex(self._token_bytes)
            session = AttestedSession(
                token=token,
                device_id=device_id,
                owner_key=owner_key,
                risk_score=risk_score,
                source_nonce=source_nonce,
                issued_at=now,
                expires_at=now + self._ttl,
                duress=duress,
            )
            self._sessions[token] = session
        return session

    def validate(self, token: str) -> SessionLookup:
        """Look up `token`, evicting it if it has expired."""
        now = self._clock.now()
        with self._lock:
            session = self._sessions.get(token)
            if session is None:
                return SessionLookup(SESSION_INVALID)
            if now > session.expires_at:
                del self._sessions[token]
                return SessionLookup(SESSION_EXPIRED)
            return SessionLookup(SESSION_VALID, session)

    def sweep(self) -> int:
        """Evict expired sessions and return how many were removed."""
        now = self._clock.now()
        with self._lock:
            expired = [t for t, s in self._sessions.items() if s.expires_at < now]
            for token in expired:
                del self._sessions[token]
        if expired:
            logger.info("Evicted %d expired sessions", len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
