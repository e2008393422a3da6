"""Challenge issuance and response verification.

The engine combines a knowledge factor (the displayed digit code) with a
behavioral factor (motion, touch and pattern signal strengths). Entering the
code reversed signals duress: the caller receives an approval shaped exactly
like a normal one while the event is recorded internally as duress.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from threading import Lock
from typing import Any, Final

from kinetic_authority.core.clock import Clock, get_clock
from kinetic_authority.core.risk import (
    RISK_CRITICAL,
    BiometricFormatError,
    BiometricSample,
    RiskScore,
    classify_risk,
)
from kinetic_authority.core.settings import settings
from kinetic_authority.services.nonce_store import Challenge, NonceStore
from kinetic_authority.services.registry import (
    INVALID_KEY,
    ClientNotFoundError,
    ClientRegistry,
    QuotaExceededError,
    get_client_registry,
)
from kinetic_authority.services.session_store import SessionLookup, SessionStore

logger = logging.getLogger(__name__)

CODE_LENGTH: Final[int] = 3
UNKNOWN_DEVICE: Final[str] = "unknown"

MISSING_FIELDS: Final[str] = "MISSING_FIELDS"
BAD_RESPONSE_FORMAT: Final[str] = "BAD_RESPONSE_FORMAT"
BAD_BIOMETRIC_FORMAT: Final[str] = "BAD_BIOMETRIC_FORMAT"
VERIFICATION_FAILED: Final[str] = "VERIFICATION_FAILED"

REASON_WRONG_CODE: Final[str] = "wrong code"

ACTION_CHALLENGE: Final[str] = "challenge"
ACTION_VERIFY: Final[str] = "verify"
RESULT_ISSUED: Final[str] = "ISSUED"
RESULT_APPROVED: Final[str] = "APPROVED"
RESULT_DURESS: Final[str] = "DURESS"


@dataclass(frozen=True)
class IssuedChallenge:
    """What the caller receives for a new challenge."""

    nonce: str
    code: tuple[int, ...]
    expires_at: datetime


@dataclass(frozen=True)
class Approved:
    """Successful attestation. Identical in shape for normal and duress approvals."""

    risk_score: RiskScore
    session_token: str
    expires_at: datetime


@dataclass(frozen=True)
class Denied:
    """Failed attestation with a machine code and human-readable reasons."""

    code: str
    reasons: tuple[str, ...] = ()


VerificationResult = Approved | Denied


@dataclass
class EngineCounters:
    """Process-wide verification counters, monotonic until restart."""

    total: int = 0
    success: int = 0
    fail: int = 0
    panic: int = 0

    def snapshot(self) -> dict[str, int]:
        return {
            "total": self.total,
            "success": self.success,
            "fail": self.fail,
            "panic": self.panic,
        }


def _join(digits: Sequence[Any]) -> str:
    return "".join(str(d) for d in digits)


def _is_code(response: Sequence[Any]) -> bool:
    """Return True if `response` is exactly CODE_LENGTH single decimal digits."""
    return len(response) == CODE_LENGTH and all(
        isinstance(d, int) and not isinstance(d, bool) and 0 <= d <= 9 for d in response
    )


class AttestationEngine:
    """Issues challenges and verifies device responses against them."""

    def __init__(
        self,
        nonce_store: NonceStore,
        session_store: SessionStore,
        registry: ClientRegistry,
        clock: Clock | None = None,
    ) -> None:
        self._nonces = nonce_store
        self._sessions = session_store
        self._registry = registry
        self._clock = clock or get_clock()
        self._counters = EngineCounters()
        self._counters_lock = Lock()

    @property
    def nonce_store(self) -> NonceStore:
        return self._nonces

    @property
    def session_store(self) -> SessionStore:
        return self._sessions

    @property
    def registry(self) -> ClientRegistry:
        return self._registry

    def counters(self) -> dict[str, int]:
        """Return a consistent copy of the verification counters."""
        with self._counters_lock:
            return self._counters.snapshot()

    def _bump(self, *names: str) -> None:
        with self._counters_lock:
            for name in names:
                setattr(self._counters, name, getattr(self._counters, name) + 1)

    # --- Challenge issuance ---------------------------------------------------------
    def issue_challenge(self, owner_key: str) -> IssuedChallenge:
        """Create a challenge for an admitted tenant.

        The code is returned so a human can be shown it; it is bound to a
        single-use nonce scoped to `owner_key`.
        """
        code = tuple(self._clock.digit() for _ in range(CODE_LENGTH))
        challenge = self._nonces.issue(owner_key, code)
        self._registry.log_usage(
            owner_key, ACTION_CHALLENGE, RESULT_ISSUED, {"nonce": challenge.nonce[:8]}
        )
        logger.info("Issued challenge %s...", challenge.nonce[:10])
        return IssuedChallenge(
            nonce=challenge.nonce,
            code=challenge.code,
            expires_at=challenge.expires_at,
        )

    # --- Verification ---------------------------------------------------------------
    def verify(
        self,
        owner_key: str,
        nonce: str | None,
        response: Sequence[int] | None,
        biometric: Mapping[str, Any] | None,
        device_id: str | None = None,
    ) -> VerificationResult:
        """Verify a device response for `nonce` on behalf of `owner_key`.

        The nonce is consumed by the first well-formed attempt whatever its
        outcome; requests with missing fields or a malformed code leave it pending.
        """
        self._bump("total")
        if not nonce or not response or biometric is None:
            return self._deny(owner_key, nonce, MISSING_FIELDS)
        if not _is_code(response):
            return self._deny(owner_key, nonce, BAD_RESPONSE_FORMAT)

        consumed = self._nonces.consume(nonce, owner_key)
        challenge = consumed.challenge
        if not consumed.ok or challenge is None:
            return self._deny(owner_key, nonce, consumed.outcome)

        server_code = _join(challenge.code)
        user_code = _join(response)
        panic_code = _join(reversed(challenge.code))

        # Palindromic codes cannot signal duress; they verify normally.
        if user_code == panic_code and panic_code != server_code:
            return self._approve(challenge, RISK_CRITICAL, device_id, duress=True)

        try:
            sample = BiometricSample.from_mapping(biometric)
        except BiometricFormatError as err:
            return self._deny(owner_key, nonce, BAD_BIOMETRIC_FORMAT, (str(err),))

        code_ok = user_code == server_code
        if code_ok and sample.is_live:
            return self._approve(challenge, classify_risk(sample.average), device_id)

        reasons: list[str] = []
        if not code_ok:
            reasons.append(REASON_WRONG_CODE)
        reasons.extend(sample.failed_signals())
        return self._deny(owner_key, nonce, VERIFICATION_FAILED, tuple(reasons))

    def _approve(
        self,
        challenge: Challenge,
        risk_score: RiskScore,
        device_id: str | None,
        *,
        duress: bool = False,
    ) -> VerificationResult:
        owner_key = challenge.owner_key
        try:
            self._registry.record_usage(owner_key)
        except QuotaExceededError as err:
            return self._deny(owner_key, challenge.nonce, err.reason)
        except ClientNotFoundError:
            return self._deny(owner_key, challenge.nonce, INVALID_KEY)

        session = self._sessions.issue(
            owner_key,
            device_id or UNKNOWN_DEVICE,
            risk_score,
            challenge.nonce,
            duress=duress,
        )
        details = {"nonce": challenge.nonce[:8], "risk": risk_score}
        if duress:
            self._bump("panic")
            self._registry.log_usage(owner_key, ACTION_VERIFY, RESULT_DURESS, details)
            logger.warning(
                "DURESS signal on challenge %s... (device=%s)",
                challenge.nonce[:10],
                session.device_id,
            )
        else:
            self._bump("success")
            self._registry.log_usage(owner_key, ACTION_VERIFY, RESULT_APPROVED, details)
            logger.info("Attestation approved (risk=%s, device=%s)", risk_score, session.device_id)
        return Approved(
            risk_score=risk_score,
            session_token=session.token,
            expires_at=session.expires_at,
        )

    def _deny(
        self,
        owner_key: str,
        nonce: str | None,
        code: str,
        reasons: tuple[str, ...] = (),
    ) -> Denied:
        self._bump("fail")
        details: dict[str, Any] = {"nonce": (nonce or "")[:8]}
        if reasons:
            details["reasons"] = list(reasons)
        self._registry.log_usage(owner_key, ACTION_VERIFY, f"DENIED:{code}", details)
        logger.warning("Attestation denied: %s %s", code, list(reasons) if reasons else "")
        return Denied(code=code, reasons=reasons)

    # --- Sessions -------------------------------------------------------------------
    def validate_session(self, token: str) -> SessionLookup:
        return self._sessions.validate(token)


class _EngineSingleton:
    """Singleton wrapper for AttestationEngine."""

    _instance: AttestationEngine | None = None

    @classmethod
    def get_instance(cls) -> AttestationEngine:
        if cls._instance is None:
            clock = get_clock()
            cls._instance = AttestationEngine(
                NonceStore(settings.challenge_ttl_seconds, settings.nonce_bytes, clock=clock),
                SessionStore(
                    settings.session_ttl_seconds,
                    settings.session_token_bytes,
                    token_prefix=settings.session_token_prefix,
                    duress_prefix=settings.duress_token_prefix,
                    clock=clock,
                ),
                get_client_registry(),
                clock=clock,
            )
        return cls._instance


def get_attestation_engine() -> AttestationEngine:
    """Return the process-wide attestation engine."""
    return _EngineSingleton.get_instance()
