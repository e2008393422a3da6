"""Clock and randomness provider shared by every store and service.

All time reads and random draws go through a `Clock` so tests can substitute a
deterministic implementation.
"""
from __future__ import annotations

import secrets
from datetime import datetime

from kinetic_authority.db.time import utcnow


class Clock:
    """Wall-clock UTC time plus a cryptographically strong random source."""

    def now(self) -> datetime:
        """Return the current time as an aware UTC datetime."""
        return utcnow()

    def token_hex(self, nbytes: int) -> str:
        """Return `nbytes` random bytes encoded as lowercase hex."""
        return secrets.token_hex(nbytes)

    def digit(self) -> int:
        """Return a uniformly random decimal digit."""
        return secrets.randbelow(10)


_DEFAULT_CLOCK = Clock()


def get_clock() -> Clock:
    """Return the process-wide clock."""
    return _DEFAULT_CLOCK
