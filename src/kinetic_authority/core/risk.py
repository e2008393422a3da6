"""Behavioral signal checks and risk classification.

Sensor scores arrive already computed by the device; this module only applies
fixed thresholds to them.
"""
from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Final, Literal

RiskScore = Literal["LOW", "MEDIUM", "HIGH", "CRITICAL"]

RISK_LOW: Final[RiskScore] = "LOW"
RISK_MEDIUM: Final[RiskScore] = "MEDIUM"
RISK_HIGH: Final[RiskScore] = "HIGH"
RISK_CRITICAL: Final[RiskScore] = "CRITICAL"

# A sensor counts as active when its score is strictly above the threshold.
MOTION_THRESHOLD: Final[float] = 0.15
TOUCH_THRESHOLD: Final[float] = 0.15
PATTERN_THRESHOLD: Final[float] = 0.10
MIN_ACTIVE_SENSORS: Final[int] = 1

# Exclusive lower bounds on the average score.
LOW_RISK_ABOVE: Final[float] = 0.7
MEDIUM_RISK_ABOVE: Final[float] = 0.4
# Averages are rounded so decimal inputs land exactly on the bounds.
AVERAGE_PRECISION: Final[int] = 9

REASON_NO_MOTION: Final[str] = "no motion"
REASON_NO_TOUCH: Final[str] = "no touch"
REASON_NO_PATTERN: Final[str] = "no pattern"

BIOMETRIC_FIELDS: Final[tuple[str, ...]] = ("motion", "touch", "pattern")


class BiometricFormatError(ValueError):
    """Raised when a biometric payload is not three finite real numbers."""


def _coerce_score(name: str, value: Any) -> float:
    # bool is an int subclass but never a sensor reading.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise BiometricFormatError(f"{name} must be a number")
    score = float(value)
    if not math.isfinite(score):
        raise BiometricFormatError(f"{name} must be finite")
    return score


@dataclass(frozen=True)
class BiometricSample:
    """Motion, touch and pattern signal strengths reported by a device."""

    motion: float
    touch: float
    pattern: float

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> BiometricSample:
        """Validate a decoded JSON object into a sample.

        Raises:
            BiometricFormatError: If a field is missing, non-numeric or not finite.
        """
        if not isinstance(raw, Mapping):
            raise BiometricFormatError("biometric data must be an object")
        missing = [name for name in BIOMETRIC_FIELDS if name not in raw]
        if missing:
            raise BiometricFormatError(f"missing fields: {', '.join(missing)}")
        return cls(
            motion=_coerce_score("motion", raw["motion"]),
            touch=_coerce_score("touch", raw["touch"]),
            pattern=_coerce_score("pattern", raw["pattern"]),
        )

    @property
    def motion_ok(self) -> bool:
        return self.motion > MOTION_THRESHOLD

    @property
    def touch_ok(self) -> bool:
        return self.touch > TOUCH_THRESHOLD

    @property
    def pattern_ok(self) -> bool:
        return self.pattern > PATTERN_THRESHOLD

    @property
    def active_sensors(self) -> int:
        """Return how many sensors cleared their threshold."""
        return sum((self.motion_ok, self.touch_ok, self.pattern_ok))

    @property
    def is_live(self) -> bool:
        """Return True if the minimum liveness signal is present."""
        return self.active_sensors >= MIN_ACTIVE_SENSORS

    @property
    def average(self) -> float:
        return round((self.motion + self.touch + self.pattern) / 3, AVERAGE_PRECISION)

    def failed_signals(self) -> list[str]:
        """Return the reasons for every sensor below threshold, in fixed order."""
        reasons: list[str] = []
        if not self.motion_ok:
            reasons.append(REASON_NO_MOTION)
        if not self.touch_ok:
            reasons.append(REASON_NO_TOUCH)
        if not self.pattern_ok:
            reasons.append(REASON_NO_PATTERN)
        return reasons


def classify_risk(average: float) -> RiskScore:
    """Map an average signal strength onto LOW, MEDIUM or HIGH.

    Args:
        average: Mean of the motion, touch and pattern scores.

    Returns:
        ``LOW`` above 0.7, ``MEDIUM`` above 0.4, otherwise ``HIGH``.
    """
    if average > LOW_RISK_ABOVE:
        return RISK_LOW
    if average > MEDIUM_RISK_ABOVE:
        return RISK_MEDIUM
    return RISK_HIGH
