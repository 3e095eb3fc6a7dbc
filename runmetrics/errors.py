"""Error taxonomy for the metrics engine.

Calculators never let these escape to the caller. They are raised by the
low-level helpers (EWMA, heart-rate reserve) and converted into their quality
flag and a low-confidence result at the calculator boundary. Short history,
missing weather and implausible estimates are detected in place and reported
only as flags.
"""

from __future__ import annotations

from enum import Enum


class QualityFlag(str, Enum):
    """Data-quality flag attached to a MetricResult."""

    INSUFFICIENT_DATA = "insufficient_data"
    INSUFFICIENT_HISTORY = "insufficient_history"
    INVALID_PHYSIOLOGY = "invalid_physiology"
    MISSING_ENVIRONMENTAL_DATA = "missing_environmental_data"
    IMPLAUSIBLE_ESTIMATE = "implausible_estimate"
    ESTIMATED = "estimated"
    DEFAULTED_PHYSIOLOGY = "defaulted_physiology"


class MetricsError(Exception):
    flag = QualityFlag.INSUFFICIENT_DATA


class InsufficientData(MetricsError):
    """Too few activities or days for a meaningful result."""

    flag = QualityFlag.INSUFFICIENT_DATA


class InvalidPhysiology(MetricsError):
    """Resting HR >= max HR, or values outside plausible human ranges."""

    flag = QualityFlag.INVALID_PHYSIOLOGY
