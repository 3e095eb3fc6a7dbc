"""Exponentially weighted moving average over an ordered daily series.

alpha = 2 / (N + 1), seeded by the first observation. Callers sort; this
module never reorders its input.
"""

from __future__ import annotations

from typing import Sequence

from runmetrics.errors import InsufficientData


def smoothing_factor(span: int) -> float:
    if span < 1:
        raise ValueError(f"span must be >= 1, got {span}")
    return 2.0 / (span + 1)


def ewma_series(values: Sequence[float], span: int) -> list[float]:
    """Running EWMA: element i is the smoothed value of values[:i + 1]."""
    alpha = smoothing_factor(span)
    if not values:
        raise InsufficientData("EWMA needs at least one value")

    current = float(values[0])
    out = [current]
    for v in values[1:]:
        current = current + alpha * (float(v) - current)
        out.append(current)
    return out


def ewma(values: Sequence[float], span: int) -> float:
    """Smoothed value of the whole series."""
    return ewma_series(values, span)[-1]
