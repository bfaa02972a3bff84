"""Combines factor pairs into the overall quality of an estimation."""

from __future__ import annotations

from numbers import Real

from npmquality.models.schemas import Estimation


def is_factor_pair(value) -> bool:
    """True for a two-element sequence of numbers, i.e. (quality, weight)."""
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        return False
    return all(isinstance(v, Real) and not isinstance(v, bool) for v in value)


def aggregate(estimation: Estimation) -> Estimation:
    """Return a copy of the estimation with `quality` set.

    Quality is the weighted arithmetic mean of every (quality, weight) pair
    in the estimation, extra fields included, or 0 when there are none. The
    `quality` field itself is never read, so aggregating twice gives the
    same result.
    """
    numerator = 0.0
    denominator = 0.0
    for field, value in estimation.model_dump(exclude={"quality"}).items():
        if not is_factor_pair(value):
            continue
        quality, weight = value
        numerator += quality * weight
        denominator += weight

    quality = numerator / denominator if denominator else 0.0
    return estimation.model_copy(update={"quality": quality})
