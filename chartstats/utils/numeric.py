"""Numeric helpers that never produce NaN or Infinity."""

import math
from typing import Iterable, Optional

import numpy as np
from scipy.special import expit


def clamp(value: float, low: float, high: float) -> float:
    """Clamp value to [low, high]."""
    return max(low, min(high, value))


def safe_div(numerator: float, denominator: float) -> float:
    """Divide, returning 0.0 when the denominator is zero."""
    return numerator / denominator if denominator else 0.0


def sigmoid(x: float) -> float:
    """Logistic function."""
    return float(expit(x))


def mean_or_none(values: Iterable[Optional[float]]) -> Optional[float]:
    """Mean of the finite values, or None when there are none."""
    valid = [v for v in values if v is not None and math.isfinite(v)]
    if not valid:
        return None
    return float(np.mean(valid))


def coerce_float(value) -> Optional[float]:
    """Best-effort float conversion. Returns None for missing or malformed input."""
    if value is None or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    return result if math.isfinite(result) else None


def coerce_int(value) -> Optional[int]:
    """Best-effort int conversion. Returns None for missing or malformed input."""
    result = coerce_float(value)
    return int(result) if result is not None else None


def coerce_bool(value) -> Optional[bool]:
    """Interpret common truthy/falsy encodings. Returns None when undecidable."""
    if value is None:
        return None
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in ("true", "t", "yes", "y", "1"):
            return True
        if text in ("false", "f", "no", "n", "0", ""):
            return False
    return None
