"""
LMS (Box-Cox) transforms and z-score percentiles.

Z = ((X/M)^L - 1) / (L * S)   when L != 0
Z = ln(X/M) / S               when L == 0
X = M * (1 + L*S*Z)^(1/L)     inverse, L != 0
X = M * exp(S*Z)              inverse, L == 0

Reference: Cole TJ (1990), WHO Child Growth Standards (MGRS, 2006).
"""
import math
from typing import Optional

import numpy as np
from scipy import stats

from config.settings import (
    L_ZERO_THRESHOLD, Z_SCORE_CLAMP, PERCENTILE_TAIL_Z,
    PERCENTILE_MIN, PERCENTILE_MAX,
)


def lms_zscore(value: float, l: float, m: float, s: float) -> float:
    """Z-score of ``value`` against one LMS triple.

    Non-finite results (overflow of the power term, log of a vanishing ratio)
    are clamped to +/-10 depending on which side of the median the value sits.
    The caller is responsible for rejecting ``m <= 0`` or ``s <= 0``.
    """
    x = np.float64(value)
    with np.errstate(over='ignore', divide='ignore', invalid='ignore'):
        ratio = x / np.float64(m)
        if abs(l) < L_ZERO_THRESHOLD:
            z = np.log(ratio) / s
        else:
            z = (np.power(ratio, l) - 1.0) / (l * s)
    if not np.isfinite(z):
        return Z_SCORE_CLAMP if value > m else -Z_SCORE_CLAMP
    return float(z)


def lms_value(l: float, m: float, s: float, z: float) -> Optional[float]:
    """Measurement value sitting at ``z`` standard deviations.

    Returns None where the Box-Cox curve is undefined (1 + L*S*Z <= 0).
    """
    if abs(l) < L_ZERO_THRESHOLD:
        return float(m * math.exp(s * z))
    inner = 1.0 + l * s * z
    if inner <= 0:
        return None
    return float(m * inner ** (1.0 / l))


def zscore_to_percentile(z: float) -> float:
    """Percentile (0.01-99.99, two decimals) of a standard-normal z-score."""
    if z < -PERCENTILE_TAIL_Z:
        return PERCENTILE_MIN
    if z > PERCENTILE_TAIL_Z:
        return PERCENTILE_MAX
    cdf = float(stats.norm.cdf(z))
    percentile = round(cdf * 100.0, 2)
    return max(PERCENTILE_MIN, min(PERCENTILE_MAX, percentile))
