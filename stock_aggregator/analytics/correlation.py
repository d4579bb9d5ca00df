"""
Pairwise Pearson correlation between aligned price series.

Uses the two-pass formula (deviations from the mean first, then sums of
products) in float64, which stays accurate for large price levels where
the single-pass sum-of-squares form cancels badly. Deviations are scaled
to a max magnitude of 1 before the products so they cannot overflow.
"""

from typing import Optional
import numpy as np
import pandas as pd
from stock_aggregator.entities import (
    AlignedSeries,
    Correlation,
    CorrelationMatrix,
    UNDEFINED_CORRELATION,
)


def is_constant(values: np.ndarray) -> bool:
    """True when every value is identical (zero variance)."""
    return bool(values.max() == values.min())


def unit_deviations(values: np.ndarray) -> Optional[np.ndarray]:
    """
    Deviations from the mean divided by their largest magnitude.

    Returns None for constant series and for series whose mean or
    deviations are not finite; no correlation exists for those.
    """
    if is_constant(values):
        return None
    deviations = values - values.mean()
    scale = np.abs(deviations).max()
    if not np.isfinite(scale) or scale == 0:
        return None
    return deviations / scale


def _coefficient(dx: np.ndarray, dy: np.ndarray) -> Correlation:
    r = np.dot(dx, dy) / np.sqrt(np.dot(dx, dx) * np.dot(dy, dy))
    if not np.isfinite(r):
        return UNDEFINED_CORRELATION
    return float(np.clip(r, -1.0, 1.0))


def pearson(x, y) -> Correlation:
    """
    Pearson correlation coefficient between two equal-length series.

    Preconditions:
        - len(x) == len(y) >= 2

    Returns:
        Coefficient in [-1, 1], or UNDEFINED_CORRELATION if either
        series is constant or not finite

    Raises:
        ValueError: If lengths differ or are below 2
    """
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    if x.shape != y.shape:
        raise ValueError(f"length mismatch: {len(x)} vs {len(y)}")
    if len(x) < 2:
        raise ValueError("need at least 2 points to correlate")

    dx = unit_deviations(x)
    dy = unit_deviations(y)
    if dx is None or dy is None:
        return UNDEFINED_CORRELATION
    return _coefficient(dx, dy)


def correlation_matrix(aligned: AlignedSeries) -> CorrelationMatrix:
    """
    Build the symmetric correlation matrix for an aligned set.

    Preconditions:
        - aligned columns have equal length >= 2 (or there are none)

    Postconditions:
        - corr(a, b) == corr(b, a) for every pair
        - corr(a, a) == 1.0 for every non-constant, finite series
        - Every cell touching a constant series is undefined
        - No cell is NaN or infinite

    Args:
        aligned: Output of align_series

    Returns:
        CorrelationMatrix keyed by the aligned tickers
    """
    tickers = aligned.tickers
    if not tickers:
        return CorrelationMatrix.empty()

    data = aligned.frame.to_numpy(dtype=np.float64)
    n = len(tickers)
    deviations = [unit_deviations(data[:, i]) for i in range(n)]

    values = np.zeros((n, n), dtype=np.float64)
    defined = np.zeros((n, n), dtype=bool)
    for i in range(n):
        if deviations[i] is None:
            continue
        values[i, i] = 1.0
        defined[i, i] = True
        for j in range(i + 1, n):
            if deviations[j] is None:
                continue
            r = _coefficient(deviations[i], deviations[j])
            if r is UNDEFINED_CORRELATION:
                continue
            values[i, j] = values[j, i] = r
            defined[i, j] = defined[j, i] = True

    return CorrelationMatrix(
        pd.DataFrame(values, index=tickers, columns=tickers),
        pd.DataFrame(defined, index=tickers, columns=tickers),
    )
