"""
Alignment of several tickers' samples onto a common axis for correlation.

Two policies are available:

- ``"bucket"`` (default): floor every sample into a fixed-width time slot,
  average within each slot per ticker, then keep only the slots every
  ticker has. Gives point-for-point correspondence under irregular cadence.
- ``"truncate"``: keep the first min(len) window samples of each ticker,
  matched by position. Only meaningful when all tickers share a cadence.
"""

import logging
from typing import Dict, List, Mapping, Sequence, Union
import pandas as pd
from stock_aggregator.entities import AlignedSeries, PriceSample, PriceSeries
from stock_aggregator.analytics.window import filter_window, resolve_now, validate_window

logger = logging.getLogger(__name__)

POLICIES = ("bucket", "truncate")
DEFAULT_BUCKET = "1min"
MIN_POINTS = 2

SeriesInput = Union[PriceSeries, Sequence[PriceSample]]


def _samples_of(series: SeriesInput) -> List[PriceSample]:
    if isinstance(series, PriceSeries):
        return list(series.samples)
    return sorted(series, key=lambda s: s.observed_at)


def _bucket_prices(series: PriceSeries, width: pd.Timedelta) -> pd.Series:
    """Mean price per time slot, indexed by slot start."""
    prices = series.prices
    return prices.groupby(prices.index.floor(width)).mean()


def _empty(policy: str, excluded: List[str]) -> AlignedSeries:
    return AlignedSeries(frame=pd.DataFrame(dtype="float64"), policy=policy, excluded=tuple(excluded))


def align_series(
    series_by_ticker: Mapping[str, SeriesInput],
    window: int,
    now=None,
    policy: str = "bucket",
    bucket: str = DEFAULT_BUCKET
) -> AlignedSeries:
    """
    Restrict each ticker to the window and align the survivors.

    Preconditions:
        - series_by_ticker maps ticker -> samples (or PriceSeries)
        - policy is "bucket" or "truncate"
        - bucket is a positive pandas offset string (bucket policy only)

    Postconditions:
        - Only samples with now - window <= observed_at <= now are used
        - Tickers with fewer than 2 points are excluded, in input order
        - All kept columns have the same length, >= 2, with no NaN
        - If fewer than 2 shared points remain the result is empty and
          every ticker is listed as excluded

    Args:
        series_by_ticker: Samples per ticker
        window: Window size in minutes
        now: End of the window (default: current UTC time)
        policy: Alignment policy
        bucket: Slot width for the bucket policy

    Returns:
        AlignedSeries

    Raises:
        InvalidWindowError: If window is invalid
        ValueError: If policy or bucket is invalid
    """
    if policy not in POLICIES:
        raise ValueError(f"policy must be one of {POLICIES}, got {policy!r}")
    minutes = validate_window(window)
    end = resolve_now(now)

    width = None
    if policy == "bucket":
        width = pd.Timedelta(bucket)
        if width <= pd.Timedelta(0):
            raise ValueError(f"bucket must be a positive duration, got {bucket!r}")

    kept: Dict[str, Union[List[PriceSample], pd.Series]] = {}
    excluded = []
    for ticker, series in series_by_ticker.items():
        samples = filter_window(_samples_of(series), minutes, end)
        points = _bucket_prices(PriceSeries(ticker, samples), width) if width is not None and samples else samples
        if len(points) < MIN_POINTS:
            logger.info("excluding %s: %d point(s) in %d minute window", ticker, len(points), minutes)
            excluded.append(ticker)
            continue
        kept[ticker] = points

    if not kept:
        return _empty(policy, excluded)

    if policy == "truncate":
        length = min(len(points) for points in kept.values())
        frame = pd.DataFrame(
            {ticker: [s.price for s in points[:length]] for ticker, points in kept.items()},
            dtype="float64"
        )
    else:
        frame = pd.concat(kept, axis=1, join="inner")
        frame = frame.dropna()

    if len(frame) < MIN_POINTS:
        logger.warning(
            "only %d shared point(s) across %s, nothing to correlate",
            len(frame), ", ".join(kept)
        )
        return _empty(policy, excluded + list(kept))

    return AlignedSeries(frame=frame, policy=policy, excluded=tuple(excluded))
