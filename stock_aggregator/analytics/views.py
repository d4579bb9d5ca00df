"""
Recompute pipelines for the two views.

Both functions are pure in (raw samples, window, now): they hold no state
between calls, so a caller that receives results out of order simply drops
the stale one (see WindowController.is_current).
"""

import logging
from typing import Mapping
from stock_aggregator.entities import AverageView, CorrelationView
from stock_aggregator.analytics.align import DEFAULT_BUCKET, align_series
from stock_aggregator.analytics.average import average_view
from stock_aggregator.analytics.correlation import correlation_matrix
from stock_aggregator.analytics.normalize import normalize, parse_payload
from stock_aggregator.analytics.window import filter_window, resolve_now, validate_window

logger = logging.getLogger(__name__)


def build_average_view(raw, window: int, now=None) -> AverageView:
    """
    Average price over the window for one ticker.

    Args:
        raw: Raw fetch result (list of records or {"stock": {...}}),
            or an already tagged SingleSample / SampleList
        window: Window size in minutes
        now: End of the window (default: current UTC time)

    Returns:
        AverageView; average is 0.0 when no sample falls in the window

    Raises:
        InvalidWindowError: If window is invalid
    """
    minutes = validate_window(window)
    samples = normalize(parse_payload(raw))
    current = filter_window(samples, minutes, resolve_now(now))
    logger.debug("%d of %d samples inside %d minute window", len(current), len(samples), minutes)
    return average_view(current)


def build_correlation_view(
    raw_by_ticker: Mapping[str, object],
    window: int,
    now=None,
    policy: str = "bucket",
    bucket: str = DEFAULT_BUCKET
) -> CorrelationView:
    """
    Correlation heatmap data for a set of tickers.

    Args:
        raw_by_ticker: Raw fetch result per ticker
        window: Window size in minutes
        now: End of the window (default: current UTC time)
        policy: "bucket" or "truncate" (see align_series)
        bucket: Slot width for the bucket policy

    Returns:
        CorrelationView; tickers with too few points are listed in
        ``excluded`` rather than failing the view

    Raises:
        InvalidWindowError: If window is invalid
        ValueError: If policy or bucket is invalid
    """
    minutes = validate_window(window)
    samples_by_ticker = {
        ticker: normalize(parse_payload(raw))
        for ticker, raw in raw_by_ticker.items()
    }
    aligned = align_series(samples_by_ticker, minutes, resolve_now(now), policy=policy, bucket=bucket)
    return CorrelationView(
        matrix=correlation_matrix(aligned),
        window=minutes,
        policy=policy,
        length=len(aligned),
        excluded=aligned.excluded,
    )


def latest_observed(*raws):
    """
    Latest sample timestamp across raw fetch results, or None if empty.

    Used to anchor the window at the newest data instead of the wall
    clock when the source serves a closed market's last session.
    """
    latest = None
    for raw in raws:
        samples = normalize(parse_payload(raw))
        if samples and (latest is None or samples[-1].observed_at > latest):
            latest = samples[-1].observed_at
    return latest
